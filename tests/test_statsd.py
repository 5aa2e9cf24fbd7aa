"""Tests for StatsD emission and tag merging."""
import socket

import pytest

from promconvert.exceptions import ConfigurationError, TransmissionError
from promconvert.sample import Sample
from promconvert.statsd import StatsDClient, send_to_statsd, truncate_gauge
from promconvert.tags import format_datadog_tags, merge_tags, parse_global_tags, split_global_tags


class FakeSocket:
    """Records datagrams instead of sending them."""
    instances = []
    fail_on = set()
    fail_all = False

    def __init__(self, family=socket.AF_INET, type=socket.SOCK_DGRAM):
        self.sent = []
        self.closed = False
        FakeSocket.instances.append(self)

    def sendto(self, data, address):
        if FakeSocket.fail_all or data in FakeSocket.fail_on:
            raise OSError("network is unreachable")
        self.sent.append((data, address))
        return len(data)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_socket(monkeypatch):
    FakeSocket.instances = []
    FakeSocket.fail_on = set()
    FakeSocket.fail_all = False
    monkeypatch.setattr(socket, "socket", FakeSocket)
    return FakeSocket


def sent_packets(fake):
    return [data.decode() for data, _ in fake.instances[0].sent]


class TestTags:

    def test_split_on_first_colon_and_trim(self):
        assert parse_global_tags([" env : prod ", "url:http://x:80"]) == [("env", "prod"), ("url", "http://x:80")]

    def test_missing_colon(self):
        with pytest.raises(ConfigurationError):
            parse_global_tags(["novalue"])

    def test_split_option(self):
        assert split_global_tags(" a:b,c:d ") == ["a:b", "c:d"]
        assert split_global_tags("") == []
        assert split_global_tags(None) == []

    def test_merge_global_first_with_duplicates(self):
        sample = Sample(labels={"__name__": "cpu", "host": "a", "env": "dev"}, value=1.0)
        merged = merge_tags([("env", "prod")], sample)
        assert merged == [("env", "prod"), ("host", "a"), ("env", "dev")]

    def test_datadog_format(self):
        assert format_datadog_tags([("a", "b"), ("c", "d")]) == "a:b,c:d"


class TestSendToStatsD:

    def test_truncates_toward_zero(self, fake_socket):
        samples = [
            Sample(labels={"__name__": "pos"}, value=3.9),
            Sample(labels={"__name__": "neg"}, value=-3.9),
        ]
        assert send_to_statsd(samples, "", [], "127.0.0.1", 8125) == 2
        assert sent_packets(fake_socket) == ["pos:3|g", "neg:-3|g"]

    def test_prefix_and_tags(self, fake_socket):
        samples = [Sample(labels={"__name__": "cpu", "host": "a"}, value=42.0)]
        send_to_statsd(samples, "app.", ["env:prod", "host: x"], "127.0.0.1", 9125)
        assert sent_packets(fake_socket) == ["app.cpu:42|g|#env:prod,host:x,host:a"]
        assert fake_socket.instances[0].sent[0][1] == ("127.0.0.1", 9125)

    def test_single_client_closed_after_batch(self, fake_socket):
        samples = [Sample(labels={"__name__": f"m{i}"}, value=float(i)) for i in range(3)]
        send_to_statsd(samples, "", [], "127.0.0.1", 8125)
        assert len(fake_socket.instances) == 1
        assert fake_socket.instances[0].closed

    def test_failures_reported_after_whole_batch(self, fake_socket):
        samples = [
            Sample(labels={"__name__": "a"}, value=1.0),
            Sample(labels={"__name__": "b"}, value=2.0),
            Sample(labels={"__name__": "c"}, value=3.0),
        ]

        fake_socket.fail_on = {b"b:2|g"}
        with pytest.raises(TransmissionError) as exc_info:
            send_to_statsd(samples, "", [], "127.0.0.1", 8125)

        assert exc_info.value.failed == 1
        assert exc_info.value.sent == 2
        assert isinstance(exc_info.value.first_error, OSError)
        assert sent_packets(fake_socket) == ["a:1|g", "c:3|g"]
        assert fake_socket.instances[0].closed

    def test_non_finite_value_is_a_failure(self, fake_socket):
        samples = [Sample(labels={"__name__": "nan"}, value=float("nan")), Sample(labels={"__name__": "ok"}, value=1.0)]
        with pytest.raises(TransmissionError) as exc_info:
            send_to_statsd(samples, "", [], "127.0.0.1", 8125)
        assert exc_info.value.failed == 1
        assert sent_packets(fake_socket) == ["ok:1|g"]

    def test_socket_closed_when_every_send_fails(self, fake_socket):
        fake_socket.fail_all = True
        with pytest.raises(TransmissionError) as exc_info:
            send_to_statsd([Sample(labels={"__name__": "a"}, value=1.0)], "", [], "127.0.0.1", 8125)
        assert exc_info.value.sent == 0
        assert fake_socket.instances[0].closed

    def test_bad_global_tag_fails_before_connecting(self, fake_socket):
        with pytest.raises(ConfigurationError):
            send_to_statsd([Sample(labels={"__name__": "a"}, value=1.0)], "", ["oops"], "127.0.0.1", 8125)
        assert fake_socket.instances == []


def test_client_requires_open(fake_socket):
    client = StatsDClient("127.0.0.1", 8125)
    with pytest.raises(RuntimeError):
        client.gauge("m", 1)


def test_client_format_gauge():
    client = StatsDClient(prefix="svc.")
    assert client.format_gauge("m", 5, [("a", "b")]) == "svc.m:5|g|#a:b"
    assert client.format_gauge("m", -1) == "svc.m:-1|g"


def test_unresolvable_host(fake_socket, monkeypatch):
    def fail(*args, **kwargs):
        raise socket.gaierror("Name or service not known")

    monkeypatch.setattr(socket, "getaddrinfo", fail)
    with pytest.raises(TransmissionError) as exc_info:
        send_to_statsd([Sample(labels={"__name__": "a"}, value=1.0)], "", [], "nowhere.invalid", 8125)
    assert (exc_info.value.failed, exc_info.value.sent) == (1, 0)
    assert fake_socket.instances == []


def test_value_outside_int64_is_a_failure(fake_socket):
    samples = [
        Sample(labels={"__name__": "huge"}, value=1e300),
        Sample(labels={"__name__": "big"}, value=9.0e18),
        Sample(labels={"__name__": "small"}, value=-1e19),
    ]
    with pytest.raises(TransmissionError) as exc_info:
        send_to_statsd(samples, "", [], "127.0.0.1", 8125)
    assert (exc_info.value.failed, exc_info.value.sent) == (2, 1)
    assert isinstance(exc_info.value.first_error, OverflowError)
    assert sent_packets(fake_socket) == ["big:9000000000000000000|g"]


def test_truncate_gauge_bounds():
    assert truncate_gauge(-0.5) == 0
    assert truncate_gauge(float(2 ** 62)) == 2 ** 62
    with pytest.raises(OverflowError):
        truncate_gauge(float(2 ** 63))
    with pytest.raises(ValueError):
        truncate_gauge(float("nan"))


def test_client_context_manager_closes(fake_socket):
    with StatsDClient("127.0.0.1", 8125, prefix="svc.") as client:
        client.gauge("m", 2, [("a", "b")])
    assert sent_packets(fake_socket) == ["svc.m:2|g|#a:b"]
    assert fake_socket.instances[0].closed
