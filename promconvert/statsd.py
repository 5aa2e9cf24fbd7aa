"""StatsD gauge emission with Datadog style tags over UDP."""
import logging
import socket
from typing import List, Optional, Sequence

from promconvert.exceptions import TransmissionError
from promconvert.sample import Sample
from promconvert.tags import Tag, format_datadog_tags, merge_tags, parse_global_tags

logger = logging.getLogger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def truncate_gauge(value: float) -> int:
    """Truncate toward zero into the signed 64-bit range of a gauge."""
    gauge = int(value)
    if not INT64_MIN <= gauge <= INT64_MAX:
        raise OverflowError(f"{value!r} does not fit a 64-bit gauge")
    return gauge


class StatsDClient:
    """UDP StatsD client sending Datadog tagged metrics.

    Use as a context manager so the socket is released on every exit path.
    """

    def __init__(self, host: str = "localhost", port: int = 8125, prefix: str = ""):
        self._address = (host, int(port))
        self._prefix = prefix
        self._sock: Optional[socket.socket] = None

    def open(self) -> None:
        if self._sock is not None:
            return
        host, port = self._address
        family, _, _, _, sockaddr = socket.getaddrinfo(host, port, type=socket.SOCK_DGRAM)[0]
        self._address = sockaddr[:2]
        self._sock = socket.socket(family, socket.SOCK_DGRAM)

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> "StatsDClient":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def format_gauge(self, name: str, value: int, tags: Sequence[Tag] = ()) -> str:
        line = f"{self._prefix}{name}:{value}|g"
        if tags:
            line += f"|#{format_datadog_tags(tags)}"
        return line

    def gauge(self, name: str, value: int, tags: Sequence[Tag] = ()) -> None:
        if self._sock is None:
            raise RuntimeError("StatsD client is not open")
        self._sock.sendto(self.format_gauge(name, value, tags).encode("utf-8"), self._address)


def send_to_statsd(
    samples: Sequence[Sample],
    metric_prefix: str,
    global_tags: Sequence[str],
    host: str,
    port: int,
) -> int:
    """
    Send every sample as a gauge, truncating its value toward zero.

    All samples are attempted even after a failure. Gauges that were sent
    stay sent; there is no rollback.

    Returns:
        Number of gauges sent

    Raises:
        TransmissionError: if any sample failed, after the whole batch
    """
    parsed_tags = parse_global_tags(global_tags)
    sent = 0
    failures: List[BaseException] = []

    client = StatsDClient(host, port, prefix=metric_prefix)
    try:
        client.open()
    except OSError as e:
        raise TransmissionError(e, failed=len(samples), sent=0) from e

    try:
        for sample in samples:
            try:
                client.gauge(sample.name, truncate_gauge(sample.value), merge_tags(parsed_tags, sample))
            except (OSError, ValueError, OverflowError) as e:
                logger.warning(f"Failed to send {sample.name!r} to statsd: {e}")
                failures.append(e)
                continue
            sent += 1
    finally:
        client.close()

    logger.info(f"Sent {sent} gauges to statsd at {host}:{port}")
    if failures:
        raise TransmissionError(failures[0], failed=len(failures), sent=sent)
    return sent
