"""Sample retrieval from a Prometheus query API or an exporter endpoint."""
import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

import requests
from prometheus_client.parser import text_string_to_metric_families

from promconvert.config import ExporterAuth
from promconvert.exceptions import SourceError
from promconvert.sample import METRIC_NAME_LABEL, Sample

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 10
QUERY_PATH = "/api/v1/query"
COUNTER_SUFFIX = "_total"


def _vector_to_samples(result: List[Dict[str, Any]]) -> Tuple[Sample, ...]:
    samples = []
    for item in result:
        try:
            labels = {str(k): str(v) for k, v in item["metric"].items()}
            value = float(item["value"][1])
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise SourceError(f"Malformed vector sample {item!r}: {e}") from e
        samples.append(Sample(labels=labels, value=value))
    return tuple(samples)


def query_prometheus(
    prom_url: str,
    query: str,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> Tuple[Sample, ...]:
    """
    Run an instant query against the Prometheus HTTP API.

    Args:
        prom_url: Base URL of the Prometheus server
        query: PromQL expression, evaluated at the current time
        timeout: Request timeout in seconds

    Returns:
        Samples of the resulting instant vector, in response order

    Raises:
        SourceError: on transport errors, API errors or a non-vector result
    """
    url = prom_url.rstrip("/") + QUERY_PATH
    params = {"query": query, "time": f"{time.time():.3f}"}

    with requests.Session() as session:
        try:
            resp = session.get(url, params=params, timeout=timeout)
        except requests.RequestException as e:
            raise SourceError(f"Prometheus query to {url} failed: {e}") from e

    try:
        body = resp.json()
    except ValueError as e:
        raise SourceError(f"Prometheus returned a non JSON response: {resp.status_code} {resp.reason}") from e

    if not isinstance(body, dict) or body.get("status") != "success":
        error_type = body.get("errorType", "error") if isinstance(body, dict) else "error"
        error = body.get("error", f"{resp.status_code} {resp.reason}") if isinstance(body, dict) else body
        raise SourceError(f"Prometheus query failed: {error_type}: {error}")

    data = body.get("data") or {}
    if not isinstance(data, dict) or data.get("resultType") != "vector":
        raise SourceError("unexpected response type")

    result = data.get("result") or []
    if not isinstance(result, list):
        raise SourceError("unexpected response type")

    samples = _vector_to_samples(result)
    logger.info(f"Prometheus query {query!r} returned {len(samples)} samples")
    return samples


def _split_sample_line(line: str) -> Tuple[str, Optional[List[str]]]:
    """
    Split a sample line into its metric name and the fields after the labels.

    Returns None for the fields when the label block is not closed; the
    exposition parser reports that case itself.
    """
    end = 0
    while end < len(line) and line[end] not in "{ \t":
        end += 1
    name, rest = line[:end], line[end:].lstrip(" \t")

    if rest.startswith("{"):
        in_quotes = escaped = False
        for i, ch in enumerate(rest):
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_quotes = not in_quotes
            elif ch == "}" and not in_quotes:
                rest = rest[i + 1:]
                break
        else:
            return name, None

    return name, rest.split()


def _scan_sample_names(text: str) -> Set[str]:
    """
    Collect metric names as written on sample lines.

    A sample line must carry a value and at most a timestamp after its
    name and labels.
    """
    names = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        name, fields = _split_sample_line(line)
        if fields is not None and not 1 <= len(fields) <= 2:
            raise SourceError(f"Failed to parse exporter response: unexpected fields in line {line!r}")
        names.add(name)
    return names


def parse_exposition(text: str) -> Tuple[Sample, ...]:
    """Parse Prometheus text exposition format into samples.

    Metric names are kept as written. The parser appends ``_total`` to
    counters that lack it, which is undone here.
    """
    written_names = _scan_sample_names(text)
    samples = []
    try:
        for family in text_string_to_metric_families(text):
            for family_sample in family.samples:
                name = family_sample.name
                if (
                    name not in written_names
                    and name.endswith(COUNTER_SUFFIX)
                    and name[:-len(COUNTER_SUFFIX)] in written_names
                ):
                    name = name[:-len(COUNTER_SUFFIX)]
                labels = {METRIC_NAME_LABEL: name}
                labels.update(family_sample.labels)
                samples.append(Sample(labels=labels, value=float(family_sample.value)))
    except ValueError as e:
        raise SourceError(f"Failed to parse exporter response: {e}") from e
    return tuple(samples)


def query_exporter(
    exporter_url: str,
    auth: ExporterAuth,
    insecure_skip_verify: bool = False,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> Tuple[Sample, ...]:
    """
    Scrape an exporter endpoint and parse its samples.

    An explicit Authorization header takes precedence over basic auth.

    Raises:
        SourceError: on transport errors, a non 200 status or unparsable text
    """
    opts: Dict[str, Any] = {"headers": {}, "timeout": timeout, "verify": not insecure_skip_verify}
    if auth.header:
        opts["headers"]["Authorization"] = auth.header
    elif auth.has_basic_auth:
        opts["auth"] = (auth.user, auth.password)

    with requests.Session() as session:
        try:
            resp = session.get(exporter_url, **opts)
        except requests.RequestException as e:
            raise SourceError(f"Scraping {exporter_url} failed: {e}") from e

    if resp.status_code != 200:
        raise SourceError(f"exporter returned non OK HTTP response status: {resp.status_code} {resp.reason}")

    samples = parse_exposition(resp.text)
    logger.info(f"Exporter {exporter_url} returned {len(samples)} samples")
    return samples
