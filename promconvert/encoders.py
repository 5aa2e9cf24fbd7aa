"""Text encoders turning a sample set into JSON or line protocol."""
import json
import logging
import math
import time
from decimal import Decimal
from typing import Callable, Dict, List, Sequence, Union

from promconvert.exceptions import EncodingError
from promconvert.sample import Sample

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def format_value(value: float) -> str:
    """Shortest round-trip decimal for a float, never in exponent notation."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return format(Decimal(repr(value)).normalize(), "f")


def _json_number(value: float) -> Union[int, float]:
    # Integral values are written without a trailing ".0"
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


def encode_json(samples: Sequence[Sample]) -> str:
    """
    Encode samples as a compact JSON array.

    Each element is ``{"Tags": [{"Name": ..., "Value": ...}], "Value": n}``
    with tags in label order, metric name label included.

    Raises:
        EncodingError: if a value has no JSON representation (NaN, Inf)
    """
    metrics: List[Dict] = []
    for sample in samples:
        metrics.append({
            "Tags": [{"Name": name, "Value": value} for name, value in sample.labels.items()],
            "Value": _json_number(float(sample.value)),
        })

    try:
        return json.dumps(metrics, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Failed to encode {len(metrics)} samples as JSON: {e}") from e


def encode_graphite(samples: Sequence[Sample], metric_prefix: str = "", clock: Clock = time.time) -> str:
    """Encode samples as Graphite plaintext lines, timestamped per sample."""
    lines = []
    for sample in samples:
        name = f"{metric_prefix}{sample.name}"
        value = format_value(sample.value)
        timestamp = int(clock())
        lines.append(f"{name} {value} {timestamp}\n")
    return "".join(lines)


def _influx_line(sample: Sample, metric_prefix: str, timestamp: int) -> str:
    metric = f"{metric_prefix}{sample.name}"

    for name, value in sample.tag_items():
        tag = f",{name}={value}"
        if "\n" not in tag and tag.count("=") == 1:
            metric += tag
        else:
            logger.debug(f"Dropping malformed influx tag {tag!r} of {sample.name!r}")

    metric = metric.replace("\n", "")

    return f"{metric} value={format_value(sample.value)} {timestamp}\n"


def encode_influx(samples: Sequence[Sample], metric_prefix: str = "", clock: Clock = time.time) -> str:
    """
    Encode samples as Influx line protocol.

    Tags that would break the line syntax are dropped, and a line that
    still does not split into exactly three space separated fields
    (measurement+tags, value, timestamp) is dropped as a whole.
    """
    lines = []
    for sample in samples:
        line = _influx_line(sample, metric_prefix, int(clock()))

        if len(line.split(" ")) != 3:
            logger.debug(f"Dropping malformed influx line {line!r}")
            continue

        lines.append(line)
    return "".join(lines)
