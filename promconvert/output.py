"""Output dispatcher: picks one encoder by name and drives it."""
import logging
import sys
from typing import Callable, Dict, Optional, Sequence, TextIO

from promconvert.encoders import encode_graphite, encode_influx, encode_json
from promconvert.exceptions import UnknownFormatError
from promconvert.sample import Sample
from promconvert.statsd import send_to_statsd

logger = logging.getLogger(__name__)

STATSD_FORMAT = "sendtostatsd"

TEXT_ENCODERS: Dict[str, Callable[[Sequence[Sample], str], str]] = {
    "influx": encode_influx,
    "graphite": encode_graphite,
    "json": lambda samples, metric_prefix: encode_json(samples),
}

OUTPUT_FORMATS = ("influx", "graphite", "json", STATSD_FORMAT)


def check_output_format(output_format: str) -> str:
    if output_format not in OUTPUT_FORMATS:
        raise UnknownFormatError(output_format)
    return output_format


def render(samples: Sequence[Sample], output_format: str, metric_prefix: str = "") -> str:
    """Encode the whole batch with a text encoder and return the blob."""
    encoder = TEXT_ENCODERS.get(output_format)
    if encoder is None:
        raise UnknownFormatError(output_format)
    return encoder(samples, metric_prefix)


def output_metrics(
    samples: Sequence[Sample],
    output_format: str,
    metric_prefix: str = "",
    global_tags: Sequence[str] = (),
    statsd_host: str = "localhost",
    statsd_port: int = 8125,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route a sample set to exactly one encoder.

    Text formats are fully encoded before anything is written, then
    written to ``stream`` (stdout by default) in one go. The statsd format
    sends gauges and writes nothing.
    """
    check_output_format(output_format)
    logger.info(f"Writing {len(samples)} samples as {output_format}")

    if output_format == STATSD_FORMAT:
        send_to_statsd(samples, metric_prefix, global_tags, statsd_host, statsd_port)
        return

    output = render(samples, output_format, metric_prefix)
    stream = stream if stream is not None else sys.stdout
    stream.write(output)
    stream.flush()
