"""Main entry point for the metrics converter."""
import argparse
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence, TextIO

from promconvert.config import Settings, load_config, load_exporter_auth
from promconvert.exceptions import ConfigurationError, PromConvertError
from promconvert.filters import compile_pattern, filter_samples
from promconvert.output import OUTPUT_FORMATS, check_output_format, output_metrics
from promconvert.sample import Sample
from promconvert.sources import query_exporter, query_prometheus
from promconvert.tags import parse_global_tags, split_global_tags

EXIT_OK = 0
EXIT_FAILURE = 2

logger = logging.getLogger(__name__)


def setup_logging(log_level: str):
    """Setup logging configuration. Logs go to stderr, stdout carries the metrics."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    # Reduce noise from some libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="promconvert",
        description="Convert Prometheus metrics to JSON, Graphite, Influx or StatsD",
    )
    parser.add_argument("--config", "-c", help="Path to a YAML file with default option values")
    parser.add_argument("--exporter-url", help="Prometheus exporter URL to pull metrics from.")
    parser.add_argument("--exporter-user", help="Prometheus exporter basic auth user.")
    parser.add_argument("--exporter-password", help="Prometheus exporter basic auth password.")
    parser.add_argument("--exporter-authorization", help="Prometheus exporter Authorization header.")
    parser.add_argument("--prom-url", help="Prometheus API URL (default http://localhost:9090).")
    parser.add_argument("--prom-query", help="Prometheus API query string (default up).")
    parser.add_argument(
        "--output-format",
        help=f"The output format to use for metrics {{{'|'.join(OUTPUT_FORMATS)}}} (default influx).",
    )
    parser.add_argument(
        "--include-regex",
        help="Regex to include metrics, applied against the metric in Prometheus exposition format",
    )
    parser.add_argument("--exclude-regex", help="Regex to exclude metrics, applied after --include-regex")
    parser.add_argument("--statsd-host", help="Statsd hostname for sendtostatsd (default localhost)")
    parser.add_argument("--statsd-port", type=int, help="Statsd port for sendtostatsd (default 8125)")
    parser.add_argument(
        "--metric-prefix",
        help="Metric name prefix, only supported by line protocol and statsd output formats.",
    )
    parser.add_argument("--global-tags", help="Tags to add to all statsd metrics, e.g. foo:bar,baz:bar")
    parser.add_argument(
        "--insecure-skip-verify",
        action="store_true",
        default=None,
        help="Skip TLS peer verification.",
    )
    parser.add_argument("--log-level", help="Logging level (default INFO)")
    return parser.parse_args(argv)


def _explicit_options(args: argparse.Namespace) -> Dict[str, Any]:
    return {key: value for key, value in vars(args).items() if key != "config" and value is not None}


def retrieve_samples(settings: Settings) -> Sequence[Sample]:
    if settings.exporter_url:
        auth = load_exporter_auth(
            settings.exporter_user,
            settings.exporter_password,
            settings.exporter_authorization,
        )
        return query_exporter(
            settings.exporter_url,
            auth,
            settings.insecure_skip_verify,
            timeout=settings.request_timeout_s,
        )
    return query_prometheus(settings.prom_url, settings.prom_query, timeout=settings.request_timeout_s)


def run(settings: Settings, stream: Optional[TextIO] = None) -> None:
    """
    Run one conversion: retrieve, filter, encode.

    Options that need no network access are validated first, so a bad
    format or regex fails before any request is made.
    """
    check_output_format(settings.output_format)
    compile_pattern("include", settings.include_regex)
    compile_pattern("exclude", settings.exclude_regex)
    global_tags: List[str] = split_global_tags(settings.global_tags)
    parse_global_tags(global_tags)

    samples = retrieve_samples(settings)

    if settings.include_regex or settings.exclude_regex:
        samples = filter_samples(samples, settings.include_regex, settings.exclude_regex)

    output_metrics(
        samples,
        settings.output_format,
        settings.metric_prefix,
        global_tags,
        settings.statsd_host,
        settings.statsd_port,
        stream=stream,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function. Returns the process exit status."""
    args = parse_args(argv)

    try:
        settings = load_config(args.config, _explicit_options(args))
    except ConfigurationError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(settings.log_level)

    try:
        run(settings)
    except PromConvertError as e:
        logger.error(f"Error: {e}")
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
