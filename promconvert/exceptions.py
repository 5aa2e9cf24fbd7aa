"""Error types raised by the converter.

Everything derives from ``PromConvertError`` so the command line entry point
can map any failure to a single exit status.
"""
from typing import Optional


class PromConvertError(Exception):
    pass


class ConfigurationError(PromConvertError):
    pass


class PatternError(ConfigurationError):
    def __init__(self, option: str, pattern: str, reason: str):
        super().__init__(f"Invalid {option} regex {pattern!r}: {reason}")
        self.option = option
        self.pattern = pattern


class UnknownFormatError(ConfigurationError):
    def __init__(self, output_format: str):
        super().__init__(f"Unknown output format {output_format!r}")
        self.output_format = output_format


class SourceError(PromConvertError):
    pass


class EncodingError(PromConvertError):
    pass


class TransmissionError(PromConvertError):
    """One or more gauges of a StatsD batch could not be sent."""

    def __init__(self, first_error: Optional[BaseException], failed: int, sent: int):
        self.first_error = first_error
        self.failed = failed
        self.sent = sent
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f"Failed to send {self.failed} of {self.failed + self.sent} samples to statsd, "
            f"first error: {self.first_error}"
        )
