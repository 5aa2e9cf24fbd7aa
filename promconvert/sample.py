"""Data structures for metric samples."""
from dataclasses import dataclass, field
from typing import Dict, Iterator, Tuple

METRIC_NAME_LABEL = "__name__"

_QUOTE_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}


def quote_label_value(value: str) -> str:
    """Double-quote a label value, escaping it like Go's %q verb.

    Printable characters are kept. ASCII controls and DEL become \\xHH,
    other non-printable characters \\uHHHH or \\UHHHHHHHH.
    """
    quoted = ['"']
    for ch in value:
        if ch in _QUOTE_ESCAPES:
            quoted.append(_QUOTE_ESCAPES[ch])
        elif ch.isprintable():
            quoted.append(ch)
        else:
            code = ord(ch)
            if code < 0x80:
                quoted.append(f"\\x{code:02x}")
            elif 0xD800 <= code <= 0xDFFF:
                # lone surrogates are not valid runes
                quoted.append("\\ufffd")
            elif code < 0x10000:
                quoted.append(f"\\u{code:04x}")
            else:
                quoted.append(f"\\U{code:08x}")
    quoted.append('"')
    return "".join(quoted)


@dataclass(frozen=True)
class Sample:
    """A single metric observation: a label set and a value.

    Labels keep the insertion order chosen by the source that built the
    sample. That order is stable for one source response but is not sorted,
    so consumers must not depend on it.
    """
    labels: Dict[str, str] = field(default_factory=dict)
    value: float = 0.0

    @property
    def name(self) -> str:
        """Metric name, or an empty string when the sample carries none."""
        return self.labels.get(METRIC_NAME_LABEL, "")

    def tag_items(self) -> Iterator[Tuple[str, str]]:
        """Yield all labels except the reserved metric name label."""
        for name, value in self.labels.items():
            if name != METRIC_NAME_LABEL:
                yield name, value

    def label_string(self) -> str:
        """Render the full label set in exposition style.

        ``name{a="x", b="y"}`` with labels sorted by name. A sample with no
        labels besides its name renders as the bare name, and one with no
        labels at all renders as ``{}``.
        """
        pairs = sorted(
            f"{name}={quote_label_value(value)}"
            for name, value in self.tag_items()
        )
        if not pairs:
            return self.name if METRIC_NAME_LABEL in self.labels else "{}"
        return f"{self.name}{{{', '.join(pairs)}}}"
