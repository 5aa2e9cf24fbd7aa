"""Global and per-sample tag handling for the StatsD path."""
from typing import Iterable, List, Optional, Sequence, Tuple

from promconvert.exceptions import ConfigurationError
from promconvert.sample import Sample

Tag = Tuple[str, str]


def split_global_tags(raw: Optional[str]) -> List[str]:
    """Split a ``key:value,key:value`` option into its entries."""
    if not raw:
        return []
    return raw.strip().split(",")


def parse_global_tags(entries: Iterable[str]) -> List[Tag]:
    """Parse ``key:value`` strings, splitting each on its first colon."""
    tags = []
    for entry in entries:
        key, sep, value = entry.partition(":")
        if not sep:
            raise ConfigurationError(f"Global tag {entry!r} is not in key:value form")
        tags.append((key.strip(), value.strip()))
    return tags


def merge_tags(global_tags: Sequence[Tag], sample: Sample) -> List[Tag]:
    """Global tags first, then the sample's own labels. No deduplication."""
    return list(global_tags) + list(sample.tag_items())


def format_datadog_tags(tags: Iterable[Tag]) -> str:
    return ",".join(f"{key}:{value}" for key, value in tags)
