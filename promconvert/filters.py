"""Include/exclude filtering of sample sets by label regex."""
import logging
import re
from typing import Optional, Pattern, Sequence, Tuple

from promconvert.exceptions import PatternError
from promconvert.sample import Sample

logger = logging.getLogger(__name__)


def compile_pattern(option: str, pattern: Optional[str]) -> Optional[Pattern[str]]:
    """Compile a user supplied regex, or return None when it is unset."""
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(option, pattern, str(e)) from e


def filter_samples(
    samples: Sequence[Sample],
    include_regex: Optional[str] = None,
    exclude_regex: Optional[str] = None,
) -> Tuple[Sample, ...]:
    """
    Select samples whose rendered label set matches the given patterns.

    A sample is kept when the include pattern is unset or found in its
    label string, and the exclude pattern is unset or not found in it.
    Both patterns are compiled before any sample is looked at.

    Args:
        samples: Input sample set, left untouched
        include_regex: Pattern a sample must match to be kept
        exclude_regex: Pattern that drops a sample, applied after include

    Returns:
        New tuple with the surviving samples in their original order
    """
    re_include = compile_pattern("include", include_regex)
    re_exclude = compile_pattern("exclude", exclude_regex)

    if re_include is None and re_exclude is None:
        return tuple(samples)

    filtered = []
    for sample in samples:
        metric_string = sample.label_string()

        if re_include is not None and not re_include.search(metric_string):
            continue
        if re_exclude is not None and re_exclude.search(metric_string):
            continue

        filtered.append(sample)

    logger.info(f"Filter kept {len(filtered)} of {len(samples)} samples")
    return tuple(filtered)
