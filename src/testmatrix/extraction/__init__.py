"""
Record extraction: raw runner exports in, normalized ``TestRecord`` batches out.
"""

from .patterns import PatternMatcher, split_structured_tags
from .extractor import (
    RecordExtractor,
    extract_records,
    iter_test_leaves,
    load_run_export,
    parse_timestamp,
    resolve_run_id,
    stable_test_id,
)

__all__ = [
    "PatternMatcher",
    "split_structured_tags",
    "RecordExtractor",
    "extract_records",
    "iter_test_leaves",
    "load_run_export",
    "parse_timestamp",
    "resolve_run_id",
    "stable_test_id",
]
