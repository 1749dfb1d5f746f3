"""
Record extraction from raw test runner exports.

A run export is a tree of suites, specs and tests::

    {"suites": [{"title": ..., "file": ..., "suites": [...],
                 "specs": [{"title": ..., "file": ..., "tags": [...],
                            "tests": [{"projectName": ..., "annotations": [...],
                                       "results": [{"status", "duration", "retry", "startTime"}]}]}]}],
     "stats": {"startTime": ...}, "runId": 42}

Every test under a spec becomes at most one :class:`TestRecord`. Leaves that
cannot be interpreted are skipped with a warning and never reach the counts.
"""

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger
from pydantic import ValidationError

from ..config import ExtractionRules
from ..core.utils import safe_load_json
from ..exceptions import ExtractionError
from ..models import TestRecord, TestStatus
from .patterns import PatternMatcher, split_structured_tags

RUNNER_STATUS_MAP = {
    "passed": TestStatus.PASSED,
    "expected": TestStatus.PASSED,
    "failed": TestStatus.FAILED,
    "unexpected": TestStatus.FAILED,
    "timedout": TestStatus.FAILED,
    "interrupted": TestStatus.FAILED,
    "skipped": TestStatus.SKIPPED,
    "flaky": TestStatus.FLAKY,
}

ID_ANNOTATIONS = ("testid", "id")


class MalformedLeafError(ValueError):
    """Raised internally when one test leaf cannot be turned into a record."""


def load_run_export(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a runner JSON export.

    A missing or unreadable file is not an error: it yields an empty export,
    so ingestion proceeds with an empty batch.
    """
    try:
        data = safe_load_json(path)
    except FileNotFoundError:
        logger.warning(f"Run export not found, using an empty batch: {path}")
        return {}
    except (ValueError, OSError) as e:
        logger.warning(f"Run export unreadable, using an empty batch: {path} ({e})")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Run export {path} is a {type(data).__name__}, not an object; using an empty batch")
        return {}
    return data


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds; None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def resolve_run_id(raw: Mapping[str, Any]) -> Optional[int]:
    """Run identifier from ``runId`` or ``config.metadata.runId``."""
    candidate = raw.get("runId")
    if candidate is None:
        config = raw.get("config")
        metadata = config.get("metadata") if isinstance(config, dict) else None
        if isinstance(metadata, dict):
            candidate = metadata.get("runId")
    if candidate is None or isinstance(candidate, bool):
        return None
    try:
        return int(candidate)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer runId: {candidate!r}")
        return None


def iter_test_leaves(
    suites: Any,
    parent_titles: Tuple[str, ...] = (),
    parent_file: str = ""
) -> Iterator[Tuple[Tuple[str, ...], Dict[str, Any], Any]]:
    """
    Walk nested suites depth-first.

    Yields:
        ``(suite_titles, spec, test)`` for every test entry under every spec.
        ``spec`` carries a resolved ``file`` key.
    """
    if not isinstance(suites, list):
        return
    for suite in suites:
        if not isinstance(suite, dict):
            logger.warning(f"Skipping non-object suite entry: {suite!r}")
            continue
        title = suite.get("title")
        suite_file = suite.get("file") or parent_file
        titles = parent_titles
        # The root suite of a file is titled with the file name itself
        if isinstance(title, str) and title.strip() and title != suite_file:
            titles = parent_titles + (title.strip(),)

        for spec in suite.get("specs") or []:
            if not isinstance(spec, dict):
                logger.warning(f"Skipping non-object spec entry: {spec!r}")
                continue
            spec = {**spec, "file": spec.get("file") or suite_file or ""}
            tests = spec.get("tests")
            if not isinstance(tests, list) or not tests:
                # A spec without tests is still a leaf; it is rejected downstream
                yield titles, spec, None
                continue
            for test in tests:
                yield titles, spec, test

        yield from iter_test_leaves(suite.get("suites"), titles, suite_file)


def _annotations(test: Mapping[str, Any]) -> Tuple[Dict[str, str], List[str]]:
    """Annotation map keyed by lower-cased type, plus ``tag`` annotation values."""
    mapping: Dict[str, str] = {}
    tags: List[str] = []
    for annotation in test.get("annotations") or []:
        if not isinstance(annotation, dict):
            continue
        kind = annotation.get("type")
        if not isinstance(kind, str) or not kind.strip():
            continue
        description = annotation.get("description")
        description = "" if description is None else str(description).strip()
        if kind.strip().lower() == "tag":
            tags.append(description)
        else:
            mapping[kind.strip().lower()] = description
    return mapping, tags


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


def _runner_status(value: Any) -> Optional[TestStatus]:
    if not isinstance(value, str):
        return None
    return RUNNER_STATUS_MAP.get(value.strip().lower())


def _final_status(results: Sequence[Mapping[str, Any]], test_status: Any) -> TestStatus:
    """
    Status of the most recent attempt.

    A passing final attempt becomes flaky when an earlier attempt failed or
    the runner itself reports the test as flaky.
    """
    status = _runner_status(results[-1].get("status")) if results else None
    if status is None:
        status = _runner_status(test_status)
    if status is None:
        raise MalformedLeafError("no recognizable status")

    if status is TestStatus.PASSED:
        earlier = (_runner_status(r.get("status")) for r in results[:-1])
        if any(s is TestStatus.FAILED for s in earlier) or _runner_status(test_status) is TestStatus.FLAKY:
            return TestStatus.FLAKY
    return status


def _duration_ms(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedLeafError(f"non-numeric duration {value!r}")
    return max(0, int(round(value)))


def stable_test_id(source_file: str, suite_titles: Sequence[str], title: str, project: Optional[str]) -> str:
    """Identity derived from location when the test carries no explicit id."""
    key = "::".join([source_file, " > ".join([*suite_titles, title]), project or ""])
    return "T-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]


class RecordExtractor:
    """
    Flattens one run export into ``TestRecord`` entries.

    Args:
        rules: Keyword tables; defaults to ``ExtractionRules()``
        matcher: Pre-built matcher, mainly for tests
    """

    def __init__(self, rules: Optional[ExtractionRules] = None, matcher: Optional[PatternMatcher] = None):
        self.rules = rules if rules is not None else ExtractionRules()
        self.matcher = matcher if matcher is not None else PatternMatcher(self.rules)

    def build_record(
        self,
        suite_titles: Tuple[str, ...],
        spec: Mapping[str, Any],
        test: Any,
        run_id: Optional[int],
        fallback_time: Optional[datetime]
    ) -> TestRecord:
        """
        Build the record for one leaf.

        Raises:
            MalformedLeafError: If the leaf has no title, no attempts or no status
        """
        title = spec.get("title")
        if not isinstance(title, str) or not title.strip():
            raise MalformedLeafError("missing title")
        title = title.strip()
        if not isinstance(test, dict):
            raise MalformedLeafError("missing test entry")

        results = test.get("results")
        if results is None:
            results = []
        if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
            raise MalformedLeafError("results is not a list of objects")

        status = _final_status(results, test.get("status"))
        latest = results[-1] if results else {}
        retry = latest.get("retry", max(len(results) - 1, 0))
        if isinstance(retry, bool) or not isinstance(retry, int) or retry < 0:
            raise MalformedLeafError(f"invalid retry index {retry!r}")

        source_file = str(spec.get("file") or "")
        project = test.get("projectName") or None
        annotations, annotation_tags = _annotations(test)
        explicit = _string_list(spec.get("tags")) + _string_list(test.get("tags")) + annotation_tags
        structured, plain_tags = split_structured_tags(explicit)

        feature = (
            annotations.get("feature")
            or structured.get("feature")
            or self.matcher.infer_feature(title, " ".join(suite_titles))
            or self.rules.default_feature
        )
        condition = (
            annotations.get("condition")
            or structured.get("condition")
            or self.matcher.infer_condition(title, project or "")
            or self.rules.default_condition
        )
        tags = set(plain_tags) | self.matcher.infer_tags(title, source_file)

        test_id = next((annotations[k] for k in ID_ANNOTATIONS if annotations.get(k)), None)
        test_id = test_id or self.matcher.find_test_id(title)
        if test_id and project:
            # One spec runs once per runner project; each run is its own cell
            test_id = f"{test_id}@{project}"
        test_id = test_id or stable_test_id(source_file, suite_titles, title, project)

        timestamp = parse_timestamp(latest.get("startTime")) or fallback_time

        try:
            return TestRecord(
                test_id=test_id,
                title=title,
                feature=feature,
                condition=condition,
                tags=tags,
                status=status,
                duration_ms=_duration_ms(latest.get("duration")),
                retry_count=retry,
                source_file=source_file,
                timestamp=timestamp,
                run_id=run_id,
                project=project,
                annotations=annotations,
            )
        except ValidationError as e:
            raise MalformedLeafError(str(e)) from e

    def extract(self, raw: Any, now: Optional[datetime] = None) -> List[TestRecord]:
        """
        Extract every interpretable leaf.

        Duplicate test ids keep the last observation at the position of the
        first, so test ids are unique within the returned batch.

        Raises:
            ExtractionError: If ``raw`` is not a mapping
        """
        if not isinstance(raw, Mapping):
            raise ExtractionError(
                f"Run export must be a mapping, got {type(raw).__name__}",
                error_code="EXTRACT_001",
                context={"actual_type": type(raw).__name__},
            )

        run_id = resolve_run_id(raw)
        stats = raw.get("stats")
        run_start = parse_timestamp(stats.get("startTime")) if isinstance(stats, dict) else None
        fallback_time = run_start or now

        records: Dict[str, TestRecord] = {}
        skipped = 0
        for suite_titles, spec, test in iter_test_leaves(raw.get("suites")):
            try:
                record = self.build_record(suite_titles, spec, test, run_id, fallback_time)
            except MalformedLeafError as e:
                skipped += 1
                logger.warning(f"Skipping malformed test '{spec.get('title')}' in {spec.get('file')}: {e}")
                continue

            if record.test_id in records:
                logger.warning(f"Duplicate test id {record.test_id} in batch; keeping the last observation")
            records[record.test_id] = record
            logger.debug(
                f"Extracted {record.test_id}: {record.feature}/{record.condition} "
                f"{record.status.value} tags={sorted(record.tags)}"
            )

        logger.info(f"Extracted {len(records)} records ({skipped} skipped, runId={run_id})")
        return list(records.values())


def extract_records(
    raw: Any,
    rules: Optional[ExtractionRules] = None,
    now: Optional[datetime] = None
) -> List[TestRecord]:
    """Flatten a raw run export into normalized records."""
    return RecordExtractor(rules).extract(raw, now=now)


__all__ = [
    "RUNNER_STATUS_MAP",
    "MalformedLeafError",
    "RecordExtractor",
    "extract_records",
    "load_run_export",
    "iter_test_leaves",
    "parse_timestamp",
    "resolve_run_id",
    "stable_test_id",
]
