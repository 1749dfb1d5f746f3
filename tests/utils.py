"""
Shared builders for the testmatrix test suite.

Runner exports are built from small dictionaries so that each test states
only the fields it cares about:

    from tests.utils import create_result, create_spec, create_suite, create_export

    export = create_export([
        create_suite("search.spec.ts", specs=[
            create_spec("TC-1 search returns results", [create_result("passed")]),
        ]),
    ], run_id=7)

Naming conventions:

- ``create_*``: factory functions for raw runner payloads and records
- ``scenario_*``: ready-made batches used by several test modules
- ``*_strategy``: Hypothesis strategies
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from hypothesis import strategies as st

from testmatrix.models import TestRecord, TestStatus

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def create_result(
    status: str,
    duration: int = 1000,
    retry: Optional[int] = None,
    start: Optional[str] = "2026-01-15T10:00:00Z",
) -> Dict[str, Any]:
    result: Dict[str, Any] = {"status": status, "duration": duration}
    if retry is not None:
        result["retry"] = retry
    if start is not None:
        result["startTime"] = start
    return result


def create_spec(
    title: Optional[str],
    results: Optional[List[Dict[str, Any]]] = None,
    tags: Optional[List[str]] = None,
    annotations: Optional[List[Dict[str, str]]] = None,
    project: Optional[str] = None,
    test_status: Optional[str] = None,
    file: Optional[str] = None,
) -> Dict[str, Any]:
    """A spec holding exactly one test entry."""
    test: Dict[str, Any] = {"results": results if results is not None else []}
    if project is not None:
        test["projectName"] = project
    if annotations:
        test["annotations"] = annotations
    if test_status is not None:
        test["status"] = test_status
    spec: Dict[str, Any] = {"title": title, "tests": [test]}
    if tags:
        spec["tags"] = tags
    if file is not None:
        spec["file"] = file
    return spec


def create_suite(
    title: str,
    specs: Optional[List[Dict[str, Any]]] = None,
    suites: Optional[List[Dict[str, Any]]] = None,
    file: Optional[str] = None,
) -> Dict[str, Any]:
    """A suite; a suite titled like a spec file is treated as that file's root."""
    suite: Dict[str, Any] = {"title": title, "specs": specs or [], "suites": suites or []}
    if file is not None:
        suite["file"] = file
    elif title.endswith((".ts", ".js")):
        suite["file"] = title
    return suite


def create_export(
    suites: List[Dict[str, Any]],
    run_id: Optional[int] = None,
    start: Optional[str] = "2026-01-15T09:59:00Z",
) -> Dict[str, Any]:
    export: Dict[str, Any] = {"suites": suites}
    if run_id is not None:
        export["runId"] = run_id
    if start is not None:
        export["stats"] = {"startTime": start}
    return export


def create_record(
    test_id: str,
    status: str = "passed",
    feature: str = "Search",
    condition: str = "Standard",
    tags: Iterable[str] = (),
    duration_ms: int = 1000,
    retry_count: int = 0,
    run_id: Optional[int] = None,
    title: Optional[str] = None,
) -> TestRecord:
    return TestRecord(
        test_id=test_id,
        title=title or f"test {test_id}",
        feature=feature,
        condition=condition,
        tags=list(tags),
        status=TestStatus(status),
        duration_ms=duration_ms,
        retry_count=retry_count,
        timestamp=FIXED_NOW,
        run_id=run_id,
    )


def scenario_three_records() -> List[TestRecord]:
    """One passed and one critical failure in Search/Standard, one skip in Navigation/Mobile."""
    return [
        create_record("1", "passed", "Search", "Standard"),
        create_record("2", "failed", "Search", "Standard", tags=["critical"]),
        create_record("3", "skipped", "Navigation", "Mobile"),
    ]


def scenario_mixed_export(run_id: Optional[int] = 1) -> Dict[str, Any]:
    """A runner export with nested suites, a retry and a skipped test."""
    return create_export([
        create_suite("search.spec.ts", specs=[
            create_spec("TC-1 search returns results @smoke", [create_result("passed", 1200)]),
            create_spec("TC-2 search handles typos", [
                create_result("failed", 900, retry=0),
                create_result("passed", 1100, retry=1),
            ]),
        ], suites=[
            create_suite("Cart", specs=[
                create_spec("TC-3 checkout critical path", [create_result("failed", 4000)]),
                create_spec("TC-4 cart badge on mobile", [], test_status="skipped"),
            ]),
        ]),
    ], run_id=run_id)


statuses_strategy = st.sampled_from([status.value for status in TestStatus])

record_specs_strategy = st.lists(
    st.tuples(
        st.sampled_from(["Search", "Cart", "Navigation", "Login"]),
        st.sampled_from(["Standard", "Mobile", "Slow3G"]),
        statuses_strategy,
        st.integers(min_value=0, max_value=20000),
    ),
    max_size=40,
)


def records_from_specs(specs) -> List[TestRecord]:
    """Records with unique ids built from ``record_specs_strategy`` draws."""
    return [
        create_record(
            f"TC-{i}",
            status=status,
            feature=feature,
            condition=condition,
            duration_ms=duration,
        )
        for i, (feature, condition, status, duration) in enumerate(specs)
    ]
