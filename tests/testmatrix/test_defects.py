"""Tests for defect synthesis from failed and flaky records."""

import pytest

from testmatrix.defects import (
    RECOMMENDATIONS,
    classify_category,
    classify_severity,
    defect_id,
    is_environmental,
    priority_label,
    synthesize_defect,
    synthesize_defects,
)
from testmatrix.models import DefectCategory, DefectSeverity, RiskLevel, TestStatus

from tests.utils import create_record, scenario_three_records


class TestSynthesizeDefects:

    def test_only_failed_and_flaky_records(self):
        defects = synthesize_defects([
            create_record("T1", "passed"),
            create_record("T2", "failed"),
            create_record("T3", "skipped"),
            create_record("T4", "flaky"),
        ])

        assert [d.test_id for d in defects] == ["T2", "T4"]

    def test_three_record_scenario(self):
        [defect] = synthesize_defects(scenario_three_records())

        assert defect.test_id == "2"
        assert defect.severity is DefectSeverity.CRITICAL
        assert defect.priority == "P1"
        assert defect.risk_level is RiskLevel.HIGH
        assert defect.category is DefectCategory.FUNCTIONAL
        assert defect.recommendation == RECOMMENDATIONS[DefectCategory.FUNCTIONAL]
        assert not defect.is_environmental

    def test_ordered_by_severity_then_test_id(self):
        defects = synthesize_defects([
            create_record("T9", "failed"),
            create_record("T5", "failed", tags=["high-risk"]),
            create_record("T7", "failed", tags=["critical"]),
            create_record("T1", "failed"),
        ])

        assert [d.test_id for d in defects] == ["T7", "T5", "T1", "T9"]

    def test_ids_are_deterministic(self):
        first = synthesize_defects(scenario_three_records())
        second = synthesize_defects(scenario_three_records())

        assert first == second
        assert first[0].id == defect_id("2")

    def test_defect_id_format(self):
        value = defect_id("TC-1")

        assert value.startswith("DEF-")
        assert len(value) == 14
        assert value == value.upper()
        assert defect_id("TC-1") != defect_id("TC-2")


class TestClassification:

    @pytest.mark.parametrize("tags,feature,expected", [
        (["performance", "visual"], "Search", DefectCategory.PERFORMANCE),
        (["accessibility"], "Search", DefectCategory.ACCESSIBILITY),
        (["visual", "negative"], "Search", DefectCategory.VISUAL),
        (["negative"], "Navigation", DefectCategory.ERROR_HANDLING),
        ([], "Dashboard Navigation", DefectCategory.NAVIGATION),
        ([], "Search", DefectCategory.FUNCTIONAL),
    ])
    def test_category_precedence(self, tags, feature, expected):
        assert classify_category(create_record("T1", "failed", feature=feature, tags=tags)) is expected

    @pytest.mark.parametrize("tags,expected", [
        (["critical", "high-risk"], DefectSeverity.CRITICAL),
        (["high-risk"], DefectSeverity.MAJOR),
        (["smoke"], DefectSeverity.MINOR),
    ])
    def test_severity(self, tags, expected):
        assert classify_severity(create_record("T1", "failed", tags=tags)) is expected

    @pytest.mark.parametrize("severity,status,expected", [
        (DefectSeverity.CRITICAL, TestStatus.FLAKY, "P1"),
        (DefectSeverity.MAJOR, TestStatus.FAILED, "P2"),
        (DefectSeverity.MINOR, TestStatus.FAILED, "P3"),
        (DefectSeverity.MINOR, TestStatus.FLAKY, "P4"),
    ])
    def test_priority(self, severity, status, expected):
        assert priority_label(severity, status) == expected

    def test_environmental_by_tag_or_condition(self):
        assert is_environmental(create_record("T1", "failed", tags=["throttled-network"]))
        assert is_environmental(create_record("T2", "failed", tags=["visual", "visual-baseline"]))
        assert not is_environmental(create_record("T5", "failed", tags=["visual"]))
        assert is_environmental(create_record("T3", "failed", condition="Offline"))
        assert not is_environmental(create_record("T4", "failed", condition="Mobile"))

    def test_slow_record_is_medium_risk(self):
        defect = synthesize_defect(create_record("T1", "failed", duration_ms=9000))

        assert defect.risk_level is RiskLevel.MEDIUM
        assert defect.severity is DefectSeverity.MINOR

    def test_serialized_field_names(self):
        defect = synthesize_defect(create_record("T1", "failed", tags=["performance"]))

        dumped = defect.model_dump(by_alias=True, mode="json")

        assert dumped["category"] == "Performance"
        assert dumped["riskLevel"] == "Low"
        assert dumped["isEnvironmental"] is False
        assert dumped["testId"] == "T1"
