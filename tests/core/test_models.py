"""Tests for the core data models: severities, scores, findings and reports."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from skilltrust.core.models import (
    CATEGORY_WEIGHTS,
    Badge,
    Category,
    CategoryScore,
    Finding,
    ScanMetadata,
    Severity,
    SkillFormat,
    TrustReport,
    clamp_score,
    round_half_up,
    sort_by_severity,
)
from skilltrust.core.taxonomy import ThreatCode


def _finding(severity: Severity = Severity.LOW, deduction: int = 5, **kwargs) -> Finding:
    defaults = dict(
        id="X-1",
        category=Category.CONTENT,
        severity=severity,
        title="t",
        description="d",
        evidence="e",
        deduction=deduction,
        recommendation="r",
        taxonomy=ThreatCode.OBFUSCATION,
    )
    defaults.update(kwargs)
    return Finding(**defaults)


class TestSeverity:
    def test_ordering(self) -> None:
        """INFO < LOW < MEDIUM < HIGH < CRITICAL."""
        assert Severity.INFO < Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL

    def test_parse_is_case_insensitive(self) -> None:
        assert Severity.parse(" High ") is Severity.HIGH

    def test_parse_unknown_raises(self) -> None:
        with pytest.raises(ValueError):
            Severity.parse("severe")

    def test_downgrade_respects_floor(self) -> None:
        """Downgrading LOW with a LOW floor stays LOW."""
        assert Severity.CRITICAL.downgraded() is Severity.HIGH
        assert Severity.LOW.downgraded(floor=Severity.LOW) is Severity.LOW
        assert Severity.LOW.downgraded() is Severity.INFO


class TestWeightsAndBadges:
    def test_weights_sum_to_one(self) -> None:
        assert sum(CATEGORY_WEIGHTS.values()) == pytest.approx(1.0)

    def test_category_weight_property(self) -> None:
        assert Category.INJECTION.weight == 0.30

    def test_badge_rank_order(self) -> None:
        assert [b.rank for b in Badge] == [0, 1, 2, 3]
        assert Badge.REJECTED.rank > Badge.CERTIFIED.rank


class TestRounding:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(4.5, 5), (4.49, 4), (67.75, 68), (0.5, 1), (-0.5, 0)],
    )
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected

    def test_clamp_score_bounds(self) -> None:
        assert clamp_score(-20) == 0
        assert clamp_score(140) == 100
        assert clamp_score(72.5) == 73


class TestFinding:
    def test_negative_deduction_rejected(self) -> None:
        with pytest.raises(ValueError):
            _finding(deduction=-1)

    def test_to_dict_uses_external_names(self) -> None:
        """Keys follow the report format; lineNumber only when present."""
        data = _finding(line_number=7).to_dict()
        assert data["owaspCategory"] == "ASST-10"
        assert data["severity"] == "low"
        assert data["category"] == "content"
        assert data["lineNumber"] == 7
        assert "lineNumber" not in _finding().to_dict()

    def test_sort_by_severity_is_stable(self) -> None:
        a = _finding(Severity.LOW, id="A")
        b = _finding(Severity.CRITICAL, id="B")
        c = _finding(Severity.LOW, id="C")
        assert [f.id for f in sort_by_severity([a, b, c])] == ["B", "A", "C"]


class TestCategoryScore:
    def test_from_findings_subtracts_deductions(self) -> None:
        score = CategoryScore.from_findings([_finding(deduction=15), _finding(deduction=10)], 0.1, "s")
        assert score.score == 75

    def test_from_findings_clamps_at_zero(self) -> None:
        score = CategoryScore.from_findings([_finding(deduction=80)] * 2, 0.1, "s")
        assert score.score == 0

    def test_custom_base_is_capped_at_100(self) -> None:
        score = CategoryScore.from_findings([], 0.1, "s", base=120)
        assert score.score == 100


class TestTrustReport:
    def test_to_dict_is_json_shaped(self) -> None:
        metadata = ScanMetadata(
            scanned_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
            scanner_version="0.4.0",
            duration_ms=3,
            skill_format=SkillFormat.CLAUDE,
            skill_name="demo",
            skill_description="",
        )
        finding = _finding(Severity.CRITICAL)
        report = TrustReport(
            overall=90,
            badge=Badge.REJECTED,
            categories={Category.CONTENT: CategoryScore(95, 0.1, (finding,), "s")},
            findings=(finding,),
            metadata=metadata,
        )
        data = report.to_dict()
        assert data["badge"] == "rejected"
        assert data["categories"]["content"]["score"] == 95
        assert data["metadata"]["skillFormat"] == "claude"
        assert data["metadata"]["scannedAt"].startswith("2026-01-02")
        assert report.has_critical
        assert report.count(Severity.CRITICAL) == 1
