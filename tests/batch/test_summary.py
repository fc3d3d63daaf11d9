"""Tests for batch summaries."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from skilltrust.batch.runner import BatchResult, ScanFailure, ScanTargetReport
from skilltrust.batch.summary import median, score_bucket, summarize_batch
from skilltrust.core.models import (
    Badge,
    Category,
    Finding,
    ScanMetadata,
    Severity,
    SkillFormat,
    TrustReport,
)
from skilltrust.core.scoring import determine_badge
from skilltrust.core.taxonomy import ThreatCode

METADATA = ScanMetadata(
    scanned_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    scanner_version="0.4.0",
    duration_ms=1,
    skill_format=SkillFormat.GENERIC,
    skill_name="fixture",
    skill_description="",
)


def _finding(id_: str, title: str, severity: Severity) -> Finding:
    return Finding(
        id=id_,
        category=Category.INJECTION,
        severity=severity,
        title=title,
        description="",
        evidence="",
        deduction=0,
        recommendation="",
        taxonomy=ThreatCode.INSTRUCTION_INJECTION,
    )


def _entry(target: str, overall: int, *findings: Finding) -> ScanTargetReport:
    report = TrustReport(
        overall=overall,
        badge=determine_badge(overall, findings),
        categories={},
        findings=findings,
        metadata=METADATA,
    )
    return ScanTargetReport(target=target, report=report)


class TestBadgeCounts:
    def test_same_score_different_badges(self) -> None:
        """Two 92s: the one with a critical finding is rejected, the other certified."""
        result = BatchResult(reports=(
            _entry("a", 92, _finding("INJ-1", "Override", Severity.CRITICAL)),
            _entry("b", 92),
        ))
        summary = summarize_batch(result)
        assert summary.badges == {
            Badge.CERTIFIED: 1,
            Badge.CONDITIONAL: 0,
            Badge.SUSPICIOUS: 0,
            Badge.REJECTED: 1,
        }
        assert summary.average_score == 92
        assert summary.median_score == 92


class TestStatistics:
    def test_average_and_median_round_half_up(self) -> None:
        result = BatchResult(reports=tuple(
            _entry(str(i), score) for i, score in enumerate((50, 65, 92, 92))
        ))
        summary = summarize_batch(result)
        assert summary.average_score == 75  # 74.75
        assert summary.median_score == 79  # 78.5

    def test_counts_include_failures(self) -> None:
        result = BatchResult(
            reports=(_entry("a", 100),),
            failures=(ScanFailure("b", "boom"), ScanFailure("c", "boom")),
        )
        summary = summarize_batch(result)
        assert (summary.total, summary.scanned, summary.failed) == (3, 1, 2)

    def test_empty_batch(self) -> None:
        summary = summarize_batch(BatchResult())
        assert summary.total == 0
        assert summary.average_score == 0
        assert summary.median_score == 0
        assert set(summary.badges.values()) == {0}

    @pytest.mark.parametrize(
        ("score", "bucket"),
        [(0, "0-19"), (19, "0-19"), (20, "20-39"), (59, "40-59"), (79, "60-79"),
         (89, "80-89"), (90, "90-100"), (100, "90-100")],
    )
    def test_score_bucket(self, score: int, bucket: str) -> None:
        assert score_bucket(score) == bucket

    def test_median_odd(self) -> None:
        assert median([3, 1, 2]) == 2.0
        assert median([]) == 0.0


class TestTopFindings:
    def test_grouped_by_title_excluding_info(self) -> None:
        result = BatchResult(reports=(
            _entry("a", 70, _finding("INJ-1", "Override", Severity.HIGH),
                   _finding("CONT-SAFETY-GOOD", "Safety boundaries defined", Severity.INFO)),
            _entry("b", 60, _finding("INJ-3", "Override", Severity.HIGH),
                   _finding("DEP-URL-1", "Direct IP address reference", Severity.HIGH)),
        ))
        top = summarize_batch(result).top_findings
        assert [(f.id, f.title, f.count) for f in top] == [
            ("INJ-1", "Override", 2),
            ("DEP-URL-1", "Direct IP address reference", 1),
        ]

    def test_limit(self) -> None:
        findings = tuple(_finding(f"X-{i}", f"title {i}", Severity.LOW) for i in range(15))
        result = BatchResult(reports=(_entry("a", 95, *findings),))
        assert len(summarize_batch(result).top_findings) == 10
        assert len(summarize_batch(result, top=3).top_findings) == 3


class TestToDict:
    def test_wire_names(self) -> None:
        data = summarize_batch(BatchResult(reports=(_entry("a", 100),))).to_dict()
        assert data["totalSkills"] == 1
        assert data["badges"] == {"certified": 1, "conditional": 0, "suspicious": 0, "rejected": 0}
        assert data["scoreDistribution"]["90-100"] == 1
        assert data["topFindings"] == []
