"""Aggregate statistics over a batch of trust reports."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from skilltrust.batch.runner import BatchResult
from skilltrust.core.models import Badge, Severity, round_half_up

SCORE_BUCKETS: tuple[tuple[str, int], ...] = (
    ("0-19", 20),
    ("20-39", 40),
    ("40-59", 60),
    ("60-79", 80),
    ("80-89", 90),
    ("90-100", 101),
)
TOP_FINDINGS_LIMIT = 10


@dataclass(frozen=True)
class TopFinding:
    id: str
    title: str
    count: int


@dataclass(frozen=True)
class BatchSummary:
    """Counts and score statistics of one batch.

    Attributes:
        total: Number of targets.
        scanned: Targets that produced a report.
        failed: Targets that failed.
        badges: Report count per badge; all four tiers are always present.
        average_score: Mean overall score, rounded half up (0 when empty).
        median_score: Median overall score, rounded half up (0 when empty).
        score_distribution: Report count per score bucket.
        top_findings: Most frequent non-info findings, grouped by title.
    """

    total: int
    scanned: int
    failed: int
    badges: dict[Badge, int]
    average_score: int
    median_score: int
    score_distribution: dict[str, int]
    top_findings: tuple[TopFinding, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSkills": self.total,
            "scanned": self.scanned,
            "failed": self.failed,
            "badges": {badge.value: count for badge, count in self.badges.items()},
            "averageScore": self.average_score,
            "medianScore": self.median_score,
            "scoreDistribution": dict(self.score_distribution),
            "topFindings": [
                {"id": f.id, "title": f.title, "count": f.count} for f in self.top_findings
            ],
        }


def score_bucket(score: int) -> str:
    for label, upper in SCORE_BUCKETS:
        if score < upper:
            return label
    return SCORE_BUCKETS[-1][0]


def median(values: list[int]) -> float:
    ordered = sorted(values)
    if not ordered:
        return 0.0
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


def summarize_batch(result: BatchResult, *, top: int = TOP_FINDINGS_LIMIT) -> BatchSummary:
    """Summarize a batch.

    Badge counts come from each report's own badge, so two reports with the
    same score can land in different tiers.

    Args:
        result: The batch to summarize.
        top: Maximum number of top findings.

    Returns:
        The ``BatchSummary``.
    """
    reports = [r.report for r in result.reports]
    scores = [r.overall for r in reports]

    badges = {badge: 0 for badge in Badge}
    distribution = {label: 0 for label, _ in SCORE_BUCKETS}
    for report in reports:
        badges[report.badge] += 1
        distribution[score_bucket(report.overall)] += 1

    counts: Counter[str] = Counter()
    first_id: dict[str, str] = {}
    for report in reports:
        for finding in report.findings:
            if finding.severity is Severity.INFO:
                continue
            counts[finding.title] += 1
            first_id.setdefault(finding.title, finding.id)

    return BatchSummary(
        total=len(result.reports) + len(result.failures),
        scanned=len(result.reports),
        failed=len(result.failures),
        badges=badges,
        average_score=round_half_up(sum(scores) / len(scores)) if scores else 0,
        median_score=round_half_up(median(scores)),
        score_distribution=distribution,
        top_findings=tuple(
            TopFinding(id=first_id[title], title=title, count=count)
            for title, count in counts.most_common(top)
        ),
    )
