"""Weighted score aggregation and badge assignment.

The overall score is the weighted sum of the five category scores, rounded
half up and clamped to [0, 100]. The badge is a decision table evaluated
top to bottom:

===================================  ============
Condition                            Badge
===================================  ============
any critical finding                 rejected
score < 50                           rejected
score < 75                           suspicious
score < 90 and high count <= 2       conditional
score >= 90 and high count == 0      certified
high count > 2                       suspicious
otherwise                            conditional
===================================  ============

The first row is what keeps a numerically perfect skill with one critical
finding from ever being certified.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from skilltrust.core.models import (
    Badge,
    Category,
    CategoryScore,
    Finding,
    ScanMetadata,
    Severity,
    TrustReport,
    clamp_score,
    sort_by_severity,
)

REJECT_BELOW = 50
SUSPICIOUS_BELOW = 75
CERTIFIED_AT = 90
MAX_CONDITIONAL_HIGHS = 2


def calculate_overall_score(categories: Mapping[Category, CategoryScore]) -> int:
    """Weighted sum of category scores, rounded half up, clamped to [0, 100]."""
    return clamp_score(sum(c.score * c.weight for c in categories.values()))


def determine_badge(score: int, findings: Iterable[Finding]) -> Badge:
    """Apply the badge decision table.

    Args:
        score: Overall score in [0, 100].
        findings: Every finding of the report.

    Returns:
        The trust tier.
    """
    items = list(findings)
    if any(f.severity is Severity.CRITICAL for f in items):
        return Badge.REJECTED
    high_count = sum(1 for f in items if f.severity is Severity.HIGH)
    if score < REJECT_BELOW:
        return Badge.REJECTED
    if score < SUSPICIOUS_BELOW:
        return Badge.SUSPICIOUS
    if score < CERTIFIED_AT and high_count <= MAX_CONDITIONAL_HIGHS:
        return Badge.CONDITIONAL
    if score >= CERTIFIED_AT and high_count == 0:
        return Badge.CERTIFIED
    if high_count > MAX_CONDITIONAL_HIGHS:
        return Badge.SUSPICIOUS
    return Badge.CONDITIONAL


def flatten_findings(categories: Mapping[Category, CategoryScore]) -> tuple[Finding, ...]:
    """All findings across categories, most severe first."""
    return sort_by_severity([f for c in categories.values() for f in c.findings])


def aggregate_scores(
    categories: Mapping[Category, CategoryScore],
    metadata: ScanMetadata,
) -> TrustReport:
    """Combine the category scores of one scan into a ``TrustReport``."""
    ordered = {category: categories[category] for category in Category if category in categories}
    overall = calculate_overall_score(ordered)
    findings = flatten_findings(ordered)
    return TrustReport(
        overall=overall,
        badge=determine_badge(overall, findings),
        categories=ordered,
        findings=findings,
        metadata=metadata,
    )


def with_category(report: TrustReport, category: Category, score: CategoryScore) -> TrustReport:
    """Replace one category score and re-aggregate the report."""
    categories = dict(report.categories)
    categories[category] = score
    return aggregate_scores(categories, report.metadata)
