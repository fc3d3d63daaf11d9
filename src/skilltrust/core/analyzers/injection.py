"""Injection analyzer (weight 0.30).

Matches the ``injection.yaml`` pattern families against the raw document,
then runs the hidden-content detectors from ``obfuscation``.

Context handling per match:

1. Negated on its line: skipped.
2. Self-declared security/defense skill listing the pattern as something it
   detects: kept, but at LOW severity with no deduction.
3. Any other threat-listing context: multiplier 0.2.
4. Otherwise the ``adjust_for_context`` multiplier (0.3 in code, else 1).

A multiplier below 1 also downgrades severity one level, never below LOW.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Sequence

from skilltrust.core.analyzers.base import (
    REASON_DEFENSE_LISTING,
    REASON_THREAT_LISTING,
    finalize,
    line_evidence,
    titled,
)
from skilltrust.core.analyzers.obfuscation import (
    detect_base64_payloads,
    detect_html_comment_injections,
    detect_unicode_obfuscation,
)
from skilltrust.core.context import (
    ContentContext,
    adjust_for_context,
    build_content_context,
    is_in_threat_listing_context,
    is_security_defense_skill,
)
from skilltrust.core.models import (
    Category,
    CategoryScore,
    Finding,
    ParsedSkill,
    Severity,
    round_half_up,
)
from skilltrust.core.rules import RuleFamily, find_matches, load_families

logger = logging.getLogger(__name__)

THREAT_LISTING_MULTIPLIER = 0.2
REASON_DEFENSE_SKILL = "security/defense skill"


def _family_finding(
    family: RuleFamily,
    findings: list[Finding],
    content: str,
    ctx: ContentContext,
    match_index: int,
    matched: str,
    severity: Severity,
    deduction: int,
    reason: str | None,
) -> Finding:
    return Finding(
        id=f"INJ-{family.id_stem}-{len(findings) + 1}",
        category=Category.INJECTION,
        severity=severity,
        title=titled(f"{family.name} detected", reason),
        description=f'Found {family.name.lower()} pattern: "{matched}"',
        evidence=line_evidence(content, match_index),
        deduction=deduction,
        recommendation=family.recommendation,
        taxonomy=family.taxonomy,
        line_number=ctx.line_number(match_index),
    )


def match_families(
    skill: ParsedSkill,
    ctx: ContentContext,
    families: Sequence[RuleFamily],
    *,
    defense: bool,
) -> list[Finding]:
    """First surviving match per pattern, context-adjusted."""
    content = skill.raw_content
    findings: list[Finding] = []
    for family in families:
        for pattern in family.patterns:
            for match in find_matches(pattern, content):
                index = match.start()
                multiplier, reason = adjust_for_context(index, content, ctx)
                if multiplier == 0:
                    continue
                in_listing = is_in_threat_listing_context(content, index)
                if defense and in_listing:
                    findings.append(_family_finding(
                        family, findings, content, ctx, index, match.group(0),
                        Severity.LOW, 0, REASON_DEFENSE_LISTING,
                    ))
                    break
                if in_listing:
                    multiplier, reason = THREAT_LISTING_MULTIPLIER, REASON_THREAT_LISTING
                severity = (
                    family.severity.downgraded(floor=Severity.LOW)
                    if multiplier < 1
                    else family.severity
                )
                findings.append(_family_finding(
                    family, findings, content, ctx, index, match.group(0),
                    severity, round_half_up(family.deduction * multiplier), reason,
                ))
                break
    return findings


def _exempt(finding: Finding) -> Finding:
    return dataclasses.replace(
        finding,
        severity=Severity.LOW,
        title=titled(finding.title, REASON_DEFENSE_SKILL),
        deduction=0,
    )


def _summary(findings: Sequence[Finding]) -> str:
    if not findings:
        return "No injection patterns detected."
    if any(f.severity is Severity.CRITICAL for f in findings):
        tail = "CRITICAL: Active injection attacks detected. This skill is dangerous."
    else:
        tail = "Suspicious patterns detected that warrant review."
    return f"Found {len(findings)} injection-related findings. {tail}"


def analyze_injection(skill: ParsedSkill, ctx: ContentContext | None = None) -> CategoryScore:
    """Score prompt-injection and hidden-content risk.

    Args:
        skill: Parsed skill.
        ctx: Shared content context; built from ``skill`` when omitted.

    Returns:
        The injection ``CategoryScore``.
    """
    content = skill.raw_content
    ctx = ctx or build_content_context(content)
    defense = is_security_defense_skill(skill)

    findings = match_families(skill, ctx, load_families("injection"), defense=defense)

    comments = detect_html_comment_injections(content)
    if defense:
        comments = [_exempt(f) for f in comments]
    findings.extend(comments)
    findings.extend(detect_base64_payloads(content))
    findings.extend(detect_unicode_obfuscation(content))

    logger.debug("Injection analysis of %r produced %d findings", skill.name, len(findings))
    return finalize(Category.INJECTION, findings, skill, _summary)
