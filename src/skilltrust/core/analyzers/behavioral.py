"""Behavioral analyzer (weight 0.15).

Flags what a skill tells the agent to *do*: act without limits, modify the
host, act without confirmation, spawn sub-agents, persist state, loop
unboundedly, or move money. Two detectors sit on top of the
``behavioral.yaml`` families:

- *prerequisite traps*: ``curl ... | sh`` style install steps, tolerated
  when they point at a well-known installer or sit under setup docs with
  an https URL to a normal domain;
- *exfiltration flow*: the document both reads credential files and posts
  to an external endpoint.
"""

from __future__ import annotations

import re
from typing import Sequence

from skilltrust.core.analyzers.base import (
    finalize,
    is_in_setup_section,
    line_evidence,
    titled,
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
from skilltrust.core.rules import find_matches, load_families, load_patterns
from skilltrust.core.taxonomy import ThreatCode

PREREQ_TRAP_DEDUCTION = 25
EXFIL_FLOW_DEDUCTION = 25

_PINNING_ADVICE = (
    "Consider pinning the installer to a specific version or hash for supply chain verification."
)


def _match_families(skill: ParsedSkill, ctx: ContentContext, findings: list[Finding]) -> None:
    content = skill.raw_content
    for family in load_families("behavioral"):
        for pattern in family.patterns:
            for match in find_matches(pattern, content):
                index = match.start()
                multiplier, reason = adjust_for_context(index, content, ctx)
                if multiplier == 0:
                    continue
                findings.append(Finding(
                    id=f"BEH-{family.id_stem}-{len(findings) + 1}",
                    category=Category.BEHAVIORAL,
                    severity=family.severity.downgraded() if multiplier < 1 else family.severity,
                    title=titled(f"{family.name} detected", reason),
                    description=f'Found {family.name.lower()} pattern: "{match.group(0)}"',
                    evidence=line_evidence(content, index),
                    deduction=round_half_up(family.deduction * multiplier),
                    recommendation=family.recommendation,
                    taxonomy=family.taxonomy,
                    line_number=ctx.line_number(index),
                ))
                break


def _trap_finding(
    findings: list[Finding],
    ctx: ContentContext,
    match: re.Match[str],
    *,
    severity: Severity,
    title: str,
    description: str,
    deduction: int,
    recommendation: str,
) -> Finding:
    return Finding(
        id=f"BEH-PREREQ-TRAP-{len(findings) + 1}",
        category=Category.BEHAVIORAL,
        severity=severity,
        title=title,
        description=description,
        evidence=match.group(0)[:200],
        deduction=deduction,
        recommendation=recommendation,
        taxonomy=ThreatCode.DATA_EXFILTRATION,
        line_number=ctx.line_number(match.start()),
    )


def _detect_prerequisite_traps(
    skill: ParsedSkill,
    ctx: ContentContext,
    findings: list[Finding],
    defense: bool,
) -> None:
    content = skill.raw_content
    installers = load_patterns("behavioral", "known_installers")
    for pattern in load_patterns("behavioral", "prerequisite_traps"):
        for match in find_matches(pattern, content):
            index = match.start()
            multiplier, _ = adjust_for_context(index, content, ctx)
            if multiplier == 0:
                continue
            matched = match.group(0)
            if defense and is_in_threat_listing_context(content, index):
                findings.append(_trap_finding(
                    findings, ctx, match,
                    severity=Severity.LOW,
                    title="Install pattern: download and execute from remote URL (in threat documentation)",
                    description=(
                        "The skill describes a download-and-execute pattern as part of "
                        "security threat documentation."
                    ),
                    deduction=0,
                    recommendation=_PINNING_ADVICE,
                ))
                break
            known = any(p.search(matched) for p in installers)
            if known or is_in_setup_section(content, index, matched):
                findings.append(_trap_finding(
                    findings, ctx, match,
                    severity=Severity.LOW,
                    title="Install pattern: download and execute from remote URL (in setup section)",
                    description=(
                        "The skill references a well-known installer script."
                        if known
                        else "The skill contains a curl-pipe-to-shell pattern in its "
                        "setup/prerequisites section."
                    ),
                    deduction=0,
                    recommendation=_PINNING_ADVICE,
                ))
            else:
                findings.append(_trap_finding(
                    findings, ctx, match,
                    severity=Severity.MEDIUM if multiplier < 1 else Severity.HIGH,
                    title="Suspicious install pattern: download and execute from remote URL",
                    description=(
                        "The skill instructs users to download and execute code from a remote "
                        "URL, a common supply-chain attack vector."
                    ),
                    deduction=round_half_up(PREREQ_TRAP_DEDUCTION * multiplier),
                    recommendation=(
                        "Remove curl-pipe-to-shell patterns. Provide dependencies through "
                        "safe, verifiable channels."
                    ),
                ))
            break


def _detect_exfiltration_flow(skill: ParsedSkill, findings: list[Finding]) -> None:
    content = skill.raw_content
    reads = any(p.search(content) for p in load_patterns("behavioral", "credential_read"))
    sends = any(p.search(content) for p in load_patterns("behavioral", "exfiltration_endpoint"))
    if not (reads and sends):
        return
    findings.append(Finding(
        id=f"BEH-EXFIL-FLOW-{len(findings) + 1}",
        category=Category.BEHAVIORAL,
        severity=Severity.HIGH,
        title=(
            "Potential data exfiltration: skill reads credentials and sends them "
            "to external endpoints"
        ),
        description=(
            "The skill contains patterns that actively read credential files and send data "
            "to external endpoints, suggesting a possible data exfiltration flow."
        ),
        evidence="Active credential reading and suspicious network exfiltration patterns both present",
        deduction=EXFIL_FLOW_DEDUCTION,
        recommendation=(
            "Separate credential access from network operations. If both are needed, "
            "declare them explicitly and justify."
        ),
        taxonomy=ThreatCode.PROMPT_INJECTION_RELAY,
    ))


def _summary(findings: Sequence[Finding]) -> str:
    if not findings:
        return "No behavioral risk concerns detected."
    if any(f.severity is Severity.HIGH for f in findings):
        tail = "High-risk behavioral patterns detected."
    else:
        tail = "Moderate behavioral concerns noted."
    return f"Found {len(findings)} behavioral risk findings. {tail}"


def analyze_behavioral(skill: ParsedSkill, ctx: ContentContext | None = None) -> CategoryScore:
    """Score behavioral risk.

    Args:
        skill: Parsed skill.
        ctx: Shared content context; built from ``skill`` when omitted.

    Returns:
        The behavioral ``CategoryScore``.
    """
    ctx = ctx or build_content_context(skill.raw_content)
    findings: list[Finding] = []
    _match_families(skill, ctx, findings)
    _detect_prerequisite_traps(skill, ctx, findings, is_security_defense_skill(skill))
    _detect_exfiltration_flow(skill, findings)
    return finalize(Category.BEHAVIORAL, findings, skill, _summary)
