"""Permissions analyzer (weight 0.25).

Tiers every declared permission and tool string, flags broad capabilities
requested by narrow-purpose skills, and notes excessive permission counts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from skilltrust.core.analyzers.base import finalize
from skilltrust.core.context import ContentContext
from skilltrust.core.models import Category, CategoryScore, Finding, ParsedSkill, Severity
from skilltrust.core.rules import load_table
from skilltrust.core.taxonomy import ThreatCode
from skilltrust.exceptions import RuleLoadError

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class TierRule:
    """First-match rule mapping a token set to a risk tier."""

    tier: Severity
    any_of: frozenset[str] = frozenset()
    all_of: frozenset[str] = frozenset()
    none_of: frozenset[str] = frozenset()

    def matches(self, tokens: set[str]) -> bool:
        if self.any_of and not self.any_of & tokens:
            return False
        if not self.all_of <= tokens:
            return False
        return not self.none_of & tokens


@dataclass(frozen=True)
class PermissionPolicy:
    tiers: tuple[TierRule, ...]
    deductions: dict[Severity, int]
    mismatch_deduction: int
    limited_scope_keywords: tuple[str, ...]
    suspicious_for_limited: tuple[str, ...]
    excessive_count: int


@lru_cache(maxsize=1)
def load_policy() -> PermissionPolicy:
    """Build the tier policy from ``permissions.yaml``."""
    table = load_table("permissions")
    try:
        tiers = tuple(
            TierRule(
                tier=Severity.parse(str(rule["tier"])),
                any_of=frozenset(rule.get("any", ())),
                all_of=frozenset(rule.get("all", ())),
                none_of=frozenset(rule.get("none", ())),
            )
            for rule in table["tiers"]
        )
        return PermissionPolicy(
            tiers=tiers,
            deductions={Severity.parse(k): int(v) for k, v in table["deductions"].items()},
            mismatch_deduction=int(table["mismatch_deduction"]),
            limited_scope_keywords=tuple(table["limited_scope_keywords"]),
            suspicious_for_limited=tuple(table["suspicious_for_limited"]),
            excessive_count=int(table["excessive_count"]),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise RuleLoadError(f"Malformed permissions.yaml: {exc}") from exc


def tokenize_permission(value: str) -> set[str]:
    return {t for t in _TOKEN_SPLIT.split(value.lower()) if t}


def permission_tier(value: str) -> Severity | None:
    """Risk tier of a permission/tool string, or ``None`` if unrecognized."""
    tokens = tokenize_permission(value)
    if not tokens:
        return None
    for rule in load_policy().tiers:
        if rule.matches(tokens):
            return rule.tier
    return None


def is_limited_scope_skill(skill: ParsedSkill) -> bool:
    combined = f"{skill.name} {skill.description}".lower()
    return any(kw in combined for kw in load_policy().limited_scope_keywords)


def _summary(findings: Sequence[Finding]) -> str:
    if not findings:
        return "No permission concerns detected."
    if any(f.severity is Severity.CRITICAL for f in findings):
        tail = "CRITICAL: Dangerous permissions detected."
    elif any(f.severity is Severity.HIGH for f in findings):
        tail = "High-risk permissions detected that may not match the skill's purpose."
    else:
        tail = "Minor permission concerns."
    return f"Found {len(findings)} permission-related findings. {tail}"


def analyze_permissions(skill: ParsedSkill, ctx: ContentContext | None = None) -> CategoryScore:
    """Score declared permissions and tools.

    Args:
        skill: Parsed skill.
        ctx: Unused; accepted so every analyzer shares one signature.

    Returns:
        The permissions ``CategoryScore``.
    """
    policy = load_policy()
    findings: list[Finding] = []
    # Tools imply capabilities too; unknown tool names stay visible as info findings.
    unique = list(dict.fromkeys(p.lower() for p in (*skill.permissions, *skill.tools)))

    for perm in unique:
        tier = permission_tier(perm)
        if tier is None:
            findings.append(Finding(
                id=f"PERM-UNKNOWN-{len(findings) + 1}",
                category=Category.PERMISSIONS,
                severity=Severity.INFO,
                title=f"Unrecognized permission/tool: {perm}",
                description=(
                    "The skill references a permission/tool string the scanner does not "
                    "recognize. This may be harmless, but it limits how well actual "
                    "privilege can be assessed."
                ),
                evidence=f"Permission/tool: {perm}",
                deduction=0,
                recommendation=(
                    "Use canonical permission names for your framework/runtime, or document "
                    "what this permission/tool does and why it is needed."
                ),
                taxonomy=ThreatCode.EXCESSIVE_PERMISSIONS,
            ))
            continue
        if tier is Severity.CRITICAL:
            recommendation = (
                f'Remove the "{perm}" permission unless absolutely required. '
                "Critical permissions grant extensive system access."
            )
        else:
            recommendation = f'Consider whether "{perm}" is necessary for the skill\'s stated functionality.'
        findings.append(Finding(
            id=f"PERM-{len(findings) + 1}",
            category=Category.PERMISSIONS,
            severity=tier,
            title=f"{tier.label.capitalize()}-risk permission: {perm}",
            description=f'The skill requests the "{perm}" permission which is classified as {tier.label} risk.',
            evidence=f"Permission: {perm}",
            deduction=policy.deductions[tier],
            recommendation=recommendation,
            taxonomy=(
                ThreatCode.PRIVILEGE_ESCALATION
                if tier >= Severity.HIGH
                else ThreatCode.EXCESSIVE_PERMISSIONS
            ),
        ))

    if is_limited_scope_skill(skill):
        for perm in unique:
            if not any(s in perm for s in policy.suspicious_for_limited):
                continue
            findings.append(Finding(
                id=f"PERM-MISMATCH-{len(findings) + 1}",
                category=Category.PERMISSIONS,
                severity=Severity.HIGH,
                title=f'Permission-purpose mismatch: "{perm}" on limited-scope skill',
                description=(
                    f'The skill "{skill.name}" appears to be limited in scope but requests '
                    f'"{perm}" which is unusual for its stated purpose.'
                ),
                evidence=f'Skill: "{skill.name}" ({skill.description[:80]}...) requests "{perm}"',
                deduction=policy.mismatch_deduction,
                recommendation=f'Review whether "{perm}" is truly needed for a {skill.name.lower()}.',
                taxonomy=ThreatCode.PRIVILEGE_ESCALATION,
            ))

    if len(unique) > policy.excessive_count:
        findings.append(Finding(
            id="PERM-EXCESSIVE",
            category=Category.PERMISSIONS,
            severity=Severity.INFO,
            title=f"Excessive number of permissions ({len(unique)})",
            description=(
                f"The skill requests {len(unique)} distinct permissions. "
                "Consider whether all are necessary."
            ),
            evidence=f"Permissions: {', '.join(unique)}",
            deduction=0,
            recommendation=(
                "Apply the principle of least privilege: only request permissions "
                "the skill actually needs."
            ),
            taxonomy=ThreatCode.EXCESSIVE_PERMISSIONS,
        ))

    return finalize(Category.PERMISSIONS, findings, skill, _summary)
