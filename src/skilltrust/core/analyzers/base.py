"""Helpers shared by the pattern analyzers."""

from __future__ import annotations

import re
from typing import Callable, Sequence

from skilltrust.core.context import line_at
from skilltrust.core.models import Category, CategoryScore, Finding, ParsedSkill
from skilltrust.core.reconciler import apply_declared_permissions

EVIDENCE_LIMIT = 200

REASON_DEFENSE_LISTING = "threat pattern listed by security/defense skill"
REASON_THREAT_LISTING = "inside threat-listing context"

_IPV4_IN_TEXT = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")
_KNOWN_TLD_PATH = re.compile(r"\.(com|org|io|dev|sh|rs|land|cloud|app|ai|so|net|co)/")
_ANY_HEADING = re.compile(r"^#{1,4}\s+.+$", re.MULTILINE)
_SETUP_HEADING = re.compile(
    r"\b(?:prerequisit|install|setup|getting\s+started|requirements?|dependencies)\b"
)
_SETUP_KEY = re.compile(r"\b(?:install|command|compatibility|setup)\s*:", re.IGNORECASE)


def line_evidence(content: str, index: int) -> str:
    """The trimmed line containing ``index``, capped for evidence."""
    return line_at(content, index).strip()[:EVIDENCE_LIMIT]


def titled(title: str, reason: str | None) -> str:
    return f"{title} ({reason})" if reason else title


def has_ipv4_literal(text: str) -> bool:
    return _IPV4_IN_TEXT.search(text) is not None


def is_in_setup_section(content: str, index: int, matched: str) -> bool:
    """An https install command to a normal-looking domain, under setup docs.

    True when the command has no raw IP, uses https to a common TLD, and
    either the nearest heading in the previous 1000 characters is about
    installation or one of the previous ten lines is an ``install:``-style
    key.
    """
    if has_ipv4_literal(matched) or "https://" not in matched:
        return False
    if not _KNOWN_TLD_PATH.search(matched):
        return False
    preceding = content[max(0, index - 1000):index]
    headings = _ANY_HEADING.findall(preceding)
    if headings and _SETUP_HEADING.search(headings[-1].lower()):
        return True
    nearby = "\n".join(preceding.split("\n")[-10:])
    return _SETUP_KEY.search(nearby) is not None


def finalize(
    category: Category,
    findings: Sequence[Finding],
    skill: ParsedSkill,
    summarize: Callable[[Sequence[Finding]], str],
    *,
    base: int = 100,
) -> CategoryScore:
    """Reconcile declared permissions, then derive the category score."""
    reconciled = apply_declared_permissions(findings, skill.declared_permissions)
    return CategoryScore.from_findings(
        reconciled, category.weight, summarize(reconciled), base=base
    )
