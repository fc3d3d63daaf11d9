"""Declared-permission reconciliation.

Skill authors may declare capabilities up front::

    permissions:
      - network: "calls the weather API"

When a finding's text matches a declared kind (via the ``declared.yaml``
keyword table), the finding is annotated with the declaration. Severity and
deduction are never touched: declaring a risky capability earns an
explanation in the report, not a better score.
"""

from __future__ import annotations

import dataclasses
from functools import lru_cache
from typing import Sequence

from skilltrust.core.models import DeclaredPermission, Finding
from skilltrust.core.rules import load_table
from skilltrust.exceptions import RuleLoadError


@lru_cache(maxsize=1)
def _matchers() -> tuple[tuple[tuple[str, ...], tuple[str, ...]], ...]:
    table = load_table("declared")
    try:
        return tuple(
            (
                tuple(str(k).lower() for k in entry["kinds"]),
                tuple(str(k).lower() for k in entry["keywords"]),
            )
            for entry in table["matchers"]
        )
    except (KeyError, TypeError) as exc:
        raise RuleLoadError(f"Malformed declared.yaml: {exc}") from exc


def find_matching_declaration(
    finding: Finding,
    declared: Sequence[DeclaredPermission],
) -> DeclaredPermission | None:
    """Return the first declaration whose kind covers ``finding``, if any."""
    if not declared:
        return None
    text = f"{finding.title} {finding.evidence} {finding.description}".lower()
    for permission in declared:
        kind = permission.kind.lower()
        for kinds, keywords in _matchers():
            if not any(k in kind for k in kinds):
                continue
            if any(word in text for word in keywords):
                return permission
    return None


def apply_declared_permissions(
    findings: Sequence[Finding],
    declared: Sequence[DeclaredPermission],
) -> list[Finding]:
    """Annotate findings covered by a declaration. Order is preserved.

    Args:
        findings: Findings from one analyzer.
        declared: The skill's declared permissions.

    Returns:
        A new list; matched findings are replaced by annotated copies whose
        title gains ``" (declared: <kind>)"`` and whose description gains
        the justification.
    """
    if not declared:
        return list(findings)
    out: list[Finding] = []
    for finding in findings:
        match = find_matching_declaration(finding, declared)
        if match is None:
            out.append(finding)
            continue
        out.append(dataclasses.replace(
            finding,
            title=f"{finding.title} (declared: {match.kind})",
            description=(
                f"{finding.description}\n\n"
                f"Declared permission: {match.kind} - {match.justification}"
            ),
        ))
    return out
