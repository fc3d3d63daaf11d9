"""Tests for declared-permission reconciliation.

Declarations annotate matching findings; they never change severity or
deduction.
"""

from __future__ import annotations

from skilltrust.core.models import Category, DeclaredPermission, Finding, Severity
from skilltrust.core.reconciler import apply_declared_permissions, find_matching_declaration
from skilltrust.core.taxonomy import ThreatCode


def _finding(title: str, evidence: str = "", description: str = "") -> Finding:
    return Finding(
        id="DEP-URL-1",
        category=Category.DEPENDENCIES,
        severity=Severity.LOW,
        title=title,
        description=description,
        evidence=evidence,
        deduction=5,
        recommendation="",
        taxonomy=ThreatCode.DEPENDENCY_HIJACKING,
    )


NETWORK = DeclaredPermission("network", "calls a weather API")


class TestMatching:
    def test_network_declaration_matches_url_finding(self) -> None:
        """A ``network`` declaration covers findings mentioning URLs."""
        finding = _finding("Unknown external reference", "https://api.weather.example")
        assert find_matching_declaration(finding, [NETWORK]) is NETWORK

    def test_unrelated_kind_does_not_match(self) -> None:
        finding = _finding("Unknown external reference", "https://api.weather.example")
        assert find_matching_declaration(finding, [DeclaredPermission("file_write", "logs")]) is None

    def test_credential_keywords(self) -> None:
        finding = _finding("Credential access detected", "cat ~/.env")
        declared = [DeclaredPermission("credential_access", "reads its own token")]
        assert find_matching_declaration(finding, declared) is declared[0]


class TestApply:
    def test_annotates_title_and_description(self) -> None:
        """The title gains ``(declared: kind)`` and the justification is appended."""
        finding = _finding("Unknown external reference", "https://api.weather.example", "desc")
        [out] = apply_declared_permissions([finding], [NETWORK])
        assert out.title == "Unknown external reference (declared: network)"
        assert out.description.endswith("Declared permission: network - calls a weather API")

    def test_severity_and_deduction_unchanged(self) -> None:
        finding = _finding("Unknown external reference", "https://api.weather.example")
        [out] = apply_declared_permissions([finding], [NETWORK])
        assert out.severity is finding.severity
        assert out.deduction == finding.deduction

    def test_no_declarations_is_identity(self) -> None:
        findings = [_finding("a"), _finding("b")]
        assert apply_declared_permissions(findings, []) == findings
