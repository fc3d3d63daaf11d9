"""Tests for the permissions analyzer."""

from __future__ import annotations

import pytest

from skilltrust.core.analyzers.permissions import (
    analyze_permissions,
    is_limited_scope_skill,
    permission_tier,
)
from skilltrust.core.models import Severity
from skilltrust.core.parser import parse_skill


class TestPermissionTier:
    @pytest.mark.parametrize(
        ("value", "tier"),
        [
            ("exec", Severity.CRITICAL),
            ("Shell", Severity.CRITICAL),
            ("network_unrestricted", Severity.HIGH),
            ("env_access", Severity.HIGH),
            ("file_delete", Severity.HIGH),
            ("file_write", Severity.MEDIUM),
            ("network_restricted", Severity.MEDIUM),
            ("api_access", Severity.MEDIUM),
            ("web_search", Severity.LOW),
            ("file_read", Severity.LOW),
        ],
    )
    def test_known_tiers(self, value: str, tier: Severity) -> None:
        """Permission strings map to their risk tier by token rules."""
        assert permission_tier(value) is tier

    def test_unknown_returns_none(self) -> None:
        assert permission_tier("teleport") is None


class TestAnalyzePermissions:
    def test_no_permissions_scores_100(self, clean_skill: str) -> None:
        """A skill that requests nothing loses nothing."""
        score = analyze_permissions(parse_skill(clean_skill))
        assert score.score == 100
        assert score.findings == ()
        assert score.summary == "No permission concerns detected."

    def test_critical_permission_on_limited_scope_skill(self) -> None:
        """``shell`` on a calculator costs the tier deduction plus a mismatch."""
        skill = parse_skill(
            "---\nname: calculator\ndescription: A simple calculator for arithmetic.\n"
            "permissions: [shell]\n---\n"
        )
        assert is_limited_scope_skill(skill)
        score = analyze_permissions(skill)
        assert [f.id for f in score.findings] == ["PERM-1", "PERM-MISMATCH-2"]
        assert score.findings[0].severity is Severity.CRITICAL
        assert score.findings[0].deduction == 30
        assert score.findings[1].severity is Severity.HIGH
        assert score.score == 55

    def test_tools_count_as_permissions(self) -> None:
        skill = parse_skill("---\nname: indexer\ntools: [file_read]\n---\n")
        score = analyze_permissions(skill)
        assert score.score == 98
        assert score.findings[0].title == "Low-risk permission: file_read"

    def test_unknown_permission_is_info(self) -> None:
        skill = parse_skill("---\nname: mover\npermissions: [teleport]\n---\n")
        [finding] = analyze_permissions(skill).findings
        assert finding.severity is Severity.INFO
        assert finding.deduction == 0
        assert finding.id == "PERM-UNKNOWN-1"

    def test_excessive_permission_count(self) -> None:
        """More than five distinct permissions adds an info finding."""
        skill = parse_skill(
            "---\nname: suite\npermissions: [file_read, web_search, api_access, "
            "network_restricted, file_write, teleport]\n---\n"
        )
        ids = [f.id for f in analyze_permissions(skill).findings]
        assert ids[-1] == "PERM-EXCESSIVE"

    def test_duplicate_permissions_collapse(self) -> None:
        skill = parse_skill("---\nname: dup\npermissions: [file_read, FILE_READ]\ntools: [file_read]\n---\n")
        assert len(analyze_permissions(skill).findings) == 1
