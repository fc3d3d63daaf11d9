"""Tests for skill URL normalisation."""

from __future__ import annotations

import pytest

from skilltrust.retrieval.urls import (
    is_archive_download_url,
    is_url_target,
    is_zip_response,
    normalize_skill_url,
)

RAW = "https://raw.githubusercontent.com"


class TestNormalizeSkillUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            (
                "https://github.com/acme/skills/blob/main/deploy/SKILL.md",
                f"{RAW}/acme/skills/main/deploy/SKILL.md",
            ),
            (
                "https://github.com/acme/skills/tree/dev/deploy",
                f"{RAW}/acme/skills/dev/deploy/SKILL.md",
            ),
            ("https://github.com/acme/skills/tree/dev", f"{RAW}/acme/skills/dev/SKILL.md"),
            ("https://github.com/acme/skills", f"{RAW}/acme/skills/main/SKILL.md"),
            (
                "https://clawhub.ai/alice/weather-bot",
                "https://auth.clawdhub.com/api/v1/download?slug=weather-bot",
            ),
        ],
    )
    def test_rewrites(self, url: str, expected: str) -> None:
        assert normalize_skill_url(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/acme/skills/issues/4",
            "https://clawhub.ai/skills/weather-bot",
            "https://clawhub.ai/alice",
            "https://skills.example.net/SKILL.md",
            "data:text/plain,hello",
        ],
    )
    def test_left_alone(self, url: str) -> None:
        assert normalize_skill_url(url) == url


class TestClassification:
    def test_archive_download_url(self) -> None:
        assert is_archive_download_url("https://auth.clawdhub.com/api/v1/download?slug=x")
        assert not is_archive_download_url("https://auth.clawdhub.com/api/v1/skills")

    def test_zip_response(self) -> None:
        assert is_zip_response("application/zip; charset=binary", "https://files.example.net/a")
        assert is_zip_response(None, "https://auth.clawdhub.com/api/v1/download?slug=x")
        assert not is_zip_response("text/markdown", "https://files.example.net/SKILL.md")

    def test_url_target(self) -> None:
        assert is_url_target("https://skills.example.net/SKILL.md")
        assert is_url_target("http://skills.example.net/SKILL.md")
        assert not is_url_target("./skills/SKILL.md")
