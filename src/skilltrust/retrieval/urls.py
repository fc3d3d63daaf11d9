"""Skill URL normalisation and retrieval limits.

Users paste whatever URL their browser shows. A few hosting shorthands are
rewritten to the URL that actually serves the skill file:

- ``github.com/{owner}/{repo}/blob/{branch}/{path}`` becomes the
  ``raw.githubusercontent.com`` URL of that file;
- ``github.com/{owner}/{repo}/tree/{branch}/{dir}`` becomes the raw URL of
  ``{dir}/SKILL.md``;
- ``github.com/{owner}/{repo}`` becomes the raw URL of ``SKILL.md`` on
  ``main``;
- ``clawhub.ai/{owner}/{slug}`` becomes the registry's zip download
  endpoint for ``slug``.

Everything else is returned unchanged.
"""

from __future__ import annotations

from urllib.parse import urlencode, urlsplit

from skilltrust import SCANNER_VERSION

CLAWHUB_HOST = "clawhub.ai"
CLAWHUB_DOWNLOAD_HOST = "auth.clawdhub.com"
CLAWHUB_DOWNLOAD_PATH = "/api/v1/download"
CLAWHUB_DOWNLOAD_BASE = f"https://{CLAWHUB_DOWNLOAD_HOST}{CLAWHUB_DOWNLOAD_PATH}"

# First path segments on the registry host that are site pages, not owners.
CLAWHUB_RESERVED_SEGMENTS = frozenset({
    "admin", "assets", "cli", "dashboard", "import", "management", "og",
    "settings", "skills", "souls", "stars", "u", "upload",
})

# Byte and count limits, all enforced before content reaches the parser.
MAX_TEXT_BYTES = 2_000_000
MAX_ZIP_BYTES = 25_000_000
MAX_ZIP_ENTRIES = 2000
MAX_ZIP_SKILL_CANDIDATES = 10
MAX_SKILL_MD_BYTES = 2_000_000
MAX_TOTAL_UNZIPPED_BYTES = 5_000_000
MAX_ERROR_BODY_BYTES = 8000

DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/plain,text/markdown,text/html;q=0.9,application/zip;q=0.8,*/*;q=0.7",
    "User-Agent": f"SkillTrustScanner/{SCANNER_VERSION}",
}

SKILL_BASENAMES = frozenset({"skill.md", "skills.md"})


def _path_parts(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _normalize_github(parts: list[str], original: str) -> str:
    raw = "https://raw.githubusercontent.com"
    if len(parts) >= 5 and parts[2] == "blob":
        owner, repo, _, branch = parts[:4]
        return f"{raw}/{owner}/{repo}/{branch}/{'/'.join(parts[4:])}"
    if len(parts) >= 4 and parts[2] == "tree":
        owner, repo, _, branch = parts[:4]
        directory = "/".join(parts[4:])
        skill_path = f"{directory}/SKILL.md" if directory else "SKILL.md"
        return f"{raw}/{owner}/{repo}/{branch}/{skill_path}"
    if len(parts) == 2:
        owner, repo = parts
        return f"{raw}/{owner}/{repo}/main/SKILL.md"
    return original


def _normalize_clawhub(parts: list[str], original: str) -> str:
    if len(parts) < 2 or parts[0] in CLAWHUB_RESERVED_SEGMENTS:
        return original
    return f"{CLAWHUB_DOWNLOAD_BASE}?{urlencode({'slug': parts[1]})}"


def normalize_skill_url(url: str) -> str:
    """Rewrite known hosting shorthands to the URL serving the skill file."""
    try:
        parsed = urlsplit(url)
    except ValueError:
        return url
    host = (parsed.hostname or "").lower()
    if host == CLAWHUB_HOST:
        return _normalize_clawhub(_path_parts(parsed.path), url)
    if host == "github.com":
        return _normalize_github(_path_parts(parsed.path), url)
    return url


def is_archive_download_url(url: str) -> bool:
    """True for the registry's zip download endpoint."""
    try:
        parsed = urlsplit(url)
    except ValueError:
        return False
    return (parsed.hostname or "").lower() == CLAWHUB_DOWNLOAD_HOST and parsed.path == CLAWHUB_DOWNLOAD_PATH


def is_zip_response(content_type: str | None, url: str) -> bool:
    if content_type and "application/zip" in content_type.lower():
        return True
    return is_archive_download_url(url)


def is_url_target(target: str) -> bool:
    """Does a scan target name a remote URL rather than a local path?"""
    return target.startswith(("http://", "https://"))
