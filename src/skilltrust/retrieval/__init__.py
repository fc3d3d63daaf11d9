"""Safe retrieval of remote skill content.

Submodules:
    urls         -- hosting-shorthand normalisation, limits, request headers
    ssrf         -- URL, hostname and resolved-address validation
    http_client  -- redirect-validating, byte-bounded httpx access
    archive      -- bounded skill-file extraction from zip archives
    retriever    -- ``fetch_skill_content`` with timeouts and retries
"""

from skilltrust.retrieval.archive import extract_skill_from_zip, pick_skill_path
from skilltrust.retrieval.retriever import FetchedSkill, fetch_skill_content
from skilltrust.retrieval.ssrf import assert_url_allowed, is_blocked_ip
from skilltrust.retrieval.urls import is_url_target, normalize_skill_url

__all__ = [
    "FetchedSkill",
    "assert_url_allowed",
    "extract_skill_from_zip",
    "fetch_skill_content",
    "is_blocked_ip",
    "is_url_target",
    "normalize_skill_url",
    "pick_skill_path",
]
