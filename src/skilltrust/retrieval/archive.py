"""Bounded extraction of a skill file from a zip archive.

Only entries whose basename is ``skill.md`` or ``skills.md``
(case-insensitive) are candidates. Before any candidate is decompressed
the archive must pass these checks, each raising ``ArchiveError``:

- at most ``MAX_ZIP_ENTRIES`` entries in total;
- at most ``MAX_ZIP_SKILL_CANDIDATES`` candidates;
- no candidate declares more than ``MAX_SKILL_MD_BYTES``;
- candidates together declare at most ``MAX_TOTAL_UNZIPPED_BYTES``.

The chosen candidate is then read with a hard cap, so an entry that
understates its size in the central directory cannot expand further.
"""

from __future__ import annotations

import io
import zipfile
import zlib
from typing import Iterable

from skilltrust.exceptions import ArchiveError
from skilltrust.retrieval.urls import (
    MAX_SKILL_MD_BYTES,
    MAX_TOTAL_UNZIPPED_BYTES,
    MAX_ZIP_ENTRIES,
    MAX_ZIP_SKILL_CANDIDATES,
    SKILL_BASENAMES,
)

CANONICAL_BASENAMES = frozenset({"SKILL.md", "SKILLS.md"})

PREVIEW_ENTRIES = 20


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def is_skill_candidate(path: str) -> bool:
    return _basename(path).lower() in SKILL_BASENAMES


def candidate_rank(path: str) -> int:
    """0 root SKILL.md, 1 nested SKILL.md, 2 root SKILLS.md, 3 nested SKILLS.md."""
    base = _basename(path).lower()
    nested = path.lower() != base
    if base == "skill.md":
        return 1 if nested else 0
    if base == "skills.md":
        return 3 if nested else 2
    return 4


def pick_skill_path(paths: Iterable[str]) -> str | None:
    """Deterministically choose one skill file.

    Ordered by rank, then canonical upper-case spelling, then path length,
    then path.
    """
    candidates = [p for p in paths if is_skill_candidate(p)]
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda p: (candidate_rank(p), _basename(p) not in CANONICAL_BASENAMES, len(p), p),
    )


def extract_skill_from_zip(data: bytes, url: str = "") -> tuple[str, str]:
    """Extract the best skill file from zip bytes.

    Args:
        data: Raw archive bytes (already size-capped by the caller).
        url: Source URL, carried on raised errors.

    Returns:
        ``(content, path)`` of the chosen entry, decoded as UTF-8.

    Raises:
        ArchiveError: Malformed archive, any limit exceeded, or no skill file.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as exc:
        raise ArchiveError(f"Invalid zip archive: {exc}", url) from exc

    with archive:
        entries = archive.infolist()
        if len(entries) > MAX_ZIP_ENTRIES:
            raise ArchiveError(f"Zip contains too many entries (> {MAX_ZIP_ENTRIES}).", url)

        candidates: dict[str, zipfile.ZipInfo] = {}
        total = 0
        for info in entries:
            if info.is_dir() or not is_skill_candidate(info.filename):
                continue
            if len(candidates) >= MAX_ZIP_SKILL_CANDIDATES:
                raise ArchiveError(
                    f"Zip contains too many SKILL.md candidates (> {MAX_ZIP_SKILL_CANDIDATES}).", url
                )
            if info.file_size > MAX_SKILL_MD_BYTES:
                raise ArchiveError(
                    f"SKILL.md is too large ({info.file_size} bytes > {MAX_SKILL_MD_BYTES} bytes).", url
                )
            total += info.file_size
            if total > MAX_TOTAL_UNZIPPED_BYTES:
                raise ArchiveError(
                    f"Zip expands too large (> {MAX_TOTAL_UNZIPPED_BYTES} bytes across candidates).",
                    url,
                )
            candidates[info.filename] = info

        chosen = pick_skill_path(candidates)
        if chosen is None:
            preview = ", ".join(sorted(info.filename for info in entries[:PREVIEW_ENTRIES]))
            raise ArchiveError(
                f"Zip did not contain SKILL.md (found {len(entries)} entries). "
                f"First entries: {preview}",
                url,
            )

        try:
            with archive.open(candidates[chosen]) as handle:
                raw = handle.read(MAX_SKILL_MD_BYTES + 1)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError) as exc:
            raise ArchiveError(f"Could not read {chosen} from zip: {exc}", url) from exc

    if len(raw) > MAX_SKILL_MD_BYTES:
        raise ArchiveError(f"SKILL.md is too large (> {MAX_SKILL_MD_BYTES} bytes).", url)
    return raw.decode("utf-8", errors="replace"), chosen
