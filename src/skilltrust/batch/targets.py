"""Expansion of command-line scan targets into skill files and URLs."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from skilltrust.batch.binary import IGNORED_DIRS
from skilltrust.exceptions import TargetError
from skilltrust.retrieval.urls import SKILL_BASENAMES, is_url_target

# Two or more characters, so Windows drive letters ("C:") are not schemes.
_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]+):")


def _walk_for_skills(directory: Path, out: list[str]) -> None:
    for entry in directory.iterdir():
        if entry.is_symlink():
            continue
        if entry.is_dir():
            if entry.name not in IGNORED_DIRS:
                _walk_for_skills(entry, out)
        elif entry.is_file() and entry.name.lower() in SKILL_BASENAMES:
            out.append(str(entry))


def expand_scan_targets(inputs: Iterable[str]) -> list[str]:
    """Resolve targets to a sorted, de-duplicated list of files and URLs.

    URLs pass through unchanged, files are kept as given, and directories
    are searched recursively for ``SKILL.md`` / ``SKILLS.md`` (any case).

    Args:
        inputs: URLs, file paths and directory paths.

    Returns:
        Sorted unique targets.

    Raises:
        TargetError: A target uses a scheme other than http(s), or a local
            target does not exist or is neither a file nor a directory.
    """
    out: list[str] = []
    for target in inputs:
        if is_url_target(target):
            out.append(target)
            continue
        path = Path(target)
        scheme = _SCHEME.match(target)
        if scheme and not path.exists():
            raise TargetError(
                f"Unsupported target scheme '{scheme.group(1).lower()}:' (only http and https URLs "
                f"can be scanned): {target}"
            )
        if not path.exists():
            raise TargetError(f"Target not found: {target}")
        if path.is_dir():
            _walk_for_skills(path, out)
        elif path.is_file():
            out.append(target)
        else:
            raise TargetError(f"Unsupported target type: {target}")
    return sorted(set(out))
