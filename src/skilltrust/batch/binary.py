"""Detection of native executables packaged next to a local skill.

Binaries are opaque to review, so a skill directory that ships one gets a
single high-severity dependencies finding. A file counts as executable
when it starts with an ELF, PE (``MZ``) or Mach-O magic number, or, when
its first bytes cannot be read, when it has a typical executable
extension.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 5

IGNORED_DIRS = frozenset({
    ".git",
    "node_modules",
    "dist",
    "build",
    "coverage",
    ".next",
    ".turbo",
})

EXECUTABLE_EXTENSIONS = frozenset({".exe", ".dll", ".so", ".dylib", ".bin"})

_ELF_MAGIC = b"\x7fELF"
_PE_MAGIC = b"MZ"
_MACHO_MAGICS = frozenset({
    0xFEEDFACE,
    0xFEEDFACF,
    0xCEFAEDFE,
    0xCFFAEDFE,
    0xCAFEBABE,
    0xBEBAFECA,
})


def read_magic(path: Path) -> bytes | None:
    """First four bytes of a regular file, or ``None`` if unreadable or shorter."""
    try:
        if not path.is_file() or path.stat().st_size < 4:
            return None
        with path.open("rb") as handle:
            return handle.read(4)
    except OSError:
        return None


def is_executable_binary(path: Path) -> bool:
    by_extension = path.suffix.lower() in EXECUTABLE_EXTENSIONS
    magic = read_magic(path)
    if magic is None or len(magic) < 4:
        return by_extension
    if magic == _ELF_MAGIC or magic[:2] == _PE_MAGIC:
        return True
    if int.from_bytes(magic, "big") in _MACHO_MAGICS or int.from_bytes(magic, "little") in _MACHO_MAGICS:
        return True
    return by_extension


def _walk(directory: Path, found: list[Path], max_results: int) -> None:
    for entry in sorted(directory.iterdir()):
        if len(found) >= max_results:
            return
        if entry.is_symlink():
            continue
        if entry.is_dir():
            if entry.name not in IGNORED_DIRS:
                _walk(entry, found, max_results)
        elif entry.is_file() and is_executable_binary(entry):
            found.append(entry)


def find_executable_binaries(
    directory: str | Path,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[Path]:
    """Up to ``max_results`` executable files under ``directory``.

    Directories in ``IGNORED_DIRS`` and symbolic links are skipped; entries
    are visited in sorted order so results are deterministic.

    Raises:
        OSError: If ``directory`` cannot be listed.
    """
    found: list[Path] = []
    _walk(Path(directory), found, max_results)
    logger.debug("Found %d executable binaries under %s", len(found), directory)
    return found
