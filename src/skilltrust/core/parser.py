"""Skill document parser: raw markdown text to ``ParsedSkill``.

Handles three dialects:

- **openclaw** -- YAML front matter carrying ``name`` and/or ``tools``.
- **claude** -- heading-led documents with ``## Description``,
  ``## Instructions``, ``## Tools`` and ``## Permissions`` sections.
- **generic** -- anything else; the whole document is the instructions.

Front matter is read with ``yaml.safe_load``. Skill authors frequently write
front matter that is not valid YAML (unquoted colons, tabs, stray
indentation), so on a YAML error the parser falls back to a forgiving
line-oriented key/value reader. The parser never raises: malformed input
degrades to empty fields plus a warning.
"""

from __future__ import annotations

import logging
import re
from types import MappingProxyType
from typing import Any

import yaml

from skilltrust.core.models import DeclaredPermission, ParsedSkill, SkillFormat

logger = logging.getLogger(__name__)

UNKNOWN_SKILL_NAME = "Unknown Skill"
MIN_DESCRIPTION_LENGTH = 10
FRONTMATTER_FALLBACK_WARNING = "Front matter is not valid YAML; read line by line"

_FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\n(.*?)\n---", re.DOTALL)
_BODY_PATTERN = re.compile(r"\A---[ \t]*\n.*?\n---[ \t]*\n(.*)", re.DOTALL)
_SECTION_HEADING = re.compile(r"^#{1,3}\s+(.+)")
_TITLE_HEADING = re.compile(r"^#\s+(.+)", re.MULTILINE)
_CLAUDE_HEADINGS = re.compile(r"^##\s+(tools|instructions|description)", re.IGNORECASE | re.MULTILINE)

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>\])+,;]+", re.IGNORECASE)
_DATA_URL_PATTERN = re.compile(r"\bdata:[a-z]+/[a-z0-9.+-]+[;,][^\s\"'<>)\]]*", re.IGNORECASE)
_URL_TRAILING = re.compile(r"[.)]+$")

_KV_LINE = re.compile(r"^(\w[\w-]*):\s*(.*)")
_LIST_ITEM = re.compile(r"^[-*]\s+`?(\w[\w._-]*)`?")
_PERMISSION_ENTRY = re.compile(r"^-\s+(\w[\w_-]*):\s*[\"']?(.+?)[\"']?\s*$")
_KEYED_STRING = re.compile(r"^\s*\w[\w_-]*\s*:")


# ---------------------------------------------------------------------------
# Front matter
# ---------------------------------------------------------------------------


def _strip_quotes(value: str) -> str:
    return re.sub(r"^[\"']|[\"']$", "", value)


def _parse_frontmatter_lines(block: str) -> dict[str, Any]:
    """Forgiving key/value reader used when the block is not valid YAML.

    Supports ``key: value``, inline lists (``key: [a, b]``), and block
    lists introduced by an empty value and continued with ``- item`` lines.
    Block scalars (``|`` / ``>``) read as empty strings.
    """
    data: dict[str, Any] = {}
    current_key = ""
    in_list = False
    items: list[str] = []

    for line in block.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if in_list:
            if stripped.startswith("- "):
                items.append(_strip_quotes(stripped[2:].strip()))
                continue
            data[current_key] = list(items)
            items.clear()
            in_list = False

        kv = _KV_LINE.match(stripped)
        if not kv:
            continue
        current_key = kv.group(1)
        value = kv.group(2).strip()
        if value in ("", "|", ">"):
            in_list = value == ""
            if not in_list:
                data[current_key] = ""
        elif value.startswith("[") and value.endswith("]"):
            data[current_key] = [
                _strip_quotes(part.strip())
                for part in value[1:-1].split(",")
                if part.strip()
            ]
        else:
            data[current_key] = _strip_quotes(value)

    if in_list and current_key:
        data[current_key] = list(items)
    return data


def _load_frontmatter(content: str) -> tuple[dict[str, Any] | None, bool]:
    """Front-matter mapping plus whether YAML loading failed."""
    match = _FRONTMATTER_PATTERN.match(content)
    if not match or not match.group(1).strip():
        return None, False
    block = match.group(1)
    try:
        loaded = yaml.safe_load(block)
    # Constructors raise ValueError/TypeError (e.g. 2024-02-30); deep nesting recurses.
    except (yaml.YAMLError, ValueError, TypeError, RecursionError) as exc:
        logger.debug("Front matter is not loadable YAML (%s); using line reader", type(exc).__name__)
        return _parse_frontmatter_lines(block), True
    if isinstance(loaded, dict):
        return {str(k): v for k, v in loaded.items()}, False
    return _parse_frontmatter_lines(block), False


def parse_frontmatter(content: str) -> dict[str, Any] | None:
    """Return the front-matter mapping, or ``None`` when there is none."""
    return _load_frontmatter(content)[0]


def parse_declared_permissions(content: str) -> tuple[DeclaredPermission, ...]:
    """Extract ``permissions:`` entries shaped ``- kind: "justification"``.

    The block ends at the next non-list key.
    """
    match = _FRONTMATTER_PATTERN.match(content)
    if not match:
        return ()
    declared: list[DeclaredPermission] = []
    in_block = False
    for line in match.group(1).split("\n"):
        stripped = line.strip()
        if re.match(r"^permissions:\s*$", stripped):
            in_block = True
            continue
        if not in_block:
            continue
        if re.match(r"^\w[\w-]*:", stripped) and not stripped.startswith("- "):
            break
        if stripped.startswith("- "):
            entry = _PERMISSION_ENTRY.match(stripped)
            if entry:
                declared.append(DeclaredPermission(entry.group(1), entry.group(2)))
    return tuple(declared)


# ---------------------------------------------------------------------------
# Body structure
# ---------------------------------------------------------------------------


def extract_sections(content: str) -> dict[str, str]:
    """Map each level 1-3 heading to the trimmed text beneath it."""
    sections: dict[str, str] = {}
    heading = ""
    body: list[str] = []
    for line in content.split("\n"):
        match = _SECTION_HEADING.match(line)
        if match:
            if heading:
                sections[heading] = "\n".join(body).strip()
            heading = match.group(1).strip()
            body = []
        else:
            body.append(line)
    if heading:
        sections[heading] = "\n".join(body).strip()
    return sections


def extract_urls(content: str) -> tuple[str, ...]:
    """All http(s) and ``data:`` URLs, deduplicated in first-seen order."""
    found = [_URL_TRAILING.sub("", m.group(0)) for m in _URL_PATTERN.finditer(content)]
    found.extend(m.group(0) for m in _DATA_URL_PATTERN.finditer(content))
    return tuple(dict.fromkeys(url for url in found if url))


def extract_list_items(text: str) -> list[str]:
    """Bullet items whose first token is an identifier (optionally in backticks)."""
    items: list[str] = []
    for line in text.split("\n"):
        match = _LIST_ITEM.match(line)
        if match:
            items.append(match.group(1))
    return items


def _to_strings(value: Any) -> list[str]:
    """Coerce a front-matter value to a list of strings."""
    if not value:
        return []
    if isinstance(value, list):
        out: list[str] = []
        for item in value:
            if isinstance(item, dict):
                # ``- kind: justification`` entries are declarations, not plain permissions.
                out.extend(f"{k}: {v}" for k, v in item.items())
            elif item is not None:
                out.append(str(item))
        return out
    if isinstance(value, dict):
        return [f"{k}: {v}" for k, v in value.items()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def _first_string(value: Any) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else ""
    if value is None:
        return ""
    return str(value).strip()


def detect_format(content: str, frontmatter: dict[str, Any] | None = None) -> SkillFormat:
    """Detect the dialect from front-matter shape or heading vocabulary."""
    fm = parse_frontmatter(content) if frontmatter is None else frontmatter
    if fm and ("name" in fm or "tools" in fm):
        return SkillFormat.OPENCLAW
    lower = content.lower()
    if _CLAUDE_HEADINGS.search(content) or "claude" in lower or "anthropic" in lower:
        return SkillFormat.CLAUDE
    return SkillFormat.GENERIC


def _section(sections: dict[str, str], *names: str) -> str:
    for name in names:
        if name in sections:
            return sections[name]
    return ""


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_skill(content: str) -> ParsedSkill:
    """Parse a skill document. Never raises.

    Args:
        content: Raw document text (CRLF line endings are normalised).

    Returns:
        The immutable ``ParsedSkill``; problems are listed in ``warnings``.
    """
    content = content.replace("\r\n", "\n")
    warnings: list[str] = []
    frontmatter, yaml_failed = _load_frontmatter(content)
    if yaml_failed:
        warnings.append(FRONTMATTER_FALLBACK_WARNING)
    fmt = detect_format(content, frontmatter or {})
    sections = extract_sections(content)

    name = ""
    description = ""
    instructions = ""
    tools: list[str] = []
    permissions: list[str] = []
    dependencies: list[str] = []

    if fmt is SkillFormat.OPENCLAW and frontmatter is not None:
        name = _first_string(frontmatter.get("name"))
        description = _first_string(frontmatter.get("description"))
        tools = _to_strings(frontmatter.get("tools"))
        permissions = [
            p for p in _to_strings(frontmatter.get("permissions"))
            if not _KEYED_STRING.match(p)
        ]
        dependencies = _to_strings(frontmatter.get("dependencies"))
        body = _BODY_PATTERN.match(content)
        instructions = body.group(1).strip() if body else ""
    elif fmt is SkillFormat.CLAUDE:
        name = "" if "Description" in sections else next(iter(sections), "")
        description = _section(sections, "Description", "description")
        instructions = _section(sections, "Instructions", "instructions")
        tools = extract_list_items(_section(sections, "Tools", "tools"))
        permissions = extract_list_items(_section(sections, "Permissions", "permissions"))
    else:
        name = next(iter(sections), "")
        description = _section(sections, "Description", "About") or next(
            iter(sections.values()), ""
        )
        instructions = content

    if not name:
        title = _TITLE_HEADING.search(content)
        if title:
            name = title.group(1).strip()
        else:
            first_line = next((line for line in content.split("\n") if line.strip()), "")
            name = first_line.strip()[:100] or UNKNOWN_SKILL_NAME

    if len(description.strip()) < MIN_DESCRIPTION_LENGTH:
        warnings.append("No description found in skill file")

    return ParsedSkill(
        name=name,
        description=description,
        instructions=instructions,
        tools=tuple(tools),
        permissions=tuple(permissions),
        declared_permissions=parse_declared_permissions(content),
        dependencies=tuple(dependencies),
        urls=extract_urls(content),
        raw_content=content,
        raw_sections=MappingProxyType(sections),
        format=fmt,
        warnings=tuple(warnings),
    )
