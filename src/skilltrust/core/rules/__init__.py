"""Rule tables: YAML pattern catalogs shipped as package data.

Each analyzer's patterns live in a YAML file next to this module
(``injection.yaml``, ``behavioral.yaml``, ...) so the ruleset can be
audited and extended without touching the matching code. Tables are read
once with ``yaml.safe_load``, compiled, and cached for the life of the
process.

Matching is stateless: ``find_matches`` runs a fresh ``finditer`` per call,
so compiled patterns can be shared freely between concurrently running
analyzers.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from typing import Any

import yaml

from skilltrust.core.models import Severity
from skilltrust.core.taxonomy import ThreatCode
from skilltrust.exceptions import RuleLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    """One compiled pattern plus the optional metadata its table carries.

    Attributes:
        pattern: Compiled regex.
        name: Short label (e.g. ``"AWS key"``) where the table names entries.
        title: Finding title where the table supplies one.
        deduction: Per-entry deduction where the table supplies one.
    """

    pattern: re.Pattern[str]
    name: str = ""
    title: str = ""
    deduction: int = 0


@dataclass(frozen=True)
class RuleFamily:
    """A named group of patterns sharing severity, deduction and taxonomy."""

    name: str
    severity: Severity
    deduction: int
    taxonomy: ThreatCode
    recommendation: str
    patterns: tuple[re.Pattern[str], ...]

    @property
    def id_stem(self) -> str:
        """Upper-case, dash-joined family name for finding ids."""
        return re.sub(r"\s+", "-", self.name).upper()


def find_matches(pattern: re.Pattern[str], text: str) -> list[re.Match[str]]:
    """All non-overlapping matches of ``pattern`` in ``text``, in order."""
    return list(pattern.finditer(text))


def compile_pattern(source: str, *, case_sensitive: bool = False, table: str = "") -> re.Pattern[str]:
    """Compile one rule pattern.

    Raises:
        RuleLoadError: If ``source`` is not a valid regular expression.
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(source, flags)
    except re.error as exc:
        raise RuleLoadError(f"Invalid pattern in {table or 'rule table'}: {source!r} ({exc})") from exc


@lru_cache(maxsize=None)
def load_table(table: str) -> dict[str, Any]:
    """Read and parse ``<table>.yaml`` from the package.

    Raises:
        RuleLoadError: If the file is missing or is not a YAML mapping.
    """
    try:
        text = resources.files(__name__).joinpath(f"{table}.yaml").read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuleLoadError(f"Rule table not found: {table}.yaml") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RuleLoadError(f"Malformed rule table {table}.yaml: {exc}") from exc
    if not isinstance(data, dict):
        raise RuleLoadError(f"Rule table {table}.yaml must be a mapping")
    logger.debug("Loaded rule table %s", table)
    return data


def _section(table: str, key: str) -> Any:
    data = load_table(table)
    if key not in data:
        raise RuleLoadError(f"Rule table {table}.yaml has no '{key}' section")
    return data[key]


@lru_cache(maxsize=None)
def load_rules(table: str, key: str) -> tuple[Rule, ...]:
    """Compile a list section whose entries are strings or mappings.

    A string entry is a bare pattern. A mapping entry has ``pattern`` and
    may set ``name``, ``title``, ``deduction`` and ``case_sensitive``.
    """
    rules: list[Rule] = []
    for entry in _section(table, key) or []:
        if isinstance(entry, str):
            rules.append(Rule(compile_pattern(entry, table=table)))
        elif isinstance(entry, dict) and "pattern" in entry:
            rules.append(Rule(
                pattern=compile_pattern(
                    str(entry["pattern"]),
                    case_sensitive=bool(entry.get("case_sensitive", False)),
                    table=table,
                ),
                name=str(entry.get("name", "")),
                title=str(entry.get("title", "")),
                deduction=int(entry.get("deduction", 0)),
            ))
        else:
            raise RuleLoadError(f"Unrecognized entry in {table}.yaml '{key}': {entry!r}")
    return tuple(rules)


def load_patterns(table: str, key: str) -> tuple[re.Pattern[str], ...]:
    """Just the compiled patterns of a list section."""
    return tuple(rule.pattern for rule in load_rules(table, key))


@lru_cache(maxsize=None)
def load_families(table: str, key: str = "families") -> tuple[RuleFamily, ...]:
    """Compile a section of pattern families.

    Raises:
        RuleLoadError: On a missing field, unknown severity or taxonomy
            code, or an invalid pattern.
    """
    families: list[RuleFamily] = []
    for raw in _section(table, key) or []:
        try:
            families.append(RuleFamily(
                name=str(raw["name"]),
                severity=Severity.parse(str(raw["severity"])),
                deduction=int(raw["deduction"]),
                taxonomy=ThreatCode.from_code(str(raw["taxonomy"])),
                recommendation=str(raw.get("recommendation", "")).strip(),
                patterns=tuple(
                    compile_pattern(
                        str(p),
                        case_sensitive=bool(raw.get("case_sensitive", False)),
                        table=table,
                    )
                    for p in raw["patterns"]
                ),
            ))
        except (KeyError, TypeError, ValueError) as exc:
            raise RuleLoadError(f"Malformed family in {table}.yaml: {raw!r} ({exc})") from exc
    return tuple(families)
