"""Data models for the scan pipeline: skills, findings, scores, and reports.

These are the core data types produced and consumed by the analysis pipeline.
They are intentionally decoupled from the analyzers so that downstream
modules (batch runner, CLI formatters, report generators) can import them
without pulling in rule tables or matching logic.

Every value here is immutable. Analyzers build new findings rather than
editing old ones, and the reconciler uses ``dataclasses.replace`` to
produce annotated copies.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Mapping

from skilltrust.core.taxonomy import ThreatCode


# ---------------------------------------------------------------------------
# Severity: Ordered finding severity levels
# ---------------------------------------------------------------------------


class Severity(IntEnum):
    """Five-level severity scale for findings.

    The integer encoding enables direct comparison:
    INFO < LOW < MEDIUM < HIGH < CRITICAL. INFO findings never carry a
    deduction of their own; they exist so reviewers can see what the
    scanner noticed.
    """

    INFO = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        """Lower-case wire name (``"critical"``, ``"high"``, ...)."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse a wire name such as ``"medium"`` (case-insensitive).

        Raises:
            ValueError: If ``value`` names no severity.
        """
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown severity: {value!r}") from None

    def downgraded(self, floor: Severity | None = None) -> Severity:
        """Return the next lower severity, never going below ``floor``."""
        lowest = Severity.INFO if floor is None else floor
        return Severity(max(int(self) - 1, int(lowest)))


# ---------------------------------------------------------------------------
# Enumerations: categories, badges, skill dialects
# ---------------------------------------------------------------------------


class Category(str, Enum):
    """The five weighted analysis categories."""

    PERMISSIONS = "permissions"
    INJECTION = "injection"
    DEPENDENCIES = "dependencies"
    BEHAVIORAL = "behavioral"
    CONTENT = "content"

    @property
    def weight(self) -> float:
        return CATEGORY_WEIGHTS[self]


# Fixed weights; must sum to 1.0.
CATEGORY_WEIGHTS: dict[Category, float] = {
    Category.PERMISSIONS: 0.25,
    Category.INJECTION: 0.30,
    Category.DEPENDENCIES: 0.20,
    Category.BEHAVIORAL: 0.15,
    Category.CONTENT: 0.10,
}

# Weight of the optional semantic category (additive only).
SEMANTIC_WEIGHT: float = 0.0


class Badge(str, Enum):
    """Discrete trust tier, best first."""

    CERTIFIED = "certified"
    CONDITIONAL = "conditional"
    SUSPICIOUS = "suspicious"
    REJECTED = "rejected"

    @property
    def rank(self) -> int:
        """0 for CERTIFIED up to 3 for REJECTED."""
        return list(Badge).index(self)


class SkillFormat(str, Enum):
    """Detected skill dialect."""

    OPENCLAW = "openclaw"  # front-matter led (name / tools keys)
    CLAUDE = "claude"  # heading led (Description / Instructions / Tools)
    GENERIC = "generic"


# ---------------------------------------------------------------------------
# ParsedSkill: parser output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeclaredPermission:
    """An author-asserted capability with its justification.

    Parsed from ``permissions:`` entries shaped ``- kind: "justification"``.
    Used only to annotate findings, never to change a score.
    """

    kind: str
    justification: str


def _frozen_mapping(data: Mapping[str, str] | None = None) -> Mapping[str, str]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class ParsedSkill:
    """Immutable intermediate representation of one skill document.

    Attributes:
        name: Skill name (front matter, first heading, or first line).
        description: Short description; may be empty.
        instructions: Instruction body. For generic skills, the whole document.
        tools: Declared tool names.
        permissions: Declared permission strings (plain list form).
        declared_permissions: ``kind: justification`` permission entries.
        dependencies: Declared dependency names.
        urls: Absolute URLs found anywhere in the document, deduplicated in
            first-seen order with trailing punctuation stripped.
        raw_content: The complete document text.
        raw_sections: Heading (levels 1-3) to body text.
        format: Detected dialect.
        warnings: Parse warnings (the parser itself never raises).
    """

    name: str = ""
    description: str = ""
    instructions: str = ""
    tools: tuple[str, ...] = ()
    permissions: tuple[str, ...] = ()
    declared_permissions: tuple[DeclaredPermission, ...] = ()
    dependencies: tuple[str, ...] = ()
    urls: tuple[str, ...] = ()
    raw_content: str = ""
    raw_sections: Mapping[str, str] = field(default_factory=_frozen_mapping)
    format: SkillFormat = SkillFormat.GENERIC
    warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Finding: a single evidence-backed observation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    """A single finding produced by exactly one analyzer.

    Attributes:
        id: Stable identifier such as ``INJ-DIRECT-INSTRUCTION-OVERRIDE-1``.
        category: Category whose score this finding's deduction applies to.
        severity: INFO through CRITICAL.
        title: One-line summary.
        description: Longer explanation.
        evidence: Bounded excerpt of the matched text.
        deduction: Points subtracted from the category score (>= 0).
        recommendation: Remediation text.
        taxonomy: External threat category code.
        line_number: 1-based line of the match, when it has one.
    """

    id: str
    category: Category
    severity: Severity
    title: str
    description: str
    evidence: str
    deduction: int
    recommendation: str
    taxonomy: ThreatCode
    line_number: int | None = None

    def __post_init__(self) -> None:
        if self.deduction < 0:
            raise ValueError(f"deduction must be >= 0, got {self.deduction}")

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable form using the external field names."""
        data: dict[str, Any] = {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.label,
            "title": self.title,
            "description": self.description,
            "evidence": self.evidence,
            "deduction": self.deduction,
            "recommendation": self.recommendation,
            "owaspCategory": self.taxonomy.value,
        }
        if self.line_number is not None:
            data["lineNumber"] = self.line_number
        return data


def sort_by_severity(findings: list[Finding] | tuple[Finding, ...]) -> tuple[Finding, ...]:
    """Stable sort, most severe first. Presentation only."""
    return tuple(sorted(findings, key=lambda f: -int(f.severity)))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounding up (``4.5 -> 5``)."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    """Round (half up) and clamp a score into [0, 100]."""
    return max(0, min(100, round_half_up(value)))


# ---------------------------------------------------------------------------
# CategoryScore and TrustReport
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryScore:
    """Score for one category in one scan.

    Attributes:
        score: Category score in [0, 100].
        weight: Fixed category weight.
        findings: Findings in the order the analyzer produced them.
        summary: One- or two-sentence summary.
    """

    score: int
    weight: float
    findings: tuple[Finding, ...] = ()
    summary: str = ""

    @classmethod
    def from_findings(
        cls,
        findings: list[Finding] | tuple[Finding, ...],
        weight: float,
        summary: str,
        *,
        base: int = 100,
    ) -> CategoryScore:
        """Derive the score as ``base - sum(deductions)``, clamped."""
        total = sum(f.deduction for f in findings)
        return cls(
            score=clamp_score(min(100, base) - total),
            weight=weight,
            findings=tuple(findings),
            summary=summary,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "weight": self.weight,
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary,
        }


@dataclass(frozen=True)
class ScanMetadata:
    """Metadata describing one scan."""

    scanned_at: datetime
    scanner_version: str
    duration_ms: int
    skill_format: SkillFormat
    skill_name: str
    skill_description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "scannedAt": self.scanned_at.isoformat(),
            "scannerVersion": self.scanner_version,
            "durationMs": self.duration_ms,
            "skillFormat": self.skill_format.value,
            "skillName": self.skill_name,
            "skillDescription": self.skill_description,
        }


@dataclass(frozen=True)
class TrustReport:
    """Terminal result of scanning one skill.

    Attributes:
        overall: Weighted overall score in [0, 100].
        badge: Trust tier.
        categories: Category to score.
        findings: All findings flattened across categories, most severe first.
        metadata: Scan metadata.
    """

    overall: int
    badge: Badge
    categories: Mapping[Category, CategoryScore]
    findings: tuple[Finding, ...]
    metadata: ScanMetadata

    @property
    def has_critical(self) -> bool:
        return any(f.severity is Severity.CRITICAL for f in self.findings)

    def count(self, severity: Severity) -> int:
        """Number of findings at exactly ``severity``."""
        return sum(1 for f in self.findings if f.severity is severity)

    def to_dict(self) -> dict[str, Any]:
        """Fully JSON-serializable form of the report."""
        return {
            "overall": self.overall,
            "badge": self.badge.value,
            "categories": {
                category.value: score.to_dict()
                for category, score in self.categories.items()
            },
            "findings": [f.to_dict() for f in self.findings],
            "metadata": self.metadata.to_dict(),
        }
