"""Content context: where in a document a match landed.

Analyzers scan the raw text with regexes and then ask this module whether
an individual match is inside a fenced or inline code span, inside a
safety-boundary section, or preceded on its line by a negation. The
answers become a deduction multiplier and a reason that is appended to
the finding title.

Build a ``ContentContext`` once per skill and share it between analyzers.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass

from skilltrust.core.models import ParsedSkill

_FENCE = re.compile(r"^(```|~~~).*$", re.MULTILINE)
_INLINE_CODE = re.compile(r"`[^`\n]+`")
_SAFETY_HEADING = re.compile(
    r"^#{2,4}\s+(?:safety\s+boundar|limitations?\b|restrictions?\b|constraints?\b"
    r"|prohibited|forbidden|do\s+not\s+(?:use|do)|don'?t\s+(?:use|do)|must\s+not"
    r"|will\s+not|what\s+(?:this\s+skill\s+)?(?:does|should)\s+not)",
    re.IGNORECASE | re.MULTILINE,
)
_NEGATION_SUFFIX = re.compile(
    r"(?:do\s+not|don['’]?t|should\s+not|must\s+not|will\s+not|cannot|never|no\s+)\s*$",
    re.IGNORECASE,
)

REASON_NEGATION = "preceded by negation"
REASON_CODE = "inside code block"
REASON_SAFETY = "inside safety boundary section"

CODE_BLOCK_MULTIPLIER = 0.3


@dataclass(frozen=True)
class Span:
    """Inclusive character range ``[start, end]``."""

    start: int
    end: int

    def __contains__(self, offset: int) -> bool:
        return self.start <= offset <= self.end


@dataclass(frozen=True)
class ContentContext:
    """Pre-computed spans and line offsets for one document.

    Attributes:
        code_blocks: Fenced blocks (opening fence through closing fence) and
            inline backtick spans.
        safety_ranges: Sections under safety/limitation headings (level 2-4).
        line_offsets: Start offset of every line, ascending.
    """

    code_blocks: tuple[Span, ...] = ()
    safety_ranges: tuple[Span, ...] = ()
    line_offsets: tuple[int, ...] = (0,)

    def line_number(self, offset: int) -> int:
        """1-based line number of ``offset``."""
        return bisect.bisect_right(self.line_offsets, offset)


def build_content_context(content: str) -> ContentContext:
    """Scan ``content`` once for code spans, safety sections and line starts.

    Fences pair up in order; an unmatched trailing fence opens no span.
    """
    line_offsets = [0]
    line_offsets.extend(i + 1 for i, ch in enumerate(content) if ch == "\n")

    spans: list[Span] = []
    fence_open: int | None = None
    for match in _FENCE.finditer(content):
        if fence_open is None:
            fence_open = match.start()
        else:
            spans.append(Span(fence_open, match.end()))
            fence_open = None
    spans.extend(Span(m.start(), m.end()) for m in _INLINE_CODE.finditer(content))

    safety: list[Span] = []
    for match in _SAFETY_HEADING.finditer(content):
        level = len(match.group(0)) - len(match.group(0).lstrip("#"))
        next_heading = re.compile(rf"^#{{1,{level}}}\s+", re.MULTILINE).search(
            content, match.end()
        )
        safety.append(Span(match.start(), next_heading.start() if next_heading else len(content)))

    return ContentContext(tuple(spans), tuple(safety), tuple(line_offsets))


def is_inside_code_block(offset: int, ctx: ContentContext) -> bool:
    return any(offset in span for span in ctx.code_blocks)


def is_inside_safety_section(offset: int, ctx: ContentContext) -> bool:
    return any(offset in span for span in ctx.safety_ranges)


def _line_bounds(content: str, index: int) -> tuple[int, int]:
    start = content.rfind("\n", 0, index) + 1
    end = content.find("\n", index)
    return start, len(content) if end < 0 else end


def line_at(content: str, index: int) -> str:
    """The full line containing ``index``."""
    start, end = _line_bounds(content, index)
    return content[start:end]


def is_preceded_by_negation(content: str, index: int) -> bool:
    """True when the text between line start and ``index`` ends in a negation.

    ``"Do not send data"`` matched at ``send`` is negated; ``"Send data"`` is not.
    """
    start, _ = _line_bounds(content, index)
    return _NEGATION_SUFFIX.search(content[start:index]) is not None


def adjust_for_context(index: int, content: str, ctx: ContentContext) -> tuple[float, str | None]:
    """Return ``(multiplier, reason)`` for a match at ``index``.

    Negation wins over code, code wins over safety. Safety sections keep
    full weight; headings are author-controlled, so the section only
    annotates the finding.
    """
    if is_preceded_by_negation(content, index):
        return 0.0, REASON_NEGATION
    if is_inside_code_block(index, ctx):
        return CODE_BLOCK_MULTIPLIER, REASON_CODE
    if is_inside_safety_section(index, ctx):
        return 1.0, REASON_SAFETY
    return 1.0, None


# ---------------------------------------------------------------------------
# Security/defense skills
# ---------------------------------------------------------------------------

_DEFENSE_DESCRIPTION = re.compile(
    r"\b(?:security\s+(?:scan|audit|check|monitor|guard|shield|analyz|validat|suite)"
    r"|prompt\s+(?:guard|inject|defense|detect)|threat\s+(?:detect|monitor)"
    r"|injection\s+(?:defense|detect|prevent|scanner)|skill\s+(?:audit|scan|vet)"
    r"|pattern\s+detect|command\s+sanitiz"
    r"|(?:guard|bastion|warden|heimdall|sentinel|watchdog)\b)",
    re.IGNORECASE,
)
_DEFENSE_NAME = re.compile(
    r"^(?:security|guard|sentinel|watchdog|scanner|firewall|shield|defender|warden)$",
    re.IGNORECASE,
)
_DEFENSE_HEAD = re.compile(
    r"\b(?:security\s+(?:analy|scan|audit)|detect\s+(?:malicious|injection|exfiltration)"
    r"|adversarial\s+(?:security|analysis)|prompt\s+injection\s+(?:defense|detect|prevent))\b",
    re.IGNORECASE,
)


def is_security_defense_skill(skill: ParsedSkill) -> bool:
    """Heuristic: does the skill describe itself as a security/defense tool?

    This is self-declared and therefore spoofable. Callers use it only to
    downgrade, never to drop, a finding.
    """
    if _DEFENSE_DESCRIPTION.search(f"{skill.name} {skill.description}"):
        return True
    if _DEFENSE_NAME.match(skill.name.strip()):
        return True
    return _DEFENSE_HEAD.search(skill.raw_content[:500]) is not None


_TABLE_ROW = re.compile(r"^\s*\|.*\|")
_TABLE_VOCAB = re.compile(
    r"\b(?:pattern|indicator|type|category|technique|example|critical|high|warning|risk"
    r"|dangerous|override|jailbreak|injection|exfiltration|attack)\b",
    re.IGNORECASE,
)
_DETECT_BULLET = re.compile(
    r"^\s*[-*•]\s*(?:[\"'“”‘’]|pattern|detect|flag|block"
    r"|scan\s+for|look\s+for|check\s+for)",
    re.IGNORECASE,
)
_BOLD_LABEL_QUOTE = re.compile(
    r"^\s*[-*•]\s*\*\*[^*]+\*\*\s*[:—–-]\s*[\"'“”‘’]"
)
_BOLD_LABEL_COLON = re.compile(r"^\s*[-*•]\s*\*\*[^*]*:\*\*")
_EXAMPLE_LINE = re.compile(
    r"\b(?:example|evidence|if\s+.*says?|indicator|caption|sample|test\s+case|detection)\b",
    re.IGNORECASE,
)
_LISTING_LEAD_IN = re.compile(
    r"\b(?:detect(?:s|ion|ed)?|scan(?:s|ning)?|flag(?:s|ged)?|block(?:s|ed)?|watch\s+for"
    r"|monitor(?:s|ing)?|reject(?:s|ed)?|filter(?:s|ed)?|high-confidence\s+injection"
    r"|attack\s+(?:pattern|vector|coverage|surface)|common\s+(?:attack|pattern)"
    r"|malicious\s+(?:pattern|user|content)|example\s+indicator|dangerous\s+command"
    r"|threat\s+(?:pattern|categor)|what\s+(?:it|we)\s+detect|prompt(?:s|ed)?\s+that\s+attempt"
    r"|direct\s+injection|injection\s+(?:type|categor|pattern|vector)|check\s+(?:for|url)"
    r"|ssrf|threat\s+detected)\b",
    re.IGNORECASE,
)
_ANY_HEADING = re.compile(r"^#{1,4}\s+.+$", re.MULTILINE)
_SECURITY_HEADING = re.compile(
    r"\b(?:detect|ssrf|injection|threat|attack|security|example|exfiltrat|protect|dangerous)\b"
)


def is_in_threat_listing_context(content: str, index: int) -> bool:
    """Is the match part of a list/table of patterns being described?

    Looks at the match's own line (table rows, detection bullets, bold
    labels, example markers), the five preceding lines, and the nearest
    heading within the previous 1000 characters.
    """
    start, end = _line_bounds(content, index)
    line = content[start:end]

    if _TABLE_ROW.search(line) and _TABLE_VOCAB.search(line):
        return True
    if _DETECT_BULLET.search(line) or _BOLD_LABEL_QUOTE.search(line) or _BOLD_LABEL_COLON.search(line):
        return True
    if _EXAMPLE_LINE.search(line):
        return True

    preceding = content[max(0, start - 500):start].split("\n")[-5:]
    if _LISTING_LEAD_IN.search(" ".join(preceding)):
        return True

    headings = _ANY_HEADING.findall(content[max(0, index - 1000):index])
    return bool(headings) and _SECURITY_HEADING.search(headings[-1].lower()) is not None
