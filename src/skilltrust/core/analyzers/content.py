"""Content analyzer (weight 0.10).

Unlike the other analyzers this one starts from 80, not 100: a skill has to
*earn* the last 20 points by documenting safety boundaries (+10), output
constraints (+5) and error handling (+5). Deductions then cover harmful
instructions, deception, obfuscated blobs, hardcoded secrets, and vague or
missing descriptions.
"""

from __future__ import annotations

import re
from typing import Sequence

from skilltrust.core.analyzers.base import finalize
from skilltrust.core.context import ContentContext, adjust_for_context, build_content_context
from skilltrust.core.models import (
    Category,
    CategoryScore,
    Finding,
    ParsedSkill,
    Severity,
    round_half_up,
)
from skilltrust.core.rules import find_matches, load_patterns, load_rules
from skilltrust.core.taxonomy import ThreatCode

BASE_SCORE = 80
SAFETY_BONUS = 10
OUTPUT_BONUS = 5
ERROR_HANDLING_BONUS = 5

SECRET_DEDUCTION = 40

_BASE64_BLOB = re.compile(r"[A-Za-z0-9+/]{100,}={0,2}")
_HEX_ONLY = re.compile(r"^[a-f0-9]+$", re.IGNORECASE)
_HEX_ESCAPES = re.compile(r"(?:\\x[0-9a-fA-F]{2}){20,}")

_AWS_PREFIXES = ("AKIA", "AGPA", "AIDA", "AROA", "AIPA", "ANPA", "ANVA", "ASIA")
_PLACEHOLDER = re.compile(r"EXAMPLE|placeholder|YOUR_|xxx|REPLACE", re.IGNORECASE)
_ASSIGNMENT_PREFIX = re.compile(r"^.*?[:=]\s*[\"']?")
_REPEATED = (re.compile(r"^(.)\1{7,}$"), re.compile(r"^(.{1,4})\1{3,}$"))

# Whole-line and lead-in vocabulary that turns a harmful-pattern match into
# documentation of what *not* to do (or what gets detected).
_HARMFUL_LINE_NEGATION = (
    re.compile(
        r"\b(?:do\s+not|don['’]?t|should\s+not|must\s+not|cannot|never|not\s+to"
        r"|unable\s+to|limited\s+to|won['’]?t)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:detect|scan|flag|block|reject|warn|alert|monitor|watch\s+for|look\s+for"
        r"|check\s+for|patterns?\s+(?:to|we)\s+(?:detect|flag|block))\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:requests?|attempts?)\s+to\s+", re.IGNORECASE),
    re.compile(r"\b(?:methods?\s+bypass|calls?\s+bypass|queries?\s+bypass)\b", re.IGNORECASE),
    re.compile(r"\b(?:allowlist|whitelist|exempt|trusted\s+items?)\b", re.IGNORECASE),
)
_TABLE_ROW = re.compile(r"^\s*\|.*\|")
_HARMFUL_TABLE_VOCAB = re.compile(
    r"\b(?:critical|high|dangerous|risk|attack|threat|pattern|injection|violation|abuse"
    r"|manipulation)\b",
    re.IGNORECASE,
)
_HARMFUL_LEAD_IN = re.compile(
    r"\b(?:do\s+not\s+use\s+when|do\s+not\s+use\s+(?:this|if)|limitations?|restrictions?"
    r"|prohibited|forbidden|what\s+(?:this\s+)?(?:skill\s+)?(?:does|should)\s+not"
    r"|example\s+indicator|attempted\s+to|common\s+attack|malicious\s+(?:pattern|user)"
    r"|dangerous\s+command|prompts?\s+that\s+attempt|why\s+it['’]?s\s+dangerous"
    r"|any\s+attempt\s+to)\b",
    re.IGNORECASE,
)


def is_harmful_match_negated(content: str, index: int) -> bool:
    """Does the line (or the 300 characters before it) frame the match as prohibited?"""
    start = content.rfind("\n", 0, index) + 1
    end = content.find("\n", index)
    line = content[start:len(content) if end < 0 else end]
    if any(p.search(line) for p in _HARMFUL_LINE_NEGATION):
        return True
    if _TABLE_ROW.search(line) and _HARMFUL_TABLE_VOCAB.search(line):
        return True
    return _HARMFUL_LEAD_IN.search(content[max(0, start - 300):start]) is not None


def is_placeholder_secret(matched: str) -> bool:
    """Example keys, ``xxxx`` fillers, zeroed AWS ids and repeated-chunk values."""
    if _PLACEHOLDER.search(matched):
        return True
    value = re.sub(r"[\"']$", "", _ASSIGNMENT_PREFIX.sub("", matched, count=1))
    if re.match(r"^[xX.*]+$", value):
        return True
    if any(matched.startswith(p) and re.match(r"^[X0]+$", matched[4:]) for p in _AWS_PREFIXES):
        return True
    return any(p.match(value) for p in _REPEATED)


def mask_secret(matched: str) -> str:
    return f"{matched[:20]}...{matched[-4:]}"


def _info(id_: str, title: str, description: str, evidence: str, recommendation: str) -> Finding:
    return Finding(
        id=id_,
        category=Category.CONTENT,
        severity=Severity.INFO,
        title=title,
        description=description,
        evidence=evidence,
        deduction=0,
        recommendation=recommendation,
        taxonomy=ThreatCode.MISSING_SAFETY_BOUNDARIES,
    )


def _present(key: str, content: str) -> bool:
    return any(p.search(content) for p in load_patterns("content", key))


def _summary(findings: Sequence[Finding]) -> str:
    concerns = [f for f in findings if f.severity is not Severity.INFO]
    if not concerns:
        return "Content quality is good with proper safety boundaries."
    if any(f.severity is Severity.CRITICAL for f in concerns):
        tail = "CRITICAL: Harmful content detected."
    else:
        tail = "Some content quality improvements recommended."
    return f"Found {len(concerns)} content-related concerns. {tail}"


def analyze_content(skill: ParsedSkill, ctx: ContentContext | None = None) -> CategoryScore:
    """Score content quality and harmful content.

    Args:
        skill: Parsed skill.
        ctx: Shared content context; built from ``skill`` when omitted.

    Returns:
        The content ``CategoryScore``. The score is
        ``min(100, 80 + bonuses) - deductions``, clamped.
    """
    content = skill.raw_content
    ctx = ctx or build_content_context(content)
    findings: list[Finding] = []
    base = BASE_SCORE

    has_safety = _present("safety_boundaries", content)
    if has_safety:
        base += SAFETY_BONUS
        findings.append(_info(
            "CONT-SAFETY-GOOD",
            "Safety boundaries defined",
            "The skill includes explicit safety boundaries defining what it should NOT do.",
            "Safety boundary patterns detected in content",
            "Keep these safety boundaries. They improve trust.",
        ))
    if _present("output_constraints", content):
        base += OUTPUT_BONUS
        findings.append(_info(
            "CONT-OUTPUT-GOOD",
            "Output constraints defined",
            "The skill includes output format constraints (length limits, format specifications).",
            "Output constraint patterns detected",
            "Keep these output constraints.",
        ))
    if _present("error_handling", content):
        base += ERROR_HANDLING_BONUS
        findings.append(_info(
            "CONT-ERROR-GOOD",
            "Error handling instructions present",
            "The skill includes error handling instructions for graceful failure.",
            "Error handling patterns detected",
            "Keep these error handling instructions.",
        ))

    for rule in load_rules("content", "harmful"):
        for match in find_matches(rule.pattern, content):
            index = match.start()
            multiplier, _ = adjust_for_context(index, content, ctx)
            if multiplier == 0 or is_harmful_match_negated(content, index):
                continue
            findings.append(Finding(
                id=f"CONT-HARMFUL-{len(findings) + 1}",
                category=Category.CONTENT,
                severity=Severity.HIGH if multiplier < 1 else Severity.CRITICAL,
                title=rule.title,
                description=f"The skill contains instructions related to: {rule.title.lower()}.",
                evidence=match.group(0)[:200],
                deduction=round_half_up(rule.deduction * multiplier),
                recommendation=(
                    "Remove all harmful content instructions. Skills must not enable "
                    "dangerous activities."
                ),
                taxonomy=ThreatCode.DECEPTIVE_FUNCTIONALITY,
                line_number=ctx.line_number(index),
            ))
            break

    for pattern in load_patterns("content", "deception"):
        match = pattern.search(content)
        if match is None:
            continue
        findings.append(Finding(
            id=f"CONT-DECEPTION-{len(findings) + 1}",
            category=Category.CONTENT,
            severity=Severity.MEDIUM,
            title="Deceptive behavior instructions",
            description="The skill contains instructions that encourage deception or impersonation.",
            evidence=match.group(0)[:200],
            deduction=10,
            recommendation="Remove deceptive behavior instructions. Skills should be transparent.",
            taxonomy=ThreatCode.DECEPTIVE_FUNCTIONALITY,
        ))

    blob = next(
        (m for m in _BASE64_BLOB.finditer(content) if not _HEX_ONLY.match(m.group(0))),
        None,
    )
    if blob is not None:
        findings.append(Finding(
            id=f"CONT-B64-{len(findings) + 1}",
            category=Category.CONTENT,
            severity=Severity.MEDIUM,
            title="Large base64 encoded string (possible obfuscation)",
            description=(
                "A large base64-encoded string was detected that may be used to hide "
                "malicious payloads."
            ),
            evidence=blob.group(0)[:80] + "...",
            deduction=15,
            recommendation=(
                "Replace base64-encoded content with plaintext or explain its purpose. "
                "Obfuscation raises security concerns."
            ),
            taxonomy=ThreatCode.OBFUSCATION,
            line_number=ctx.line_number(blob.start()),
        ))

    hex_blob = _HEX_ESCAPES.search(content)
    if hex_blob is not None:
        findings.append(Finding(
            id=f"CONT-HEX-{len(findings) + 1}",
            category=Category.CONTENT,
            severity=Severity.MEDIUM,
            title="Hex-encoded blob (possible obfuscation)",
            description="A hex-encoded blob was detected that may be used to hide malicious payloads.",
            evidence=hex_blob.group(0)[:80] + "...",
            deduction=15,
            recommendation="Replace hex-encoded content with plaintext or explain its purpose.",
            taxonomy=ThreatCode.OBFUSCATION,
            line_number=ctx.line_number(hex_blob.start()),
        ))

    for rule in load_rules("content", "secrets"):
        for match in find_matches(rule.pattern, content):
            matched = match.group(0)
            if is_placeholder_secret(matched):
                continue
            index = match.start()
            multiplier, _ = adjust_for_context(index, content, ctx)
            if multiplier == 0:
                continue
            findings.append(Finding(
                id=f"CONT-SECRET-{len(findings) + 1}",
                category=Category.CONTENT,
                severity=Severity.HIGH if multiplier < 1 else Severity.CRITICAL,
                title="Hardcoded API key or secret detected",
                description=(
                    f"A hardcoded {rule.name} was found. Secrets must never be embedded "
                    "in skill files."
                ),
                evidence=mask_secret(matched),
                deduction=round_half_up(SECRET_DEDUCTION * multiplier),
                recommendation=(
                    "Remove all hardcoded secrets. Use environment variables or secure "
                    "secret management."
                ),
                taxonomy=ThreatCode.CREDENTIAL_HARVESTING,
                line_number=ctx.line_number(index),
            ))
            break

    description = skill.description.strip()
    if description and any(p.search(description) for p in load_patterns("content", "generic_description")):
        findings.append(Finding(
            id="CONT-GENERIC-DESC",
            category=Category.CONTENT,
            severity=Severity.MEDIUM,
            title="Overly generic description (trigger hijacking risk)",
            description=(
                "The skill description is very generic, which can cause the agent to "
                "activate it for unrelated requests (trigger hijacking)."
            ),
            evidence=f'Description: "{description[:120]}"',
            deduction=10,
            recommendation=(
                "Rewrite the description to be specific about scope and use cases (when to "
                "invoke this skill and what it will do)."
            ),
            taxonomy=ThreatCode.TRIGGER_MANIPULATION,
        ))

    if len(description) < 10:
        findings.append(Finding(
            id="CONT-NO-DESC",
            category=Category.CONTENT,
            severity=Severity.LOW,
            title="Missing or insufficient description",
            description=(
                "The skill lacks a meaningful description, making it difficult to assess "
                "its purpose."
            ),
            evidence=(
                f'Description: "{skill.description[:100]}"'
                if skill.description
                else "No description found"
            ),
            deduction=5,
            recommendation=(
                "Add a clear, detailed description of what the skill does and what it "
                "needs access to."
            ),
            taxonomy=ThreatCode.MISSING_SAFETY_BOUNDARIES,
        ))

    if not has_safety:
        findings.append(Finding(
            id="CONT-NO-SAFETY",
            category=Category.CONTENT,
            severity=Severity.LOW,
            title="No explicit safety boundaries",
            description=(
                "The skill does not include explicit safety boundaries defining what it "
                "should NOT do."
            ),
            evidence="No safety boundary patterns found",
            deduction=10,
            recommendation=(
                "Add a 'Safety Boundaries' section listing what the skill must NOT do "
                "(e.g., no file deletion, no network access beyond needed APIs)."
            ),
            taxonomy=ThreatCode.MISSING_SAFETY_BOUNDARIES,
        ))

    return finalize(Category.CONTENT, findings, skill, _summary, base=min(100, base))
