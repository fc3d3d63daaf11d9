"""Hidden-content detectors used by the injection analyzer.

Three families of concealment, none of which a line-oriented regex over
visible text would catch:

- instructions hidden in HTML comments,
- base64 spans that decode to suspicious keywords,
- unicode steganography: zero-width characters, bidi controls, Unicode Tag
  characters, variation selectors, and escaped tag sequences.

Unicode severities scale with the number of occurrences and with whether
the document also contains a decode/exec idiom that could reassemble a
hidden payload.
"""

from __future__ import annotations

import base64
import binascii
import re

from skilltrust.core.models import Category, Finding, Severity
from skilltrust.core.taxonomy import ThreatCode

_HTML_COMMENT = re.compile(r"<!--(.*?)-->", re.DOTALL)
_COMMENT_DIRECTIVE = re.compile(
    r"(?:step|override|important|system|silently|secretly|do not|must|always|never|after|before)\s",
    re.IGNORECASE,
)
_COMMENT_ACTION = re.compile(
    r"(?:send|post|read|write|execute|fetch|curl|delete|access|download)\s",
    re.IGNORECASE,
)

_BASE64_SPAN = re.compile(r"[A-Za-z0-9+/]{20,}={0,2}")
_HEX_ONLY = re.compile(r"^[a-f0-9]+$", re.IGNORECASE)
_DECODED_KEYWORDS = re.compile(
    r"(?:ignore|override|system|exec|eval|fetch|curl|secret|password|token|key)",
    re.IGNORECASE,
)

_DECODE_EXEC = re.compile(
    r"\b(?:eval\s*\(\s*(?:atob|unescape)\s*\(|Function\s*\(\s*atob\s*\("
    r"|String\.fromCharCode\s*\(|atob\s*\()",
    re.IGNORECASE,
)
_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\ufeff]")
_BIDI = re.compile("[\u202a-\u202e\u2066-\u2069]")
_ENCODED_TAG = re.compile(r"\\u(\{)?[Ee]00[0-7][0-9A-Fa-f](\})?")
_ENCODED_LONG_TAG = re.compile(r"\\U000[Ee]00[0-7][0-9A-Fa-f]")

TAG_RANGE = range(0xE0001, 0xE0080)
VARIATION_SELECTOR_RANGE = range(0xE0100, 0xE01F0)

# (exclusive lower bound on count, severity, deduction), highest first.
_ZERO_WIDTH_TIERS: tuple[tuple[int, Severity, int], ...] = (
    (200, Severity.HIGH, 30),
    (50, Severity.HIGH, 25),
    (10, Severity.MEDIUM, 15),
    (3, Severity.MEDIUM, 10),
)


def _line_number(content: str, index: int) -> int:
    return content.count("\n", 0, index) + 1


def has_decode_exec(content: str) -> bool:
    """Does the document contain an ``atob``/``fromCharCode``-style decoder?"""
    return _DECODE_EXEC.search(content) is not None


# ---------------------------------------------------------------------------
# HTML comments
# ---------------------------------------------------------------------------


def detect_html_comment_injections(content: str) -> list[Finding]:
    """Comments of 10+ characters that read like directives or actions."""
    findings: list[Finding] = []
    for match in _HTML_COMMENT.finditer(content):
        body = match.group(1).strip()
        if len(body) < 10:
            continue
        if not (_COMMENT_DIRECTIVE.search(body) or _COMMENT_ACTION.search(body)):
            continue
        ellipsis = "..." if len(body) > 200 else ""
        findings.append(Finding(
            id=f"INJ-COMMENT-{len(findings) + 1}",
            category=Category.INJECTION,
            severity=Severity.HIGH,
            title="Hidden instructions in HTML comment",
            description=(
                "HTML comment contains instruction-like content that may be an attempt "
                "to inject hidden behavior."
            ),
            evidence=f"<!-- {body[:200]}{ellipsis} -->",
            deduction=25,
            recommendation=(
                "Remove hidden instructions from HTML comments. All skill behavior "
                "should be visible."
            ),
            taxonomy=ThreatCode.INSTRUCTION_INJECTION,
            line_number=_line_number(content, match.start()),
        ))
    return findings


# ---------------------------------------------------------------------------
# Base64 payloads
# ---------------------------------------------------------------------------


def decode_base64_lenient(encoded: str) -> str | None:
    """Decode a base64 span, repairing padding. ``None`` if undecodable."""
    core = encoded.rstrip("=")
    try:
        raw = base64.b64decode(core + "=" * (-len(core) % 4))
    except (binascii.Error, ValueError):
        return None
    return raw.decode("utf-8", errors="replace")


def detect_base64_payloads(content: str) -> list[Finding]:
    """Base64 spans (20+ chars) whose decoding mentions suspicious keywords."""
    findings: list[Finding] = []
    for match in _BASE64_SPAN.finditer(content):
        encoded = match.group(0)
        if _HEX_ONLY.match(encoded):
            continue
        decoded = decode_base64_lenient(encoded)
        if decoded is None or len(decoded) <= 10 or not _DECODED_KEYWORDS.search(decoded):
            continue
        findings.append(Finding(
            id=f"INJ-B64-{len(findings) + 1}",
            category=Category.INJECTION,
            severity=Severity.HIGH,
            title="Suspicious base64-encoded content",
            description="Base64-encoded string decodes to content containing suspicious keywords.",
            evidence=f"Encoded: {encoded[:60]}... -> Decoded: {decoded[:100]}...",
            deduction=25,
            recommendation=(
                "Remove base64-encoded content or replace with plaintext. "
                "Obfuscation raises security concerns."
            ),
            taxonomy=ThreatCode.OBFUSCATION,
            line_number=_line_number(content, match.start()),
        ))
    return findings


# ---------------------------------------------------------------------------
# Unicode steganography
# ---------------------------------------------------------------------------


def _unicode_finding(
    suffix: str,
    severity: Severity,
    deduction: int,
    title: str,
    description: str,
    evidence: str,
    recommendation: str,
) -> Finding:
    return Finding(
        id=f"INJ-UNICODE-{suffix}",
        category=Category.INJECTION,
        severity=severity,
        title=title,
        description=description,
        evidence=evidence,
        deduction=deduction,
        recommendation=recommendation,
        taxonomy=ThreatCode.OBFUSCATION,
    )


def zero_width_tier(count: int, decode_exec: bool) -> tuple[Severity, int]:
    """Severity and deduction for ``count`` zero-width characters."""
    if 50 < count <= 200 and decode_exec:
        return Severity.CRITICAL, 40
    for bound, severity, deduction in _ZERO_WIDTH_TIERS:
        if count > bound:
            return severity, deduction
    return Severity.LOW, 5


def detect_unicode_obfuscation(content: str) -> list[Finding]:
    """Zero-width, bidi, tag, variation-selector and escaped-tag findings."""
    findings: list[Finding] = []
    decode_exec = has_decode_exec(content)
    paired = "; paired with decode/exec patterns" if decode_exec else ""

    zw_count = len(_ZERO_WIDTH.findall(content))
    bom_only = zw_count == 1 and content.startswith("\ufeff")
    if zw_count and not bom_only:
        severity, deduction = zero_width_tier(zw_count, decode_exec)
        plural = "" if zw_count == 1 else "s"
        findings.append(_unicode_finding(
            "ZW", severity, deduction,
            f"Invisible zero-width characters detected ({zw_count} instance{plural})",
            "The skill contains invisible unicode characters that can be used to hide or "
            "alter instructions (unicode steganography).",
            f"Found {zw_count} zero-width character(s): U+200B/U+200C/U+200D/U+FEFF{paired}",
            "Remove all zero-width characters. If present due to copy/paste, retype the "
            "affected section and re-save the file.",
        ))

    bidi_count = len(_BIDI.findall(content))
    if bidi_count:
        findings.append(_unicode_finding(
            "BIDI",
            Severity.HIGH if bidi_count >= 3 else Severity.MEDIUM,
            25 if bidi_count >= 3 else 10,
            "Bidirectional control characters detected",
            "The skill contains bidirectional control characters (RTL/LTR overrides or "
            "isolates) that can spoof visible text and hide malicious instructions.",
            f"Found {bidi_count} bidi control character(s) (U+202A-U+202E and/or U+2066-U+2069)",
            "Remove all bidirectional control characters. These are rarely needed in skill "
            "files and are commonly used for obfuscation.",
        ))

    tag_count = 0
    vs_count = 0
    for ch in content:
        cp = ord(ch)
        if cp in TAG_RANGE:
            tag_count += 1
        elif cp in VARIATION_SELECTOR_RANGE:
            vs_count += 1

    if tag_count:
        findings.append(_unicode_finding(
            "TAGS", Severity.HIGH, 30,
            "Unicode tag characters detected",
            "The skill contains Unicode Tag characters (invisible) which are a strong "
            "indicator of deliberate steganography.",
            f"Found {tag_count} Unicode Tag character(s) in the U+E0001-U+E007F range",
            "Remove all Unicode Tag characters. Legitimate skills should not contain "
            "invisible tag codepoints.",
        ))

    if vs_count:
        if vs_count > 5 and decode_exec:
            severity, deduction = Severity.CRITICAL, 40
        elif vs_count > 5:
            severity, deduction = Severity.HIGH, 25
        else:
            severity, deduction = Severity.MEDIUM, 10
        findings.append(_unicode_finding(
            "VS", severity, deduction,
            "Unicode variation selectors detected",
            "The skill contains Unicode Variation Selectors which can be used to hide "
            "instructions and evade review.",
            f"Found {vs_count} variation selector(s) (U+E0100-U+E01EF){paired}",
            "Remove all variation selectors. If they are required for a specific text "
            "effect, document why and ensure no hidden instructions are present.",
        ))

    escaped = len(_ENCODED_TAG.findall(content)) + len(_ENCODED_LONG_TAG.findall(content))
    if escaped:
        findings.append(_unicode_finding(
            "ESCAPES",
            Severity.HIGH if decode_exec else Severity.MEDIUM,
            20 if decode_exec else 10,
            "Encoded unicode tag escape sequences detected",
            "The skill contains unicode tag escape sequences (e.g., \\u{E0061}) which may "
            "indicate an attempt to smuggle invisible content.",
            f"Found {escaped} encoded tag escape sequence(s) (\\u{{E00xx}} / \\U000E00xx){paired}",
            "Remove encoded unicode escapes unless absolutely necessary. If present for "
            "documentation, avoid including decode/exec instructions that could "
            "reconstitute hidden payloads.",
        ))

    return findings
