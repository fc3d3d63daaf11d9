"""Dependencies analyzer (weight 0.20).

Classifies every URL the skill references and looks for
download-and-execute instructions. The classification is host based:

==========  =========  ==========  =========================================
Risk        Severity   Deduction   When
==========  =========  ==========  =========================================
data        high       20          ``data:`` URI
ip          high       20          public IPv4 literal host
trusted     --         0           allow-listed host, or private IPv4 literal
raw         medium     10          paste / raw-content hosting
unknown     low        5           anything else, capped at 15 in total
==========  =========  ==========  =========================================
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Sequence
from urllib.parse import urlsplit

from skilltrust.core.analyzers.base import finalize, has_ipv4_literal, is_in_setup_section
from skilltrust.core.context import (
    ContentContext,
    adjust_for_context,
    build_content_context,
    is_in_threat_listing_context,
    is_inside_code_block,
    is_security_defense_skill,
    line_at,
)
from skilltrust.core.models import Category, CategoryScore, Finding, ParsedSkill, Severity
from skilltrust.core.rules import find_matches, load_patterns
from skilltrust.core.taxonomy import ThreatCode

UNKNOWN_URL_DEDUCTION_CAP = 15
MANY_URLS_THRESHOLD = 5
CODE_BLOCK_INSTALL_DEDUCTION = 8
DOWNLOAD_EXECUTE_DEDUCTION = 25

UNKNOWN_URL_TITLE_PREFIX = "Unknown external"

_IPV4_HOST = re.compile(r"^(?:\d{1,3}\.){3}\d{1,3}")
_PRIVATE_HOST = re.compile(
    r"^(?:127\.|10\.|172\.(?:1[6-9]|2\d|3[01])\.|192\.168\.|0\.0\.0\.0|localhost)"
)
_HOST_FALLBACK = re.compile(r"^(?:https?://)?([^/:]+)")
_SCHEME = re.compile(r"^https?://")
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")

_THREAT_TABLE_VOCAB = re.compile(
    r"\b(?:critical|high|risk|dangerous|pattern|severity|pipe.to.shell)\b", re.IGNORECASE
)
_THREAT_LEAD_IN = re.compile(
    r"\b(?:scan\b.*\b(?:for|skill)|detect|flag|block|dangerous\s+(?:instruction|pattern|command)"
    r"|malicious|malware|threat\s+pattern|what\s+(?:it|we)\s+detect"
    r"|why\s+(?:it['’]?s|this\s+(?:is|exists))\s+dangerous|findings?:|pattern.*risk"
    r"|catch\s+them)\b",
    re.IGNORECASE,
)


class UrlRisk(str, Enum):
    DATA = "data"
    IP = "ip"
    TRUSTED = "trusted"
    RAW = "raw"
    UNKNOWN = "unknown"


_RISK_DEDUCTIONS = {
    UrlRisk.DATA: 20,
    UrlRisk.IP: 20,
    UrlRisk.TRUSTED: 0,
    UrlRisk.RAW: 10,
    UrlRisk.UNKNOWN: 5,
}
_RISK_SEVERITY = {
    UrlRisk.DATA: Severity.HIGH,
    UrlRisk.IP: Severity.HIGH,
    UrlRisk.RAW: Severity.MEDIUM,
    UrlRisk.UNKNOWN: Severity.LOW,
}
_RISK_NOUN = {
    UrlRisk.DATA: ("Data URL", "a data: URL"),
    UrlRisk.IP: ("Direct IP address", "a direct IP address"),
    UrlRisk.RAW: ("Raw content URL", "a raw content hosting service"),
    UrlRisk.UNKNOWN: ("Unknown external", "an unknown external domain"),
}
_RISK_ADVICE = {
    UrlRisk.IP: (
        "Replace direct IP addresses with proper domain names. IP-based URLs bypass "
        "DNS-based security controls."
    ),
    UrlRisk.RAW: (
        "Use official package registries instead of raw content URLs. Raw URLs can be "
        "changed without notice."
    ),
}


def get_hostname(url: str) -> str:
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    if host:
        return host
    match = _HOST_FALLBACK.match(url)
    return match.group(1) if match else url


def classify_url(url: str) -> tuple[UrlRisk, int]:
    """Risk class and base deduction for one URL."""
    if url.startswith("data:"):
        return UrlRisk.DATA, _RISK_DEDUCTIONS[UrlRisk.DATA]
    host = get_hostname(url)
    if _IPV4_HOST.match(host):
        risk = UrlRisk.TRUSTED if _PRIVATE_HOST.match(host) else UrlRisk.IP
        return risk, _RISK_DEDUCTIONS[risk]
    path = _SCHEME.sub("", url)
    if any(p.search(path) for p in load_patterns("dependencies", "trusted_domains")):
        return UrlRisk.TRUSTED, 0
    if any(p.search(path) for p in load_patterns("dependencies", "raw_content_domains")):
        return UrlRisk.RAW, _RISK_DEDUCTIONS[UrlRisk.RAW]
    return UrlRisk.UNKNOWN, _RISK_DEDUCTIONS[UrlRisk.UNKNOWN]


def base_domain(hostname: str) -> tuple[str, str] | None:
    """``(sld.tld, sld)`` for a hostname, or ``None`` for IPs and bare names."""
    host = hostname.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    if not host or host == "localhost" or _IPV4_HOST.match(host):
        return None
    parts = [p for p in host.split(".") if p]
    if len(parts) < 2:
        return None
    return f"{parts[-2]}.{parts[-1]}", parts[-2]


def extract_self_base_domains(skill: ParsedSkill) -> set[str]:
    """Base domains whose second-level label appears in the skill's name or description.

    A skill named "Acme Deploy" linking to ``docs.acme.io`` is referencing
    its own vendor; these are the candidates for domain-trust checks.
    """
    source = f"{skill.name} {skill.description}".lower()
    tokens = {t for t in _TOKEN_SPLIT.split(source) if len(t) >= 3}
    domains: set[str] = set()
    for url in skill.urls:
        base = base_domain(get_hostname(url))
        if base and base[1] in tokens:
            domains.add(base[0])
    return domains


def is_legitimate_installer(content: str, index: int, matched: str) -> bool:
    if any(p.search(matched) for p in load_patterns("dependencies", "known_installer_domains")):
        return True
    return is_in_setup_section(content, index, matched)


def _is_threat_description(content: str, index: int, defense: bool) -> bool:
    if defense and is_in_threat_listing_context(content, index):
        return True
    line = line_at(content, index)
    if re.match(r"^\s*\|.*\|", line) and _THREAT_TABLE_VOCAB.search(line):
        return True
    return _THREAT_LEAD_IN.search(content[max(0, index - 500):index]) is not None


def _url_findings(skill: ParsedSkill, defense: bool) -> list[Finding]:
    content = skill.raw_content
    findings: list[Finding] = []
    unknown_total = 0
    for url in skill.urls:
        risk, deduction = classify_url(url)
        if deduction <= 0:
            continue
        if risk is UrlRisk.UNKNOWN:
            deduction = max(0, min(deduction, UNKNOWN_URL_DEDUCTION_CAP - unknown_total))
            unknown_total += _RISK_DEDUCTIONS[UrlRisk.UNKNOWN]
        severity = _RISK_SEVERITY[risk]
        suffix = ""
        if defense and risk in (UrlRisk.IP, UrlRisk.UNKNOWN, UrlRisk.RAW):
            index = content.find(url)
            if index >= 0 and is_in_threat_listing_context(content, index):
                deduction, severity, suffix = 0, Severity.LOW, " (threat documentation)"
        label, noun = _RISK_NOUN[risk]
        findings.append(Finding(
            id=f"DEP-URL-{len(findings) + 1}",
            category=Category.DEPENDENCIES,
            severity=severity,
            title=f"{label} reference{suffix}",
            description=f"The skill references {noun} which is classified as {severity.label} risk.",
            evidence=url[:200],
            deduction=deduction,
            recommendation=_RISK_ADVICE.get(
                risk, "Verify that this external dependency is trustworthy and necessary."
            ),
            taxonomy=ThreatCode.DEPENDENCY_HIJACKING,
        ))
    return findings


def _download_execute_findings(
    skill: ParsedSkill,
    ctx: ContentContext,
    findings: list[Finding],
    defense: bool,
) -> None:
    content = skill.raw_content
    for pattern in load_patterns("dependencies", "download_execute"):
        for match in find_matches(pattern, content):
            index = match.start()
            multiplier, _ = adjust_for_context(index, content, ctx)
            if multiplier == 0:
                continue
            matched = match.group(0)
            legit = is_legitimate_installer(content, index, matched)
            if legit or _is_threat_description(content, index, defense):
                severity, deduction = Severity.LOW, 0
                title = (
                    "Download-and-execute pattern detected (known installer)"
                    if legit
                    else "Download-and-execute pattern detected (in threat documentation)"
                )
                description = (
                    "The skill references a well-known installer script in its setup instructions."
                    if legit
                    else "The skill describes a download-and-execute pattern as part of threat documentation."
                )
                recommendation = (
                    "Consider documenting the exact version or hash of the installer for "
                    "supply chain verification."
                )
            elif (
                is_inside_code_block(index, ctx)
                and "https://" in matched
                and not has_ipv4_literal(matched)
            ):
                severity, deduction = Severity.MEDIUM, CODE_BLOCK_INSTALL_DEDUCTION
                title = "Download-and-execute pattern detected (inside code block)"
                description = (
                    "The skill contains a download-and-execute pattern inside a code block. "
                    "Verify the URL is trustworthy."
                )
                recommendation = (
                    "Pin the installer to a specific version or hash. Consider bundling "
                    "dependencies instead."
                )
            else:
                severity, deduction = Severity.CRITICAL, DOWNLOAD_EXECUTE_DEDUCTION
                title = "Download-and-execute pattern detected"
                description = (
                    "The skill contains instructions to download and execute external code, "
                    "which is a severe supply chain risk."
                )
                recommendation = (
                    "Never download and execute external code. Bundle all required "
                    "functionality within the skill."
                )
            findings.append(Finding(
                id=f"DEP-DL-EXEC-{len(findings) + 1}",
                category=Category.DEPENDENCIES,
                severity=severity,
                title=title,
                description=description,
                evidence=matched[:200],
                deduction=deduction,
                recommendation=recommendation,
                taxonomy=ThreatCode.DEPENDENCY_HIJACKING,
                line_number=ctx.line_number(index),
            ))
            break


def _summary(findings: Sequence[Finding]) -> str:
    if not findings:
        return "No dependency concerns detected."
    if any(f.severity is Severity.CRITICAL for f in findings):
        tail = "CRITICAL: Download-and-execute patterns detected."
    elif any(f.severity is Severity.HIGH for f in findings):
        tail = "High-risk external dependencies detected."
    else:
        tail = "Minor dependency concerns noted."
    return f"Found {len(findings)} dependency-related findings. {tail}"


def analyze_dependencies(skill: ParsedSkill, ctx: ContentContext | None = None) -> CategoryScore:
    """Score external references and download-and-execute instructions.

    Args:
        skill: Parsed skill.
        ctx: Shared content context; built from ``skill`` when omitted.

    Returns:
        The dependencies ``CategoryScore``.
    """
    ctx = ctx or build_content_context(skill.raw_content)
    defense = is_security_defense_skill(skill)
    findings = _url_findings(skill, defense)
    _download_execute_findings(skill, ctx, findings, defense)

    if len(skill.urls) > MANY_URLS_THRESHOLD:
        shown = ", ".join(skill.urls[:MANY_URLS_THRESHOLD])
        findings.append(Finding(
            id="DEP-MANY-URLS",
            category=Category.DEPENDENCIES,
            severity=Severity.INFO,
            title=f"Many external URLs referenced ({len(skill.urls)})",
            description=(
                f"The skill references {len(skill.urls)} external URLs. While not inherently "
                "dangerous, many external dependencies increase the attack surface."
            ),
            evidence=f"URLs: {shown}...",
            deduction=0,
            recommendation="Minimize external dependencies to reduce supply chain risk.",
            taxonomy=ThreatCode.DEPENDENCY_HIJACKING,
        ))

    return finalize(Category.DEPENDENCIES, findings, skill, _summary)
