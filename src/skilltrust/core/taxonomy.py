"""Threat taxonomy: the eleven stable agent-skill threat categories.

Every finding carries exactly one ``ThreatCode``. The string values
(``ASST-01`` .. ``ASST-11``) are the identifiers downstream systems key off
of, so they must never be renumbered:

- ASST-01 Instruction Injection
- ASST-02 Data Exfiltration
- ASST-03 Privilege Escalation
- ASST-04 Dependency Hijacking
- ASST-05 Credential Harvesting
- ASST-06 Prompt Injection Relay
- ASST-07 Deceptive Functionality
- ASST-08 Excessive Permissions
- ASST-09 Missing Safety Boundaries
- ASST-10 Obfuscation
- ASST-11 Trigger Manipulation
"""

from __future__ import annotations

from enum import Enum


class ThreatCode(str, Enum):
    """Stable external identifier for a finding's threat category."""

    INSTRUCTION_INJECTION = "ASST-01"
    DATA_EXFILTRATION = "ASST-02"
    PRIVILEGE_ESCALATION = "ASST-03"
    DEPENDENCY_HIJACKING = "ASST-04"
    CREDENTIAL_HARVESTING = "ASST-05"
    PROMPT_INJECTION_RELAY = "ASST-06"
    DECEPTIVE_FUNCTIONALITY = "ASST-07"
    EXCESSIVE_PERMISSIONS = "ASST-08"
    MISSING_SAFETY_BOUNDARIES = "ASST-09"
    OBFUSCATION = "ASST-10"
    TRIGGER_MANIPULATION = "ASST-11"

    @property
    def title(self) -> str:
        """Human-readable category name, e.g. ``"Data Exfiltration"``."""
        return _TITLES[self]

    @classmethod
    def from_code(cls, code: str) -> ThreatCode:
        """Look up a code such as ``"ASST-05"``.

        Raises:
            ValueError: If ``code`` is not one of the eleven known codes.
        """
        return cls(code.strip().upper())


_TITLES: dict[ThreatCode, str] = {
    ThreatCode.INSTRUCTION_INJECTION: "Instruction Injection",
    ThreatCode.DATA_EXFILTRATION: "Data Exfiltration",
    ThreatCode.PRIVILEGE_ESCALATION: "Privilege Escalation",
    ThreatCode.DEPENDENCY_HIJACKING: "Dependency Hijacking",
    ThreatCode.CREDENTIAL_HARVESTING: "Credential Harvesting",
    ThreatCode.PROMPT_INJECTION_RELAY: "Prompt Injection Relay",
    ThreatCode.DECEPTIVE_FUNCTIONALITY: "Deceptive Functionality",
    ThreatCode.EXCESSIVE_PERMISSIONS: "Excessive Permissions",
    ThreatCode.MISSING_SAFETY_BOUNDARIES: "Missing Safety Boundaries",
    ThreatCode.OBFUSCATION: "Obfuscation",
    ThreatCode.TRIGGER_MANIPULATION: "Trigger Manipulation",
}
