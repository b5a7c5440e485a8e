"""
MITRE ATT&CK technique inference.

Two independent matchers, both plain case-insensitive substring checks:
- Rule table: keyword lists mapped to a technique, applied to tags and text
- Technique library: each technique's own indicator keywords, applied to
  the serialized case record

Matches are presence/absence only. Nothing here ranks or scores relevance.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.case_record import CaseRecord, coerce_case

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MitreTechnique:
    """A technique definition."""

    id: str
    name: str
    tactic: str
    indicators: Tuple[str, ...] = field(default_factory=tuple)
    risk: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "tactic": self.tactic,
            "indicators": list(self.indicators),
            "risk": self.risk,
        }


@dataclass(frozen=True)
class TechniqueRule:
    """Keyword rule: any keyword present yields the technique."""

    keywords: Tuple[str, ...]
    technique: MitreTechnique


# Library matched against serialized case content
MITRE_LIBRARY: Tuple[MitreTechnique, ...] = (
    MitreTechnique("T1078", "Valid Accounts", "Credential Access", ("ssh", "login", "password"), 20),
    MitreTechnique("T1021", "Remote Services", "Lateral Movement", ("rdp", "ssh", "remote"), 25),
    MitreTechnique("T1110", "Brute Force", "Credential Access", ("brute", "failed login"), 30),
    MitreTechnique("T1105", "Ingress Tool Transfer", "Command and Control", ("curl", "wget", "download"), 25),
    MitreTechnique("T1041", "Exfiltration Over C2 Channel", "Exfiltration", ("exfil", "upload", "scp"), 35),
    MitreTechnique("T1059.001", "PowerShell", "Execution", ("powershell", "pwsh"), 20),
    MitreTechnique("T1003", "OS Credential Dumping", "Credential Access", ("mimikatz", "lsass"), 35),
    MitreTechnique("T1562", "Impair Defenses", "Defense Evasion", ("disable defender", "tamper protection"), 30),
    MitreTechnique("T1070", "Indicator Removal", "Defense Evasion", ("clear logs", "wevtutil cl"), 30),
    MitreTechnique("T1486", "Data Encrypted for Impact", "Impact", ("ransom",), 40),
)

# Rule table matched against aggregated tags and text
TECHNIQUE_RULES: Tuple[TechniqueRule, ...] = (
    TechniqueRule(
        ("bruteforce", "brute-force", "password spray", "spray", "credential stuffing"),
        MitreTechnique("T1110", "Brute Force", "Credential Access"),
    ),
    TechniqueRule(
        ("valid accounts", "signin", "login", "interactive logon", "successful logon"),
        MitreTechnique("T1078", "Valid Accounts", "Defense Evasion"),
    ),
    TechniqueRule(
        ("ssh", "sshd", "remote login", "remote"),
        MitreTechnique("T1021", "Remote Services", "Lateral Movement"),
    ),
    TechniqueRule(
        ("powershell", "pwsh"),
        MitreTechnique("T1059.001", "PowerShell", "Execution"),
    ),
    TechniqueRule(
        ("scheduled task", "schtasks", "cron"),
        MitreTechnique("T1053", "Scheduled Task/Job", "Execution"),
    ),
    TechniqueRule(
        ("persistence", "autorun", "startup"),
        MitreTechnique("T1547", "Boot or Logon Autostart Execution", "Persistence"),
    ),
    TechniqueRule(
        ("exfil", "exfiltration", "upload large", "data theft"),
        MitreTechnique("T1041", "Exfiltration Over C2 Channel", "Exfiltration"),
    ),
    TechniqueRule(
        ("command and control", "c2", "beacon"),
        MitreTechnique("T1071", "Application Layer Protocol", "Command and Control"),
    ),
    TechniqueRule(
        ("discovery", "whoami", "ipconfig", "ifconfig", "net user", "hostname"),
        MitreTechnique("T1082", "System Information Discovery", "Discovery"),
    ),
)


@dataclass(frozen=True)
class TechniqueFinding:
    """A technique inferred for a case (or for a tag set when case_id is empty)."""

    case_id: str
    technique: MitreTechnique
    match: str
    source: str  # library, rule

    @property
    def technique_id(self) -> str:
        return self.technique.id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "case_id": self.case_id,
            "technique_id": self.technique.id,
            "technique_name": self.technique.name,
            "tactic": self.technique.tactic,
            "match": self.match,
            "source": self.source,
        }


def _norm(value: Any) -> str:
    return str(value or "").lower().strip()


class TechniqueInferencer:
    """Matches case content and tags against the static technique tables."""

    def __init__(
        self,
        library: Sequence[MitreTechnique] = MITRE_LIBRARY,
        rules: Sequence[TechniqueRule] = TECHNIQUE_RULES,
    ):
        self.library = tuple(library)
        self.rules = tuple(rules)

    def match_library(self, text: str) -> List[Tuple[MitreTechnique, str]]:
        """Library techniques whose indicators appear in ``text``."""
        hay = _norm(text)
        matches = []
        for technique in self.library:
            hit = next((i for i in technique.indicators if _norm(i) in hay), None)
            if hit is not None:
                matches.append((technique, hit))
        return matches

    def match_rules(self, text: str) -> List[Tuple[MitreTechnique, str]]:
        """Rule-table techniques whose keywords appear in ``text``."""
        hay = _norm(text)
        matches = []
        for rule in self.rules:
            hit = next((k for k in rule.keywords if _norm(k) in hay), None)
            if hit is not None:
                matches.append((rule.technique, hit))
        return matches

    def infer_from_tags(self, tags: Iterable[str]) -> List[TechniqueFinding]:
        """Apply the rule table to a tag set."""
        hay = " | ".join(_norm(t) for t in tags if t)
        return _dedupe([
            TechniqueFinding("", technique, hit, "rule")
            for technique, hit in self.match_rules(hay)
        ])

    def infer_case(self, case: Any, extra_tags: Iterable[str] = ()) -> List[TechniqueFinding]:
        """Infer techniques for a single case.

        Args:
            case: CaseRecord or raw case dict
            extra_tags: Tags aggregated from related entities

        Returns:
            Findings deduplicated by technique id (library matches first)
        """
        record = coerce_case(case)
        if record is None:
            return []

        content = record.serialized_text()
        findings = [
            TechniqueFinding(record.case_id, technique, hit, "library")
            for technique, hit in self.match_library(content)
        ]

        tag_text = " | ".join(_norm(t) for t in extra_tags if t)
        rule_hay = f"{tag_text} | {content}" if tag_text else content
        findings.extend(
            TechniqueFinding(record.case_id, technique, hit, "rule")
            for technique, hit in self.match_rules(rule_hay)
        )
        return _dedupe(findings)

    def infer_cases(
        self,
        cases: Iterable[Any],
        tags_by_case: Optional[Dict[str, Iterable[str]]] = None,
    ) -> List[TechniqueFinding]:
        """Infer techniques for each case, in input order."""
        tags_by_case = tags_by_case or {}
        findings: List[TechniqueFinding] = []
        for raw in cases:
            record = coerce_case(raw)
            if record is None:
                continue
            findings.extend(self.infer_case(record, tags_by_case.get(record.case_id, ())))

        logger.debug(f"Technique inference produced {len(findings)} findings")
        return findings


def _dedupe(findings: List[TechniqueFinding]) -> List[TechniqueFinding]:
    seen = set()
    unique = []
    for finding in findings:
        if finding.technique.id in seen:
            continue
        seen.add(finding.technique.id)
        unique.append(finding)
    return unique


def distinct_technique_ids(findings: Iterable[Any]) -> List[str]:
    """Unique technique ids in first-seen order.

    Accepts TechniqueFinding objects, MitreTechnique objects or bare id strings.
    """
    ids: List[str] = []
    for finding in findings:
        technique_id = technique_id_of(finding)
        if technique_id and technique_id not in ids:
            ids.append(technique_id)
    return ids


def technique_id_of(finding: Any) -> str:
    """Extract a technique id from the supported finding shapes."""
    if isinstance(finding, TechniqueFinding):
        return finding.technique.id
    if isinstance(finding, MitreTechnique):
        return finding.id
    if isinstance(finding, str):
        return finding.strip()
    return ""
