"""Kill chain summarization.

Maps inferred techniques, lateral movement findings and case text onto a
fixed 13-stage kill chain, then predicts the next likely stages and derives
a 0-100 confidence score.

Stages are discovered three ways and unioned:
1. Technique id prefixes (first matching prefix wins)
2. Keyword groups in each case's serialized content (works without techniques)
3. Any lateral finding forces the Lateral Movement stage

All point values and lookup tables are module constants.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.case_record import CaseRecord, coerce_case
from .correlation.lateral_movement import LateralFinding
from .technique_inference import distinct_technique_ids

logger = logging.getLogger(__name__)


class KillChainStage(Enum):
    """Canonical kill chain stages."""

    RECONNAISSANCE = "Reconnaissance"
    INITIAL_ACCESS = "Initial Access"
    EXECUTION = "Execution"
    PERSISTENCE = "Persistence"
    PRIVILEGE_ESCALATION = "Privilege Escalation"
    DEFENSE_EVASION = "Defense Evasion"
    CREDENTIAL_ACCESS = "Credential Access"
    DISCOVERY = "Discovery"
    LATERAL_MOVEMENT = "Lateral Movement"
    COLLECTION = "Collection"
    COMMAND_AND_CONTROL = "Command & Control"
    EXFILTRATION = "Exfiltration"
    IMPACT = "Impact"


# Ordered sequence of kill chain stages
KILL_CHAIN_SEQUENCE: List[KillChainStage] = list(KillChainStage)

STAGE_INDEX: Dict[KillChainStage, int] = {
    stage: idx for idx, stage in enumerate(KILL_CHAIN_SEQUENCE)
}

# Technique id prefix -> stage, checked in order
TECHNIQUE_STAGE_PREFIXES: List[Tuple[str, KillChainStage]] = [
    ("T1566", KillChainStage.INITIAL_ACCESS),  # Phishing
    ("T1190", KillChainStage.INITIAL_ACCESS),  # Exploit public-facing app
    ("T1078", KillChainStage.INITIAL_ACCESS),  # Valid accounts
    ("T1059", KillChainStage.EXECUTION),  # Command and scripting interpreter
    ("T1204", KillChainStage.EXECUTION),  # User execution
    ("T1547", KillChainStage.PERSISTENCE),  # Boot or logon autostart
    ("T1053", KillChainStage.PERSISTENCE),  # Scheduled task/job
    ("T1068", KillChainStage.PRIVILEGE_ESCALATION),  # Exploitation for priv esc
    ("T1548", KillChainStage.PRIVILEGE_ESCALATION),  # Abuse elevation control
    ("T1562", KillChainStage.DEFENSE_EVASION),  # Impair defenses
    ("T1070", KillChainStage.DEFENSE_EVASION),  # Indicator removal
    ("T1110", KillChainStage.CREDENTIAL_ACCESS),  # Brute force
    ("T1003", KillChainStage.CREDENTIAL_ACCESS),  # OS credential dumping
    ("T1555", KillChainStage.CREDENTIAL_ACCESS),  # Password stores
    ("T1087", KillChainStage.DISCOVERY),  # Account discovery
    ("T1018", KillChainStage.DISCOVERY),  # Remote system discovery
    ("T1046", KillChainStage.DISCOVERY),  # Network service discovery
    ("T1082", KillChainStage.DISCOVERY),  # System information discovery
    ("T1021", KillChainStage.LATERAL_MOVEMENT),  # Remote services
    ("T1563", KillChainStage.LATERAL_MOVEMENT),  # Remote service session hijacking
    ("T1005", KillChainStage.COLLECTION),  # Data from local system
    ("T1071", KillChainStage.COMMAND_AND_CONTROL),  # Application layer protocol
    ("T1095", KillChainStage.COMMAND_AND_CONTROL),  # Non-application layer protocol
    ("T1105", KillChainStage.COMMAND_AND_CONTROL),  # Ingress tool transfer
    ("T1041", KillChainStage.EXFILTRATION),  # Exfil over C2 channel
    ("T1486", KillChainStage.IMPACT),  # Data encrypted for impact
]

# Keyword groups scanned in serialized case content
STAGE_KEYWORDS: List[Tuple[KillChainStage, Tuple[str, ...]]] = [
    (KillChainStage.INITIAL_ACCESS, ("phish", "email link", "attachment")),
    (KillChainStage.EXECUTION, ("powershell", "cmd.exe", "wscript", "script")),
    (KillChainStage.PERSISTENCE, ("scheduled task", "autostart", "run key")),
    (KillChainStage.PRIVILEGE_ESCALATION, ("admin", "elevat", "uac")),
    (KillChainStage.DEFENSE_EVASION, ("disable defender", "tamper", "clear logs")),
    (KillChainStage.CREDENTIAL_ACCESS, ("brute", "password spray", "credential dump", "lsass")),
    (KillChainStage.DISCOVERY, ("discovery", "enumerat", "net user", "nltest")),
    (KillChainStage.LATERAL_MOVEMENT, ("rdp", "psexec", "remote service", "lateral")),
    (KillChainStage.COMMAND_AND_CONTROL, ("c2", "beacon", "callback")),
    (KillChainStage.EXFILTRATION, ("exfil", "upload", "stolen data")),
    (KillChainStage.IMPACT, ("encrypt", "ransom")),
]

# Next-stage prediction
CREDENTIAL_ACCESS_FOLLOW_UPS = (KillChainStage.DISCOVERY, KillChainStage.LATERAL_MOVEMENT)
LATERAL_MOVEMENT_FOLLOW_UPS = (
    KillChainStage.COLLECTION,
    KillChainStage.COMMAND_AND_CONTROL,
    KillChainStage.EXFILTRATION,
)
NEXT_IN_ORDER_COUNT = 2
MAX_NEXT_LIKELY = 4

# Confidence points
CONFIDENCE_POINTS: Dict[str, int] = {
    "per_case": 4,
    "case_cap": 20,
    "per_technique": 10,
    "technique_cap": 40,
    "per_stage": 5,
    "stage_cap": 25,
    "lateral": 20,
    "single_stage_penalty": 10,
}

DEFAULT_EVIDENCE_CAP = 25
SIGNAL_TECHNIQUE_PREVIEW = 6


def stage_for_technique(technique_id: str) -> Optional[KillChainStage]:
    """Map a technique id (or sub-technique id) to its stage."""
    technique_id = str(technique_id or "").strip()
    if not technique_id:
        return None
    for prefix, stage in TECHNIQUE_STAGE_PREFIXES:
        if technique_id.startswith(prefix):
            return stage
    return None


def stages_from_case_text(case: CaseRecord) -> List[KillChainStage]:
    """Stages whose keywords appear in the case's serialized content."""
    hay = case.serialized_text()
    return [
        stage for stage, keywords in STAGE_KEYWORDS
        if any(keyword in hay for keyword in keywords)
    ]


def order_stages(stages: Iterable[KillChainStage]) -> List[KillChainStage]:
    """Unique stages in canonical kill chain order."""
    present = set(stages)
    return [stage for stage in KILL_CHAIN_SEQUENCE if stage in present]


def predict_next_stages(stages: Sequence[KillChainStage]) -> List[KillChainStage]:
    """Predict the next likely stages from the stages already present.

    Credential Access suggests Discovery and Lateral Movement; Lateral
    Movement suggests Collection, C2 and Exfiltration. When neither rule
    yields anything, fall back to the stages following the current one.
    """
    if not stages:
        return []

    present = set(stages)
    guesses: List[KillChainStage] = []

    if KillChainStage.CREDENTIAL_ACCESS in present:
        guesses.extend(s for s in CREDENTIAL_ACCESS_FOLLOW_UPS if s not in present)
    if KillChainStage.LATERAL_MOVEMENT in present:
        guesses.extend(s for s in LATERAL_MOVEMENT_FOLLOW_UPS if s not in present)

    if not guesses:
        idx = STAGE_INDEX[stages[-1]]
        guesses.extend(KILL_CHAIN_SEQUENCE[idx + 1:idx + 1 + NEXT_IN_ORDER_COUNT])

    unique: List[KillChainStage] = []
    for stage in guesses:
        if stage not in unique:
            unique.append(stage)
    return unique[:MAX_NEXT_LIKELY]


@dataclass(frozen=True)
class KillChainEvidence:
    """Evidence bundle backing a kill chain summary."""

    technique_ids: Tuple[str, ...] = field(default_factory=tuple)
    lateral_moves: Tuple[LateralFinding, ...] = field(default_factory=tuple)
    signals: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "mitre_techniques": list(self.technique_ids),
            "lateral_moves": [m.to_dict() for m in self.lateral_moves],
            "signals": list(self.signals),
        }


@dataclass(frozen=True)
class KillChainSummary:
    """Kill chain profile for a case scope.

    Attributes:
        stages: Stages present, in canonical order
        current_stage: Highest stage present, or None
        next_likely: Predicted follow-on stages (at most 4)
        confidence: Evidence strength 0-100
        evidence: Technique ids, lateral hops and explanation strings
        lateral_hop_count: Total lateral hops (evidence list may be capped)
    """

    stages: Tuple[KillChainStage, ...] = field(default_factory=tuple)
    current_stage: Optional[KillChainStage] = None
    next_likely: Tuple[KillChainStage, ...] = field(default_factory=tuple)
    confidence: int = 0
    evidence: KillChainEvidence = field(default_factory=KillChainEvidence)
    lateral_hop_count: int = 0

    @classmethod
    def empty(cls) -> "KillChainSummary":
        return cls()

    def has_stage(self, stage: KillChainStage) -> bool:
        return stage in self.stages

    def has_technique(self, prefix: str) -> bool:
        """Whether any evidence technique id starts with ``prefix``."""
        return any(t.startswith(prefix) for t in self.evidence.technique_ids)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "stages": [s.value for s in self.stages],
            "current_stage": self.current_stage.value if self.current_stage else None,
            "next_likely": [s.value for s in self.next_likely],
            "confidence": self.confidence,
            "evidence": self.evidence.to_dict(),
        }


class KillChainSummarizer:
    """Builds a KillChainSummary from a case subset and inference results."""

    def __init__(self, evidence_cap: int = DEFAULT_EVIDENCE_CAP):
        self.evidence_cap = evidence_cap

    def summarize(
        self,
        cases: Iterable[Any],
        technique_findings: Iterable[Any] = (),
        lateral_findings: Iterable[LateralFinding] = (),
        restrict_devices: Optional[Iterable[str]] = None,
    ) -> KillChainSummary:
        """Summarize the kill chain for a case scope.

        Args:
            cases: Cases in scope
            technique_findings: TechniqueFinding objects or technique id strings
            lateral_findings: Lateral movement findings
            restrict_devices: If non-empty, only cases on these devices count

        Returns:
            KillChainSummary (empty with confidence 0 for an empty scope)
        """
        records = [c for c in (coerce_case(raw) for raw in cases) if c is not None]
        restrict = {str(d).strip() for d in (restrict_devices or []) if str(d or "").strip()}
        scoped = [c for c in records if c.device in restrict] if restrict else records

        technique_ids = distinct_technique_ids(technique_findings)
        discovered = [s for s in (stage_for_technique(t) for t in technique_ids) if s]

        for case in scoped:
            discovered.extend(stages_from_case_text(case))

        lateral_moves = [
            m for m in lateral_findings
            if str(m.from_device or "").strip() and str(m.to_device or "").strip()
        ]
        if lateral_moves:
            discovered.append(KillChainStage.LATERAL_MOVEMENT)

        stages = order_stages(discovered)
        current_stage = stages[-1] if stages else None
        next_likely = predict_next_stages(stages)

        confidence, signals = self._score(len(scoped), technique_ids, stages, len(lateral_moves))

        logger.debug(
            f"Kill chain: {len(scoped)} cases, {len(stages)} stages, "
            f"current={current_stage.value if current_stage else None}, confidence={confidence}"
        )

        return KillChainSummary(
            stages=tuple(stages),
            current_stage=current_stage,
            next_likely=tuple(next_likely),
            confidence=confidence,
            evidence=KillChainEvidence(
                technique_ids=tuple(technique_ids[:self.evidence_cap]),
                lateral_moves=tuple(lateral_moves[:self.evidence_cap]),
                signals=tuple(signals),
            ),
            lateral_hop_count=len(lateral_moves),
        )

    def _score(
        self,
        case_count: int,
        technique_ids: List[str],
        stages: List[KillChainStage],
        lateral_count: int,
    ) -> Tuple[int, List[str]]:
        points = CONFIDENCE_POINTS
        confidence = 0
        signals: List[str] = []

        if case_count:
            confidence += min(points["case_cap"], points["per_case"] * case_count)
            signals.append(f"Observed {case_count} case(s) contributing to this chain.")

        if technique_ids:
            confidence += min(points["technique_cap"], points["per_technique"] * len(technique_ids))
            preview = ", ".join(technique_ids[:SIGNAL_TECHNIQUE_PREVIEW])
            more = "..." if len(technique_ids) > SIGNAL_TECHNIQUE_PREVIEW else ""
            signals.append(f"MITRE inference matched {len(technique_ids)} technique(s): {preview}{more}")
        else:
            signals.append("No MITRE techniques matched; using text-based heuristics only.")

        if stages:
            confidence += min(points["stage_cap"], points["per_stage"] * len(stages))
            signals.append(f"Kill chain stages present: {' -> '.join(s.value for s in stages)}")

        if lateral_count:
            confidence += points["lateral"]
            signals.append(f"Lateral movement signal detected ({lateral_count} hop(s)).")

        if len(stages) <= 1:
            confidence -= points["single_stage_penalty"]

        return max(0, min(100, confidence)), signals


def summarize_kill_chain(
    cases: Iterable[Any],
    technique_findings: Iterable[Any] = (),
    lateral_findings: Iterable[LateralFinding] = (),
    restrict_devices: Optional[Iterable[str]] = None,
) -> KillChainSummary:
    """Convenience function to summarize a case scope."""
    return KillChainSummarizer().summarize(
        cases, technique_findings, lateral_findings, restrict_devices
    )
