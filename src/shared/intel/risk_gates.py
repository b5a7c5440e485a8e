"""Severity gates over a kill chain summary.

Rolls confidence and late-stage presence into an explainable severity with
advisory actions. Nothing here triggers any action; every result ends with
an inference-only reminder.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from .kill_chain import KillChainStage, KillChainSummary

logger = logging.getLogger(__name__)


class GateSeverity(Enum):
    """Risk gate severity levels."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Rollup points
GATE_POINTS: Dict[str, int] = {
    "confidence_cap": 50,
    "lateral": 20,
    "command_and_control": 15,
    "exfiltration": 15,
    "impact": 20,
    "per_technique": 2,
    "technique_cap": 10,
}

# Minimum kill chain confidence per gate
CRITICAL_CONFIDENCE = 80
HIGH_CONFIDENCE = 70
MEDIUM_CONFIDENCE = 55
LOW_CONFIDENCE = 40

GATE_ACTIONS: Dict[GateSeverity, Tuple[str, ...]] = {
    GateSeverity.CRITICAL: (
        "Isolation recommended (manual approval only).",
        "IR review required: validate scope, affected accounts, and data access.",
        "Preserve evidence: export logs, keep case notes, capture IOC timeline.",
    ),
    GateSeverity.HIGH: (
        "IR review required (manual): confirm pivot path and account legitimacy.",
        "Expand hunt: look for persistence, C2 beacons, and additional affected devices.",
        "Consider containment actions (manual approval only).",
    ),
    GateSeverity.MEDIUM: (
        "SOC alert: validate account activity and check for password spray/brute force.",
        "Hunt next: Discovery + Lateral Movement indicators.",
        "Add notes: affected user, device, and time window.",
    ),
    GateSeverity.LOW: (
        "Triage: verify triggering events and enrich with related cases/entities.",
        "Monitor: watch for Credential Access or Lateral Movement signals.",
    ),
    GateSeverity.INFO: (
        "Informational: keep monitoring and enrich with more evidence.",
    ),
}

INFERENCE_ONLY_REMINDER = "Inference-only. No automated actions are executed."


@dataclass(frozen=True)
class RiskGateResult:
    """Outcome of the risk gates."""

    severity: GateSeverity
    score: int
    recommended_actions: Tuple[str, ...] = field(default_factory=tuple)
    reasons: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "severity": self.severity.value,
            "score": self.score,
            "recommended_actions": list(self.recommended_actions),
            "reasons": list(self.reasons),
        }


def evaluate_risk_gates(summary: KillChainSummary) -> RiskGateResult:
    """Evaluate severity gates for a kill chain summary.

    Args:
        summary: Kill chain summary to evaluate

    Returns:
        RiskGateResult with severity, rollup score, actions and reasons
    """
    confidence = int(summary.confidence or 0)
    lateral_hops = summary.lateral_hop_count or len(summary.evidence.lateral_moves)

    has_lateral = lateral_hops > 0 or summary.has_stage(KillChainStage.LATERAL_MOVEMENT)
    has_c2 = summary.has_stage(KillChainStage.COMMAND_AND_CONTROL)
    has_exfil = summary.has_stage(KillChainStage.EXFILTRATION)
    has_impact = summary.has_stage(KillChainStage.IMPACT)

    score = min(GATE_POINTS["confidence_cap"], confidence)
    reasons = [f"Kill chain confidence: {confidence}%"]

    if has_lateral:
        score += GATE_POINTS["lateral"]
        reasons.append(f"Lateral movement signals present ({lateral_hops or 1} hop(s)).")
    if has_c2:
        score += GATE_POINTS["command_and_control"]
        reasons.append("Command & Control stage present.")
    if has_exfil:
        score += GATE_POINTS["exfiltration"]
        reasons.append("Exfiltration stage present.")
    if has_impact:
        score += GATE_POINTS["impact"]
        reasons.append("Impact stage present.")

    technique_count = len(summary.evidence.technique_ids)
    if technique_count:
        score += min(GATE_POINTS["technique_cap"], GATE_POINTS["per_technique"] * technique_count)
        reasons.append(f"MITRE techniques observed: {technique_count}.")
    else:
        reasons.append("No MITRE techniques detected (text heuristics may be driving stages).")

    if (has_impact or has_exfil) and confidence >= CRITICAL_CONFIDENCE and (has_lateral or has_c2):
        severity = GateSeverity.CRITICAL
    elif (has_c2 or has_lateral) and confidence >= HIGH_CONFIDENCE:
        severity = GateSeverity.HIGH
    elif summary.has_stage(KillChainStage.CREDENTIAL_ACCESS) and confidence >= MEDIUM_CONFIDENCE:
        severity = GateSeverity.MEDIUM
    elif confidence >= LOW_CONFIDENCE and (
        summary.has_stage(KillChainStage.INITIAL_ACCESS) or summary.has_stage(KillChainStage.EXECUTION)
    ):
        severity = GateSeverity.LOW
    else:
        severity = GateSeverity.INFO

    actions = GATE_ACTIONS[severity] + (INFERENCE_ONLY_REMINDER,)

    logger.debug(f"Risk gates: severity={severity.value} score={score}")
    return RiskGateResult(
        severity=severity,
        score=max(0, min(100, score)),
        recommended_actions=actions,
        reasons=tuple(reasons),
    )
