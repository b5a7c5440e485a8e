"""
Decision recommender.

Turns a kill chain summary plus campaign/case context into prioritized,
advisory-only recommendations. Three fixed categories are scored
independently from named point tables:
1. Possible attacker progression (credential access, lateral movement)
2. Execution / persistence / defense evasion validation
3. Command & control / exfiltration watch

The recommender only reads its inputs. It never writes to any store and no
automated action follows from any score.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models.case_record import CaseRecord, coerce_case
from .correlation.campaigns import CampaignCluster
from .kill_chain import KillChainStage, KillChainSummary

logger = logging.getLogger(__name__)


class DecisionPriority(Enum):
    """Recommendation priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: Dict[DecisionPriority, int] = {
    DecisionPriority.CRITICAL: 4,
    DecisionPriority.HIGH: 3,
    DecisionPriority.MEDIUM: 2,
    DecisionPriority.LOW: 1,
}

# Minimum score per priority, checked highest first
PRIORITY_THRESHOLDS: List[Tuple[float, DecisionPriority]] = [
    (85, DecisionPriority.CRITICAL),
    (65, DecisionPriority.HIGH),
    (40, DecisionPriority.MEDIUM),
]

GLOBAL_BASE_RISK_CAP = 80
ELEVATED_RISK_THRESHOLD = 60
OPEN_CASES_THRESHOLD = 3

PROGRESSION_POINTS: Dict[str, float] = {
    "base_risk_factor": 0.45,
    "base_risk_cap": 35,
    "open_cases": 10,
    "credential_access_stage": 25,
    "brute_force_technique": 20,
    "lateral_hops": 30,
    "lateral_movement_stage": 20,
}

EXECUTION_POINTS: Dict[str, float] = {
    "base_risk_factor": 0.35,
    "base_risk_cap": 25,
    "execution_stage": 15,
    "scripting_technique": 15,
    "persistence_stage": 15,
    "persistence_technique": 15,
    "defense_evasion_stage": 10,
    "defense_evasion_technique": 10,
}

EXFILTRATION_POINTS: Dict[str, float] = {
    "base_risk_factor": 0.25,
    "base_risk_cap": 20,
    "command_and_control_stage": 20,
    "c2_protocol_technique": 15,
    "exfiltration_stage": 25,
    "exfil_technique": 15,
    "lateral_hops": 10,
}

NO_AUTOMATION_GUARDRAIL = "Inference-only engine: no automated actions are performed."

PROGRESSION_ACTIONS = (
    "Validate scope: confirm which users/devices are involved and whether activity is expected.",
    "Triage highest-risk campaign first: review timeline + case evidence + entity memory.",
    "If confirmed malicious: initiate containment process via your real SOC tooling (manual step).",
)
PROGRESSION_HUNTS = (
    "Hunt: new logons for involved users across multiple devices (last 24h/7d).",
    "Hunt: failed logons / password spray patterns tied to the same user(s).",
    "Hunt: remote service usage (RDP/SSH/WinRM) between involved hosts.",
)
PROGRESSION_GUARDRAILS = (
    NO_AUTOMATION_GUARDRAIL,
    "No device isolation is triggered by this engine.",
    "Use confirmed evidence + approvals before any containment step.",
)

EXECUTION_ACTIONS = (
    "Review process + command execution evidence on the primary device(s).",
    "Check for scheduled tasks, autoruns, new services, and suspicious startup entries.",
    "Review endpoint protection events for tampering/disable actions (manual verification).",
)
EXECUTION_HUNTS = (
    "Hunt: suspicious PowerShell / cmd.exe usage tied to the same user/device.",
    "Hunt: scheduled task creation or service installs near the case timestamps.",
    "Hunt: security control tampering or log clearing events.",
)
EXECUTION_GUARDRAILS = (
    NO_AUTOMATION_GUARDRAIL,
    "No remediation is executed by this engine.",
    "All actions are suggested for an analyst to perform in approved tools.",
)

EXFILTRATION_ACTIONS = (
    "Review outbound network patterns from involved hosts (manual step).",
    "Confirm no unusual uploads/downloads or suspicious destinations.",
    "If suspicious: escalate to incident response process (manual).",
)
EXFILTRATION_HUNTS = (
    "Hunt: unusual outbound connections or repeated beacons from affected devices.",
    "Hunt: large outbound transfers or cloud uploads near suspicious activity windows.",
    "Hunt: DNS anomalies or uncommon domains associated with the same user/device set.",
)
EXFILTRATION_GUARDRAILS = (
    NO_AUTOMATION_GUARDRAIL,
    "Suggestions are not enforcement.",
    "Validate with network telemetry before escalation.",
)


def priority_for_score(score: float) -> DecisionPriority:
    """Map a decision score to a priority via PRIORITY_THRESHOLDS."""
    for threshold, priority in PRIORITY_THRESHOLDS:
        if score >= threshold:
            return priority
    return DecisionPriority.LOW


@dataclass(frozen=True)
class DecisionItem:
    """A single advisory recommendation."""

    id: str
    priority: DecisionPriority
    title: str
    score: float = 0.0
    rationale: Tuple[str, ...] = field(default_factory=tuple)
    suggested_actions: Tuple[str, ...] = field(default_factory=tuple)
    suggested_hunts: Tuple[str, ...] = field(default_factory=tuple)
    guardrails: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "priority": self.priority.value,
            "title": self.title,
            "score": self.score,
            "rationale": list(self.rationale),
            "suggested_actions": list(self.suggested_actions),
            "suggested_hunts": list(self.suggested_hunts),
            "guardrails": list(self.guardrails),
        }


@dataclass
class _DecisionContext:
    scope: str  # campaign, global
    base_risk: float
    open_cases: int
    lateral_hops: int
    summary: KillChainSummary


class DecisionRecommender:
    """Scores the fixed recommendation categories for a scope."""

    def __init__(self, global_base_risk_cap: int = GLOBAL_BASE_RISK_CAP):
        self.global_base_risk_cap = global_base_risk_cap

    def recommend(
        self,
        index: Any,
        kill_chain: Optional[KillChainSummary],
        campaign: Optional[CampaignCluster] = None,
        cases: Optional[Sequence[Any]] = None,
    ) -> List[DecisionItem]:
        """Build recommendations sorted by priority (CRITICAL first).

        Args:
            index: IntelIndex (anything with ``cases`` and ``campaigns``)
            kill_chain: Kill chain summary for the scope, or None
            campaign: Campaign for a campaign scope; None for global
            cases: Scoped cases; defaults to the campaign's cases or all
                index cases

        Returns:
            List of DecisionItem
        """
        summary = kill_chain or KillChainSummary.empty()
        scoped = self._scoped_cases(index, campaign, cases)
        context = _DecisionContext(
            scope="campaign" if campaign is not None else "global",
            base_risk=self._base_risk(index, campaign),
            open_cases=sum(1 for c in scoped if c.is_open),
            lateral_hops=summary.lateral_hop_count or len(summary.evidence.lateral_moves),
            summary=summary,
        )

        decisions = [
            self._progression(context),
            self._execution(context),
            self._exfiltration(context),
        ]
        # sorted() is stable, category order breaks ties
        decisions = sorted(decisions, key=lambda d: -d.priority.rank)

        logger.debug(
            f"Decisions ({context.scope}): "
            + ", ".join(f"{d.id}={d.priority.value}" for d in decisions)
        )
        return decisions

    def _scoped_cases(
        self,
        index: Any,
        campaign: Optional[CampaignCluster],
        cases: Optional[Sequence[Any]],
    ) -> List[CaseRecord]:
        if cases is None:
            cases = list(getattr(index, "cases", []) or [])
            if campaign is not None:
                wanted = set(campaign.case_ids)
                cases = [c for c in cases if getattr(c, "case_id", None) in wanted]
        return [c for c in (coerce_case(raw) for raw in cases) if c is not None]

    def _base_risk(self, index: Any, campaign: Optional[CampaignCluster]) -> float:
        if campaign is not None:
            return float(campaign.risk or 0)
        campaigns = getattr(index, "campaigns", []) or []
        top = max((float(c.risk or 0) for c in campaigns), default=0.0)
        return min(float(self.global_base_risk_cap), top)

    def _item_id(self, number: int, context: _DecisionContext) -> str:
        suffix = "CAM" if context.scope == "campaign" else "GLB"
        return f"DEC-{number:03d}-{suffix}"

    def _progression(self, ctx: _DecisionContext) -> DecisionItem:
        points = PROGRESSION_POINTS
        summary = ctx.summary
        score = min(points["base_risk_cap"], ctx.base_risk * points["base_risk_factor"])
        rationale: List[str] = []

        if ctx.base_risk >= ELEVATED_RISK_THRESHOLD:
            rationale.append(f"Elevated risk score detected (risk={_fmt(ctx.base_risk)}).")
        if ctx.open_cases >= OPEN_CASES_THRESHOLD:
            score += points["open_cases"]
            rationale.append(f"Multiple open cases in this scope (open={ctx.open_cases}).")
        if summary.has_stage(KillChainStage.CREDENTIAL_ACCESS):
            score += points["credential_access_stage"]
            rationale.append("Kill chain indicates Credential Access.")
        if summary.has_technique("T1110"):
            score += points["brute_force_technique"]
            rationale.append("MITRE technique suggests Brute Force / Password Spray (T1110*).")
        if ctx.lateral_hops > 0:
            score += points["lateral_hops"]
            rationale.append(f"Lateral movement signal present ({ctx.lateral_hops} hop(s)).")
        if summary.has_stage(KillChainStage.LATERAL_MOVEMENT):
            score += points["lateral_movement_stage"]
            rationale.append("Kill chain stage includes Lateral Movement.")

        title = (
            "Investigate potential attacker progression in this campaign"
            if ctx.scope == "campaign"
            else "Investigate potential attacker progression (global)"
        )
        return _item(
            self._item_id(1, ctx), title, score, rationale,
            "Insufficient indicators to assert active intrusion; continue monitoring.",
            PROGRESSION_ACTIONS, PROGRESSION_HUNTS, PROGRESSION_GUARDRAILS,
        )

    def _execution(self, ctx: _DecisionContext) -> DecisionItem:
        points = EXECUTION_POINTS
        summary = ctx.summary
        score = min(points["base_risk_cap"], ctx.base_risk * points["base_risk_factor"])
        rationale: List[str] = []

        if summary.has_stage(KillChainStage.EXECUTION):
            score += points["execution_stage"]
            rationale.append("Kill chain indicates Execution stage.")
        if summary.has_technique("T1059"):
            score += points["scripting_technique"]
            rationale.append("Technique indicates scripting/command execution (T1059*).")
        if summary.has_stage(KillChainStage.PERSISTENCE):
            score += points["persistence_stage"]
            rationale.append("Kill chain indicates Persistence stage.")
        if summary.has_technique("T1547") or summary.has_technique("T1053"):
            score += points["persistence_technique"]
            rationale.append("Technique indicates persistence via autoruns/scheduled tasks (T1547*/T1053*).")
        if summary.has_stage(KillChainStage.DEFENSE_EVASION):
            score += points["defense_evasion_stage"]
            rationale.append("Kill chain indicates Defense Evasion stage.")
        if summary.has_technique("T1562") or summary.has_technique("T1070"):
            score += points["defense_evasion_technique"]
            rationale.append("Technique indicates impaired defenses or log deletion (T1562*/T1070*).")

        return _item(
            self._item_id(2, ctx),
            "Validate execution/persistence/defense-evasion signals",
            score, rationale,
            "No strong execution/persistence indicators detected; keep as watchlist check.",
            EXECUTION_ACTIONS, EXECUTION_HUNTS, EXECUTION_GUARDRAILS,
        )

    def _exfiltration(self, ctx: _DecisionContext) -> DecisionItem:
        points = EXFILTRATION_POINTS
        summary = ctx.summary
        score = min(points["base_risk_cap"], ctx.base_risk * points["base_risk_factor"])
        rationale: List[str] = []

        if summary.has_stage(KillChainStage.COMMAND_AND_CONTROL):
            score += points["command_and_control_stage"]
            rationale.append("Kill chain indicates Command & Control stage.")
        if summary.has_technique("T1071") or summary.has_technique("T1095"):
            score += points["c2_protocol_technique"]
            rationale.append("Technique indicates C2 protocols (T1071*/T1095*).")
        if summary.has_stage(KillChainStage.EXFILTRATION):
            score += points["exfiltration_stage"]
            rationale.append("Kill chain indicates Exfiltration stage.")
        if summary.has_technique("T1041"):
            score += points["exfil_technique"]
            rationale.append("Technique indicates Exfil over C2 channel (T1041*).")
        if ctx.lateral_hops > 0:
            score += points["lateral_hops"]
            rationale.append("Lateral movement increases likelihood of follow-on collection/exfil.")

        return _item(
            self._item_id(3, ctx),
            "Monitor for C2 / exfiltration indicators",
            score, rationale,
            "No direct C2/exfil indicators detected; maintain monitoring baseline.",
            EXFILTRATION_ACTIONS, EXFILTRATION_HUNTS, EXFILTRATION_GUARDRAILS,
        )


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _item(
    item_id: str,
    title: str,
    score: float,
    rationale: List[str],
    fallback: str,
    actions: Tuple[str, ...],
    hunts: Tuple[str, ...],
    guardrails: Tuple[str, ...],
) -> DecisionItem:
    score = round(score, 2)
    return DecisionItem(
        id=item_id,
        priority=priority_for_score(score),
        title=title,
        score=score,
        rationale=tuple(rationale) if rationale else (fallback,),
        suggested_actions=actions,
        suggested_hunts=hunts,
        guardrails=guardrails,
    )


def build_decisions(
    index: Any,
    kill_chain: Optional[KillChainSummary],
    campaign: Optional[CampaignCluster] = None,
    cases: Optional[Sequence[Any]] = None,
) -> List[DecisionItem]:
    """Convenience function for DecisionRecommender.recommend."""
    return DecisionRecommender().recommend(index, kill_chain, campaign=campaign, cases=cases)
