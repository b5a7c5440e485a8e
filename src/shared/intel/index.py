"""Intel index: one consistent snapshot of correlated cases and entities."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.case_record import CaseRecord, coerce_case
from ..models.entity_record import EntityRecord
from .correlation.campaigns import CampaignCluster, CampaignClusterer, get_campaign_by_id
from .correlation.edges import CorrelationEdge, EdgeBuilder, edges_for_entity
from .correlation.lateral_movement import (
    LateralFinding,
    LateralMovementDetector,
    sort_chronologically,
)
from .technique_inference import TechniqueFinding, TechniqueInferencer

logger = logging.getLogger(__name__)

HIGH_RISK_ENTITY_THRESHOLD = 50


@dataclass(frozen=True)
class IntelIndex:
    """Correlated view over a case/entity snapshot.

    Attributes:
        cases: Cases in chronological ascending order
        entities: Entity memory keyed by entity key
        edges: Correlation edges, heaviest first
        campaigns: Campaign clusters, riskiest first
        lateral_findings: Device pivots across all cases
        technique_findings: Techniques inferred per case
    """

    cases: Tuple[CaseRecord, ...] = field(default_factory=tuple)
    entities: Dict[str, EntityRecord] = field(default_factory=dict)
    edges: Tuple[CorrelationEdge, ...] = field(default_factory=tuple)
    campaigns: Tuple[CampaignCluster, ...] = field(default_factory=tuple)
    lateral_findings: Tuple[LateralFinding, ...] = field(default_factory=tuple)
    technique_findings: Tuple[TechniqueFinding, ...] = field(default_factory=tuple)

    def get_campaign(self, campaign_id: str) -> Optional[CampaignCluster]:
        return get_campaign_by_id(self.campaigns, campaign_id)

    def get_case(self, case_id: str) -> Optional[CaseRecord]:
        for case in self.cases:
            if case.case_id == case_id:
                return case
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "cases": [c.to_dict() for c in self.cases],
            "entities": {k: e.to_dict() for k, e in self.entities.items()},
            "edges": [e.to_dict() for e in self.edges],
            "campaigns": [c.to_dict() for c in self.campaigns],
            "lateral_findings": [f.to_dict() for f in self.lateral_findings],
            "technique_findings": [f.to_dict() for f in self.technique_findings],
        }


class IntelIndexBuilder:
    """Runs the correlation pipeline over a snapshot.

    Holds configuration only; every ``build`` starts from scratch.
    """

    def __init__(
        self,
        edge_builder: Optional[EdgeBuilder] = None,
        clusterer: Optional[CampaignClusterer] = None,
        lateral_detector: Optional[LateralMovementDetector] = None,
        inferencer: Optional[TechniqueInferencer] = None,
    ):
        self.inferencer = inferencer or TechniqueInferencer()
        self.edge_builder = edge_builder or EdgeBuilder()
        self.clusterer = clusterer or CampaignClusterer(inferencer=self.inferencer)
        self.lateral_detector = lateral_detector or LateralMovementDetector()

    def build(self, cases: Iterable[Any], entities: Iterable[Any]) -> IntelIndex:
        """Build an index.

        Args:
            cases: Case records in any order
            entities: Entity memory records (or raw dicts)

        Returns:
            IntelIndex
        """
        ordered = sort_chronologically(cases)
        memory: Dict[str, EntityRecord] = {}
        for raw in entities:
            record = raw if isinstance(raw, EntityRecord) else EntityRecord.from_dict(raw)
            if record is not None:
                memory[record.key] = record
        memory = {k: memory[k] for k in sorted(memory)}

        lateral = self.lateral_detector.detect(ordered)
        edges = self.edge_builder.build(ordered)
        campaigns = self.clusterer.build(ordered, memory.values(), lateral)
        techniques = self.inferencer.infer_cases(ordered, _tags_by_case(memory.values()))

        logger.info(
            f"Built intel index: {len(ordered)} cases, {len(memory)} entities, "
            f"{len(edges)} edges, {len(campaigns)} campaigns, {len(lateral)} lateral findings"
        )

        return IntelIndex(
            cases=tuple(ordered),
            entities=memory,
            edges=tuple(edges),
            campaigns=tuple(campaigns),
            lateral_findings=tuple(lateral),
            technique_findings=tuple(techniques),
        )


def _tags_by_case(entities: Iterable[EntityRecord]) -> Dict[str, List[str]]:
    """Aggregate entity memory tags onto the cases each entity references."""
    tags: Dict[str, List[str]] = {}
    for entity in entities:
        for case_id in entity.case_refs:
            bucket = tags.setdefault(case_id, [])
            bucket.extend(t for t in entity.tags if t not in bucket)
    return tags


def summarize_index(index: IntelIndex) -> Dict[str, int]:
    """Headline counts for an index."""
    return {
        "case_count": len(index.cases),
        "open_case_count": sum(1 for c in index.cases if c.is_open),
        "entity_count": len(index.entities),
        "high_risk_entity_count": sum(
            1 for e in index.entities.values() if e.risk_score >= HIGH_RISK_ENTITY_THRESHOLD
        ),
        "edge_count": len(index.edges),
        "campaign_count": len(index.campaigns),
    }


def get_edges_for_entity(index: IntelIndex, key: str) -> List[CorrelationEdge]:
    """Edges touching an entity key, heaviest first."""
    return edges_for_entity(index.edges, key)


def cases_for_campaign(index: IntelIndex, campaign: Optional[CampaignCluster]) -> List[CaseRecord]:
    """Index cases belonging to a campaign, chronological order."""
    if campaign is None:
        return []
    wanted = set(campaign.case_ids)
    return [c for c in index.cases if c.case_id in wanted]


def findings_for_cases(index: IntelIndex, cases: Iterable[CaseRecord]) -> List[TechniqueFinding]:
    """Technique findings restricted to the given cases."""
    wanted = {c.case_id for c in cases}
    return [f for f in index.technique_findings if f.case_id in wanted]


def lateral_for_devices(index: IntelIndex, devices: Iterable[str]) -> List[LateralFinding]:
    """Lateral findings touching any of the given devices."""
    wanted = {d for d in devices if d}
    return [
        f for f in index.lateral_findings
        if f.from_device in wanted or f.to_device in wanted
    ]
