"""
Campaign clustering.

Groups entities (and through them, cases) into probable campaigns using a
disjoint-set over two relations:
- entities in memory that share a case ref
- device/user pairs that co-occur on the same case

Grouping is by transitive closure, so the result is a partition of all
observed entities and does not depend on the order of the inputs.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ...models.case_record import CaseRecord, coerce_case
from ...models.entity_record import EntityRecord, EntityType, clamp_risk, entity_key, parse_entity_key
from ..technique_inference import TechniqueInferencer, TechniqueFinding
from .lateral_movement import LateralFinding

logger = logging.getLogger(__name__)


CAMPAIGN_TITLE_PREFIXES = ("campaign:", "operation:")
CAMPAIGN_SIZE_BONUS_PER_ENTITY = 2
CAMPAIGN_SIZE_BONUS_CAP = 20
DEFAULT_LATERAL_RISK_BUMP = 10
UNNAMED_CAMPAIGN_TITLE = "Cluster: Unnamed"


class DisjointSet:
    """Union-find with path compression and union by rank.

    One instance per clustering run; nothing is shared between runs.
    """

    def __init__(self):
        self.parent: Dict[str, str] = {}
        self.rank: Dict[str, int] = {}

    def add(self, item: str) -> None:
        if item not in self.parent:
            self.parent[item] = item
            self.rank[item] = 0

    def find(self, item: str) -> str:
        self.add(item)
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        # Compress
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        rank_a, rank_b = self.rank[root_a], self.rank[root_b]
        if rank_a < rank_b:
            self.parent[root_a] = root_b
        elif rank_a > rank_b:
            self.parent[root_b] = root_a
        else:
            self.parent[root_b] = root_a
            self.rank[root_a] = rank_a + 1

    def groups(self) -> List[List[str]]:
        """Members grouped by root, each group sorted, groups sorted by first member."""
        by_root: Dict[str, List[str]] = {}
        for item in self.parent:
            by_root.setdefault(self.find(item), []).append(item)
        return sorted((sorted(members) for members in by_root.values()), key=lambda g: g[0])

    def __len__(self) -> int:
        return len(self.parent)


def _unique(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def infer_case_tags(case: Any) -> List[str]:
    """Derive campaign/tactic hint tags from a case title and evidence."""
    record = coerce_case(case)
    if record is None:
        return []

    title = record.title.lower()
    blob = json.dumps(record.evidence, default=str).lower()
    tags: List[str] = []

    if (
        "brute" in title
        or "spray" in title
        or any(k in blob for k in ("bruteforce", "password", "failed"))
    ):
        tags.extend(["campaign:bruteforce", "tactic:credential-access", "technique:brute-force"])

    if "ssh" in title or "ssh" in blob:
        tags.extend(["surface:ssh", "tactic:lateral-movement"])

    if "persistence" in title or "cron" in blob or "scheduled task" in blob:
        tags.append("tactic:persistence")

    if "root" in title or "sudo" in blob or "admin" in blob:
        tags.append("tactic:privilege-escalation")

    if "logon" in title or "logontype" in blob or "remote" in blob:
        tags.append("behavior:remote-logon")

    return _unique(tags)


@dataclass(frozen=True)
class CampaignCluster:
    """A group of correlated entities and the cases behind them."""

    campaign_id: str
    title: str
    risk: int
    case_ids: Tuple[str, ...] = field(default_factory=tuple)
    entities: Tuple[str, ...] = field(default_factory=tuple)
    start: Optional[str] = None
    end: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)
    techniques: Tuple[TechniqueFinding, ...] = field(default_factory=tuple)

    @property
    def devices(self) -> List[str]:
        """Device identifiers among the cluster's entities."""
        devices = []
        for key in self.entities:
            entity_type, entity_id = parse_entity_key(key)
            if entity_type == EntityType.DEVICE:
                devices.append(entity_id)
        return devices

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "campaign_id": self.campaign_id,
            "title": self.title,
            "risk": self.risk,
            "case_ids": list(self.case_ids),
            "entities": list(self.entities),
            "start": self.start,
            "end": self.end,
            "tags": list(self.tags),
            "techniques": [t.to_dict() for t in self.techniques],
        }


@dataclass
class _Member:
    key: str
    risk: int = 0
    case_refs: Set[str] = field(default_factory=set)
    timestamps: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


class CampaignClusterer:
    """Builds campaign clusters from a case and entity snapshot."""

    def __init__(
        self,
        lateral_risk_bump: int = DEFAULT_LATERAL_RISK_BUMP,
        inferencer: Optional[TechniqueInferencer] = None,
    ):
        self.lateral_risk_bump = lateral_risk_bump
        self.inferencer = inferencer or TechniqueInferencer()

    def build(
        self,
        cases: Iterable[Any],
        entities: Iterable[EntityRecord],
        lateral_findings: Sequence[LateralFinding] = (),
    ) -> List[CampaignCluster]:
        """Cluster entities into campaigns.

        Args:
            cases: CaseRecord objects or raw case dicts
            entities: Entity memory records
            lateral_findings: Pivots used to escalate cluster risk

        Returns:
            Campaigns sorted by risk descending, ids assigned in that order
        """
        records = [c for c in (coerce_case(raw) for raw in cases) if c is not None]
        cases_by_id: Dict[str, CaseRecord] = {}
        for case in records:
            if case.case_id and case.case_id not in cases_by_id:
                cases_by_id[case.case_id] = case

        dsu = DisjointSet()
        members: Dict[str, _Member] = {}

        # Entity keys per case id, from memory refs and case fields
        keys_by_case: Dict[str, List[str]] = {}
        for entity in entities:
            member = members.setdefault(entity.key, _Member(entity.key))
            member.risk = max(member.risk, entity.risk_score)
            member.case_refs.update(entity.case_refs)
            member.timestamps.extend(t for t in (entity.first_seen, entity.last_seen) if t)
            member.tags.extend(entity.tags)
            dsu.add(entity.key)
            for case_id in entity.case_refs:
                keys_by_case.setdefault(case_id, []).append(entity.key)

        # Direct co-occurrence on a case
        for case in records:
            present = []
            if case.device:
                present.append(entity_key(EntityType.DEVICE, case.device))
            if case.user:
                present.append(entity_key(EntityType.USER, case.user))
            for key in present:
                member = members.setdefault(key, _Member(key))
                if case.case_id:
                    member.case_refs.add(case.case_id)
                    keys_by_case.setdefault(case.case_id, []).append(key)
                if case.timestamp:
                    member.timestamps.append(case.timestamp)
                dsu.add(key)
            if len(present) == 2:
                dsu.union(present[0], present[1])

        # Shared case refs, after both passes so memory and case keys meet
        for keys in keys_by_case.values():
            for other in keys[1:]:
                dsu.union(keys[0], other)

        lateral_devices = {
            entity_key(EntityType.DEVICE, d)
            for finding in lateral_findings
            for d in (finding.from_device, finding.to_device)
            if d
        }

        drafts = [
            self._draft(group, members, cases_by_id, lateral_devices)
            for group in dsu.groups()
        ]
        drafts.sort(key=lambda d: (-d.risk, d.entities[0] if d.entities else ""))

        campaigns = [
            CampaignCluster(
                campaign_id=f"CMP-{n}",
                title=draft.title,
                risk=draft.risk,
                case_ids=draft.case_ids,
                entities=draft.entities,
                start=draft.start,
                end=draft.end,
                tags=draft.tags,
                techniques=draft.techniques,
            )
            for n, draft in enumerate(drafts, start=1)
        ]

        logger.debug(f"Clustered {len(members)} entities into {len(campaigns)} campaigns")
        return campaigns

    def _draft(
        self,
        group: List[str],
        members: Dict[str, _Member],
        cases_by_id: Dict[str, CaseRecord],
        lateral_devices: Set[str],
    ) -> CampaignCluster:
        group_members = [members[key] for key in group]
        ranked = sorted(group_members, key=lambda m: (-m.risk, m.key))

        case_ids = sorted({ref for m in group_members for ref in m.case_refs})
        timestamps = sorted(t for m in group_members for t in m.timestamps)

        memory_tags = _unique(t for m in ranked for t in m.tags)
        case_tags = _unique(
            tag
            for case_id in case_ids
            if case_id in cases_by_id
            for tag in infer_case_tags(cases_by_id[case_id])
        )
        tags = _unique(memory_tags + case_tags)

        top_risk = ranked[0].risk if ranked else 0
        size_bonus = min(CAMPAIGN_SIZE_BONUS_CAP, CAMPAIGN_SIZE_BONUS_PER_ENTITY * len(group))
        risk = top_risk + size_bonus
        if lateral_devices.intersection(group):
            risk += self.lateral_risk_bump

        return CampaignCluster(
            campaign_id="",
            title=_derive_title(tags, ranked),
            risk=clamp_risk(risk),
            case_ids=tuple(case_ids),
            entities=tuple(group),
            start=timestamps[0] if timestamps else None,
            end=timestamps[-1] if timestamps else None,
            tags=tuple(tags),
            techniques=tuple(self.inferencer.infer_from_tags(tags)),
        )


def _derive_title(tags: List[str], ranked: List[_Member]) -> str:
    for prefix in CAMPAIGN_TITLE_PREFIXES:
        for tag in tags:
            if tag.lower().startswith(prefix):
                return tag

    if ranked:
        entity_type, entity_id = parse_entity_key(ranked[0].key)
        type_label = entity_type.value if entity_type else "entity"
        return f"Cluster: {type_label} {entity_id}"

    return UNNAMED_CAMPAIGN_TITLE


def build_campaigns(
    cases: Iterable[Any],
    entities: Iterable[EntityRecord],
    lateral_findings: Sequence[LateralFinding] = (),
    lateral_risk_bump: int = DEFAULT_LATERAL_RISK_BUMP,
) -> List[CampaignCluster]:
    """Convenience function to cluster a snapshot."""
    return CampaignClusterer(lateral_risk_bump=lateral_risk_bump).build(
        cases, entities, lateral_findings
    )


def get_campaign_by_id(campaigns: Iterable[CampaignCluster], campaign_id: str) -> Optional[CampaignCluster]:
    """Find a campaign by id. Accepts a campaign list or anything with ``.campaigns``."""
    campaign_id = str(campaign_id or "").strip()
    if not campaign_id:
        return None
    for campaign in getattr(campaigns, "campaigns", campaigns):
        if campaign.campaign_id == campaign_id:
            return campaign
    return None
