"""Entity memory storage.

Provides the repository interface for entity reputation records plus the
observation recorder the case workflow uses when a case is saved. The
correlation core only reads from this store.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..models.case_record import CaseRecord
from ..models.entity_record import EntityRecord, EntityType, entity_key

logger = logging.getLogger(__name__)


# Evidence keys checked, in order, when picking a case's primary IP
EVIDENCE_IP_FIELDS: List[str] = [
    "RemoteIP",
    "IPAddress",
    "IpAddress",
    "RemoteAddress",
    "RemoteIPv4",
    "ClientIP",
    "SourceIP",
    "SourceIp",
]

DEFAULT_CASE_RISK_BUMP = 10


class EntityStore(ABC):
    """Abstract base class for entity memory storage."""

    @abstractmethod
    def list_entities(self) -> List[EntityRecord]:
        """Return every entity record.

        Implementations must return an empty list rather than raise when the
        persisted state is missing or unreadable.
        """
        pass

    @abstractmethod
    def _put_entity(self, record: EntityRecord) -> None:
        """Persist a record as-is, replacing any existing one."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all entity records."""
        pass

    def get_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> Optional[EntityRecord]:
        """Get a single entity by type and id."""
        key = entity_key(entity_type, entity_id)
        for record in self.list_entities():
            if record.key == key:
                return record
        return None

    def upsert_entity(self, record: EntityRecord) -> EntityRecord:
        """Insert or merge an entity keyed by (type, id).

        Tags and case refs are unioned, first/last seen widened, and the
        incoming risk score (already clamped to 0-100) replaces the old one.
        """
        existing = self.get_entity(record.type, record.id)
        merged = existing.merged_with(record) if existing else record
        self._put_entity(merged)
        return merged

    def snapshot(self) -> Dict[str, EntityRecord]:
        """Entity map keyed by entity key."""
        return {record.key: record for record in self.list_entities()}


class InMemoryEntityStore(EntityStore):
    """In-memory entity store for tests and local snapshots."""

    def __init__(self, entities: Optional[List[Any]] = None):
        self._entities: Dict[str, EntityRecord] = {}
        for raw in entities or []:
            record = raw if isinstance(raw, EntityRecord) else EntityRecord.from_dict(raw)
            if record is not None:
                self._entities[record.key] = record

    def list_entities(self) -> List[EntityRecord]:
        return [self._entities[k] for k in sorted(self._entities)]

    def get_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> Optional[EntityRecord]:
        return self._entities.get(entity_key(entity_type, entity_id))

    def _put_entity(self, record: EntityRecord) -> None:
        self._entities[record.key] = record

    def clear(self) -> None:
        self._entities.clear()


class JsonFileEntityStore(EntityStore):
    """Entity store persisted as ``{"entities": {key: record}}`` on disk.

    Any file that is missing, corrupt or has the wrong shape reads as empty.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> Dict[str, EntityRecord]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable entity store {self.path}, treating as empty: {e}")
            return {}

        if not isinstance(raw, dict) or not isinstance(raw.get("entities"), dict):
            logger.warning(f"Entity store {self.path} has unexpected shape, treating as empty")
            return {}

        records = {}
        for value in raw["entities"].values():
            record = EntityRecord.from_dict(value)
            if record is not None:
                records[record.key] = record
        return records

    def _write(self, records: Dict[str, EntityRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"entities": {k: records[k].to_dict() for k in sorted(records)}}
        with open(self.path, "w") as f:
            json.dump(payload, f, indent=2)

    def list_entities(self) -> List[EntityRecord]:
        records = self._read()
        return [records[k] for k in sorted(records)]

    def _put_entity(self, record: EntityRecord) -> None:
        records = self._read()
        records[record.key] = record
        self._write(records)

    def clear(self) -> None:
        self._write({})


@dataclass
class Observation:
    """A single sighting of entities on a case, used to update entity memory."""

    case_id: str = ""
    device: str = ""
    user: str = ""
    ip: str = ""
    tags: List[str] = field(default_factory=list)
    risk_bump: int = 0
    observed_at: str = ""


def extract_best_ip(evidence: Any) -> str:
    """Pick the first usable IP from well-known evidence fields."""
    if not isinstance(evidence, list):
        return ""

    for item in evidence:
        if not isinstance(item, dict):
            continue
        for field_name in EVIDENCE_IP_FIELDS:
            value = str(item.get(field_name) or "").strip()
            if value and value not in ("null", "undefined", "None"):
                return value
    return ""


def observation_from_case(case: CaseRecord, risk_bump: int = DEFAULT_CASE_RISK_BUMP) -> Observation:
    """Build the observation recorded when a case is saved."""
    return Observation(
        case_id=case.case_id,
        device=case.device,
        user=case.user,
        ip=case.ip or extract_best_ip(case.evidence),
        tags=["case", case.status.value],
        risk_bump=risk_bump,
    )


def record_observation(store: EntityStore, observation: Observation) -> List[EntityRecord]:
    """Record an observation into entity memory.

    Each present identifier is upserted with the observation's tags and case
    ref, its risk raised by ``risk_bump`` (clamped to 0-100).

    Returns:
        The updated entity records
    """
    observed_at = observation.observed_at or datetime.now(timezone.utc).isoformat()
    tags = [t for t in observation.tags if t]
    case_refs = [observation.case_id] if observation.case_id else []

    updated = []
    for entity_type, entity_id in (
        (EntityType.DEVICE, observation.device),
        (EntityType.USER, observation.user),
        (EntityType.IP, observation.ip),
    ):
        entity_id = str(entity_id or "").strip()
        if not entity_id:
            continue

        existing = store.get_entity(entity_type, entity_id)
        base_risk = existing.risk_score if existing else 0
        record = EntityRecord(
            type=entity_type,
            id=entity_id,
            risk_score=base_risk + int(observation.risk_bump or 0),
            first_seen=observed_at,
            last_seen=observed_at,
            case_refs=tuple(case_refs),
            tags=tuple(tags),
        )
        updated.append(store.upsert_entity(record))

    logger.debug(
        f"Recorded observation for case {observation.case_id or '-'}: "
        f"{len(updated)} entities updated"
    )
    return updated
