"""
Entity reputation record schema.

Entities are devices, users and IP addresses tracked across cases. Identity
is the (type, id) pair, rendered as an entity key ``"<type>:<id>"``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


class EntityType(Enum):
    """Kinds of tracked entities."""
    DEVICE = "device"
    USER = "user"
    IP = "ip"


def clamp_risk(value: Any) -> int:
    """Clamp a risk value to the 0-100 range, treating junk as 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return int(max(0, min(100, round(number))))


def entity_key(entity_type: Any, entity_id: str) -> str:
    """Build the canonical entity key for a (type, id) pair."""
    type_value = entity_type.value if isinstance(entity_type, EntityType) else str(entity_type)
    return f"{type_value}:{str(entity_id or '').strip()}"


def parse_entity_key(key: str) -> Tuple[Optional[EntityType], str]:
    """Split an entity key back into (type, id). Unknown types yield None."""
    type_part, _, id_part = str(key or "").partition(":")
    try:
        return EntityType(type_part), id_part
    except ValueError:
        return None, id_part


def _sorted_unique(values: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    if not values:
        return ()
    return tuple(sorted({str(v) for v in values if v not in (None, "")}))


@dataclass(frozen=True)
class EntityRecord:
    """Entity memory record.

    Attributes:
        type: Entity type
        id: Entity identifier (hostname, username, address)
        risk_score: Reputation risk 0-100
        first_seen: Earliest observation (ISO 8601) or empty
        last_seen: Latest observation (ISO 8601) or empty
        case_refs: Case ids this entity was observed in
        tags: Free-form tags ("case", "campaign:...", etc.)
    """

    type: EntityType
    id: str
    risk_score: int = 0
    first_seen: str = ""
    last_seen: str = ""
    case_refs: Tuple[str, ...] = field(default_factory=tuple)
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id or "").strip())
        object.__setattr__(self, "risk_score", clamp_risk(self.risk_score))
        object.__setattr__(self, "case_refs", _sorted_unique(self.case_refs))
        object.__setattr__(self, "tags", _sorted_unique(self.tags))

    @property
    def key(self) -> str:
        return entity_key(self.type, self.id)

    def merged_with(self, other: "EntityRecord") -> "EntityRecord":
        """Merge another observation of the same entity into this one."""
        firsts = [t for t in (self.first_seen, other.first_seen) if t]
        lasts = [t for t in (self.last_seen, other.last_seen) if t]
        return EntityRecord(
            type=self.type,
            id=self.id,
            risk_score=other.risk_score,
            first_seen=min(firsts) if firsts else "",
            last_seen=max(lasts) if lasts else "",
            case_refs=self.case_refs + other.case_refs,
            tags=self.tags + other.tags,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "key": self.key,
            "type": self.type.value,
            "id": self.id,
            "risk_score": self.risk_score,
            "first_seen": self.first_seen or None,
            "last_seen": self.last_seen or None,
            "case_refs": list(self.case_refs),
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["EntityRecord"]:
        """Create from a store record. Returns None if type or id is unusable."""
        if not isinstance(data, dict):
            return None

        raw_type = data.get("type")
        raw_id = data.get("id")
        if (raw_type is None or raw_id is None) and data.get("key"):
            parsed_type, parsed_id = parse_entity_key(data["key"])
            raw_type = raw_type or (parsed_type.value if parsed_type else None)
            raw_id = raw_id if raw_id is not None else parsed_id

        try:
            entity_type = EntityType(str(raw_type or "").strip().lower())
        except ValueError:
            return None
        entity_id = str(raw_id or "").strip()
        if not entity_id:
            return None

        case_refs = data.get("case_refs")
        tags = data.get("tags")
        return cls(
            type=entity_type,
            id=entity_id,
            risk_score=data.get("risk_score", data.get("risk", 0)),
            first_seen=str(data.get("first_seen") or ""),
            last_seen=str(data.get("last_seen") or ""),
            case_refs=tuple(case_refs) if isinstance(case_refs, (list, tuple, set)) else (),
            tags=tuple(tags) if isinstance(tags, (list, tuple, set)) else (),
        )
