"""Per-entity case timeline."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Union

from ..models.case_record import coerce_case
from ..models.entity_record import EntityType


@dataclass(frozen=True)
class TimelineEvent:
    """A case touching an entity."""

    timestamp: str
    case_id: str
    title: str
    status: str
    device: str
    user: str
    time: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "ts": self.timestamp or None,
            "case_id": self.case_id,
            "title": self.title,
            "status": self.status,
            "device": self.device,
            "user": self.user,
            "time": self.time,
        }


def build_entity_timeline(
    cases: Iterable[Any],
    entity_type: Union[EntityType, str],
    entity_id: str,
) -> List[TimelineEvent]:
    """Cases involving an entity, newest first.

    Devices and users match on the case field; IPs match by substring in
    the serialized evidence records.
    """
    try:
        entity_type = EntityType(entity_type.value if isinstance(entity_type, EntityType) else str(entity_type))
    except ValueError:
        return []
    needle = str(entity_id or "").strip()
    if not needle:
        return []

    events = []
    for raw in cases:
        case = coerce_case(raw)
        if case is None:
            continue

        if entity_type == EntityType.DEVICE:
            matched = case.device == needle
        elif entity_type == EntityType.USER:
            matched = case.user == needle
        else:
            matched = any(needle in json.dumps(ev if ev is not None else {}, default=str) for ev in case.evidence)
            matched = matched or case.ip == needle

        if matched:
            events.append(TimelineEvent(
                timestamp=case.timestamp,
                case_id=case.case_id,
                title=case.title,
                status=case.status.value,
                device=case.device,
                user=case.user,
                time=case.time,
            ))

    events.sort(key=lambda e: (e.timestamp, e.case_id), reverse=True)
    return events
