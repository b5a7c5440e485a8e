"""Shared data models for the campaign intel engine."""

from .case_record import CaseRecord, CaseStatus, coerce_case
from .entity_record import (
    EntityRecord,
    EntityType,
    clamp_risk,
    entity_key,
    parse_entity_key,
)

__all__ = [
    "CaseRecord",
    "CaseStatus",
    "coerce_case",
    "EntityRecord",
    "EntityType",
    "clamp_risk",
    "entity_key",
    "parse_entity_key",
]
