"""
Case and entity builders for campaign intel tests.

Provides small, realistic snapshots:
- Brute force against one host followed by a pivot to two more hosts
- An unrelated phishing case on its own host
"""

from typing import Any, Dict, List, Optional

from src.shared.models.case_record import CaseRecord, CaseStatus
from src.shared.models.entity_record import EntityRecord, EntityType


def create_case(
    case_id: str,
    device: str = "",
    user: str = "",
    created_at: str = "",
    status: CaseStatus = CaseStatus.OPEN,
    title: str = "",
    evidence: Optional[List[Dict[str, Any]]] = None,
    ip: str = "",
    notes: Optional[List[str]] = None,
) -> CaseRecord:
    """Create a case record with sensible defaults."""
    return CaseRecord(
        case_id=case_id,
        status=status,
        title=title or f"Case {case_id}",
        device=device,
        user=user,
        ip=ip,
        created_at=created_at,
        evidence=evidence or [],
        notes=notes or [],
    )


def create_entity(
    entity_type: EntityType,
    entity_id: str,
    risk_score: int = 0,
    case_refs: Optional[List[str]] = None,
    tags: Optional[List[str]] = None,
    first_seen: str = "",
    last_seen: str = "",
) -> EntityRecord:
    """Create an entity memory record."""
    return EntityRecord(
        type=entity_type,
        id=entity_id,
        risk_score=risk_score,
        first_seen=first_seen,
        last_seen=last_seen,
        case_refs=tuple(case_refs or []),
        tags=tuple(tags or []),
    )


def bruteforce_pivot_cases() -> List[CaseRecord]:
    """Brute force on WS-01, then jsmith pivots to WS-02 and SRV-DB."""
    return [
        create_case(
            "CASE-001",
            device="WS-01",
            user="jsmith",
            created_at="2026-03-01T08:00:00Z",
            title="Brute force against jsmith",
            evidence=[{"EventID": 4625, "Message": "failed login", "RemoteIP": "203.0.113.7"}],
        ),
        create_case(
            "CASE-002",
            device="WS-02",
            user="jsmith",
            created_at="2026-03-01T09:00:00Z",
            title="Suspicious logon",
            evidence=[{"LogonType": 10, "IPAddress": "203.0.113.7"}],
        ),
        create_case(
            "CASE-003",
            device="SRV-DB",
            user="jsmith",
            created_at="2026-03-01T10:00:00Z",
            title="Outbound transfer",
            evidence=[{"Message": "beacon to c2 then upload of archive"}],
        ),
    ]


def phishing_case() -> CaseRecord:
    """Unrelated phishing case on its own host and user."""
    return create_case(
        "CASE-100",
        device="LAPTOP-9",
        user="amiller",
        created_at="2026-02-20T12:00:00Z",
        title="Phish attachment opened",
        evidence=[{"Message": "phish email attachment opened"}],
        status=CaseStatus.CLOSED,
    )


def sample_entities() -> List[EntityRecord]:
    """Entity memory matching the brute force/pivot cases."""
    return [
        create_entity(
            EntityType.DEVICE, "WS-01", risk_score=40,
            case_refs=["CASE-001"], tags=["case", "open"],
            first_seen="2026-03-01T08:00:00Z", last_seen="2026-03-01T08:00:00Z",
        ),
        create_entity(
            EntityType.USER, "jsmith", risk_score=55,
            case_refs=["CASE-001", "CASE-002", "CASE-003"], tags=["case", "open"],
            first_seen="2026-03-01T08:00:00Z", last_seen="2026-03-01T10:00:00Z",
        ),
        create_entity(
            EntityType.IP, "203.0.113.7", risk_score=30,
            case_refs=["CASE-001", "CASE-002"], tags=["case"],
            first_seen="2026-03-01T08:00:00Z", last_seen="2026-03-01T09:00:00Z",
        ),
    ]
