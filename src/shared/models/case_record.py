"""
Case record schema.

A case is a single recorded security incident owned by the case store.
The known substructure (device, user, ip, status, timestamps) is modelled
explicitly; anything else the store hands back is preserved untouched in
``extra`` so the full-text scans still see it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import json


class CaseStatus(Enum):
    """Lifecycle states of a case."""
    OPEN = "open"
    INVESTIGATING = "investigating"
    CONTAINED = "contained"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value: Any) -> "CaseStatus":
        """Parse a status string, falling back to OPEN for unknown values."""
        if isinstance(value, CaseStatus):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OPEN


_KNOWN_FIELDS = {
    "case_id", "status", "title", "device", "user", "ip", "time",
    "created_at", "evidence", "findings", "notes", "analyst_notes",
    "baseline_note",
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class CaseRecord:
    """A security case as read from the case store.

    Attributes:
        case_id: Unique case identifier
        status: Case lifecycle status
        title: Short analyst-facing title
        device: Involved device/host identifier (may be empty)
        user: Involved user identifier (may be empty)
        ip: Explicit IP address if the store recorded one
        time: Time of the underlying activity (ISO 8601)
        created_at: Time the case was created (ISO 8601)
        evidence: Ordered opaque evidence records
        findings: Opaque findings attached by the analyst or tooling
        notes: Free-text analyst notes
        baseline_note: Optional baseline comparison note
        extra: Any unstructured fields not modelled above
    """

    case_id: str
    status: CaseStatus = CaseStatus.OPEN
    title: str = ""
    device: str = ""
    user: str = ""
    ip: str = ""
    time: str = ""
    created_at: str = ""
    evidence: List[Any] = field(default_factory=list)
    findings: List[Any] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    baseline_note: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def timestamp(self) -> str:
        """Best available timestamp for ordering and last-seen tracking."""
        return self.created_at or self.time

    @property
    def is_open(self) -> bool:
        """Anything not closed still counts as open work."""
        return self.status != CaseStatus.CLOSED

    def serialized_text(self) -> str:
        """Lower-cased JSON rendering of the whole record for keyword scans."""
        return json.dumps(self.to_dict(), sort_keys=True, default=str).lower()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result = dict(self.extra)
        result.update({
            "case_id": self.case_id,
            "status": self.status.value,
            "title": self.title,
            "device": self.device,
            "user": self.user,
            "ip": self.ip,
            "time": self.time,
            "created_at": self.created_at,
            "evidence": list(self.evidence),
            "findings": list(self.findings),
            "notes": list(self.notes),
            "baseline_note": self.baseline_note,
        })
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaseRecord":
        """Create a CaseRecord from a loosely-shaped store record.

        Missing or None fields become empty values; identifiers are trimmed.
        """
        data = data or {}
        evidence = data.get("evidence")
        findings = data.get("findings")
        notes = data.get("notes", data.get("analyst_notes"))

        return cls(
            case_id=_text(data.get("case_id")),
            status=CaseStatus.parse(data.get("status")),
            title=_text(data.get("title")),
            device=_text(data.get("device")),
            user=_text(data.get("user")),
            ip=_text(data.get("ip")),
            time=_text(data.get("time")),
            created_at=_text(data.get("created_at")),
            evidence=list(evidence) if isinstance(evidence, list) else [],
            findings=list(findings) if isinstance(findings, list) else [],
            notes=[str(n) for n in notes] if isinstance(notes, list) else [],
            baseline_note=_text(data.get("baseline_note")),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )

    def with_updates(self, patch: Dict[str, Any]) -> "CaseRecord":
        """Return a copy with ``patch`` applied. The case_id never changes."""
        merged = self.to_dict()
        merged.update(patch or {})
        merged["case_id"] = self.case_id
        return CaseRecord.from_dict(merged)


def coerce_case(value: Any) -> Optional[CaseRecord]:
    """Accept either a CaseRecord or a raw dict; drop anything else."""
    if isinstance(value, CaseRecord):
        return value
    if isinstance(value, dict):
        return CaseRecord.from_dict(value)
    return None
