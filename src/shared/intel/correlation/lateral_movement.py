"""Lateral movement detection.

Lightweight heuristic: when a user already seen on one or more devices shows
up on a device they have not touched before, flag a pivot from their most
recent device to the new one.

Precondition: cases must be supplied in chronological ascending order
(oldest first). ``sort_chronologically`` produces that order; the detector
itself never reorders its input.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Set, Tuple

from ...models.case_record import CaseRecord, coerce_case

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LateralFinding:
    """A suspected device-to-device pivot under one user identity."""

    from_device: str
    to_device: str
    user: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary."""
        return {"from": self.from_device, "to": self.to_device, "user": self.user}


def sort_chronologically(cases: Iterable[Any]) -> List[CaseRecord]:
    """Order cases oldest first by timestamp, then case id.

    Cases without any timestamp sort first.
    """
    records = [c for c in (coerce_case(raw) for raw in cases) if c is not None]
    return sorted(records, key=lambda c: (c.timestamp, c.case_id))


class LateralMovementDetector:
    """Single forward pass over a case sequence."""

    def detect(self, cases: Iterable[Any]) -> List[LateralFinding]:
        """Detect pivots.

        Args:
            cases: Cases in chronological ascending order

        Returns:
            Findings deduplicated by (user, from, to), in emission order
        """
        visited: Dict[str, Dict[str, None]] = {}
        last_device: Dict[str, str] = {}
        emitted: Set[Tuple[str, str, str]] = set()
        findings: List[LateralFinding] = []

        for raw in cases:
            case = coerce_case(raw)
            if case is None or not case.user or not case.device:
                continue

            user, device = case.user, case.device
            devices = visited.setdefault(user, {})

            if devices and device not in devices:
                last = last_device.get(user)
                from_device = last if last and last != device else next(iter(devices))
                key = (user, from_device, device)
                if key not in emitted:
                    emitted.add(key)
                    findings.append(LateralFinding(from_device, device, user))

            devices[device] = None
            last_device[user] = device

        if findings:
            logger.debug(f"Detected {len(findings)} lateral movement findings")
        return findings


def detect_lateral_movement(cases: Iterable[Any]) -> List[LateralFinding]:
    """Convenience wrapper around LateralMovementDetector."""
    return LateralMovementDetector().detect(cases)
