"""Case storage for the intel engine.

The core only ever reads a snapshot of all cases. The update operations
exist for the surrounding application and the CLI; the correlation, kill
chain and decision stages never call them.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..models.case_record import CaseRecord, CaseStatus, coerce_case

logger = logging.getLogger(__name__)


class CaseStore(ABC):
    """Abstract base class for case storage."""

    @abstractmethod
    def list_cases(self) -> List[CaseRecord]:
        """Return every case, newest first.

        Implementations must return an empty list rather than raise when the
        persisted state is missing or unreadable.
        """
        pass

    @abstractmethod
    def save_case(self, case: CaseRecord) -> CaseRecord:
        """Insert a case (newest first), replacing any case with the same id."""
        pass

    @abstractmethod
    def delete_case(self, case_id: str) -> bool:
        """Delete a case. Returns True if a case was removed."""
        pass

    def get_case(self, case_id: str) -> Optional[CaseRecord]:
        """Get a case by id."""
        for case in self.list_cases():
            if case.case_id == case_id:
                return case
        return None

    def update_case(self, case_id: str, patch: Dict[str, Any]) -> Optional[CaseRecord]:
        """Apply a partial update. The case_id itself is never overwritten.

        Returns:
            The updated case, or None if no case has that id
        """
        existing = self.get_case(case_id)
        if existing is None:
            logger.warning(f"Case not found for update: {case_id}")
            return None
        updated = existing.with_updates(patch)
        self._replace_case(updated)
        return updated

    def set_status(self, case_id: str, status: Union[CaseStatus, str]) -> Optional[CaseRecord]:
        """Change the status of a case."""
        return self.update_case(case_id, {"status": CaseStatus.parse(status).value})

    def _replace_case(self, case: CaseRecord) -> None:
        """Replace a case in place, keeping its position."""
        self.save_case(case)


class InMemoryCaseStore(CaseStore):
    """Case store backed by a list. Used in tests and for local snapshots."""

    def __init__(self, cases: Optional[List[Any]] = None):
        self._cases: List[CaseRecord] = []
        for raw in cases or []:
            case = coerce_case(raw)
            if case is not None:
                self._cases.append(case)

    def list_cases(self) -> List[CaseRecord]:
        return list(self._cases)

    def save_case(self, case: CaseRecord) -> CaseRecord:
        self._cases = [c for c in self._cases if c.case_id != case.case_id]
        self._cases.insert(0, case)
        return case

    def delete_case(self, case_id: str) -> bool:
        remaining = [c for c in self._cases if c.case_id != case_id]
        removed = len(remaining) != len(self._cases)
        self._cases = remaining
        return removed

    def _replace_case(self, case: CaseRecord) -> None:
        self._cases = [case if c.case_id == case.case_id else c for c in self._cases]


class JsonFileCaseStore(CaseStore):
    """Case store persisted as a single JSON array on disk.

    A missing, empty or corrupt file reads as an empty case list.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read(self) -> List[CaseRecord]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, "r") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable case store {self.path}, treating as empty: {e}")
            return []

        if not isinstance(raw, list):
            logger.warning(f"Case store {self.path} is not a JSON array, treating as empty")
            return []

        cases = []
        for item in raw:
            case = coerce_case(item)
            if case is not None and case.case_id:
                cases.append(case)
        return cases

    def _write(self, cases: List[CaseRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump([c.to_dict() for c in cases], f, indent=2, default=str)

    def list_cases(self) -> List[CaseRecord]:
        return self._read()

    def save_case(self, case: CaseRecord) -> CaseRecord:
        cases = [c for c in self._read() if c.case_id != case.case_id]
        cases.insert(0, case)
        self._write(cases)
        logger.debug(f"Saved case {case.case_id} to {self.path}")
        return case

    def delete_case(self, case_id: str) -> bool:
        cases = self._read()
        remaining = [c for c in cases if c.case_id != case_id]
        if len(remaining) == len(cases):
            return False
        self._write(remaining)
        return True

    def _replace_case(self, case: CaseRecord) -> None:
        cases = [case if c.case_id == case.case_id else c for c in self._read()]
        self._write(cases)
