"""
Correlation edge builder.

Derives co-occurrence edges between entities from case records. Every pair
of identifiers present on the same case (device, user, explicit IP and any
IPv4 addresses found in the evidence) bumps one canonical, order-independent
edge.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ...models.case_record import CaseRecord, coerce_case
from ...models.entity_record import EntityType, entity_key

logger = logging.getLogger(__name__)


IPV4_PATTERN = re.compile(
    r"\b(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\b"
)

DEFAULT_EXAMPLE_CAP = 10
DEFAULT_MAX_IPS_PER_CASE = 20


def extract_ips(evidence: Any, limit: int = DEFAULT_MAX_IPS_PER_CASE) -> List[str]:
    """Scan serialized evidence for IPv4 addresses.

    Returns unique addresses in first-seen order, capped at ``limit``.
    """
    blob = json.dumps(evidence if evidence is not None else [], default=str)
    found: List[str] = []
    for match in IPV4_PATTERN.findall(blob):
        if match not in found:
            found.append(match)
            if len(found) >= limit:
                break
    return found


def case_identifiers(case: CaseRecord, max_ips: int = DEFAULT_MAX_IPS_PER_CASE) -> List[str]:
    """Entity keys present on a case, unique, in device/user/ip order."""
    keys: List[str] = []
    if case.device:
        keys.append(entity_key(EntityType.DEVICE, case.device))
    if case.user:
        keys.append(entity_key(EntityType.USER, case.user))

    ips = [case.ip] if case.ip else []
    ips.extend(extract_ips(case.evidence, limit=max_ips))
    for ip in ips:
        key = entity_key(EntityType.IP, ip)
        if key not in keys:
            keys.append(key)
    return keys


def canonical_pair(a: str, b: str) -> Tuple[str, str]:
    """Order a pair of entity keys so (A, B) and (B, A) are the same edge."""
    return (a, b) if a <= b else (b, a)


def make_edge_id(a: str, b: str) -> str:
    left, right = canonical_pair(a, b)
    return f"{left}|{right}"


@dataclass(frozen=True)
class CorrelationEdge:
    """Co-occurrence between two entities across cases."""

    edge_id: str
    a: str
    b: str
    weight: int
    last_seen: str = ""
    examples: Tuple[str, ...] = field(default_factory=tuple)

    def involves(self, key: str) -> bool:
        return key in (self.a, self.b)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "edge_id": self.edge_id,
            "a": self.a,
            "b": self.b,
            "weight": self.weight,
            "last_seen": self.last_seen or None,
            "examples": list(self.examples),
        }


@dataclass
class _EdgeAccumulator:
    a: str
    b: str
    weight: int = 0
    last_seen: str = ""
    examples: List[str] = field(default_factory=list)
    counted: Set[str] = field(default_factory=set)


class EdgeBuilder:
    """Builds correlation edges from a case snapshot.

    State lives only for the duration of one ``build`` call.
    """

    def __init__(
        self,
        example_cap: int = DEFAULT_EXAMPLE_CAP,
        max_ips_per_case: int = DEFAULT_MAX_IPS_PER_CASE,
    ):
        self.example_cap = example_cap
        self.max_ips_per_case = max_ips_per_case

    def build(self, cases: Iterable[Any]) -> List[CorrelationEdge]:
        """Build edges sorted by descending weight (ties by edge id).

        Args:
            cases: CaseRecord objects or raw case dicts

        Returns:
            List of CorrelationEdge
        """
        accumulators: Dict[str, _EdgeAccumulator] = {}

        for raw in cases:
            case = coerce_case(raw)
            if case is None:
                continue

            keys = case_identifiers(case, max_ips=self.max_ips_per_case)
            for i in range(len(keys)):
                for j in range(i + 1, len(keys)):
                    self._bump(accumulators, keys[i], keys[j], case)

        edges = [
            CorrelationEdge(
                edge_id=edge_id,
                a=acc.a,
                b=acc.b,
                weight=acc.weight,
                last_seen=acc.last_seen,
                examples=tuple(acc.examples),
            )
            for edge_id, acc in accumulators.items()
        ]
        edges.sort(key=lambda e: (-e.weight, e.edge_id))

        logger.debug(f"Built {len(edges)} correlation edges")
        return edges

    def _bump(
        self,
        accumulators: Dict[str, _EdgeAccumulator],
        a: str,
        b: str,
        case: CaseRecord,
    ) -> None:
        left, right = canonical_pair(a, b)
        edge_id = make_edge_id(left, right)
        acc = accumulators.get(edge_id)
        if acc is None:
            acc = _EdgeAccumulator(a=left, b=right)
            accumulators[edge_id] = acc

        if case.case_id:
            if case.case_id in acc.counted:
                return
            acc.counted.add(case.case_id)
            if len(acc.examples) < self.example_cap:
                acc.examples.append(case.case_id)

        acc.weight += 1
        seen = case.timestamp
        if seen and seen > acc.last_seen:
            acc.last_seen = seen


def build_edges(
    cases: Iterable[Any],
    example_cap: int = DEFAULT_EXAMPLE_CAP,
    max_ips_per_case: int = DEFAULT_MAX_IPS_PER_CASE,
) -> List[CorrelationEdge]:
    """Convenience function to build edges for a batch of cases."""
    return EdgeBuilder(example_cap, max_ips_per_case).build(cases)


def edges_for_entity(edges: Iterable[CorrelationEdge], key: str) -> List[CorrelationEdge]:
    """Edges touching an entity, heaviest first."""
    matching = [e for e in edges if e.involves(key)]
    return sorted(matching, key=lambda e: (-e.weight, e.edge_id))


def find_edge(edges: Iterable[CorrelationEdge], a: str, b: str) -> Optional[CorrelationEdge]:
    """Look up the edge for a pair regardless of argument order."""
    edge_id = make_edge_id(a, b)
    for edge in edges:
        if edge.edge_id == edge_id:
            return edge
    return None
