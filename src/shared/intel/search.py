"""Token search across an intel index."""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Tuple

from .index import IntelIndex

logger = logging.getLogger(__name__)


class SearchScope(Enum):
    ALL = "all"
    CASES = "cases"
    ENTITIES = "entities"
    CAMPAIGNS = "campaigns"
    EDGES = "edges"


MAX_QUERY_TOKENS = 20
TOKEN_POINTS = 10
EARLY_MATCH_POINTS = 15
EARLY_MATCH_WINDOW = 20
MIN_LIMIT = 5
MAX_LIMIT = 200
DEFAULT_LIMIT = 60


@dataclass(frozen=True)
class SearchHit:
    """A single search result."""

    kind: str  # case, entity, campaign, edge
    id: str
    title: str
    subtitle: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind,
            "id": self.id,
            "title": self.title,
            "subtitle": self.subtitle,
            "score": self.score,
        }


def tokenize(query: str) -> List[str]:
    """Split a query on whitespace and commas, lower-cased, at most 20 tokens."""
    tokens = [t for t in re.split(r"[\s,]+", str(query or "").lower().strip()) if t]
    return tokens[:MAX_QUERY_TOKENS]


def score_match(hay: str, tokens: List[str]) -> int:
    """+10 per token present, +15 more when it appears near the start."""
    score = 0
    for token in tokens:
        idx = hay.find(token)
        if idx >= 0:
            score += TOKEN_POINTS
            if idx < EARLY_MATCH_WINDOW:
                score += EARLY_MATCH_POINTS
    return score


def _hay(parts: List[Any]) -> str:
    return " | ".join(str(p if p is not None else "") for p in parts).lower().strip()


def _parse_scope(scope: Any) -> SearchScope:
    if isinstance(scope, SearchScope):
        return scope
    try:
        return SearchScope(str(scope or "all").lower())
    except ValueError:
        logger.warning(f"Unknown search scope {scope!r}, searching all")
        return SearchScope.ALL


def search_index(
    index: IntelIndex,
    query: str,
    scope: Any = SearchScope.ALL,
    limit: int = DEFAULT_LIMIT,
) -> Tuple[List[SearchHit], Dict[str, int]]:
    """Search cases, entities, campaigns and edges.

    Every query token must appear in a record for it to match.

    Args:
        index: Index to search
        query: Free-text query
        scope: SearchScope or its string value
        limit: Maximum hits, clamped to [5, 200]

    Returns:
        Tuple of (hits sorted by score desc then id, per-kind totals)
    """
    tokens = tokenize(query)
    if not tokens:
        return [], {}

    scope = _parse_scope(scope)
    limit = max(MIN_LIMIT, min(MAX_LIMIT, int(limit)))
    hits: List[SearchHit] = []

    def wanted(kind: SearchScope) -> bool:
        return scope in (SearchScope.ALL, kind)

    if wanted(SearchScope.CASES):
        for case in index.cases:
            hay = _hay([
                case.case_id, case.title, case.status.value, case.device, case.user,
                case.time, case.created_at, case.baseline_note,
                *[f if isinstance(f, str) else json.dumps(f, default=str) for f in case.findings],
                *case.notes,
                json.dumps(case.evidence, default=str),
            ])
            if not all(t in hay for t in tokens):
                continue
            hits.append(SearchHit(
                kind="case",
                id=case.case_id,
                title=f"{case.case_id}: {case.title}",
                subtitle=f"status:{case.status.value} | device:{case.device} | user:{case.user} | created:{case.created_at}",
                score=score_match(hay, tokens),
            ))

    if wanted(SearchScope.ENTITIES):
        for key, entity in index.entities.items():
            hay = _hay([
                entity.type.value, entity.id, entity.risk_score, entity.first_seen,
                entity.last_seen, " ".join(entity.tags), " ".join(entity.case_refs),
            ])
            if not all(t in hay for t in tokens):
                continue
            hits.append(SearchHit(
                kind="entity",
                id=key,
                title=key,
                subtitle=f"risk:{entity.risk_score} | cases:{len(entity.case_refs)} | last:{entity.last_seen}",
                score=score_match(hay, tokens) + min(25, entity.risk_score / 2),
            ))

    if wanted(SearchScope.CAMPAIGNS):
        for campaign in index.campaigns:
            hay = _hay([
                campaign.campaign_id, campaign.title, campaign.risk, campaign.start,
                campaign.end, " ".join(campaign.tags), " ".join(campaign.case_ids),
                " ".join(
                    f"{t.technique.id} {t.technique.name} {t.technique.tactic} {t.match}"
                    for t in campaign.techniques
                ),
            ])
            if not all(t in hay for t in tokens):
                continue
            hits.append(SearchHit(
                kind="campaign",
                id=campaign.campaign_id,
                title=f"{campaign.campaign_id}: {campaign.title}",
                subtitle=f"risk:{campaign.risk} | cases:{len(campaign.case_ids)} | entities:{len(campaign.entities)}",
                score=score_match(hay, tokens) + min(30, campaign.risk / 2),
            ))

    if wanted(SearchScope.EDGES):
        for edge in index.edges:
            hay = _hay([edge.edge_id, edge.a, edge.b, edge.weight, edge.last_seen, " ".join(edge.examples)])
            if not all(t in hay for t in tokens):
                continue
            hits.append(SearchHit(
                kind="edge",
                id=edge.edge_id,
                title=f"{edge.a} <-> {edge.b}",
                subtitle=f"weight:{edge.weight} | last:{edge.last_seen} | examples:{', '.join(edge.examples)}",
                score=score_match(hay, tokens) + min(30, edge.weight * 4),
            ))

    hits.sort(key=lambda h: (-h.score, h.id))
    limited = hits[:limit]

    totals: Dict[str, int] = {}
    for hit in limited:
        totals[hit.kind] = totals.get(hit.kind, 0) + 1

    logger.debug(f"Search {tokens} ({scope.value}): {len(hits)} hits, returning {len(limited)}")
    return limited, totals
