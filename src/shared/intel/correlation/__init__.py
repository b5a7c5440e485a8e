"""Entity correlation and campaign clustering.

This package turns a case/entity snapshot into graph-level intel:
- Co-occurrence edges between devices, users and IPs
- Union-find campaign clusters with risk rollups
- Per-user lateral movement (device pivot) findings
"""

from .edges import (
    CorrelationEdge,
    EdgeBuilder,
    build_edges,
    canonical_pair,
    edges_for_entity,
    extract_ips,
    find_edge,
    make_edge_id,
)
from .lateral_movement import (
    LateralFinding,
    LateralMovementDetector,
    detect_lateral_movement,
    sort_chronologically,
)
from .campaigns import (
    CampaignCluster,
    CampaignClusterer,
    DisjointSet,
    build_campaigns,
    get_campaign_by_id,
    infer_case_tags,
)

__all__ = [
    "CorrelationEdge",
    "EdgeBuilder",
    "build_edges",
    "canonical_pair",
    "edges_for_entity",
    "extract_ips",
    "find_edge",
    "make_edge_id",
    "LateralFinding",
    "LateralMovementDetector",
    "detect_lateral_movement",
    "sort_chronologically",
    "CampaignCluster",
    "CampaignClusterer",
    "DisjointSet",
    "build_campaigns",
    "get_campaign_by_id",
    "infer_case_tags",
]
