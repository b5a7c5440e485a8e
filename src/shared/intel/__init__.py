"""Campaign intel engine.

Correlates cases and entity memory into campaigns, profiles their kill
chain progression and produces advisory-only recommendations.
"""

from .case_store import CaseStore, InMemoryCaseStore, JsonFileCaseStore
from .config import IntelConfig, IntelConfigError, STORE_BACKENDS
from .correlation import (
    CampaignCluster,
    CampaignClusterer,
    CorrelationEdge,
    DisjointSet,
    EdgeBuilder,
    LateralFinding,
    LateralMovementDetector,
    build_campaigns,
    build_edges,
    detect_lateral_movement,
    edges_for_entity,
    get_campaign_by_id,
    infer_case_tags,
)
from .decisions import (
    DecisionItem,
    DecisionPriority,
    DecisionRecommender,
    PRIORITY_THRESHOLDS,
    build_decisions,
    priority_for_score,
)
from .entity_store import (
    EntityStore,
    InMemoryEntityStore,
    JsonFileEntityStore,
    Observation,
    observation_from_case,
    record_observation,
)
from .index import IntelIndex, IntelIndexBuilder, get_edges_for_entity, summarize_index
from .kill_chain import (
    KILL_CHAIN_SEQUENCE,
    KillChainStage,
    KillChainSummarizer,
    KillChainSummary,
    summarize_kill_chain,
)
from .risk_gates import GateSeverity, RiskGateResult, evaluate_risk_gates
from .search import SearchHit, SearchScope, search_index
from .service import IntelService, create_stores
from .technique_inference import (
    MITRE_LIBRARY,
    TECHNIQUE_RULES,
    MitreTechnique,
    TechniqueFinding,
    TechniqueInferencer,
    distinct_technique_ids,
)
from .timeline import TimelineEvent, build_entity_timeline

__all__ = [
    "CaseStore",
    "InMemoryCaseStore",
    "JsonFileCaseStore",
    "IntelConfig",
    "IntelConfigError",
    "STORE_BACKENDS",
    "CampaignCluster",
    "CampaignClusterer",
    "CorrelationEdge",
    "DisjointSet",
    "EdgeBuilder",
    "LateralFinding",
    "LateralMovementDetector",
    "build_campaigns",
    "build_edges",
    "detect_lateral_movement",
    "edges_for_entity",
    "get_campaign_by_id",
    "infer_case_tags",
    "DecisionItem",
    "DecisionPriority",
    "DecisionRecommender",
    "PRIORITY_THRESHOLDS",
    "build_decisions",
    "priority_for_score",
    "EntityStore",
    "InMemoryEntityStore",
    "JsonFileEntityStore",
    "Observation",
    "observation_from_case",
    "record_observation",
    "IntelIndex",
    "IntelIndexBuilder",
    "get_edges_for_entity",
    "summarize_index",
    "KILL_CHAIN_SEQUENCE",
    "KillChainStage",
    "KillChainSummarizer",
    "KillChainSummary",
    "summarize_kill_chain",
    "GateSeverity",
    "RiskGateResult",
    "evaluate_risk_gates",
    "SearchHit",
    "SearchScope",
    "search_index",
    "IntelService",
    "create_stores",
    "MITRE_LIBRARY",
    "TECHNIQUE_RULES",
    "MitreTechnique",
    "TechniqueFinding",
    "TechniqueInferencer",
    "distinct_technique_ids",
    "TimelineEvent",
    "build_entity_timeline",
]
