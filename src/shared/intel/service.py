"""Campaign intel service.

Wires the case and entity repositories to the correlation pipeline and
exposes the three data products: the index, the kill chain summary and the
decision list. Each call reads one snapshot from the stores; nothing is
cached between calls.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models.case_record import CaseRecord, coerce_case
from ..models.entity_record import EntityType
from .case_store import CaseStore, InMemoryCaseStore, JsonFileCaseStore
from .config import IntelConfig
from .correlation.campaigns import CampaignCluster, CampaignClusterer
from .correlation.edges import EdgeBuilder
from .decisions import DecisionItem, DecisionRecommender
from .entity_store import (
    EntityStore,
    InMemoryEntityStore,
    JsonFileEntityStore,
    observation_from_case,
    record_observation,
)
from .index import (
    IntelIndex,
    IntelIndexBuilder,
    cases_for_campaign,
    findings_for_cases,
    lateral_for_devices,
    summarize_index,
)
from .kill_chain import KillChainSummarizer, KillChainSummary
from .risk_gates import evaluate_risk_gates
from .search import SearchHit, search_index
from .technique_inference import TechniqueInferencer
from .timeline import TimelineEvent, build_entity_timeline

logger = logging.getLogger(__name__)


def create_stores(config: IntelConfig) -> Tuple[CaseStore, EntityStore]:
    """Build the case and entity stores selected by ``config.store_backend``."""
    if config.store_backend == "dynamodb":
        from .case_store_dynamodb import DynamoDBCaseStore
        from .entity_store_dynamodb import DynamoDBEntityStore

        return (
            DynamoDBCaseStore(table_name=config.cases_table, region=config.region),
            DynamoDBEntityStore(table_name=config.entities_table, region=config.region),
        )

    if config.store_backend == "file":
        return (
            JsonFileCaseStore(config.case_store_path),
            JsonFileEntityStore(config.entity_store_path),
        )

    return InMemoryCaseStore(), InMemoryEntityStore()


class IntelService:
    """Read-side facade over the correlation pipeline.

    Provides methods for:
    - Building the correlated index
    - Summarizing the kill chain for the global or a campaign scope
    - Producing advisory decisions for that scope
    - Searching the index and building entity timelines
    """

    def __init__(
        self,
        case_store: Optional[CaseStore] = None,
        entity_store: Optional[EntityStore] = None,
        config: Optional[IntelConfig] = None,
    ):
        """Initialize IntelService.

        Args:
            case_store: Case repository (defaults to InMemoryCaseStore)
            entity_store: Entity memory repository (defaults to InMemoryEntityStore)
            config: Service configuration
        """
        self.case_store = case_store or InMemoryCaseStore()
        self.entity_store = entity_store or InMemoryEntityStore()
        self.config = config or IntelConfig()

        inferencer = TechniqueInferencer()
        self.index_builder = IntelIndexBuilder(
            edge_builder=EdgeBuilder(
                example_cap=self.config.edge_example_cap,
                max_ips_per_case=self.config.max_ips_per_case,
            ),
            clusterer=CampaignClusterer(
                lateral_risk_bump=self.config.lateral_risk_bump,
                inferencer=inferencer,
            ),
            inferencer=inferencer,
        )
        self.summarizer = KillChainSummarizer(evidence_cap=self.config.evidence_cap)
        self.recommender = DecisionRecommender(
            global_base_risk_cap=self.config.global_base_risk_cap,
        )

    def build_index(self) -> IntelIndex:
        """Read a snapshot from both stores and correlate it."""
        return self.index_builder.build(
            self.case_store.list_cases(),
            self.entity_store.list_entities(),
        )

    def kill_chain(
        self,
        campaign_id: Optional[str] = None,
        index: Optional[IntelIndex] = None,
    ) -> KillChainSummary:
        """Kill chain summary for the global scope or one campaign."""
        index = index or self.build_index()
        _, summary, _ = self._scope(index, campaign_id)
        return summary

    def decisions(
        self,
        campaign_id: Optional[str] = None,
        index: Optional[IntelIndex] = None,
    ) -> List[DecisionItem]:
        """Advisory decisions for the global scope or one campaign."""
        index = index or self.build_index()
        campaign, summary, cases = self._scope(index, campaign_id)
        return self._recommend(index, campaign, summary, cases, campaign_id)

    def report(self, campaign_id: Optional[str] = None) -> Dict[str, Any]:
        """Full JSON-able report for a scope from a single snapshot."""
        index = self.build_index()
        campaign, summary, cases = self._scope(index, campaign_id)
        decisions = self._recommend(index, campaign, summary, cases, campaign_id)

        logger.info(
            f"Intel report ({campaign_id or 'global'}): "
            f"{len(cases)} cases in scope, confidence={summary.confidence}"
        )
        return {
            "scope": "campaign" if campaign_id else "global",
            "campaign": campaign.to_dict() if campaign else None,
            "summary": summarize_index(index),
            "campaigns": [c.to_dict() for c in index.campaigns],
            "kill_chain": summary.to_dict(),
            "risk_gates": evaluate_risk_gates(summary).to_dict(),
            "decisions": [d.to_dict() for d in decisions],
        }

    def search(self, query: str, scope: str = "all", limit: int = 60) -> Tuple[List[SearchHit], Dict[str, int]]:
        return search_index(self.build_index(), query, scope=scope, limit=limit)

    def entity_timeline(self, entity_type: EntityType, entity_id: str) -> List[TimelineEvent]:
        return build_entity_timeline(self.case_store.list_cases(), entity_type, entity_id)

    def save_case(self, case: Any) -> CaseRecord:
        """Save a case and record its entities into memory.

        Entity memory is best-effort: a failure there is logged and the
        saved case is still returned.
        """
        record = coerce_case(case)
        if record is None:
            raise ValueError("case must be a CaseRecord or a dict")

        saved = self.case_store.save_case(record)
        try:
            record_observation(self.entity_store, observation_from_case(saved))
        except Exception as e:
            logger.error(f"Failed to record observation for case {saved.case_id}: {e}")
        return saved

    def _scope(
        self,
        index: IntelIndex,
        campaign_id: Optional[str],
    ) -> Tuple[Optional[CampaignCluster], KillChainSummary, List[CaseRecord]]:
        if not campaign_id:
            cases = list(index.cases)
            summary = self.summarizer.summarize(
                cases, index.technique_findings, index.lateral_findings
            )
            return None, summary, cases

        campaign = index.get_campaign(campaign_id)
        if campaign is None:
            logger.warning(f"Unknown campaign {campaign_id}, using an empty scope")
            return None, self.summarizer.summarize([]), []

        cases = cases_for_campaign(index, campaign)
        findings = findings_for_cases(index, cases) + list(campaign.techniques)
        lateral = lateral_for_devices(index, campaign.devices)
        summary = self.summarizer.summarize(cases, findings, lateral)
        return campaign, summary, cases

    def _recommend(
        self,
        index: IntelIndex,
        campaign: Optional[CampaignCluster],
        summary: KillChainSummary,
        cases: List[CaseRecord],
        campaign_id: Optional[str],
    ) -> List[DecisionItem]:
        if campaign_id and campaign is None:
            # Unknown campaign: score against nothing
            return self.recommender.recommend(IntelIndex(), summary, cases=[])
        return self.recommender.recommend(index, summary, campaign=campaign, cases=cases)
