"""Configuration for the campaign intel engine.

Holds store selection and the caps used by the correlation and kill chain
stages. Scoring weights are not configurable; they live as named tables in
the modules that use them.
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)


STORE_BACKENDS = ("memory", "file", "dynamodb")

INT_FIELDS = (
    "edge_example_cap",
    "max_ips_per_case",
    "evidence_cap",
    "lateral_risk_bump",
    "global_base_risk_cap",
)


class IntelConfigError(ValueError):
    """Raised when configuration values are invalid."""


@dataclass
class IntelConfig:
    """Configuration for IntelService and its stores.

    Attributes:
        store_backend: One of memory, file, dynamodb
        case_store_path: JSON file for the file-backed case store
        entity_store_path: JSON file for the file-backed entity store
        cases_table: DynamoDB table for cases
        entities_table: DynamoDB table for entity memory
        region: AWS region for DynamoDB
        edge_example_cap: Max example case ids kept per correlation edge
        max_ips_per_case: Max evidence-scanned IPs per case
        evidence_cap: Max techniques / lateral hops listed in kill chain evidence
        lateral_risk_bump: Risk added to campaigns touching a lateral pivot device
        global_base_risk_cap: Cap on base risk for global-scope decisions
        log_level: Logging level name for the CLI
    """

    store_backend: str = "memory"
    case_store_path: str = "data/cases.json"
    entity_store_path: str = "data/entities.json"
    cases_table: str = "campaign-intel-cases"
    entities_table: str = "campaign-intel-entities"
    region: str = "us-east-1"

    edge_example_cap: int = 10
    max_ips_per_case: int = 20
    evidence_cap: int = 25
    lateral_risk_bump: int = 10
    global_base_risk_cap: int = 80

    log_level: str = "INFO"

    def __post_init__(self):
        """Validate field values."""
        for name in INT_FIELDS:
            value = getattr(self, name)
            try:
                setattr(self, name, int(value))
            except (TypeError, ValueError):
                raise IntelConfigError(f"{name} must be an integer, got {value!r}")

        self.store_backend = str(self.store_backend).lower()
        if self.store_backend not in STORE_BACKENDS:
            raise IntelConfigError(
                f"Unknown store backend '{self.store_backend}', "
                f"expected one of {', '.join(STORE_BACKENDS)}"
            )
        if not 5 <= self.edge_example_cap <= 10:
            raise IntelConfigError("edge_example_cap must be between 5 and 10")
        for name in ("max_ips_per_case", "evidence_cap"):
            if getattr(self, name) < 1:
                raise IntelConfigError(f"{name} must be positive")
        if not 0 <= self.global_base_risk_cap <= 100:
            raise IntelConfigError("global_base_risk_cap must be between 0 and 100")

    @classmethod
    def from_environment(cls) -> "IntelConfig":
        """Create config from environment variables."""
        return cls(
            store_backend=os.environ.get("INTEL_STORE_BACKEND", "memory"),
            case_store_path=os.environ.get("INTEL_CASE_STORE_PATH", "data/cases.json"),
            entity_store_path=os.environ.get("INTEL_ENTITY_STORE_PATH", "data/entities.json"),
            cases_table=os.environ.get("INTEL_CASES_TABLE", "campaign-intel-cases"),
            entities_table=os.environ.get("INTEL_ENTITIES_TABLE", "campaign-intel-entities"),
            region=os.environ.get("AWS_REGION", "us-east-1"),
            edge_example_cap=os.environ.get("INTEL_EDGE_EXAMPLE_CAP", "10"),
            max_ips_per_case=os.environ.get("INTEL_MAX_IPS_PER_CASE", "20"),
            evidence_cap=os.environ.get("INTEL_EVIDENCE_CAP", "25"),
            lateral_risk_bump=os.environ.get("INTEL_LATERAL_RISK_BUMP", "10"),
            global_base_risk_cap=os.environ.get("INTEL_GLOBAL_BASE_RISK_CAP", "80"),
            log_level=os.environ.get("INTEL_LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "IntelConfig":
        """Create from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        data = data or {}
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            logger.warning(f"Ignoring unknown intel config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "IntelConfig":
        """Load configuration from a YAML file.

        The file may hold the settings at top level or under an ``intel`` key.
        """
        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise IntelConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise IntelConfigError(f"Expected a mapping in {path}")
        if isinstance(data.get("intel"), dict):
            data = data["intel"]
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
