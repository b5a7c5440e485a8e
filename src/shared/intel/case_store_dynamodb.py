"""DynamoDB implementation of the case store for AWS deployments."""

import json
import logging
from typing import Any, Dict, List, Optional

from ..models.case_record import CaseRecord
from .case_store import CaseStore

logger = logging.getLogger(__name__)


class DynamoDBCaseStore(CaseStore):
    """DynamoDB implementation of case storage.

    Table schema:
    - PK: case_id
    - record: full case serialized as a JSON string (evidence is opaque and
      may hold floats, which DynamoDB will not accept natively)
    - status, device, user, created_at: copied out for console filtering
    """

    def __init__(
        self,
        table_name: str = "campaign-intel-cases",
        region: str = "us-east-1",
    ):
        self.table_name = table_name
        self.region = region
        self._table = None

    def _get_table(self):
        """Lazy initialization of DynamoDB table."""
        if self._table is None:
            import boto3
            dynamodb = boto3.resource("dynamodb", region_name=self.region)
            self._table = dynamodb.Table(self.table_name)
        return self._table

    def _case_to_item(self, case: CaseRecord) -> Dict[str, Any]:
        """Convert CaseRecord to DynamoDB item."""
        item = {
            "case_id": case.case_id,
            "status": case.status.value,
            "record": json.dumps(case.to_dict(), default=str),
        }
        if case.timestamp:
            item["created_at"] = case.timestamp
        if case.device:
            item["device"] = case.device
        if case.user:
            item["user"] = case.user
        return item

    def _item_to_case(self, item: Dict[str, Any]) -> Optional[CaseRecord]:
        """Convert DynamoDB item to CaseRecord."""
        try:
            data = json.loads(item.get("record") or "{}")
        except ValueError:
            logger.warning(f"Skipping case {item.get('case_id')} with corrupt record")
            return None
        if not isinstance(data, dict):
            return None
        data.setdefault("case_id", item.get("case_id", ""))
        return CaseRecord.from_dict(data)

    def list_cases(self) -> List[CaseRecord]:
        """Scan all cases, newest first."""
        try:
            table = self._get_table()
            response = table.scan()
            items = list(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
                items.extend(response.get("Items", []))
        except Exception as e:
            logger.error(f"Error listing cases: {e}")
            return []

        cases = [c for c in (self._item_to_case(i) for i in items) if c is not None]
        return sorted(cases, key=lambda c: (c.timestamp, c.case_id), reverse=True)

    def get_case(self, case_id: str) -> Optional[CaseRecord]:
        """Get a case by id."""
        try:
            response = self._get_table().get_item(Key={"case_id": case_id})
        except Exception as e:
            logger.error(f"Error getting case {case_id}: {e}")
            return None

        item = response.get("Item")
        if not item:
            return None
        return self._item_to_case(item)

    def save_case(self, case: CaseRecord) -> CaseRecord:
        """Put a case."""
        try:
            self._get_table().put_item(Item=self._case_to_item(case))
            logger.debug(f"Saved case {case.case_id}")
            return case
        except Exception as e:
            logger.error(f"Error saving case {case.case_id}: {e}")
            raise

    def delete_case(self, case_id: str) -> bool:
        """Delete a case."""
        try:
            response = self._get_table().delete_item(
                Key={"case_id": case_id},
                ReturnValues="ALL_OLD",
            )
        except Exception as e:
            logger.error(f"Error deleting case {case_id}: {e}")
            raise
        return bool(response.get("Attributes"))
