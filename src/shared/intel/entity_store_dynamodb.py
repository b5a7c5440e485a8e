"""DynamoDB implementation of entity memory storage."""

import logging
from typing import Any, Dict, List, Optional, Union

from ..models.entity_record import EntityRecord, EntityType, entity_key
from .entity_store import EntityStore

logger = logging.getLogger(__name__)


class DynamoDBEntityStore(EntityStore):
    """DynamoDB implementation of entity memory.

    Table schema:
    - PK: entity_key ("<type>:<id>")
    - type, id, risk_score, first_seen, last_seen, case_refs, tags
    """

    def __init__(
        self,
        table_name: str = "campaign-intel-entities",
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

    def _record_to_item(self, record: EntityRecord) -> Dict[str, Any]:
        """Convert EntityRecord to DynamoDB item."""
        item = {
            "entity_key": record.key,
            "type": record.type.value,
            "id": record.id,
            "risk_score": record.risk_score,
            "case_refs": list(record.case_refs),
            "tags": list(record.tags),
        }
        if record.first_seen:
            item["first_seen"] = record.first_seen
        if record.last_seen:
            item["last_seen"] = record.last_seen
        return item

    def list_entities(self) -> List[EntityRecord]:
        """Scan all entity records."""
        try:
            table = self._get_table()
            response = table.scan()
            items = list(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = table.scan(ExclusiveStartKey=response["LastEvaluatedKey"])
                items.extend(response.get("Items", []))
        except Exception as e:
            logger.error(f"Error listing entities: {e}")
            return []

        records = [r for r in (EntityRecord.from_dict(i) for i in items) if r is not None]
        return sorted(records, key=lambda r: r.key)

    def get_entity(self, entity_type: Union[EntityType, str], entity_id: str) -> Optional[EntityRecord]:
        """Get an entity by type and id."""
        key = entity_key(entity_type, entity_id)
        try:
            response = self._get_table().get_item(Key={"entity_key": key})
        except Exception as e:
            logger.error(f"Error getting entity {key}: {e}")
            return None

        item = response.get("Item")
        return EntityRecord.from_dict(item) if item else None

    def _put_entity(self, record: EntityRecord) -> None:
        try:
            self._get_table().put_item(Item=self._record_to_item(record))
            logger.debug(f"Stored entity {record.key} (risk={record.risk_score})")
        except Exception as e:
            logger.error(f"Error storing entity {record.key}: {e}")
            raise

    def clear(self) -> None:
        """Delete every entity record."""
        table = self._get_table()
        deleted = 0
        for record in self.list_entities():
            table.delete_item(Key={"entity_key": record.key})
            deleted += 1
        logger.info(f"Cleared {deleted} entity records")
