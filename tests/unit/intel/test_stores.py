"""
Unit tests for case and entity stores.

DynamoDB stores run against moto.
"""

import json

import pytest

from src.shared.intel.case_store import InMemoryCaseStore, JsonFileCaseStore
from src.shared.intel.case_store_dynamodb import DynamoDBCaseStore
from src.shared.intel.entity_store import (
    InMemoryEntityStore,
    JsonFileEntityStore,
    Observation,
    extract_best_ip,
    observation_from_case,
    record_observation,
)
from src.shared.intel.entity_store_dynamodb import DynamoDBEntityStore
from src.shared.models.case_record import CaseStatus
from src.shared.models.entity_record import EntityType
from tests.fixtures.intel import create_case, create_entity


class TestInMemoryCaseStore:
    """Tests for InMemoryCaseStore."""

    def test_save_newest_first(self):
        store = InMemoryCaseStore()
        store.save_case(create_case("C-1"))
        store.save_case(create_case("C-2"))

        assert [c.case_id for c in store.list_cases()] == ["C-2", "C-1"]

    def test_save_replaces_same_id(self):
        store = InMemoryCaseStore([create_case("C-1", title="old")])
        store.save_case(create_case("C-1", title="new"))

        assert len(store.list_cases()) == 1
        assert store.get_case("C-1").title == "new"

    def test_update_case_keeps_id_and_position(self):
        store = InMemoryCaseStore([create_case("C-2"), create_case("C-1")])

        updated = store.update_case("C-1", {"case_id": "X", "device": "WS-09"})

        assert updated.case_id == "C-1"
        assert updated.device == "WS-09"
        assert [c.case_id for c in store.list_cases()] == ["C-2", "C-1"]

    def test_update_missing_returns_none(self):
        assert InMemoryCaseStore().update_case("nope", {"device": "x"}) is None

    def test_set_status(self):
        store = InMemoryCaseStore([create_case("C-1")])
        assert store.set_status("C-1", "closed").status == CaseStatus.CLOSED

    def test_delete(self):
        store = InMemoryCaseStore([create_case("C-1")])

        assert store.delete_case("C-1") is True
        assert store.delete_case("C-1") is False
        assert store.list_cases() == []


class TestJsonFileCaseStore:
    """Tests for JsonFileCaseStore."""

    def test_missing_file_is_empty(self, tmp_path):
        assert JsonFileCaseStore(tmp_path / "cases.json").list_cases() == []

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "cases.json"
        path.write_text("{not json")
        assert JsonFileCaseStore(path).list_cases() == []

    def test_wrong_shape_is_empty(self, tmp_path):
        path = tmp_path / "cases.json"
        path.write_text(json.dumps({"cases": []}))
        assert JsonFileCaseStore(path).list_cases() == []

    def test_round_trip(self, tmp_path):
        store = JsonFileCaseStore(tmp_path / "data" / "cases.json")
        store.save_case(create_case("C-1", device="WS-01", evidence=[{"RemoteIP": "10.0.0.5"}]))

        reloaded = JsonFileCaseStore(tmp_path / "data" / "cases.json").get_case("C-1")

        assert reloaded.device == "WS-01"
        assert reloaded.evidence == [{"RemoteIP": "10.0.0.5"}]


class TestEntityStores:
    """Tests for in-memory and file entity stores."""

    def test_upsert_merges(self):
        store = InMemoryEntityStore()
        store.upsert_entity(create_entity(EntityType.USER, "bob", 10, ["C-1"], ["case"]))
        merged = store.upsert_entity(create_entity(EntityType.USER, "bob", 30, ["C-2"], ["open"]))

        assert merged.risk_score == 30
        assert merged.case_refs == ("C-1", "C-2")
        assert merged.tags == ("case", "open")
        assert len(store.list_entities()) == 1

    def test_snapshot_keyed(self, entities):
        snapshot = InMemoryEntityStore(entities).snapshot()
        assert set(snapshot) == {"device:WS-01", "user:jsmith", "ip:203.0.113.7"}

    def test_file_wrong_shape_is_empty(self, tmp_path):
        path = tmp_path / "entities.json"
        path.write_text(json.dumps([1, 2, 3]))
        assert JsonFileEntityStore(path).list_entities() == []

    def test_file_round_trip_and_clear(self, tmp_path):
        store = JsonFileEntityStore(tmp_path / "entities.json")
        store.upsert_entity(create_entity(EntityType.DEVICE, "WS-01", 40))

        assert store.get_entity("device", "WS-01").risk_score == 40

        store.clear()
        assert store.list_entities() == []


class TestObservations:
    """Tests for observation recording."""

    def test_extract_best_ip_field_order(self):
        evidence = [{"Other": 1}, {"SourceIP": "10.0.0.2", "RemoteIP": "10.0.0.1"}]
        assert extract_best_ip(evidence) == "10.0.0.1"

    def test_extract_best_ip_skips_null_strings(self):
        assert extract_best_ip([{"RemoteIP": "null"}, {"ClientIP": "10.0.0.3"}]) == "10.0.0.3"
        assert extract_best_ip("not a list") == ""

    def test_observation_from_case(self):
        case = create_case("C-1", device="WS-01", user="bob", evidence=[{"IpAddress": "10.0.0.4"}])

        observation = observation_from_case(case)

        assert observation.ip == "10.0.0.4"
        assert observation.tags == ["case", "open"]
        assert observation.risk_bump == 10

    def test_record_observation_bumps_and_clamps(self):
        store = InMemoryEntityStore([create_entity(EntityType.USER, "bob", 95)])
        observation = Observation(
            case_id="C-1", device="WS-01", user="bob", risk_bump=10,
            observed_at="2026-03-01T00:00:00Z", tags=["case"],
        )

        updated = record_observation(store, observation)

        assert len(updated) == 2
        assert store.get_entity(EntityType.USER, "bob").risk_score == 100
        device = store.get_entity(EntityType.DEVICE, "WS-01")
        assert device.risk_score == 10
        assert device.case_refs == ("C-1",)
        assert device.first_seen == "2026-03-01T00:00:00Z"


@pytest.fixture
def dynamodb_tables(dynamodb_resource):
    """Create moto DynamoDB tables for both stores."""
    dynamodb_resource.create_table(
        TableName="campaign-intel-cases",
        KeySchema=[{"AttributeName": "case_id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "case_id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    dynamodb_resource.create_table(
        TableName="campaign-intel-entities",
        KeySchema=[{"AttributeName": "entity_key", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "entity_key", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    return dynamodb_resource


class TestDynamoDBCaseStore:
    """Tests for DynamoDBCaseStore."""

    def test_save_get_list_delete(self, dynamodb_tables):
        store = DynamoDBCaseStore()
        store.save_case(create_case("C-1", created_at="2026-03-01T00:00:00Z", evidence=[{"score": 0.7}]))
        store.save_case(create_case("C-2", created_at="2026-03-02T00:00:00Z", device="WS-01"))

        assert store.get_case("C-1").evidence == [{"score": 0.7}]
        assert [c.case_id for c in store.list_cases()] == ["C-2", "C-1"]
        assert store.delete_case("C-1") is True
        assert store.delete_case("C-1") is False
        assert store.get_case("C-1") is None

    def test_update_case(self, dynamodb_tables):
        store = DynamoDBCaseStore()
        store.save_case(create_case("C-1"))

        store.set_status("C-1", CaseStatus.CONTAINED)

        assert store.get_case("C-1").status == CaseStatus.CONTAINED

    def test_missing_table_degrades_to_empty(self, dynamodb_tables):
        store = DynamoDBCaseStore(table_name="does-not-exist")
        assert store.list_cases() == []
        assert store.get_case("C-1") is None


class TestDynamoDBEntityStore:
    """Tests for DynamoDBEntityStore."""

    def test_upsert_and_list(self, dynamodb_tables):
        store = DynamoDBEntityStore()
        store.upsert_entity(create_entity(EntityType.USER, "bob", 20, ["C-1"], ["case"]))
        store.upsert_entity(create_entity(EntityType.USER, "bob", 35, ["C-2"], ["open"]))
        store.upsert_entity(create_entity(EntityType.DEVICE, "WS-01", 5))

        bob = store.get_entity(EntityType.USER, "bob")

        assert bob.risk_score == 35
        assert bob.case_refs == ("C-1", "C-2")
        assert [e.key for e in store.list_entities()] == ["device:WS-01", "user:bob"]

    def test_clear(self, dynamodb_tables):
        store = DynamoDBEntityStore()
        store.upsert_entity(create_entity(EntityType.IP, "10.0.0.1", 5))

        store.clear()

        assert store.list_entities() == []
