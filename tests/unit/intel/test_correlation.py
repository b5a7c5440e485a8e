"""
Unit tests for correlation edges, campaign clustering and lateral movement.
"""

import pytest

from src.shared.intel.correlation import (
    CampaignClusterer,
    DisjointSet,
    EdgeBuilder,
    LateralFinding,
    LateralMovementDetector,
    build_edges,
    canonical_pair,
    edges_for_entity,
    extract_ips,
    find_edge,
    get_campaign_by_id,
    infer_case_tags,
    sort_chronologically,
)
from src.shared.models.entity_record import EntityType
from tests.fixtures.intel import create_case, create_entity


class TestExtractIps:
    """Tests for IPv4 extraction from evidence."""

    def test_unique_first_seen_order(self):
        evidence = [{"src": "10.0.0.2"}, {"dst": "10.0.0.1", "again": "10.0.0.2"}]
        assert extract_ips(evidence) == ["10.0.0.2", "10.0.0.1"]

    def test_capped(self):
        evidence = [{"ip": f"10.0.0.{i}"} for i in range(30)]
        assert len(extract_ips(evidence)) == 20
        assert len(extract_ips(evidence, limit=3)) == 3

    def test_ignores_invalid_octets(self):
        assert extract_ips([{"v": "999.1.1.1"}]) == []


class TestEdgeBuilder:
    """Tests for co-occurrence edges."""

    def test_canonical_regardless_of_order(self):
        assert canonical_pair("user:b", "device:a") == ("device:a", "user:b")

        edges = build_edges([create_case("C-1", device="WS-01", user="bob")])
        assert len(edges) == 1
        assert find_edge(edges, "user:bob", "device:WS-01") is find_edge(edges, "device:WS-01", "user:bob")
        assert edges[0].edge_id == "device:WS-01|user:bob"

    def test_weight_counts_distinct_cases(self):
        cases = [
            create_case("C-1", device="WS-01", user="bob"),
            create_case("C-2", device="WS-01", user="bob"),
            create_case("C-2", device="WS-01", user="bob"),
        ]

        edges = build_edges(cases)

        assert len(edges) == 1
        assert edges[0].weight == 2
        assert edges[0].examples == ("C-1", "C-2")

    def test_evidence_ips_form_pairs(self):
        case = create_case("C-1", device="WS-01", user="bob", evidence=[{"RemoteIP": "198.51.100.4"}])

        ids = {e.edge_id for e in build_edges([case])}

        assert ids == {
            "device:WS-01|user:bob",
            "device:WS-01|ip:198.51.100.4",
            "ip:198.51.100.4|user:bob",
        }

    def test_examples_capped(self):
        cases = [create_case(f"C-{i:02d}", device="WS-01", user="bob") for i in range(15)]

        edge = EdgeBuilder(example_cap=5).build(cases)[0]

        assert edge.weight == 15
        assert len(edge.examples) == 5

    def test_last_seen_is_max_and_ignores_missing(self):
        cases = [
            create_case("C-1", device="WS-01", user="bob", created_at="2026-03-02T00:00:00Z"),
            create_case("C-2", device="WS-01", user="bob", created_at="2026-03-01T00:00:00Z"),
            create_case("C-3", device="WS-01", user="bob"),
        ]
        assert build_edges(cases)[0].last_seen == "2026-03-02T00:00:00Z"

    def test_sorted_by_weight_then_id(self, all_cases):
        edges = build_edges(all_cases)

        assert edges[0].edge_id == "ip:203.0.113.7|user:jsmith"
        assert edges[0].weight == 2
        weights = [e.weight for e in edges]
        assert weights == sorted(weights, reverse=True)

    def test_case_without_identifiers_contributes_nothing(self):
        assert build_edges([create_case("C-1")]) == []

    def test_edges_for_entity(self, all_cases):
        edges = edges_for_entity(build_edges(all_cases), "user:amiller")
        assert [e.edge_id for e in edges] == ["device:LAPTOP-9|user:amiller"]


class TestDisjointSet:
    """Tests for the union-find arena."""

    def test_union_and_find(self):
        dsu = DisjointSet()
        dsu.union("a", "b")
        dsu.union("c", "d")
        dsu.union("b", "d")
        dsu.add("e")

        assert dsu.find("a") == dsu.find("c")
        assert dsu.find("e") == "e"
        assert dsu.groups() == [["a", "b", "c", "d"], ["e"]]

    def test_instances_are_independent(self):
        first = DisjointSet()
        first.union("a", "b")
        second = DisjointSet()

        assert len(second) == 0


class TestCampaignClusterer:
    """Tests for campaign clustering."""

    def test_clusters_partition_entities(self, all_cases, entities):
        campaigns = CampaignClusterer().build(all_cases, entities)

        members = [key for c in campaigns for key in c.entities]
        assert len(members) == len(set(members))
        assert set(members) == {
            "device:WS-01", "device:WS-02", "device:SRV-DB", "ip:203.0.113.7",
            "user:jsmith", "device:LAPTOP-9", "user:amiller",
        }

    def test_shared_case_ref_joins_cluster(self):
        entities = [
            create_entity(EntityType.IP, "10.0.0.1", case_refs=["C-9"]),
            create_entity(EntityType.USER, "carol", case_refs=["C-9"]),
            create_entity(EntityType.DEVICE, "WS-77", case_refs=["C-8"]),
        ]

        campaigns = CampaignClusterer().build([], entities)

        grouped = [set(c.entities) for c in campaigns]
        assert {"ip:10.0.0.1", "user:carol"} in grouped
        assert {"device:WS-77"} in grouped

    def test_memory_ref_joins_case_entities(self):
        entities = [create_entity(EntityType.IP, "10.0.0.5", case_refs=["C-1"])]
        cases = [create_case("C-1", device="D1", user="u1")]

        campaigns = CampaignClusterer().build(cases, entities)

        assert len(campaigns) == 1
        assert set(campaigns[0].entities) == {"ip:10.0.0.5", "device:D1", "user:u1"}
        assert campaigns[0].case_ids == ("C-1",)

    def test_each_case_in_one_campaign(self, all_cases, entities):
        extra = entities + [create_entity(EntityType.IP, "198.51.100.4", case_refs=["CASE-100"])]

        campaigns = CampaignClusterer().build(all_cases, extra)

        case_ids = [case_id for c in campaigns for case_id in c.case_ids]
        assert sorted(case_ids) == ["CASE-001", "CASE-002", "CASE-003", "CASE-100"]

    def test_risk_rollup_and_lateral_bump(self, pivot_cases, entities):
        lateral = [LateralFinding("WS-01", "WS-02", "jsmith")]

        plain = CampaignClusterer().build(pivot_cases, entities)
        bumped = CampaignClusterer().build(pivot_cases, entities, lateral)

        # max risk 55 + 2 x 5 members
        assert plain[0].risk == 65
        assert bumped[0].risk == 75

    def test_risk_clamped(self):
        entities = [create_entity(EntityType.USER, "root", risk_score=100, case_refs=["C-1"])]
        campaigns = CampaignClusterer().build([], entities)
        assert campaigns[0].risk == 100

    def test_title_from_campaign_tag(self, pivot_cases, entities):
        campaign = CampaignClusterer().build(pivot_cases, entities)[0]

        assert campaign.title == "campaign:bruteforce"
        assert "tactic:credential-access" in campaign.tags
        assert "T1110" in [t.technique_id for t in campaign.techniques]

    def test_title_from_top_member(self):
        cases = [create_case("C-1", device="LAPTOP-9", user="amiller", title="Routine check")]
        campaign = CampaignClusterer().build(cases, [])[0]
        assert campaign.title == "Cluster: device LAPTOP-9"

    def test_case_ids_and_time_bounds(self, pivot_cases, entities):
        campaign = CampaignClusterer().build(pivot_cases, entities)[0]

        assert campaign.case_ids == ("CASE-001", "CASE-002", "CASE-003")
        assert campaign.start == "2026-03-01T08:00:00Z"
        assert campaign.end == "2026-03-01T10:00:00Z"

    def test_order_independent(self, all_cases, entities):
        forward = CampaignClusterer().build(all_cases, entities)
        backward = CampaignClusterer().build(list(reversed(all_cases)), list(reversed(entities)))

        assert [c.to_dict() for c in forward] == [c.to_dict() for c in backward]

    def test_ids_follow_risk_order(self, all_cases, entities):
        campaigns = CampaignClusterer().build(all_cases, entities)

        assert [c.campaign_id for c in campaigns] == ["CMP-1", "CMP-2"]
        assert campaigns[0].risk >= campaigns[1].risk
        assert get_campaign_by_id(campaigns, "CMP-2").title == "Cluster: device LAPTOP-9"
        assert get_campaign_by_id(campaigns, "CMP-9") is None

    def test_empty_snapshot(self):
        assert CampaignClusterer().build([], []) == []


class TestInferCaseTags:
    """Tests for case hint tags."""

    def test_bruteforce_and_ssh(self):
        case = create_case("C-1", title="SSH brute force", evidence=[{"proc": "sshd"}])
        tags = infer_case_tags(case)

        assert "campaign:bruteforce" in tags
        assert "surface:ssh" in tags
        assert "tactic:lateral-movement" in tags

    def test_no_hints(self):
        assert infer_case_tags(create_case("C-1", title="Routine check")) == []


class TestLateralMovement:
    """Tests for lateral movement detection."""

    def test_three_devices_two_findings(self):
        cases = [
            create_case("C-1", device="D1", user="u", created_at="2026-01-01T01:00:00Z"),
            create_case("C-2", device="D2", user="u", created_at="2026-01-01T02:00:00Z"),
            create_case("C-3", device="D3", user="u", created_at="2026-01-01T03:00:00Z"),
        ]

        findings = LateralMovementDetector().detect(cases)

        assert findings == [
            LateralFinding("D1", "D2", "u"),
            LateralFinding("D2", "D3", "u"),
        ]

    def test_repeated_device_no_finding(self):
        cases = [
            create_case("C-1", device="D1", user="u"),
            create_case("C-2", device="D1", user="u"),
        ]
        assert LateralMovementDetector().detect(cases) == []

    def test_return_to_known_device_no_finding(self):
        cases = [
            create_case("C-1", device="D1", user="u"),
            create_case("C-2", device="D2", user="u"),
            create_case("C-3", device="D1", user="u"),
        ]
        assert len(LateralMovementDetector().detect(cases)) == 1

    def test_users_tracked_separately(self):
        cases = [
            create_case("C-1", device="D1", user="a"),
            create_case("C-2", device="D2", user="b"),
        ]
        assert LateralMovementDetector().detect(cases) == []

    def test_skips_cases_missing_user_or_device(self):
        cases = [
            create_case("C-1", device="D1", user="u"),
            create_case("C-2", device="D2"),
            create_case("C-3", user="u"),
        ]
        assert LateralMovementDetector().detect(cases) == []

    def test_sort_chronologically(self):
        cases = [
            create_case("C-2", created_at="2026-01-02"),
            create_case("C-1", created_at="2026-01-01"),
        ]
        assert [c.case_id for c in sort_chronologically(cases)] == ["C-1", "C-2"]

    def test_to_dict(self):
        assert LateralFinding("D1", "D2", "u").to_dict() == {"from": "D1", "to": "D2", "user": "u"}
