"""
Unit tests for kill chain summarization and risk gates.
"""

import pytest

from src.shared.intel.correlation import LateralFinding
from src.shared.intel.kill_chain import (
    KILL_CHAIN_SEQUENCE,
    KillChainEvidence,
    KillChainStage,
    KillChainSummarizer,
    KillChainSummary,
    predict_next_stages,
    stage_for_technique,
)
from src.shared.intel.risk_gates import (
    INFERENCE_ONLY_REMINDER,
    GateSeverity,
    evaluate_risk_gates,
)
from src.shared.intel.technique_inference import TechniqueInferencer
from tests.fixtures.intel import create_case


@pytest.fixture
def summarizer():
    return KillChainSummarizer()


class TestStageMapping:
    """Tests for technique to stage mapping."""

    def test_sequence_has_thirteen_stages(self):
        assert len(KILL_CHAIN_SEQUENCE) == 13
        assert KILL_CHAIN_SEQUENCE[0] == KillChainStage.RECONNAISSANCE
        assert KILL_CHAIN_SEQUENCE[-1] == KillChainStage.IMPACT

    @pytest.mark.parametrize("technique_id,stage", [
        ("T1110", KillChainStage.CREDENTIAL_ACCESS),
        ("T1110.003", KillChainStage.CREDENTIAL_ACCESS),
        ("T1059.001", KillChainStage.EXECUTION),
        ("T1021", KillChainStage.LATERAL_MOVEMENT),
        ("T1041", KillChainStage.EXFILTRATION),
    ])
    def test_prefix_mapping(self, technique_id, stage):
        assert stage_for_technique(technique_id) == stage

    def test_unknown_technique_ignored(self):
        assert stage_for_technique("T9999") is None
        assert stage_for_technique("") is None


class TestSummarize:
    """Tests for KillChainSummarizer.summarize."""

    def test_zero_cases_empty_summary(self, summarizer):
        summary = summarizer.summarize([])

        assert summary.stages == ()
        assert summary.current_stage is None
        assert summary.next_likely == ()
        assert summary.confidence == 0

    def test_empty_classmethod(self):
        data = KillChainSummary.empty().to_dict()
        assert data["stages"] == []
        assert data["current_stage"] is None
        assert data["confidence"] == 0

    def test_brute_evidence_yields_credential_access(self, summarizer):
        case = create_case("C-1", title="Alert", evidence=[{"msg": "brute"}])
        findings = TechniqueInferencer().infer_case(case)

        summary = summarizer.summarize([case], findings)

        assert "T1110" in summary.evidence.technique_ids
        assert KillChainStage.CREDENTIAL_ACCESS in summary.stages

    def test_text_fallback_without_techniques(self, summarizer):
        case = create_case("C-1", title="Ransom note found")

        summary = summarizer.summarize([case])

        assert summary.stages == (KillChainStage.IMPACT,)
        assert summary.current_stage == KillChainStage.IMPACT

    def test_lateral_forces_stage(self, summarizer):
        summary = summarizer.summarize([], lateral_findings=[LateralFinding("D1", "D2", "u")])

        assert summary.stages == (KillChainStage.LATERAL_MOVEMENT,)
        assert summary.lateral_hop_count == 1

    def test_stages_sorted_canonically(self, summarizer):
        summary = summarizer.summarize([], ["T1041", "T1110", "T1059"])

        assert summary.stages == (
            KillChainStage.EXECUTION,
            KillChainStage.CREDENTIAL_ACCESS,
            KillChainStage.EXFILTRATION,
        )
        assert summary.current_stage == KillChainStage.EXFILTRATION

    def test_confidence_formula(self, summarizer):
        cases = [create_case("C-1", title="quiet"), create_case("C-2", title="quiet")]
        lateral = [LateralFinding("D1", "D2", "u")]

        summary = summarizer.summarize(cases, ["T1110", "T1021"], lateral)

        # 2 cases (8) + 2 techniques (20) + 2 stages (10) + lateral (20)
        assert summary.confidence == 58

    def test_single_stage_penalty(self, summarizer):
        summary = summarizer.summarize([create_case("C-1", title="quiet")], ["T1110"])

        # 4 + 10 + 5 - 10
        assert summary.confidence == 9

    def test_confidence_capped(self, summarizer):
        cases = [create_case(f"C-{i}", title="quiet") for i in range(10)]
        techniques = ["T1566", "T1059", "T1547", "T1068", "T1562", "T1110", "T1087", "T1021"]
        lateral = [LateralFinding("D1", "D2", "u")]

        summary = summarizer.summarize(cases, techniques, lateral)

        assert summary.confidence == 100

    def test_restrict_devices(self, summarizer):
        cases = [
            create_case("C-1", device="WS-01", title="ransom"),
            create_case("C-2", device="WS-02", title="phish"),
        ]

        summary = summarizer.summarize(cases, restrict_devices=["WS-02"])

        assert summary.stages == (KillChainStage.INITIAL_ACCESS,)

    def test_evidence_capped(self):
        lateral = [LateralFinding(f"D{i}", f"D{i + 1}", "u") for i in range(10)]

        summary = KillChainSummarizer(evidence_cap=3).summarize([], lateral_findings=lateral)

        assert len(summary.evidence.lateral_moves) == 3
        assert summary.lateral_hop_count == 10

    def test_signals_explain_inputs(self, summarizer):
        summary = summarizer.summarize([create_case("C-1", title="quiet")])
        assert "No MITRE techniques matched; using text-based heuristics only." in summary.evidence.signals


class TestNextLikely:
    """Tests for next stage prediction."""

    def test_credential_access_predicts_discovery_and_lateral(self):
        predicted = predict_next_stages([KillChainStage.CREDENTIAL_ACCESS])
        assert predicted == [KillChainStage.DISCOVERY, KillChainStage.LATERAL_MOVEMENT]

    def test_lateral_predicts_collection_c2_exfil(self):
        predicted = predict_next_stages([KillChainStage.LATERAL_MOVEMENT])
        assert predicted == [
            KillChainStage.COLLECTION,
            KillChainStage.COMMAND_AND_CONTROL,
            KillChainStage.EXFILTRATION,
        ]

    def test_capped_at_four(self):
        predicted = predict_next_stages([KillChainStage.CREDENTIAL_ACCESS, KillChainStage.LATERAL_MOVEMENT])
        assert predicted == [
            KillChainStage.DISCOVERY,
            KillChainStage.COLLECTION,
            KillChainStage.COMMAND_AND_CONTROL,
            KillChainStage.EXFILTRATION,
        ]

    def test_next_in_order_fallback(self):
        predicted = predict_next_stages([KillChainStage.EXECUTION])
        assert predicted == [KillChainStage.PERSISTENCE, KillChainStage.PRIVILEGE_ESCALATION]

    def test_last_stage_has_no_successor(self):
        assert predict_next_stages([KillChainStage.IMPACT]) == []

    def test_empty(self):
        assert predict_next_stages([]) == []


class TestRiskGates:
    """Tests for evaluate_risk_gates."""

    def _summary(self, stages, confidence, techniques=(), hops=0):
        return KillChainSummary(
            stages=tuple(stages),
            current_stage=stages[-1] if stages else None,
            confidence=confidence,
            evidence=KillChainEvidence(technique_ids=tuple(techniques)),
            lateral_hop_count=hops,
        )

    def test_critical(self):
        summary = self._summary(
            [KillChainStage.LATERAL_MOVEMENT, KillChainStage.EXFILTRATION], 85, hops=2,
        )

        result = evaluate_risk_gates(summary)

        assert result.severity == GateSeverity.CRITICAL
        assert result.recommended_actions[-1] == INFERENCE_ONLY_REMINDER

    def test_high(self):
        summary = self._summary([KillChainStage.COMMAND_AND_CONTROL], 72)
        assert evaluate_risk_gates(summary).severity == GateSeverity.HIGH

    def test_medium(self):
        summary = self._summary([KillChainStage.CREDENTIAL_ACCESS], 60, techniques=["T1110"])
        assert evaluate_risk_gates(summary).severity == GateSeverity.MEDIUM

    def test_low(self):
        summary = self._summary([KillChainStage.EXECUTION], 45)
        assert evaluate_risk_gates(summary).severity == GateSeverity.LOW

    def test_info_for_empty(self):
        result = evaluate_risk_gates(KillChainSummary.empty())

        assert result.severity == GateSeverity.INFO
        assert result.score == 0
        assert result.recommended_actions[-1] == INFERENCE_ONLY_REMINDER

    def test_score_rollup(self):
        summary = self._summary(
            [KillChainStage.COMMAND_AND_CONTROL, KillChainStage.EXFILTRATION], 40,
            techniques=["T1071", "T1041"],
        )

        # 40 + 15 + 15 + 4
        assert evaluate_risk_gates(summary).score == 74
