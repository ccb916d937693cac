"""
Tests — workspace overlap detector.

Covers:
    - fewer than 2 roles → InsufficientData
    - disjoint roles → no overlaps, healthy score
    - dual accountability (critical, reciprocal, 3h/week)
    - owner + contributor: pooled vs sequential interdependence
    - gaps: handoff owner, empty stage, pipeline oversight, contribution without owner
    - structural insights
    - idempotence; backend narrative and AnalysisFailed
"""

import pytest

from roleclarity.clarity.entities import (
    HandoffView,
    OwnershipArea,
    RoleView,
    StageView,
    WorkspaceSnapshot,
)
from roleclarity.clarity.overlap_detector import OverlapDetector, build_ownership_index, item_key
from roleclarity.core.exceptions import AnalysisFailed, InsufficientData
from tests.fakes import FakeBackend

DESIGNER = RoleView(id=1, title="Designer", owns=(OwnershipArea("Design", ("Wireframes",)),))
BILLING = RoleView(id=2, title="Billing Clerk", owns=(OwnershipArea("Billing", ("Invoices",)),))


def _snapshot(roles, stages=(), handoffs=(), stage_roles=None):
    return WorkspaceSnapshot(workspace_id=1, roles=tuple(roles), stages=tuple(stages),
                             handoffs=tuple(handoffs), stage_roles=stage_roles or {})


class TestIndex:

    def test_item_key_ignores_order_and_plurals(self):
        assert item_key("Client Invoices") == item_key("invoice client")

    def test_output_claims_are_unclear(self):
        writer = RoleView(id=3, title="Writer", outputs=("Wireframes",))
        index = build_ownership_index(_snapshot([DESIGNER, writer]))
        claims = index[item_key("Wireframes")].claims
        assert claims[1][0] == "primary"
        assert claims[3][0] == "unclear"


class TestDetect:

    def test_single_role_is_insufficient(self):
        with pytest.raises(InsufficientData):
            OverlapDetector().analyze(_snapshot([DESIGNER]))

    def test_disjoint_roles_are_healthy(self):
        result = OverlapDetector().analyze(_snapshot([DESIGNER, BILLING]))
        assert result.overlaps == []
        assert result.workspace_health.active_overlap_count == 0
        assert result.workspace_health.overall_score >= 95

    def test_dual_accountability(self):
        a = RoleView(id=1, title="Sales Director", owns=(OwnershipArea("Pricing", ("Discounts", "Rate card")),))
        b = RoleView(id=2, title="Account Manager", owns=(OwnershipArea("Pricing"),))
        result = OverlapDetector().analyze(_snapshot([a, b]))
        overlap = result.overlaps[0]
        assert overlap.severity == "critical"
        assert overlap.overlap_type == "dual_accountability"
        assert overlap.interdependence_type == "reciprocal"
        assert overlap.weekly_friction_cost == 3.0
        assert overlap.suggested_owner == "Account Manager"
        assert overlap.conversation_needed
        assert {c.role_title for c in overlap.roles} == {"Sales Director", "Account Manager"}
        assert result.workspace_health.overall_score == 85

    def test_owner_and_contributor_pooled(self):
        helper = RoleView(id=2, title="Analyst", contributes_to=("Wireframes",))
        overlap = OverlapDetector().analyze(_snapshot([DESIGNER, helper])).overlaps[0]
        assert overlap.interdependence_type == "pooled"
        assert overlap.overlap_type == "legitimate_collaboration"
        assert overlap.severity == "info"
        assert overlap.weekly_friction_cost == 0.5

    def test_owner_and_contributor_across_handoff_is_sequential(self):
        helper = RoleView(id=2, title="Developer", contributes_to=("Wireframes",))
        stages = [StageView(10, "Design", 1), StageView(11, "Build", 2)]
        handoffs = [HandoffView(20, 10, 11, sla="1 day", sla_owner="Designer")]
        snapshot = _snapshot([DESIGNER, helper], stages, handoffs, {10: (1,), 11: (2,)})
        overlap = OverlapDetector().analyze(snapshot).overlaps[0]
        assert overlap.interdependence_type == "sequential"
        assert overlap.overlap_type == "sequential_handoff_gap"
        assert overlap.weekly_friction_cost == 1.5

    def test_idempotent(self):
        a = RoleView(id=1, title="A", owns=(OwnershipArea("Pricing"),))
        b = RoleView(id=2, title="B", owns=(OwnershipArea("Pricing"),), contributes_to=("Forecast",))
        snapshot = _snapshot([a, b])
        assert OverlapDetector().analyze(snapshot).dump() == OverlapDetector().analyze(snapshot).dump()


class TestGaps:

    def test_handoff_without_owner(self):
        stages = [StageView(10, "Design", 1), StageView(11, "Build", 2)]
        handoffs = [HandoffView(20, 10, 11)]
        snapshot = _snapshot([DESIGNER, BILLING], stages, handoffs, {10: (1,), 11: (2,)})
        result = OverlapDetector().analyze(snapshot)
        gap = next(g for g in result.gaps if g.category == "handoff_boundary")
        assert gap.severity == "high"
        assert gap.likely_owner == "Designer"
        # high handoff gap, leadership gap, missing SLA
        assert result.workspace_health.overall_score == 100 - 5 - 5 - 3

    def test_empty_stage_is_critical(self):
        stages = [StageView(10, "Design", 1), StageView(11, "QA", 2)]
        snapshot = _snapshot([DESIGNER, BILLING], stages, (), {10: (1, 2), 11: ()})
        result = OverlapDetector().analyze(snapshot)
        gap = next(g for g in result.gaps if g.category == "operational")
        assert gap.item == "QA" and gap.severity == "critical"
        assert result.workspace_health.critical_gap_count == 1
        assert any(i.type == "missing_role" for i in result.structural_insights)

    def test_oversight_removes_leadership_gap(self):
        lead = RoleView(id=3, title="Lead", owns=(OwnershipArea("People"),), oversees_stage_ids=(10,))
        stages = [StageView(10, "Design", 1)]
        result = OverlapDetector().analyze(_snapshot([DESIGNER, lead], stages, (), {10: (1,)}))
        assert not [g for g in result.gaps if g.category == "leadership"]

    def test_contribution_without_owner(self):
        a = RoleView(id=1, title="A", owns=(OwnershipArea("Design"),), contributes_to=("Forecast",))
        b = RoleView(id=2, title="B", owns=(OwnershipArea("Billing"),))
        gap = OverlapDetector().analyze(_snapshot([a, b])).gaps[0]
        assert gap.category == "cross_functional"
        assert gap.likely_owner == "A"


class TestInsights:

    def test_underload_and_overload(self):
        idle = RoleView(id=2, title="Idle")
        busy = RoleView(id=1, title="Busy",
                        owns=(OwnershipArea("Ops", tuple(f"Item {i}" for i in range(21))),))
        types = {i.type for i in OverlapDetector().analyze(_snapshot([busy, idle])).structural_insights}
        assert {"role_overload", "role_underload", "single_point_of_failure"} <= types

    def test_span_of_control(self):
        wide = RoleView(id=1, title="Wide", owns=tuple(OwnershipArea(f"Area {i}") for i in range(9)))
        types = {i.type for i in OverlapDetector().analyze(_snapshot([wide, BILLING])).structural_insights}
        assert "span_of_control" in types

    def test_communication_bottleneck(self):
        stages = [StageView(10 + i, f"S{i}", i) for i in range(4)]
        handoffs = [HandoffView(20 + i, 10 + i, 11 + i, sla="1 day", sla_owner="Hub") for i in range(3)]
        hub = RoleView(id=1, title="Hub", owns=(OwnershipArea("Coordination"),))
        snapshot = _snapshot([hub, BILLING], stages, handoffs, {10: (1,), 11: (1,), 12: (1,), 13: (2,)})
        insights = OverlapDetector().analyze(snapshot).structural_insights
        assert any(i.type == "communication_bottleneck" and i.affected_roles == ["Hub"] for i in insights)


class TestNarrative:

    def test_narrative_sets_top_risk(self):
        result = OverlapDetector(FakeBackend()).detect(_snapshot([DESIGNER, BILLING]))
        assert result.workspace_health.top_risk_statement == "Fake top risk."
        assert result.workspace_health.overall_score >= 95

    def test_backend_failure(self):
        with pytest.raises(AnalysisFailed):
            OverlapDetector(FakeBackend(fail="schema")).detect(_snapshot([DESIGNER, BILLING]))
