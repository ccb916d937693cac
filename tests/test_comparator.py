"""
Tests — role comparator.

Covers:
    - Pricing scenario: one overlap naming both roles, dual accountability
    - dimension and overall scores stay in [0, 100]; weights; interpretation bands
    - role without ownership data lands in the 20-40 band
    - RACI audit (multiple / no accountable)
    - gap categories
    - backend narrative replaces prose only; backend failure → ComparisonFailed
    - unknown role → ComparisonFailed wrapping RoleNotFound
"""

import pytest

from roleclarity.ai.schemas import DimensionScores, ExpectedRoleExtraction
from roleclarity.clarity.comparator import RoleComparator, interpret, overall_score
from roleclarity.clarity.entities import OwnershipArea, RoleView
from roleclarity.core.exceptions import ComparisonFailed, RoleNotFound
from roleclarity.services.entity_store import SQLEntityStore
from tests.fakes import PRICING_EXTRACTION, FakeBackend


def _expected(**overrides):
    data = dict(PRICING_EXTRACTION)
    data.update(overrides)
    return ExpectedRoleExtraction.model_validate(data)


MANAGER = RoleView(
    id=1, title="Account Manager", purpose="Look after client accounts",
    owns=(OwnershipArea("Client relationships", ("Renewals",)),),
)
DIRECTOR = RoleView(
    id=2, title="Sales Director", purpose="Grow revenue",
    owns=(OwnershipArea("Pricing", ("Discount approval",)),),
)


class TestScoring:

    def test_weights(self):
        dims = DimensionScores(purpose_alignment=100, boundary_clarity=0, deliverable_completeness=0,
                               overlap_risk=0, accountability_clarity=100)
        assert overall_score(dims) == 45

    def test_no_ownership_band(self):
        high = DimensionScores(purpose_alignment=100, boundary_clarity=100, deliverable_completeness=100,
                               overlap_risk=100, accountability_clarity=100)
        low = DimensionScores(purpose_alignment=0, boundary_clarity=0, deliverable_completeness=0,
                              overlap_risk=0, accountability_clarity=0)
        assert overall_score(high, has_ownership=False) == 40
        assert overall_score(low, has_ownership=False) == 20

    @pytest.mark.parametrize("score,label", [
        (0, "high dysfunction"), (40, "high dysfunction"), (41, "needs work"),
        (70, "needs work"), (85, "functional"), (86, "well defined"), (100, "well defined"),
    ])
    def test_interpretation_bands(self, score, label):
        assert interpret(score) == label

    def test_scores_within_bounds(self):
        result = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR])
        assert 0 <= result.clarity_score.overall <= 100
        for value in result.clarity_score.dimensions.model_dump().values():
            assert 0 <= value <= 100
        assert result.clarity_score.interpretation == interpret(result.clarity_score.overall)

    def test_role_without_ownership_is_banded(self):
        empty = RoleView(id=3, title="New Hire")
        result = RoleComparator().analyze(_expected(), empty, [])
        assert 20 <= result.clarity_score.overall <= 40

    def test_deterministic(self):
        a = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR])
        b = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR])
        assert a.dump() == b.dump()


class TestOverlaps:

    def test_pricing_overlap_reported_once_naming_both_roles(self):
        result = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR])
        assert len(result.overlaps) == 1
        overlap = result.overlaps[0]
        assert overlap.item == "Pricing"
        assert {overlap.current_owner, overlap.expected_owner} == {"Account Manager", "Sales Director"}
        assert overlap.overlap_type == "dual_accountability"
        assert overlap.friction_cost == "high"

    def test_shared_rights_give_unclear_boundary(self):
        expected = _expected(ownershipDomains=[
            {"title": "Pricing", "items": [], "decisionRights": "shared"},
        ])
        overlap = RoleComparator().analyze(expected, MANAGER, [DIRECTOR]).overlaps[0]
        assert overlap.overlap_type == "unclear_boundary"

    def test_contributor_sibling_is_collaboration(self):
        helper = RoleView(id=4, title="Analyst", contributes_to=("Pricing",))
        overlap = RoleComparator().analyze(_expected(), MANAGER, [helper]).overlaps[0]
        assert overlap.overlap_type == "legitimate_collaboration"
        assert overlap.friction_cost == "low"

    def test_scope_creep(self):
        role = RoleView(id=1, title="Account Manager",
                        owns=(OwnershipArea("Accounts", ("Invoicing",)),))
        finance = RoleView(id=5, title="Finance", owns=(OwnershipArea("Invoicing"),))
        overlaps = RoleComparator().analyze(_expected(), role, [finance]).overlaps
        creep = [o for o in overlaps if o.overlap_type == "scope_creep"]
        assert creep and creep[0].item == "Invoicing"
        assert creep[0].expected_owner == "Finance"


class TestRaciAndGaps:

    def test_multiple_accountable(self):
        issues = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR]).raci_issues
        assert [i.issue for i in issues] == ["multiple_accountable"]

    def test_no_accountable(self):
        expected = _expected(
            responsibilities=[],
            ownershipDomains=[{"title": "Forecasting", "items": [], "decisionRights": "advisory"}],
        )
        issues = RoleComparator().analyze(expected, MANAGER, []).raci_issues
        assert issues[0].issue == "no_accountable"

    def test_gap_categories(self):
        result = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR])
        categories = {g.category for g in result.gaps}
        assert {"missing_accountability", "missing_deliverable", "missing_boundary",
                "authority_gap", "skill_gap", "purpose_mismatch"} <= categories

    def test_brief_names_conversation_partner(self):
        brief = RoleComparator().analyze(_expected(), MANAGER, [DIRECTOR]).manager_brief
        assert brief.conversations_needed[0].with_ == "Sales Director"
        assert "Pricing" in brief.top_priority


class _Store:
    def role_view(self, role_id):
        if role_id != MANAGER.id:
            raise RoleNotFound(role_id)
        return MANAGER

    def siblings(self, role_id):
        return [DIRECTOR]


class TestNarrative:

    def test_narrative_replaces_prose_not_scores(self):
        plain = RoleComparator().compare(_expected(), 1, store=_Store())
        narrated = RoleComparator(FakeBackend()).compare(_expected(), 1, store=_Store())
        assert narrated.summary == "Fake summary."
        assert narrated.manager_brief.do_nothing_risk == "Fake risk."
        assert narrated.clarity_score == plain.clarity_score
        assert narrated.overlaps == plain.overlaps

    def test_backend_failure(self):
        with pytest.raises(ComparisonFailed) as exc_info:
            RoleComparator(FakeBackend(fail="upstream")).compare(_expected(), 1, store=_Store())
        assert exc_info.value.status == 502

    def test_unknown_role(self):
        with pytest.raises(ComparisonFailed) as exc_info:
            RoleComparator().compare(_expected(), 99, store=_Store())
        assert isinstance(exc_info.value.cause, RoleNotFound)
        assert exc_info.value.status == 404

    def test_unknown_role_in_database(self, workspace):
        with pytest.raises(ComparisonFailed):
            RoleComparator().compare(_expected(), 12345, store=SQLEntityStore())
