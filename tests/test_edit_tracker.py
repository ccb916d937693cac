"""
Tests — inline edit tracker.

Covers:
    - a snapshot row exists only while there are unsaved changes
    - commit writes only changed fields; a no-op commit writes nothing
    - invalid fields / values are rejected before anything is buffered
    - membership edits are live and discard restores them
    - removing a member with a growth reference needs confirmation
"""

import pytest

from roleclarity.core.exceptions import ConfirmationRequired, NotFoundError, ValidationError
from roleclarity.models import db
from roleclarity.models.clarity import EditSnapshot
from roleclarity.services.edit_tracker import EditTracker, values_equal
from roleclarity.services.entity_store import SQLEntityStore
from tests.conftest import make_activity, make_handoff, make_progression, make_role, make_stage


class CountingStore(SQLEntityStore):

    def __init__(self):
        self.writes = []

    def patch_field(self, entity_type, entity_id, field, value):
        self.writes.append(field)
        super().patch_field(entity_type, entity_id, field, value)


@pytest.fixture()
def tracker():
    return EditTracker(CountingStore())


@pytest.fixture()
def team(pricing_workspace):
    manager = pricing_workspace["manager"]
    activity = make_activity(pricing_workspace["workspace"], "Quarterly review", role_ids=[manager.id])
    db.session.commit()
    return {**pricing_workspace, "activity": activity}


def test_values_equal_ignores_list_order():
    assert values_equal(["a", "b"], ["b", "a"])
    assert values_equal([{"title": "x", "items": []}], [{"items": [], "title": "x"}])
    assert not values_equal("a", "b")


class TestSnapshotLifecycle:

    def test_touch_creates_no_row(self, tracker, team):
        state = tracker.touch("role", team["manager"].id)
        assert state["has_changes"] is False
        assert state["values"]["core_purpose"] == "Look after client accounts"
        assert EditSnapshot.query.count() == 0

    def test_touch_unknown_entity(self, tracker, team):
        with pytest.raises(NotFoundError):
            tracker.touch("role", 999)

    def test_edit_then_revert_drops_snapshot(self, tracker, team):
        rid = team["manager"].id
        state = tracker.update("role", rid, {"core_purpose": "Grow key accounts"})
        assert state["has_changes"] is True
        assert state["diff"] == {"core_purpose": {"from": "Look after client accounts", "to": "Grow key accounts"}}
        assert EditSnapshot.query.count() == 1

        state = tracker.update("role", rid, {"core_purpose": "Look after client accounts"})
        assert state["has_changes"] is False
        assert EditSnapshot.query.count() == 0

    def test_same_value_edit_creates_no_row(self, tracker, team):
        tracker.update("role", team["manager"].id, {"does_not_own": []})
        assert EditSnapshot.query.count() == 0

    def test_buffer_does_not_touch_entity(self, tracker, team):
        tracker.update("role", team["manager"].id, {"budget_level": "own"})
        db.session.expire_all()
        assert team["manager"].budget_level == "none"


class TestCommit:

    def test_noop_commit_writes_nothing(self, tracker, team):
        result = tracker.commit("role", team["manager"].id)
        assert result["written"] == []
        assert tracker.store.writes == []

    def test_commit_writes_changed_fields_only(self, tracker, team):
        rid = team["manager"].id
        tracker.update("role", rid, {"core_purpose": "Grow key accounts", "budget_level": "manage",
                                     "does_not_own": []})
        result = tracker.commit("role", rid)
        assert result["written"] == ["core_purpose", "budget_level"]
        assert tracker.store.writes == ["core_purpose", "budget_level"]
        db.session.expire_all()
        assert team["manager"].budget_level == "manage"
        assert EditSnapshot.query.count() == 0

    def test_commit_handoff(self, tracker, team):
        ws = team["workspace"]
        handoff = make_handoff(ws, make_stage(ws, "Plan", 1), make_stage(ws, "Do", 2))
        db.session.commit()
        tracker.update("handoff", handoff.id, {"sla": "1 business day", "sla_owner": "Account Manager"})
        assert tracker.commit("handoff", handoff.id)["written"] == ["sla", "sla_owner"]
        assert handoff.sla == "1 business day"


class TestValidation:

    @pytest.mark.parametrize("changes", [
        {"id": 5},
        {"budget_level": "galaxy"},
        {"owns": "Pricing"},
    ])
    def test_rejected_before_buffering(self, tracker, team, changes):
        with pytest.raises(ValidationError):
            tracker.update("role", team["manager"].id, changes)
        assert EditSnapshot.query.count() == 0

    def test_membership_not_editable_as_value(self, tracker, team):
        with pytest.raises(ValidationError):
            tracker.update("activity", team["activity"].id, {"role_ids": []})

    def test_unknown_entity_type(self, tracker, team):
        with pytest.raises(ValidationError):
            tracker.update("planet", 1, {"name": "Mars"})

    def test_roles_have_no_membership(self, tracker, team):
        with pytest.raises(ValidationError):
            tracker.set_member("role", team["manager"].id, team["director"].id, present=True)


class TestMembership:

    def test_add_then_discard_restores(self, tracker, team):
        activity = team["activity"]
        manager, director = team["manager"], team["director"]
        state = tracker.set_member("activity", activity.id, director.id, present=True)
        assert sorted(state["values"]["role_ids"]) == sorted([manager.id, director.id])
        assert state["has_changes"] is True

        result = tracker.discard("activity", activity.id)
        assert result["removed_members"] == [director.id]
        assert result["values"]["role_ids"] == [manager.id]
        assert EditSnapshot.query.count() == 0

    def test_remove_then_add_back_is_clean(self, tracker, team):
        activity, manager = team["activity"], team["manager"]
        tracker.set_member("activity", activity.id, manager.id, present=False)
        state = tracker.set_member("activity", activity.id, manager.id, present=True)
        assert state["has_changes"] is False
        assert EditSnapshot.query.count() == 0

    def test_discard_restores_removed_member(self, tracker, team):
        activity, manager = team["activity"], team["manager"]
        tracker.set_member("activity", activity.id, manager.id, present=False)
        result = tracker.discard("activity", activity.id)
        assert result["restored_members"] == [manager.id]
        assert result["values"]["role_ids"] == [manager.id]

    def test_mixed_membership_edits_discard_to_exact_original(self, tracker, team):
        activity, manager, director = team["activity"], team["manager"], team["director"]
        analyst = make_role(team["workspace"], "Analyst")
        db.session.commit()

        tracker.set_member("activity", activity.id, director.id, present=True)
        tracker.set_member("activity", activity.id, analyst.id, present=True)
        state = tracker.set_member("activity", activity.id, manager.id, present=False)
        assert sorted(state["values"]["role_ids"]) == sorted([director.id, analyst.id])

        result = tracker.discard("activity", activity.id)
        assert result["removed_members"] == sorted([director.id, analyst.id])
        assert result["restored_members"] == [manager.id]
        assert sorted(result["values"]["role_ids"]) == [manager.id]
        assert EditSnapshot.query.count() == 0
        assert tracker.state("activity", activity.id)["has_changes"] is False

    def test_growth_reference_needs_confirm(self, tracker, team):
        activity, manager = team["activity"], team["manager"]
        progression = make_progression(manager, [activity.id])
        db.session.commit()
        with pytest.raises(ConfirmationRequired) as exc_info:
            tracker.set_member("activity", activity.id, manager.id, present=False)
        assert exc_info.value.references == [
            {"role_id": manager.id, "progression_id": progression.id, "activity_id": activity.id},
        ]
        state = tracker.set_member("activity", activity.id, manager.id, present=False, confirm=True)
        assert state["values"]["role_ids"] == []
