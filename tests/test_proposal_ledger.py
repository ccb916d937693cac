"""
Tests — proposal ledger (apply / dismiss / supersede).

Covers:
    - apply writes the entity once and marks the proposal accepted
    - a second apply is rejected with the current status and writes nothing
    - dismiss, then apply → AlreadyResolved("dismissed")
    - a rejected write leaves the proposal pending (MutationFailed)
    - supersede_pending only touches pending rows
    - target fields are immutable once created
    - two threads applying the same proposal: one accepted, one AlreadyResolved, one write
"""

import threading

import pytest

from roleclarity import create_app
from roleclarity.ai.schemas import ProposalDraft, ProposalMetadata
from roleclarity.core.exceptions import AlreadyResolved, MutationFailed, ProposalNotFound
from roleclarity.models import db
from roleclarity.models.clarity import ClarityProposal, ClaritySession
from roleclarity.services.entity_store import SQLEntityStore
from roleclarity.services.proposal_ledger import SUPERSEDED_BY, ProposalLedger
from tests.conftest import make_role, make_workspace


class CountingStore(SQLEntityStore):

    def __init__(self):
        self.writes = []

    def patch_field(self, entity_type, entity_id, field, value):
        self.writes.append((entity_type, entity_id, field))
        super().patch_field(entity_type, entity_id, field, value)


def _draft(role_id, field="core_purpose", value="Own client accounts end to end"):
    return ProposalDraft(
        type="edit_role", target_role_id=role_id, field=field,
        current_value=None, proposed_value=value,
        title=f"Set {field}", explanation="test",
        metadata=ProposalMetadata(effort="trivial", confidence="high", sequence_group=1),
    )


@pytest.fixture()
def seeded(pricing_workspace):
    session = ClaritySession(workspace_id=pricing_workspace["workspace"].id, user_id="u1")
    db.session.add(session)
    db.session.flush()
    store = CountingStore()
    ledger = ProposalLedger(store)
    manager = pricing_workspace["manager"]
    rows = ledger.create_batch(session.id, [
        _draft(manager.id),
        _draft(manager.id, "budget_level", "manage"),
    ])
    db.session.commit()
    return {"ledger": ledger, "store": store, "session": session, "manager": manager, "rows": rows}


class TestApply:

    def test_apply_writes_once(self, seeded):
        proposal = seeded["ledger"].apply(seeded["rows"][0].id, user="u1")
        assert (proposal.status, proposal.resolved_by) == ("accepted", "u1")
        assert proposal.resolved_at is not None
        assert seeded["manager"].core_purpose == "Own client accounts end to end"
        assert seeded["store"].writes == [("role", seeded["manager"].id, "core_purpose")]

    def test_second_apply_is_rejected(self, seeded):
        ledger = seeded["ledger"]
        pid = seeded["rows"][0].id
        ledger.apply(pid)
        with pytest.raises(AlreadyResolved) as exc_info:
            ledger.apply(pid)
        assert exc_info.value.current_status == "accepted"
        assert exc_info.value.status == 409
        assert len(seeded["store"].writes) == 1

    def test_dismiss_then_apply(self, seeded):
        ledger = seeded["ledger"]
        pid = seeded["rows"][1].id
        assert ledger.dismiss(pid, user="u2").status == "dismissed"
        with pytest.raises(AlreadyResolved) as exc_info:
            ledger.apply(pid)
        assert exc_info.value.details == {"proposal_id": pid, "status": "dismissed"}
        assert seeded["store"].writes == []
        assert seeded["manager"].budget_level == "none"

    def test_rejected_write_keeps_proposal_pending(self, seeded):
        bad = ClarityProposal(
            session_id=seeded["session"].id, type="edit_role", target_role_id=seeded["manager"].id,
            field="budget_level", proposed_value="galaxy", title="Bad budget",
        )
        db.session.add(bad)
        db.session.commit()
        with pytest.raises(MutationFailed):
            seeded["ledger"].apply(bad.id)
        db.session.expire_all()
        assert db.session.get(ClarityProposal, bad.id).status == "pending"
        assert seeded["manager"].budget_level == "none"

    def test_unknown_proposal(self, seeded):
        with pytest.raises(ProposalNotFound):
            seeded["ledger"].apply(424242)


class TestSupersede:

    def test_only_pending_rows(self, seeded):
        ledger = seeded["ledger"]
        accepted = seeded["rows"][0].id
        ledger.apply(accepted)
        assert ledger.supersede_pending(seeded["session"].id) == 1
        db.session.commit()
        db.session.expire_all()
        assert db.session.get(ClarityProposal, accepted).status == "accepted"
        other = db.session.get(ClarityProposal, seeded["rows"][1].id)
        assert (other.status, other.resolved_by) == ("dismissed", SUPERSEDED_BY)
        assert ledger.pending_count(seeded["session"].id) == 0

    def test_batch_keeps_order(self, seeded):
        rows = ClarityProposal.query.filter_by(session_id=seeded["session"].id).order_by(ClarityProposal.position).all()
        assert [r.field for r in rows] == ["core_purpose", "budget_level"]


class TestImmutability:

    def test_target_cannot_change(self, seeded):
        proposal = seeded["rows"][0]
        with pytest.raises(ValueError):
            proposal.field = "budget_level"
        with pytest.raises(ValueError):
            proposal.target_role_id = seeded["manager"].id + 1


class TestConcurrentApply:

    @pytest.fixture()
    def file_app(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
        app = create_app("testing")
        yield app
        with app.app_context():
            db.session.remove()
            db.drop_all()

    def test_two_applies_race_one_wins(self, file_app):
        with file_app.app_context():
            ws = make_workspace("Race")
            manager = make_role(ws, "Account Manager")
            session = ClaritySession(workspace_id=ws.id, user_id="u1")
            db.session.add(session)
            db.session.flush()
            pid = ProposalLedger().create_batch(session.id, [_draft(manager.id)])[0].id
            manager_id = manager.id
            db.session.commit()

        store = CountingStore()
        gate = threading.Barrier(2)
        outcomes = []

        def apply(user):
            with file_app.app_context():
                gate.wait()
                try:
                    ProposalLedger(store).apply(pid, user=user)
                    outcomes.append("accepted")
                except AlreadyResolved:
                    outcomes.append("already")
                finally:
                    db.session.remove()

        workers = [threading.Thread(target=apply, args=(u,)) for u in ("u1", "u2")]
        for w in workers:
            w.start()
        for w in workers:
            w.join(timeout=30)

        assert sorted(outcomes) == ["accepted", "already"]
        assert store.writes == [("role", manager_id, "core_purpose")]
        with file_app.app_context():
            assert db.session.get(ClarityProposal, pid).status == "accepted"
