"""
Tests — session comment trail and effective approvals.
"""

import pytest

from roleclarity.core.exceptions import ProposalNotFound, ValidationError
from roleclarity.models import db
from roleclarity.models.clarity import APPROVE, REJECT, ClarityComment, ClarityProposal, ClaritySession
from roleclarity.services import comment_service


@pytest.fixture()
def session_with_proposal(workspace):
    session = ClaritySession(workspace_id=workspace.id, user_id="u1")
    db.session.add(session)
    db.session.flush()
    proposal = ClarityProposal(session_id=session.id, type="edit_role", field="core_purpose",
                               proposed_value="x", title="Set purpose")
    db.session.add(proposal)
    db.session.commit()
    return session, proposal


def test_latest_stance_wins(session_with_proposal):
    session, proposal = session_with_proposal
    comment_service.add_comment(session.id, user_id="u1", content="Looks right", proposal_id=proposal.id,
                                is_approval=APPROVE)
    comment_service.add_comment(session.id, user_id="u2", content="Not yet", proposal_id=proposal.id,
                                is_approval=REJECT)
    comment_service.add_comment(session.id, user_id="u2", content="Fine after the call", proposal_id=proposal.id,
                                is_approval=APPROVE)
    comment_service.add_comment(session.id, user_id="u3", content="Just a note", proposal_id=proposal.id)
    comment_service.add_comment(session.id, user_id="u3", content="Whole session is good", is_approval=APPROVE)
    db.session.commit()

    approvals = comment_service.effective_approvals(session.id)
    assert approvals[proposal.id] == {"approvals": 2, "rejections": 0, "by_user": {"u1": 1, "u2": 1}}
    assert approvals["session"]["approvals"] == 1
    # nothing is rewritten
    assert ClarityComment.query.count() == 5


def test_list_filtered_by_proposal(session_with_proposal):
    session, proposal = session_with_proposal
    comment_service.add_comment(session.id, user_id="u1", content="General")
    comment_service.add_comment(session.id, user_id="u1", content="On the proposal", proposal_id=proposal.id)
    assert [c.content for c in comment_service.list_comments(session.id)] == ["General", "On the proposal"]
    assert [c.content for c in comment_service.list_comments(session.id, proposal.id)] == ["On the proposal"]


@pytest.mark.parametrize("kwargs", [
    {"content": "   "},
    {"content": "x" * 5001},
    {"content": "ok", "is_approval": 2},
])
def test_invalid_comment(session_with_proposal, kwargs):
    session, _ = session_with_proposal
    with pytest.raises(ValidationError):
        comment_service.add_comment(session.id, user_id="u1", **kwargs)


def test_proposal_from_other_session(session_with_proposal, workspace):
    session, proposal = session_with_proposal
    other = ClaritySession(workspace_id=workspace.id, user_id="u2")
    db.session.add(other)
    db.session.flush()
    with pytest.raises(ProposalNotFound):
        comment_service.add_comment(other.id, user_id="u2", content="hi", proposal_id=proposal.id)
