"""
Comment trail for clarity sessions.

Comments are append-only. An approval (1) or rejection (-1) is a comment
with a stance; a later stance from the same user on the same proposal
supersedes the earlier one when the effective state is computed, but no
row is ever edited or deleted.
"""

import logging

from roleclarity.core.exceptions import ProposalNotFound, ValidationError
from roleclarity.models import db
from roleclarity.models.clarity import APPROVAL_VALUES, APPROVE, COMMENT, REJECT, ClarityComment, ClarityProposal

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 5000


def add_comment(session_id: int, *, user_id: str, content: str, user_email: str = "",
                proposal_id: int | None = None, is_approval: int = COMMENT) -> ClarityComment:
    content = (content or "").strip()
    if not content:
        raise ValidationError("content is required", details={"field": "content"})
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"content exceeds {MAX_COMMENT_LENGTH} characters", details={"field": "content"})
    if is_approval not in APPROVAL_VALUES:
        raise ValidationError("is_approval must be 0, 1 or -1", details={"field": "is_approval"})
    if proposal_id is not None:
        proposal = db.session.get(ClarityProposal, proposal_id)
        if proposal is None or proposal.session_id != session_id:
            raise ProposalNotFound(proposal_id)

    comment = ClarityComment(
        session_id=session_id,
        proposal_id=proposal_id,
        user_id=user_id,
        user_email=user_email or "",
        content=content,
        is_approval=is_approval,
    )
    db.session.add(comment)
    db.session.flush()
    logger.info("Comment %s added", comment.id, extra={"session_id": session_id, "proposal_id": proposal_id})
    return comment


def list_comments(session_id: int, proposal_id: int | None = None) -> list[ClarityComment]:
    q = ClarityComment.query.filter_by(session_id=session_id)
    if proposal_id is not None:
        q = q.filter_by(proposal_id=proposal_id)
    return q.order_by(ClarityComment.id).all()


def effective_approvals(session_id: int) -> dict:
    """Latest stance per (proposal, user).

    Returns ``{proposal_id or "session": {"approvals": n, "rejections": n, "by_user": {user: stance}}}``.
    """
    latest: dict = {}
    for c in list_comments(session_id):
        if c.is_approval == COMMENT:
            continue
        latest[(c.proposal_id, c.user_id)] = c.is_approval

    out: dict = {}
    for (proposal_id, user_id), stance in latest.items():
        key = proposal_id if proposal_id is not None else "session"
        entry = out.setdefault(key, {"approvals": 0, "rejections": 0, "by_user": {}})
        entry["by_user"][user_id] = stance
        if stance == APPROVE:
            entry["approvals"] += 1
        elif stance == REJECT:
            entry["rejections"] += 1
    return out
