"""
Proposal ledger — persistence and one-way resolution of clarity proposals.

Apply:
    1. Claim: UPDATE … SET status='accepted' WHERE id=:id AND status='pending'
       rowcount 0 → AlreadyResolved (someone else resolved it first)
    2. Write the proposed value through the entity store, same transaction
    3. Write failed → rollback (proposal is pending again) → MutationFailed
    4. Commit (resolved_at / resolved_by recorded by the claim)

Dismiss is the same claim with status='dismissed' and no entity write.
Proposals are never deleted; regeneration supersedes the pending ones
(all of them, or only those of the regenerated types).
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update

from roleclarity.core.exceptions import AlreadyResolved, MutationFailed, ProposalNotFound
from roleclarity.models import db
from roleclarity.models.clarity import ClarityProposal
from roleclarity.services.entity_store import SQLEntityStore

logger = logging.getLogger(__name__)

SUPERSEDED_BY = "system:superseded"


def _utcnow():
    return datetime.now(timezone.utc)


class ProposalLedger:

    def __init__(self, store=None):
        self.store = store or SQLEntityStore()

    # ── Create ────────────────────────────────────────────────────────────

    def create_batch(self, session_id: int, drafts, *, types=None) -> list[ClarityProposal]:
        """Supersede the session's pending proposals, then insert ``drafts`` in order.

        With ``types`` only pending proposals of those types are superseded
        and the new rows are positioned after the existing ones.
        """
        self.supersede_pending(session_id, types=types)
        start = 0
        if types is not None:
            last = db.session.execute(
                select(func.max(ClarityProposal.position)).where(ClarityProposal.session_id == session_id)
            ).scalar()
            start = 0 if last is None else last + 1
        rows = []
        for position, draft in enumerate(drafts, start=start):
            row = ClarityProposal(
                session_id=session_id,
                type=draft.type,
                target_role_id=draft.target_role_id,
                target_handoff_id=draft.target_handoff_id,
                field=draft.field,
                current_value=draft.current_value,
                proposed_value=draft.proposed_value,
                title=draft.title[:300],
                explanation=draft.explanation,
                impact=draft.impact,
                metadata_json=draft.metadata.dump(),
                sequence_group=draft.metadata.sequence_group,
                position=position,
                status="pending",
            )
            db.session.add(row)
            rows.append(row)
        db.session.flush()
        logger.info("Created %d proposals", len(rows), extra={"session_id": session_id})
        return rows

    def supersede_pending(self, session_id: int, *, types=None) -> int:
        stmt = update(ClarityProposal).where(
            ClarityProposal.session_id == session_id, ClarityProposal.status == "pending",
        )
        if types is not None:
            stmt = stmt.where(ClarityProposal.type.in_(list(types)))
        result = db.session.execute(
            stmt.values(status="dismissed", resolved_at=_utcnow(), resolved_by=SUPERSEDED_BY)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("Superseded %d pending proposals", result.rowcount, extra={"session_id": session_id})
        return result.rowcount

    # ── Read ──────────────────────────────────────────────────────────────

    def get(self, proposal_id: int) -> ClarityProposal:
        row = db.session.get(ClarityProposal, proposal_id)
        if row is None:
            raise ProposalNotFound(proposal_id)
        return row

    def pending_count(self, session_id: int, ids=None) -> int:
        q = ClarityProposal.query.filter_by(session_id=session_id, status="pending")
        if ids is not None:
            q = q.filter(ClarityProposal.id.in_(list(ids)))
        return q.count()

    # ── Resolve ───────────────────────────────────────────────────────────

    def apply(self, proposal_id: int, *, user: str = "system") -> ClarityProposal:
        proposal = self.get(proposal_id)
        entity_type = proposal.target_entity_type
        entity_id = proposal.target_entity_id
        field = proposal.field
        value = proposal.proposed_value

        self._claim(proposal_id, "accepted", user)
        try:
            self.store.patch_field(entity_type, entity_id, field, value)
        except MutationFailed:
            db.session.rollback()
            logger.warning("Apply of proposal %s rolled back", proposal_id,
                           extra={"proposal_id": proposal_id})
            raise
        db.session.commit()
        logger.info("Applied proposal %s → %s %s.%s", proposal_id, entity_type, entity_id, field,
                    extra={"proposal_id": proposal_id})
        return self.get(proposal_id)

    def dismiss(self, proposal_id: int, *, user: str = "system") -> ClarityProposal:
        self.get(proposal_id)
        self._claim(proposal_id, "dismissed", user)
        db.session.commit()
        logger.info("Dismissed proposal %s", proposal_id, extra={"proposal_id": proposal_id})
        return self.get(proposal_id)

    def _claim(self, proposal_id: int, status: str, user: str) -> None:
        result = db.session.execute(
            update(ClarityProposal)
            .where(ClarityProposal.id == proposal_id, ClarityProposal.status == "pending")
            .values(status=status, resolved_at=_utcnow(), resolved_by=user)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = db.session.execute(
                select(ClarityProposal.status).where(ClarityProposal.id == proposal_id)
            ).scalar()
            raise AlreadyResolved(proposal_id, current)
