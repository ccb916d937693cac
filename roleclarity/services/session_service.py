"""
Clarity Session Service — persists the guided session and runs the
extract → compare → propose pipeline against it.

Each busy step is committed before the backend is called and the row is
re-read afterwards; the ticket from ``session_state`` decides whether the
result still belongs to the session (a reset in between makes it stale).

One active session per (workspace, user): creating a new one archives the
previous ones and retires their pending proposals. Archived sessions are
read-only: navigation and comparison raise InvalidTransition. Last write wins.

Handoff SLA proposals join the live comparison next to the role proposals;
regenerating them leaves the role proposals alone.
"""

import logging

from flask import current_app

from roleclarity.ai.schemas import ExpectedRoleExtraction
from roleclarity.clarity import session_state as flow
from roleclarity.clarity.comparator import RoleComparator
from roleclarity.clarity.extractor import RoleExtractor
from roleclarity.clarity.handoff_advisor import HANDOFF_PROPOSAL_TYPES, HandoffAdvisor
from roleclarity.clarity.proposal_generator import ProposalGenerator
from roleclarity.clarity.session_state import SessionState
from roleclarity.core.exceptions import (
    ClarityError,
    ComparisonFailed,
    InvalidTransition,
    RoleNotFound,
    SessionNotFound,
)
from roleclarity.models import db
from roleclarity.models.clarity import ClarityProposal, ClaritySession
from roleclarity.services.entity_store import SQLEntityStore
from roleclarity.services.proposal_ledger import ProposalLedger

logger = logging.getLogger(__name__)

ARCHIVED = "archived"


def state_from_row(row: ClaritySession) -> SessionState:
    return SessionState(
        step=row.step or "welcome",
        version=row.version or 0,
        input_type=row.input_type or "paste",
        input_text=row.input_text or "",
        input_url=row.input_url,
        selected_role_id=row.target_role_id,
        extraction=row.extraction,
        comparison=row.comparison,
        implementation_plan=row.implementation_plan,
        proposals=tuple(row.proposal_ids or ()),
        error=row.error,
    )


def write_state(row: ClaritySession, state: SessionState) -> None:
    row.step = state.step
    if row.status != ARCHIVED:
        row.status = state.status
    row.version = state.version
    row.error = state.error
    row.input_type = state.input_type
    row.input_text = state.input_text
    row.input_url = state.input_url
    row.target_role_id = state.selected_role_id
    row.extraction = state.extraction
    row.extracted_title = (state.extraction or {}).get("title")
    row.extracted_purpose = (state.extraction or {}).get("purpose")
    row.comparison = state.comparison
    row.comparison_summary = (state.comparison or {}).get("summary")
    row.clarity_score = ((state.comparison or {}).get("clarityScore") or {}).get("overall")
    row.implementation_plan = state.implementation_plan
    row.proposal_ids = list(state.proposals)


def _require_live(row: ClaritySession, target: str) -> None:
    if row.status == ARCHIVED:
        raise InvalidTransition(ARCHIVED, target)


class ClaritySessionService:
    """
    Args:
        backend: ClarityBackend used by extractor and comparator.
        store: Entity store (defaults to SQLEntityStore).
        extractor_options: RoleExtractor keyword arguments (min_chars, fetch_timeout, max_chars).
    """

    def __init__(self, backend, store=None, **extractor_options):
        self.store = store or SQLEntityStore()
        self.extractor = RoleExtractor(backend, **extractor_options)
        self.comparator = RoleComparator(backend)
        self.generator = ProposalGenerator()
        self.advisor = HandoffAdvisor()
        self.ledger = ProposalLedger(self.store)

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        cfg = app.config
        return cls(
            app.extensions["clarity_backend"],
            min_chars=cfg.get("MIN_INPUT_CHARS", 20),
            fetch_timeout=cfg.get("URL_FETCH_TIMEOUT_SECONDS", 10),
            max_chars=cfg.get("URL_CONTENT_MAX_CHARS", 15000),
        )

    # ── Queries ───────────────────────────────────────────────────────────

    def get(self, session_id: int) -> ClaritySession:
        row = db.session.get(ClaritySession, session_id)
        if row is None:
            raise SessionNotFound(session_id)
        return row

    def query(self, workspace_id: int, user_id: str | None = None):
        q = ClaritySession.query.filter_by(workspace_id=workspace_id)
        if user_id:
            q = q.filter_by(user_id=user_id)
        return q.order_by(ClaritySession.id.desc())

    # ── Extraction ────────────────────────────────────────────────────────

    def extract_only(self, workspace_id: int, *, text=None, url=None, user="system") -> ExpectedRoleExtraction:
        return self.extractor.extract(text, url, workspace_id=workspace_id, user=user)

    def create(self, workspace_id: int, *, user_id: str, user_email: str = "", text=None,
               url=None, title: str = "") -> ClaritySession:
        """Open a session and run the extraction.

        On failure the session is kept at the import step with the error and
        the ClarityError is re-raised with ``session_id`` in its details.
        """
        self._archive_previous(workspace_id, user_id)

        row = ClaritySession(workspace_id=workspace_id, user_id=user_id, user_email=user_email,
                             title=title or "")
        db.session.add(row)
        state = flow.start(SessionState())
        input_type = "url" if url else "paste"
        state, ticket = flow.begin_extraction(state, text=text or "", url=url, input_type=input_type)
        write_state(row, state)
        db.session.commit()
        session_id = row.id

        try:
            extraction = self.extractor.extract(text, url, workspace_id=workspace_id, user=user_id)
        except ClarityError as exc:
            self._finish(session_id, lambda s: flow.finish_extraction(s, ticket, error=str(exc)))
            exc.details.setdefault("session_id", session_id)
            raise

        row = self._finish(session_id, lambda s: flow.finish_extraction(s, ticket, extraction=extraction.dump()))
        if not row.title:
            row.title = extraction.title[:300]
            db.session.commit()
        logger.info("Session %s extracted '%s'", session_id, extraction.title,
                    extra={"session_id": session_id, "workspace_id": workspace_id})
        return row

    # ── Comparison ────────────────────────────────────────────────────────

    def compare(self, session_id: int, role_id: int, *, user: str = "system") -> ClaritySession:
        """Compare the extraction with ``role_id``, generate and persist proposals."""
        row = self.get(session_id)
        _require_live(row, "comparing")
        workspace_id = row.workspace_id
        try:
            role = self.store.get_role(role_id)
            if role.workspace_id != workspace_id:
                raise RoleNotFound(role_id)
        except RoleNotFound as exc:
            raise ComparisonFailed(str(exc), cause=exc, details={"session_id": session_id}) from exc

        state = flow.rewind_for_comparison(state_from_row(row))
        state = flow.select_role(state, role_id)
        state, ticket = flow.begin_comparison(state)
        write_state(row, state)
        db.session.commit()

        expected = ExpectedRoleExtraction.model_validate(state.extraction)
        try:
            result = self.comparator.compare(expected, role_id, store=self.store,
                                             workspace_id=workspace_id, user=user)
            proposal_set = self.generator.generate(
                result, self.store.role_view(role_id), expected, self.store.siblings(role_id),
            )
        except ClarityError as exc:
            self._finish(session_id, lambda s: flow.finish_comparison(s, ticket, error=str(exc)))
            exc.details.setdefault("session_id", session_id)
            raise

        row = self.get(session_id)
        db.session.refresh(row)
        if not flow.is_current(state_from_row(row), ticket):
            logger.warning("Comparison for session %s arrived after the session moved on", session_id,
                           extra={"session_id": session_id})
            return row

        proposals = self.ledger.create_batch(session_id, proposal_set.proposals)
        state = flow.finish_comparison(
            state_from_row(row), ticket,
            comparison=result.dump(),
            implementation_plan=proposal_set.implementation_plan.dump(),
            proposals=tuple(p.id for p in proposals),
        )
        write_state(row, state)
        db.session.commit()
        logger.info("Session %s compared with role %s: score %d, %d proposals",
                    session_id, role_id, result.clarity_score.overall, len(proposals),
                    extra={"session_id": session_id, "role_id": role_id})
        return row

    def propose_handoff_slas(self, session_id: int, *, user: str = "system") -> list[ClarityProposal]:
        """Add ``update_handoff_sla`` proposals for the workspace's existing handoffs.

        Only valid while the comparison is live (comparison or proposals step).
        """
        row = self.get(session_id)
        _require_live(row, "handoff-proposals")
        if row.step not in ("comparison", "proposals"):
            raise InvalidTransition(row.step, "handoff-proposals")

        snapshot = self.store.workspace_snapshot(row.workspace_id)
        drafts = self.advisor.proposals(self.advisor.analyze(snapshot), snapshot)
        previous = {p.id for p in row.proposals.filter(ClarityProposal.type.in_(HANDOFF_PROPOSAL_TYPES))}
        proposals = self.ledger.create_batch(session_id, drafts, types=HANDOFF_PROPOSAL_TYPES)
        row.proposal_ids = [pid for pid in row.proposal_ids or [] if pid not in previous] + [p.id for p in proposals]
        db.session.commit()
        logger.info("Session %s: %d handoff proposal(s) requested by %s", session_id, len(proposals), user,
                    extra={"session_id": session_id, "workspace_id": row.workspace_id})
        return proposals

    # ── Navigation ────────────────────────────────────────────────────────

    def back(self, session_id: int) -> ClaritySession:
        return self._apply(session_id, flow.back)

    def advance(self, session_id: int) -> ClaritySession:
        """comparison → proposals → done."""
        row = self.get(session_id)
        _require_live(row, "next")
        if row.step == "comparison":
            return self._apply(session_id, flow.show_proposals)
        if row.step == "proposals":
            return self._apply(session_id, flow.complete)
        raise InvalidTransition(row.step, "next")

    def reset(self, session_id: int) -> ClaritySession:
        row = self.get(session_id)
        _require_live(row, "welcome")
        self.ledger.supersede_pending(session_id)
        write_state(row, flow.reset(state_from_row(row)))
        db.session.commit()
        return row

    def settle(self, session_id: int) -> ClaritySession:
        """Finish the session once every live proposal is resolved."""
        row = self.get(session_id)
        if row.status == ARCHIVED:
            return row
        state = state_from_row(row)
        if state.step == "comparison":
            state = flow.show_proposals(state)
        if state.step == "proposals" and not self.ledger.pending_count(session_id, state.proposals):
            write_state(row, flow.complete(state))
            db.session.commit()
        return row

    # ── Internal ──────────────────────────────────────────────────────────

    def _apply(self, session_id, op) -> ClaritySession:
        row = self.get(session_id)
        _require_live(row, op.__name__)
        write_state(row, op(state_from_row(row)))
        db.session.commit()
        return row

    def _archive_previous(self, workspace_id: int, user_id: str) -> None:
        """Archive the user's open sessions in this workspace and retire their pending proposals."""
        previous = (ClaritySession.query
                    .filter(ClaritySession.workspace_id == workspace_id,
                            ClaritySession.user_id == user_id,
                            ClaritySession.status != ARCHIVED)
                    .all())
        for old in previous:
            self.ledger.supersede_pending(old.id)
            old.status = ARCHIVED
        if previous:
            logger.info("Archived %d earlier session(s)", len(previous),
                        extra={"workspace_id": workspace_id})

    def _finish(self, session_id, op) -> ClaritySession:
        row = self.get(session_id)
        db.session.refresh(row)
        before = state_from_row(row)
        after = op(before)
        if after is not before:
            write_state(row, after)
            db.session.commit()
        return row
