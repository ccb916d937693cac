"""
Role Clarity Platform
Clarity session domain models.

Models:
    - ClaritySession: one guided clarity run (input → extraction → comparison → proposals)
    - ClarityProposal: atomic field-level change recommendation (pending → accepted|dismissed)
    - ClarityComment: append-only discussion/approval trail on a session or proposal
    - EditSnapshot: pre-edit capture of an entity being inline-edited
"""

from datetime import datetime, timezone

from sqlalchemy.orm import validates

from roleclarity.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SESSION_STATUSES = {"draft", "analyzing", "compared", "resolved", "archived"}
INPUT_TYPES = {"paste", "url", "manual"}

PROPOSAL_STATUSES = {"pending", "accepted", "dismissed"}
PROPOSAL_TYPES = {
    "edit_role",
    "add_ownership",
    "remove_ownership",
    "add_deliverable",
    "remove_deliverable",
    "set_boundary",
    "add_handoff_sla",
    "update_handoff_sla",
    "resolve_overlap",
}

# isApproval tri-state
COMMENT = 0
APPROVE = 1
REJECT = -1
APPROVAL_VALUES = {COMMENT, APPROVE, REJECT}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ── ClaritySession ───────────────────────────────────────────────────────────


class ClaritySession(db.Model):
    """
    Persisted clarity session.

    Holds a denormalized copy of the latest extraction and comparison so the
    session can be reopened without re-running the backend. ``version`` is
    bumped on every state change and used to drop late backend responses.
    """

    __tablename__ = "clarity_sessions"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.String(150), default="system", index=True)
    user_email = db.Column(db.String(200), default="")
    title = db.Column(db.String(300), default="")

    status = db.Column(db.String(20), default="draft", index=True,
                       comment="draft | analyzing | compared | resolved | archived")
    step = db.Column(db.String(30), default="welcome")
    version = db.Column(db.Integer, default=0, nullable=False)
    error = db.Column(db.Text, nullable=True)

    input_type = db.Column(db.String(10), default="paste", comment="paste | url | manual")
    input_text = db.Column(db.Text, default="")
    input_url = db.Column(db.String(2000), nullable=True)

    target_role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True,
    )
    extraction = db.Column(db.JSON, nullable=True)
    extracted_title = db.Column(db.String(300), nullable=True)
    extracted_purpose = db.Column(db.Text, nullable=True)

    comparison = db.Column(db.JSON, nullable=True)
    comparison_summary = db.Column(db.Text, nullable=True)
    clarity_score = db.Column(db.Integer, nullable=True)
    implementation_plan = db.Column(db.JSON, nullable=True)
    proposal_ids = db.Column(db.JSON, default=list, comment="Proposals of the live comparison")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    proposals = db.relationship("ClarityProposal", backref="session", lazy="dynamic",
                                order_by="ClarityProposal.position")
    comments = db.relationship("ClarityComment", backref="session", lazy="dynamic",
                               order_by="ClarityComment.id")

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "title": self.title,
            "status": self.status,
            "step": self.step,
            "version": self.version,
            "error": self.error,
            "input_type": self.input_type,
            "input_url": self.input_url,
            "target_role_id": self.target_role_id,
            "extraction": self.extraction,
            "extracted_title": self.extracted_title,
            "comparison": self.comparison,
            "comparison_summary": self.comparison_summary,
            "clarity_score": self.clarity_score,
            "implementation_plan": self.implementation_plan,
            "proposal_ids": self.proposal_ids or [],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            live = set(self.proposal_ids or [])
            d["proposals"] = [p.to_dict() for p in self.proposals if p.id in live]
            d["comments"] = [c.to_dict() for c in self.comments]
        return d


# ── ClarityProposal ──────────────────────────────────────────────────────────


class ClarityProposal(db.Model):
    """
    One field-level change recommendation.

    The (type, target, field) triple is fixed at creation; ``_freeze_target``
    rejects later reassignment. Status only moves pending → accepted|dismissed
    and that move is done by ``proposal_ledger`` with a conditional UPDATE.
    """

    __tablename__ = "clarity_proposals"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("clarity_sessions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    type = db.Column(db.String(30), nullable=False)
    target_role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    target_handoff_id = db.Column(
        db.Integer, db.ForeignKey("handoffs.id", ondelete="CASCADE"), nullable=True,
    )
    field = db.Column(db.String(50), nullable=False)
    current_value = db.Column(db.JSON, nullable=True)
    proposed_value = db.Column(db.JSON, nullable=True)

    title = db.Column(db.String(300), nullable=False)
    explanation = db.Column(db.Text, default="")
    impact = db.Column(db.Text, default="")
    metadata_json = db.Column(db.JSON, default=dict)
    sequence_group = db.Column(db.Integer, default=3, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)

    status = db.Column(db.String(20), default="pending", nullable=False, index=True)
    resolved_by = db.Column(db.String(150), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @validates("type", "target_role_id", "target_handoff_id", "field")
    def _freeze_target(self, key, value):
        current = getattr(self, key)
        if self.id is not None and current is not None and current != value:
            raise ValueError(f"Proposal {self.id}: {key} is immutable once created")
        return value

    @property
    def target_entity_type(self) -> str:
        return "handoff" if self.target_handoff_id is not None else "role"

    @property
    def target_entity_id(self) -> int | None:
        if self.target_handoff_id is not None:
            return self.target_handoff_id
        return self.target_role_id

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "type": self.type,
            "target_entity_type": self.target_entity_type,
            "target_role_id": self.target_role_id,
            "target_handoff_id": self.target_handoff_id,
            "field": self.field,
            "current_value": self.current_value,
            "proposed_value": self.proposed_value,
            "title": self.title,
            "explanation": self.explanation,
            "impact": self.impact,
            "metadata": self.metadata_json or {},
            "sequence_group": self.sequence_group,
            "status": self.status,
            "resolved_by": self.resolved_by,
            "resolved_at": _iso(self.resolved_at),
            "created_at": _iso(self.created_at),
        }


# ── ClarityComment ───────────────────────────────────────────────────────────


class ClarityComment(db.Model):
    """Append-only. ``is_approval``: 0 comment, 1 approve, -1 reject."""

    __tablename__ = "clarity_comments"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer, db.ForeignKey("clarity_sessions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    proposal_id = db.Column(
        db.Integer, db.ForeignKey("clarity_proposals.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    user_id = db.Column(db.String(150), nullable=False)
    user_email = db.Column(db.String(200), default="")
    content = db.Column(db.Text, nullable=False)
    is_approval = db.Column(db.Integer, default=COMMENT, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "proposal_id": self.proposal_id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "content": self.content,
            "is_approval": self.is_approval,
            "created_at": _iso(self.created_at),
        }


# ── EditSnapshot ─────────────────────────────────────────────────────────────


class EditSnapshot(db.Model):
    """
    Captured field values of an entity at first-edit time plus the live
    unsaved buffer. A row exists iff the entity has unsaved edits.
    """

    __tablename__ = "edit_snapshots"
    __table_args__ = (db.UniqueConstraint("entity_type", "entity_id", name="uq_edit_snapshot_entity"),)

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    snapshot = db.Column(db.JSON, nullable=False)
    buffer = db.Column(db.JSON, nullable=False)
    created_by = db.Column(db.String(150), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "snapshot": self.snapshot,
            "buffer": self.buffer,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }
