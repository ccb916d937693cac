"""
Role Clarity Platform
Workspace entity models.

Models:
    - Workspace: container for one team's ownership model
    - Role: a role definition (purpose, ownership categories, boundaries, deliverables)
    - Stage: an ordered pipeline stage
    - StageRoleAssignment: which roles work inside which stage
    - Handoff: boundary between two stages (SLA, owner, tensions)
    - Activity: a unit of work with a many-to-many role membership
    - ActivityAssignment: activity ↔ role membership row
    - Progression: a role's growth plan; growth_activity_ids are stretch goals

These tables are the entity store the clarity engine reads from and
patches one field at a time.
"""

from datetime import datetime, timezone

from roleclarity.models import db

BUDGET_LEVELS = ("none", "influence", "manage", "own")


def _utcnow():
    return datetime.now(timezone.utc)


# ── Workspace ────────────────────────────────────────────────────────────────


class Workspace(db.Model):
    __tablename__ = "workspaces"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    roles = db.relationship("Role", backref="workspace", lazy="dynamic",
                            cascade="all, delete-orphan")
    stages = db.relationship("Stage", backref="workspace", lazy="dynamic",
                             cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ── Role ─────────────────────────────────────────────────────────────────────


class Role(db.Model):
    """
    A role definition inside a workspace.

    ``owns`` is a list of ownership categories: [{"title": str, "items": [str]}].
    All other list columns hold plain strings, except ``oversees_stage_ids``
    which holds stage ids for leadership roles.
    """

    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    job_title = db.Column(db.String(200), default="")
    core_purpose = db.Column(db.Text, default="")
    key_deliverables = db.Column(db.JSON, default=list)
    owns = db.Column(db.JSON, default=list)
    contributes_to = db.Column(db.JSON, default=list)
    does_not_own = db.Column(db.JSON, default=list)
    outputs = db.Column(db.JSON, default=list)
    budget_level = db.Column(db.String(20), default="none", comment="none | influence | manage | own")
    strength_profile = db.Column(db.JSON, default=list, comment="Competency tags")
    oversees_stage_ids = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "job_title": self.job_title,
            "core_purpose": self.core_purpose,
            "key_deliverables": self.key_deliverables or [],
            "owns": self.owns or [],
            "contributes_to": self.contributes_to or [],
            "does_not_own": self.does_not_own or [],
            "outputs": self.outputs or [],
            "budget_level": self.budget_level or "none",
            "strength_profile": self.strength_profile or [],
            "oversees_stage_ids": self.oversees_stage_ids or [],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ── Stage / Handoff ──────────────────────────────────────────────────────────


class Stage(db.Model):
    __tablename__ = "stages"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    sort_order = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "sort_order": self.sort_order,
        }


class StageRoleAssignment(db.Model):
    __tablename__ = "stage_role_assignments"
    __table_args__ = (db.UniqueConstraint("stage_id", "role_id", name="uq_stage_role"),)

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    def to_dict(self):
        return {"id": self.id, "stage_id": self.stage_id, "role_id": self.role_id}


class Handoff(db.Model):
    """Boundary between two stages. ``sla_owner`` holds a role name or id as text."""

    __tablename__ = "handoffs"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    from_stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False,
    )
    to_stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="CASCADE"), nullable=False,
    )
    sla = db.Column(db.String(100), default="")
    sla_owner = db.Column(db.String(200), default="")
    notes = db.Column(db.Text, default="")
    tensions = db.Column(db.JSON, default=list)

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "from_stage_id": self.from_stage_id,
            "to_stage_id": self.to_stage_id,
            "sla": self.sla or "",
            "sla_owner": self.sla_owner or "",
            "notes": self.notes or "",
            "tensions": self.tensions or [],
        }


# ── Activities & progression ────────────────────────────────────────────────


class Activity(db.Model):
    __tablename__ = "activities"

    id = db.Column(db.Integer, primary_key=True)
    workspace_id = db.Column(
        db.Integer, db.ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    notes = db.Column(db.Text, default="")
    category_id = db.Column(db.Integer, nullable=True)
    stage_id = db.Column(
        db.Integer, db.ForeignKey("stages.id", ondelete="SET NULL"), nullable=True,
    )

    assignments = db.relationship("ActivityAssignment", backref="activity", lazy="select",
                                  cascade="all, delete-orphan")

    @property
    def role_ids(self) -> list[int]:
        return sorted(a.role_id for a in self.assignments)

    def to_dict(self):
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "notes": self.notes or "",
            "category_id": self.category_id,
            "stage_id": self.stage_id,
            "role_ids": self.role_ids,
        }


class ActivityAssignment(db.Model):
    __tablename__ = "activity_assignments"
    __table_args__ = (db.UniqueConstraint("activity_id", "role_id", name="uq_activity_role"),)

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True,
    )


class Progression(db.Model):
    """Growth plan for a role. Activities listed here are stretch goals."""

    __tablename__ = "progressions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    growth_activity_ids = db.Column(db.JSON, default=list)

    def to_dict(self):
        return {
            "id": self.id,
            "role_id": self.role_id,
            "growth_activity_ids": self.growth_activity_ids or [],
        }
