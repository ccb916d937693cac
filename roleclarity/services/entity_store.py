"""
SQL entity store — the read/write collaborator of the clarity engine.

Read side:  role_view, siblings, workspace_snapshot (frozen views, no ORM leaks)
Write side: patch_field (one field of one entity), activity membership

Writes only flush; the caller owns the transaction. Every failure on the
write side surfaces as ``MutationFailed`` so the ledger can roll back and
leave the proposal pending.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from roleclarity.ai.schemas import field_adapter
from roleclarity.clarity.entities import (
    HandoffView,
    OwnershipArea,
    RoleView,
    StageView,
    WorkspaceSnapshot,
)
from roleclarity.core.exceptions import MutationFailed, NotFoundError, RoleNotFound
from roleclarity.models import db
from roleclarity.models.workspace import (
    Activity,
    ActivityAssignment,
    Handoff,
    Progression,
    Role,
    Stage,
    StageRoleAssignment,
    Workspace,
)

logger = logging.getLogger(__name__)

ENTITY_MODELS = {"role": Role, "handoff": Handoff, "activity": Activity}


def _strings(values) -> tuple[str, ...]:
    return tuple(str(v).strip() for v in (values or []) if str(v).strip())


def role_to_view(role: Role) -> RoleView:
    owns = []
    for cat in role.owns or []:
        if isinstance(cat, dict):
            owns.append(OwnershipArea(title=str(cat.get("title", "")).strip(), items=_strings(cat.get("items"))))
        elif str(cat).strip():
            owns.append(OwnershipArea(title=str(cat).strip()))
    return RoleView(
        id=role.id,
        title=role.name,
        purpose=role.core_purpose or "",
        job_title=role.job_title or "",
        owns=tuple(owns),
        does_not_own=_strings(role.does_not_own),
        contributes_to=_strings(role.contributes_to),
        outputs=_strings(role.outputs),
        deliverables=_strings(role.key_deliverables),
        budget_level=role.budget_level or "none",
        competencies=_strings(role.strength_profile),
        oversees_stage_ids=tuple(int(s) for s in (role.oversees_stage_ids or [])),
    )


class SQLEntityStore:

    # ── Read ──────────────────────────────────────────────────────────────

    def get_role(self, role_id: int) -> Role:
        role = db.session.get(Role, role_id) if role_id is not None else None
        if role is None:
            raise RoleNotFound(role_id)
        return role

    def role_view(self, role_id: int) -> RoleView:
        return role_to_view(self.get_role(role_id))

    def siblings(self, role_id: int) -> list[RoleView]:
        """Other roles of the same workspace, ordered by id."""
        role = self.get_role(role_id)
        rows = (
            Role.query.filter(Role.workspace_id == role.workspace_id, Role.id != role.id)
            .order_by(Role.id)
            .all()
        )
        return [role_to_view(r) for r in rows]

    def workspace_snapshot(self, workspace_id: int) -> WorkspaceSnapshot:
        if db.session.get(Workspace, workspace_id) is None:
            raise NotFoundError("Workspace", workspace_id)

        roles = Role.query.filter_by(workspace_id=workspace_id).order_by(Role.id).all()
        stages = Stage.query.filter_by(workspace_id=workspace_id).order_by(Stage.sort_order, Stage.id).all()
        handoffs = Handoff.query.filter_by(workspace_id=workspace_id).order_by(Handoff.id).all()

        stage_roles: dict[int, list[int]] = {s.id: [] for s in stages}
        if stages:
            rows = (
                StageRoleAssignment.query
                .filter(StageRoleAssignment.stage_id.in_(list(stage_roles)))
                .order_by(StageRoleAssignment.role_id)
                .all()
            )
            for row in rows:
                stage_roles[row.stage_id].append(row.role_id)

        return WorkspaceSnapshot(
            workspace_id=workspace_id,
            roles=tuple(role_to_view(r) for r in roles),
            stages=tuple(StageView(id=s.id, name=s.name, sort_order=s.sort_order or 0) for s in stages),
            handoffs=tuple(
                HandoffView(
                    id=h.id,
                    from_stage_id=h.from_stage_id,
                    to_stage_id=h.to_stage_id,
                    sla=h.sla or "",
                    sla_owner=h.sla_owner or "",
                    notes=h.notes or "",
                    tensions=_strings(h.tensions),
                )
                for h in handoffs
            ),
            stage_roles={sid: tuple(rids) for sid, rids in stage_roles.items()},
        )

    def get_entity(self, entity_type: str, entity_id: int):
        model = ENTITY_MODELS.get(entity_type)
        if model is None:
            raise NotFoundError(f"Entity type '{entity_type}'")
        obj = db.session.get(model, entity_id)
        if obj is None:
            raise NotFoundError(model.__name__, entity_id)
        return obj

    def read_field(self, entity_type: str, entity_id: int, field: str):
        obj = self.get_entity(entity_type, entity_id)
        if field == "role_ids":
            return list(obj.role_ids)
        return getattr(obj, field)

    # ── Write ─────────────────────────────────────────────────────────────

    def patch_field(self, entity_type: str, entity_id: int, field: str, value) -> None:
        """Validate and write one field, then flush. Raises MutationFailed."""
        try:
            adapter = field_adapter(entity_type, field)
            clean = adapter.dump_python(adapter.validate_python(value), mode="json")
            obj = self.get_entity(entity_type, entity_id)
            setattr(obj, field, clean)
            db.session.flush()
        except (ValueError, NotFoundError, SQLAlchemyError) as exc:
            logger.warning("patch_field %s/%s.%s failed: %s", entity_type, entity_id, field, exc)
            raise MutationFailed(
                f"Could not write {entity_type} {entity_id}.{field}: {exc}",
                details={"entity_type": entity_type, "entity_id": entity_id, "field": field},
            ) from exc
        logger.info("Patched %s %s.%s", entity_type, entity_id, field,
                    extra={"role_id": entity_id if entity_type == "role" else None})

    # ── Activity membership ───────────────────────────────────────────────

    def add_member(self, activity_id: int, role_id: int) -> bool:
        """Add ``role_id`` to the activity; False when already a member."""
        activity = self.get_entity("activity", activity_id)
        if role_id in activity.role_ids:
            return False
        self.get_role(role_id)
        activity.assignments.append(ActivityAssignment(role_id=role_id))
        db.session.flush()
        return True

    def remove_member(self, activity_id: int, role_id: int) -> bool:
        activity = self.get_entity("activity", activity_id)
        row = next((a for a in activity.assignments if a.role_id == role_id), None)
        if row is None:
            return False
        activity.assignments.remove(row)
        db.session.flush()
        return True

    def growth_references(self, activity_id: int, role_ids) -> list[dict]:
        """Progressions of ``role_ids`` that list the activity as a growth target."""
        role_ids = list(role_ids)
        if not role_ids:
            return []
        rows = Progression.query.filter(Progression.role_id.in_(role_ids)).order_by(Progression.role_id).all()
        return [
            {"role_id": p.role_id, "progression_id": p.id, "activity_id": activity_id}
            for p in rows
            if activity_id in (p.growth_activity_ids or [])
        ]
