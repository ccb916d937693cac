"""
Snapshot/diff edit tracker for inline editing.

    first edit   → EditSnapshot row: every editable field (incl. role_ids)
    scalar edit  → buffer only
    member edit  → written live, buffer mirrors the live membership
    commit       → write changed scalar fields only, drop the snapshot
    discard      → restore membership by symmetric difference, drop the snapshot

A snapshot row exists exactly while the entity has unsaved changes: it is
created on the first real edit and removed as soon as the buffer matches the
snapshot again. Removing a member for whom the activity is a growth target
needs ``confirm=True``.
"""

import json
import logging

from roleclarity.ai.schemas import ACTIVITY_FIELD_TYPES, HANDOFF_FIELD_TYPES, ROLE_FIELD_TYPES, field_adapter
from roleclarity.core.exceptions import ConfirmationRequired, MutationFailed, ValidationError
from roleclarity.models import db
from roleclarity.models.clarity import EditSnapshot
from roleclarity.services.entity_store import SQLEntityStore

logger = logging.getLogger(__name__)

MEMBERSHIP_FIELD = "role_ids"
EDITABLE_FIELDS = {
    "role": tuple(ROLE_FIELD_TYPES),
    "handoff": tuple(HANDOFF_FIELD_TYPES),
    "activity": tuple(ACTIVITY_FIELD_TYPES) + (MEMBERSHIP_FIELD,),
}


def _canonical(value):
    if isinstance(value, list):
        return sorted(json.dumps(v, sort_keys=True) for v in value)
    return value


def values_equal(a, b) -> bool:
    """Field equality; lists compare regardless of order."""
    return _canonical(a) == _canonical(b)


class EditTracker:

    def __init__(self, store=None):
        self.store = store or SQLEntityStore()

    # ── Read ──────────────────────────────────────────────────────────────

    def fields(self, entity_type: str) -> tuple[str, ...]:
        try:
            return EDITABLE_FIELDS[entity_type]
        except KeyError:
            raise ValidationError(f"Unknown entity type '{entity_type}'",
                                  details={"entity_type": entity_type}) from None

    def capture(self, entity_type: str, entity_id: int) -> dict:
        return {f: self.store.read_field(entity_type, entity_id, f) for f in self.fields(entity_type)}

    def get(self, entity_type: str, entity_id: int) -> EditSnapshot | None:
        return EditSnapshot.query.filter_by(entity_type=entity_type, entity_id=entity_id).first()

    def state(self, entity_type: str, entity_id: int) -> dict:
        snap = self.get(entity_type, entity_id)
        values = snap.buffer if snap else self.capture(entity_type, entity_id)
        return {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "values": values,
            "has_changes": self.has_changes(entity_type, entity_id),
            "diff": self.diff(entity_type, entity_id),
        }

    def diff(self, entity_type: str, entity_id: int) -> dict:
        snap = self.get(entity_type, entity_id)
        if snap is None:
            return {}
        return {
            f: {"from": snap.snapshot.get(f), "to": snap.buffer.get(f)}
            for f in self.fields(entity_type)
            if not values_equal(snap.snapshot.get(f), snap.buffer.get(f))
        }

    def has_changes(self, entity_type: str, entity_id: int) -> bool:
        return bool(self.diff(entity_type, entity_id))

    # ── Edit ──────────────────────────────────────────────────────────────

    def touch(self, entity_type: str, entity_id: int) -> dict:
        """Begin an edit: returns current values; the snapshot row waits for a real change."""
        self.store.get_entity(entity_type, entity_id)
        return self.state(entity_type, entity_id)

    def update(self, entity_type: str, entity_id: int, changes: dict, *, user: str = "system") -> dict:
        allowed = self.fields(entity_type)
        clean = {}
        for field, value in (changes or {}).items():
            if field == MEMBERSHIP_FIELD or field not in allowed:
                raise ValidationError(f"'{field}' cannot be edited here", details={"field": field})
            adapter = field_adapter(entity_type, field)
            try:
                clean[field] = adapter.dump_python(adapter.validate_python(value), mode="json")
            except ValueError as exc:
                raise ValidationError(f"Invalid value for '{field}'", details={"field": field, "error": str(exc)}) from exc

        snap = self._ensure_snapshot(entity_type, entity_id, user)
        snap.buffer = {**snap.buffer, **clean}
        self._drop_if_clean(snap, entity_type)
        db.session.commit()
        return self.state(entity_type, entity_id)

    def set_member(self, entity_type: str, entity_id: int, role_id: int, *, present: bool,
                   confirm: bool = False, user: str = "system") -> dict:
        if MEMBERSHIP_FIELD not in self.fields(entity_type):
            raise ValidationError(f"{entity_type} has no membership", details={"entity_type": entity_type})

        if not present:
            self._guard_removal(entity_id, [role_id], confirm)
        snap = self._ensure_snapshot(entity_type, entity_id, user)
        if present:
            self.store.add_member(entity_id, role_id)
        else:
            self.store.remove_member(entity_id, role_id)

        snap.buffer = {**snap.buffer, MEMBERSHIP_FIELD: self.store.read_field(entity_type, entity_id, MEMBERSHIP_FIELD)}
        self._drop_if_clean(snap, entity_type)
        db.session.commit()
        return self.state(entity_type, entity_id)

    # ── Commit / discard ──────────────────────────────────────────────────

    def commit(self, entity_type: str, entity_id: int) -> dict:
        """Write only the changed scalar fields. A failed write keeps the snapshot."""
        snap = self.get(entity_type, entity_id)
        written = []
        if snap is not None:
            changed = [f for f in self.diff(entity_type, entity_id) if f != MEMBERSHIP_FIELD]
            try:
                for field in changed:
                    self.store.patch_field(entity_type, entity_id, field, snap.buffer[field])
                    written.append(field)
            except MutationFailed:
                db.session.rollback()
                raise
            db.session.delete(snap)
            db.session.commit()
        logger.info("Committed %s %s: %s", entity_type, entity_id, written or "no changes")
        return {"entity_type": entity_type, "entity_id": entity_id, "written": written}

    def discard(self, entity_type: str, entity_id: int, *, confirm: bool = False) -> dict:
        snap = self.get(entity_type, entity_id)
        added, removed = [], []
        if snap is not None:
            if MEMBERSHIP_FIELD in self.fields(entity_type):
                original = set(snap.snapshot.get(MEMBERSHIP_FIELD) or [])
                live = set(self.store.read_field(entity_type, entity_id, MEMBERSHIP_FIELD))
                removed = sorted(live - original)
                added = sorted(original - live)
                self._guard_removal(entity_id, removed, confirm)
                for rid in removed:
                    self.store.remove_member(entity_id, rid)
                for rid in added:
                    self.store.add_member(entity_id, rid)
            db.session.delete(snap)
            db.session.commit()
        logger.info("Discarded edits on %s %s", entity_type, entity_id)
        return {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "restored_members": added,
            "removed_members": removed,
            "values": self.capture(entity_type, entity_id),
        }

    # ── Internal ──────────────────────────────────────────────────────────

    def _ensure_snapshot(self, entity_type, entity_id, user) -> EditSnapshot:
        snap = self.get(entity_type, entity_id)
        if snap is None:
            values = self.capture(entity_type, entity_id)
            snap = EditSnapshot(entity_type=entity_type, entity_id=entity_id,
                                snapshot=values, buffer=dict(values), created_by=user)
            db.session.add(snap)
            db.session.flush()
        return snap

    def _drop_if_clean(self, snap, entity_type) -> None:
        if all(values_equal(snap.snapshot.get(f), snap.buffer.get(f)) for f in self.fields(entity_type)):
            db.session.delete(snap)
        db.session.flush()

    def _guard_removal(self, activity_id, role_ids, confirm) -> None:
        if confirm or not role_ids:
            return
        refs = self.store.growth_references(activity_id, role_ids)
        if refs:
            raise ConfirmationRequired(
                f"Activity {activity_id} is a growth target for {len(refs)} role(s); pass confirm=true to remove",
                references=refs,
            )
