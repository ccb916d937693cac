"""
Role Clarity Platform
Workspace Blueprint — workspace-wide analysis and inline edit tracking.

Endpoints:
    ANALYSIS  /api/v1/workspaces/<ws>/overlaps                    POST
              /api/v1/workspaces/<ws>/handoffs/suggest-sla        POST
    EDITS     /api/v1/edits/<entity_type>/<id>                    GET, PATCH
              /api/v1/edits/<entity_type>/<id>/touch              POST
              /api/v1/edits/<entity_type>/<id>/members            POST
              /api/v1/edits/<entity_type>/<id>/commit             POST
              /api/v1/edits/<entity_type>/<id>/discard            POST

Analysis bodies accept {"narrative": false} to skip the backend narrative.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from roleclarity.blueprints import register_domain_error_handlers
from roleclarity.clarity.handoff_advisor import HandoffAdvisor
from roleclarity.clarity.overlap_detector import OverlapDetector
from roleclarity.models.workspace import Workspace
from roleclarity.services.edit_tracker import EditTracker
from roleclarity.services.entity_store import SQLEntityStore
from roleclarity.utils.errors import E, api_error
from roleclarity.utils.helpers import acting_user, get_or_404

logger = logging.getLogger(__name__)

workspace_bp = Blueprint("workspace", __name__, url_prefix="/api/v1")
register_domain_error_handlers(workspace_bp)


def _backend_for(data):
    if data.get("narrative", True) is False:
        return None
    return current_app.extensions["clarity_backend"]


# ═════════════════════════════════════════════════════════════════════════════
# Workspace analysis
# ═════════════════════════════════════════════════════════════════════════════


@workspace_bp.route("/workspaces/<int:ws_id>/overlaps", methods=["POST"])
def detect_overlaps(ws_id):
    _, err = get_or_404(Workspace, ws_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    user_id, _ = acting_user()
    snapshot = SQLEntityStore().workspace_snapshot(ws_id)
    result = OverlapDetector(_backend_for(data)).detect(snapshot, user=user_id)
    return jsonify(result.dump())


@workspace_bp.route("/workspaces/<int:ws_id>/handoffs/suggest-sla", methods=["POST"])
def suggest_handoff_slas(ws_id):
    _, err = get_or_404(Workspace, ws_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    user_id, _ = acting_user()
    snapshot = SQLEntityStore().workspace_snapshot(ws_id)
    result = HandoffAdvisor(_backend_for(data)).suggest(snapshot, user=user_id)
    return jsonify(result.dump())


# ═════════════════════════════════════════════════════════════════════════════
# Inline edits
# ═════════════════════════════════════════════════════════════════════════════


@workspace_bp.route("/edits/<entity_type>/<int:entity_id>/touch", methods=["POST"])
def touch_entity(entity_type, entity_id):
    return jsonify(EditTracker().touch(entity_type, entity_id))


@workspace_bp.route("/edits/<entity_type>/<int:entity_id>", methods=["GET"])
def get_edit_state(entity_type, entity_id):
    return jsonify(EditTracker().state(entity_type, entity_id))


@workspace_bp.route("/edits/<entity_type>/<int:entity_id>", methods=["PATCH"])
def update_buffer(entity_type, entity_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "A JSON object of field changes is required")
    user_id, _ = acting_user()
    return jsonify(EditTracker().update(entity_type, entity_id, data, user=user_id))


@workspace_bp.route("/edits/<entity_type>/<int:entity_id>/members", methods=["POST"])
def change_member(entity_type, entity_id):
    data = request.get_json(silent=True) or {}
    role_id = data.get("roleId", data.get("role_id"))
    action = data.get("action")
    if not isinstance(role_id, int) or isinstance(role_id, bool):
        return api_error(E.VALIDATION_REQUIRED, "roleId (integer) is required")
    if action not in ("add", "remove"):
        return api_error(E.VALIDATION_INVALID, "action must be 'add' or 'remove'")
    user_id, _ = acting_user()
    state = EditTracker().set_member(
        entity_type, entity_id, role_id,
        present=action == "add",
        confirm=bool(data.get("confirm", False)),
        user=user_id,
    )
    return jsonify(state)


@workspace_bp.route("/edits/<entity_type>/<int:entity_id>/commit", methods=["POST"])
def commit_edits(entity_type, entity_id):
    return jsonify(EditTracker().commit(entity_type, entity_id))


@workspace_bp.route("/edits/<entity_type>/<int:entity_id>/discard", methods=["POST"])
def discard_edits(entity_type, entity_id):
    data = request.get_json(silent=True) or {}
    return jsonify(EditTracker().discard(entity_type, entity_id, confirm=bool(data.get("confirm", False))))
