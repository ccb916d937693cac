"""
Role Clarity Platform
Clarity Blueprint — guided sessions, proposals and comments.

Endpoints:
    EXTRACT      /api/v1/workspaces/<ws>/clarity/extract          POST
    SESSIONS     /api/v1/workspaces/<ws>/clarity/sessions         GET, POST
                 /api/v1/clarity/sessions/<id>                    GET
                 /api/v1/clarity/sessions/<id>/compare            POST
                 /api/v1/clarity/sessions/<id>/back               POST
                 /api/v1/clarity/sessions/<id>/next               POST
                 /api/v1/clarity/sessions/<id>/reset              POST
                 /api/v1/clarity/sessions/<id>/handoff-proposals  POST
    PROPOSALS    /api/v1/clarity/proposals/<id>/apply             POST
                 /api/v1/clarity/proposals/<id>/dismiss           POST
    COMMENTS     /api/v1/clarity/sessions/<id>/comments           GET, POST

Identity comes from X-User-Id / X-User-Email.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from roleclarity.blueprints import paginate_query, register_domain_error_handlers
from roleclarity.models.workspace import Workspace
from roleclarity.services import comment_service
from roleclarity.services.proposal_ledger import ProposalLedger
from roleclarity.services.session_service import ClaritySessionService
from roleclarity.utils.errors import E, api_error
from roleclarity.utils.helpers import acting_user, db_commit_or_error, get_or_404

logger = logging.getLogger(__name__)

clarity_bp = Blueprint("clarity", __name__, url_prefix="/api/v1")
register_domain_error_handlers(clarity_bp)


def _sessions() -> ClaritySessionService:
    return ClaritySessionService.from_app(current_app)


def _input_from_body(data):
    text = (data.get("text") or "").strip() or None
    url = (data.get("url") or "").strip() or None
    if not text and not url:
        return None, None, api_error(E.VALIDATION_REQUIRED, "text or url is required")
    return text, url, None


# ═════════════════════════════════════════════════════════════════════════════
# Extraction & sessions
# ═════════════════════════════════════════════════════════════════════════════


@clarity_bp.route("/workspaces/<int:ws_id>/clarity/extract", methods=["POST"])
def extract_role(ws_id):
    """Extract an expected role without creating a session."""
    _, err = get_or_404(Workspace, ws_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    text, url, err = _input_from_body(data)
    if err:
        return err
    user_id, _ = acting_user()
    extraction = _sessions().extract_only(ws_id, text=text, url=url, user=user_id)
    return jsonify({"extraction": extraction.dump()}), 200


@clarity_bp.route("/workspaces/<int:ws_id>/clarity/sessions", methods=["POST"])
def create_session(ws_id):
    _, err = get_or_404(Workspace, ws_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    text, url, err = _input_from_body(data)
    if err:
        return err
    user_id, user_email = acting_user()
    row = _sessions().create(ws_id, user_id=user_id, user_email=user_email,
                             text=text, url=url, title=(data.get("title") or "").strip())
    return jsonify({"session": row.to_dict(), "extraction": row.extraction}), 201


@clarity_bp.route("/workspaces/<int:ws_id>/clarity/sessions", methods=["GET"])
def list_sessions(ws_id):
    _, err = get_or_404(Workspace, ws_id)
    if err:
        return err
    mine = request.args.get("mine", "").lower() in ("1", "true", "yes")
    user_id, _ = acting_user()
    items, total = paginate_query(_sessions().query(ws_id, user_id if mine else None))
    return jsonify({"items": [s.to_dict() for s in items], "total": total})


@clarity_bp.route("/clarity/sessions/<int:session_id>", methods=["GET"])
def get_session(session_id):
    row = _sessions().get(session_id)
    return jsonify(row.to_dict(include_children=True))


@clarity_bp.route("/clarity/sessions/<int:session_id>/compare", methods=["POST"])
def compare_session(session_id):
    data = request.get_json(silent=True) or {}
    role_id = data.get("roleId", data.get("role_id"))
    if role_id is None:
        return api_error(E.VALIDATION_REQUIRED, "roleId is required")
    if isinstance(role_id, bool) or not isinstance(role_id, int):
        return api_error(E.VALIDATION_INVALID, "roleId must be an integer")
    user_id, _ = acting_user()
    row = _sessions().compare(session_id, role_id, user=user_id)
    return jsonify(row.to_dict(include_children=True)), 200


@clarity_bp.route("/clarity/sessions/<int:session_id>/back", methods=["POST"])
def session_back(session_id):
    return jsonify(_sessions().back(session_id).to_dict())


@clarity_bp.route("/clarity/sessions/<int:session_id>/next", methods=["POST"])
def session_next(session_id):
    return jsonify(_sessions().advance(session_id).to_dict())


@clarity_bp.route("/clarity/sessions/<int:session_id>/reset", methods=["POST"])
def session_reset(session_id):
    return jsonify(_sessions().reset(session_id).to_dict())


@clarity_bp.route("/clarity/sessions/<int:session_id>/handoff-proposals", methods=["POST"])
def propose_handoff_slas(session_id):
    user_id, _ = acting_user()
    service = _sessions()
    proposals = service.propose_handoff_slas(session_id, user=user_id)
    return jsonify({
        "proposals": [p.to_dict() for p in proposals],
        "session": service.get(session_id).to_dict(),
    }), 201


# ═════════════════════════════════════════════════════════════════════════════
# Proposals
# ═════════════════════════════════════════════════════════════════════════════


@clarity_bp.route("/clarity/proposals/<int:proposal_id>/apply", methods=["POST"])
def apply_proposal(proposal_id):
    user_id, _ = acting_user()
    proposal = ProposalLedger().apply(proposal_id, user=user_id)
    session = _sessions().settle(proposal.session_id)
    return jsonify({"proposal": proposal.to_dict(), "session_step": session.step})


@clarity_bp.route("/clarity/proposals/<int:proposal_id>/dismiss", methods=["POST"])
def dismiss_proposal(proposal_id):
    user_id, _ = acting_user()
    proposal = ProposalLedger().dismiss(proposal_id, user=user_id)
    session = _sessions().settle(proposal.session_id)
    return jsonify({"proposal": proposal.to_dict(), "session_step": session.step})


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


@clarity_bp.route("/clarity/sessions/<int:session_id>/comments", methods=["GET"])
def list_session_comments(session_id):
    _sessions().get(session_id)
    proposal_id = request.args.get("proposal_id", type=int)
    comments = comment_service.list_comments(session_id, proposal_id)
    return jsonify({
        "items": [c.to_dict() for c in comments],
        "approvals": {str(k): v for k, v in comment_service.effective_approvals(session_id).items()},
    })


@clarity_bp.route("/clarity/sessions/<int:session_id>/comments", methods=["POST"])
def add_session_comment(session_id):
    _sessions().get(session_id)
    data = request.get_json(silent=True) or {}
    user_id, user_email = acting_user()
    try:
        is_approval = int(data.get("isApproval", data.get("is_approval", 0)))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "isApproval must be 0, 1 or -1")
    comment = comment_service.add_comment(
        session_id,
        user_id=user_id,
        user_email=user_email,
        content=data.get("content", ""),
        proposal_id=data.get("proposalId", data.get("proposal_id")),
        is_approval=is_approval,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict()), 201
