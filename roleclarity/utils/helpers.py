"""Small view-level helpers used by the clarity and workspace blueprints."""

import logging

from flask import request
from sqlalchemy.exc import IntegrityError, OperationalError

from roleclarity.models import db
from roleclarity.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "system"


def get_or_404(model, pk, label=None):
    """Load ``model`` by primary key.

    Returns ``(row, None)`` when found and ``(None, error_response)`` otherwise,
    so views can write ``ws, err = get_or_404(Workspace, ws_id)``.
    """
    row = db.session.get(model, pk)
    if row is not None:
        return row, None
    return None, api_error(E.NOT_FOUND, f"{label or model.__name__} not found", status=404)


def acting_user() -> tuple[str, str]:
    # identity is forwarded by the gateway in front of this service
    headers = request.headers
    user_id = (headers.get("X-User-Id") or "").strip()
    return user_id or ANONYMOUS_USER, (headers.get("X-User-Email") or "").strip()


def db_commit_or_error():
    """Commit, or roll back and hand back an ``api_error`` tuple for the view to return."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Commit rejected by constraint: %s", exc.orig)
        return api_error(E.DATABASE, "Write conflicts with existing data", status=409)
    except OperationalError:
        db.session.rollback()
        logger.exception("Commit failed at the database layer")
        return api_error(E.DATABASE, "Database error")
    return None
