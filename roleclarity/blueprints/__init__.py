"""HTTP surface of the clarity engine; helpers shared by every blueprint."""

from flask import request

from roleclarity.core.exceptions import ClarityError, ConflictError, NotFoundError, ValidationError
from roleclarity.utils.errors import domain_error_response


def _int_arg(name, fallback, floor=0, ceiling=None):
    raw = request.args.get(name)
    if raw is None:
        return fallback
    try:
        value = max(int(raw), floor)
    except ValueError:
        return fallback
    return min(value, ceiling) if ceiling is not None else value


def paginate_query(query, default_limit=50, max_limit=200):
    """Slice ``query`` by ``?limit=&offset=``; returns ``(rows, total)``."""
    limit = _int_arg("limit", default_limit, floor=1, ceiling=max_limit)
    offset = _int_arg("offset", 0)
    return query.limit(limit).offset(offset).all(), query.count()


HANDLED_ERRORS = (ClarityError, NotFoundError, ValidationError, ConflictError)


def register_domain_error_handlers(bp):
    for exc_type in HANDLED_ERRORS:
        bp.register_error_handler(exc_type, domain_error_response)
