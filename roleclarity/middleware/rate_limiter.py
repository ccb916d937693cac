"""
Rate limiting configuration.

Applies per-route limits using Flask-Limiter. The Limiter instance is
created in roleclarity/__init__.py with no default limits; this module
attaches the limits after blueprints are registered.

Limits (per remote IP):
    - Generative endpoints: 10/minute (each one is a backend model call)
    - Everything else under the clarity/workspace blueprints: 120/minute
    - Health check: exempt

Usage:
    from roleclarity.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

GENERATIVE_LIMIT = "10/minute"
DEFAULT_LIMIT = "120/minute"

# Endpoints that call the generative backend
GENERATIVE_ENDPOINTS = frozenset({
    "clarity.extract_role",
    "clarity.create_session",
    "clarity.compare_session",
    "workspace.detect_overlaps",
    "workspace.suggest_handoff_slas",
})


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API routes. Rate limiting is disabled in testing mode.
    """

    @app.before_request
    def _flag_generative():
        g.generative = request.endpoint in GENERATIVE_ENDPOINTS

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    for endpoint in sorted(GENERATIVE_ENDPOINTS):
        view = app.view_functions.get(endpoint)
        if view is None:
            logger.warning("Rate limit target %s is not registered", endpoint)
            continue
        limiter.limit(GENERATIVE_LIMIT)(view)

    for bp_name in ("clarity", "workspace"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(DEFAULT_LIMIT)(bp)

    app.logger.info("Rate limits on: generative=%s, other=%s",
                    GENERATIVE_LIMIT, DEFAULT_LIMIT)
