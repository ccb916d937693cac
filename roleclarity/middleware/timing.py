"""
Per-request timing and correlation ids.

Every response gets ``X-Request-ID`` (echoed from the caller when supplied)
and ``X-Request-Duration-Ms``. Generative endpoints are judged against a
looser slow-request budget than plain CRUD.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/api/v1/health"})

BUDGET_MS = {"plain": 1000, "generative": 30000}

# URL parameters worth carrying into the log record
_SCOPE_PARAMS = {
    "ws_id": "workspace_id",
    "session_id": "session_id",
    "proposal_id": "proposal_id",
}


def _scope_from_url() -> dict:
    args = request.view_args or {}
    return {field: args[param] for param, field in _SCOPE_PARAMS.items() if param in args}


def init_request_timing(app: Flask):
    @app.before_request
    def _open_clock():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        g.clock_started = time.perf_counter()

    @app.after_request
    def _close_clock(response):
        started = g.pop("clock_started", None)
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = g.get("request_id", "")
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"
        if request.path in QUIET_PATHS:
            return response

        budget = BUDGET_MS["generative" if g.get("generative") else "plain"]
        if response.status_code >= 500:
            level = logging.ERROR
        elif elapsed > budget:
            level = logging.WARNING
        else:
            level = logging.DEBUG

        logger.log(
            level,
            "%s %s -> %d in %.0fms%s",
            request.method, request.path, response.status_code, elapsed,
            " (over budget)" if elapsed > budget else "",
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed,
                "remote_addr": request.remote_addr,
                **_scope_from_url(),
            },
        )
        return response
