"""
Role clarity service: application factory.

    from roleclarity import create_app
    app = create_app("testing")     # or APP_ENV, default "development"
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as sa_engine, event as sa_event

from roleclarity.config import config
from roleclarity.middleware.logging_config import configure_logging
from roleclarity.middleware.rate_limiter import init_rate_limits
from roleclarity.middleware.timing import init_request_timing
from roleclarity.models import db

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")

migrate = Migrate(directory=MIGRATIONS_DIR)
# routes opt in through init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)


@sa_event.listens_for(sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # proposal and membership rows rely on ON DELETE behaviour
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name or os.getenv("APP_ENV", "development")]())
    configure_logging(app)

    _init_extensions(app)
    init_request_timing(app)
    _init_schema(app)
    _init_backend(app)

    from roleclarity.blueprints.clarity_bp import clarity_bp
    from roleclarity.blueprints.workspace_bp import workspace_bp

    app.register_blueprint(clarity_bp)
    app.register_blueprint(workspace_bp)

    _init_app_routes(app)
    _init_cli(app)
    init_rate_limits(app, limiter)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "*").split(",") if o.strip()]
    if origins and origins != ["*"]:
        CORS(app, origins=origins)
    else:
        CORS(app)


def _init_schema(app):
    from roleclarity.models import ai, clarity, workspace  # noqa: F401  (register tables)

    uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)
    with app.app_context():
        db.create_all()
    app.logger.debug("Schema ready on %s", uri.split("@")[-1])


def _init_backend(app):
    from roleclarity.ai.backend import LLMClarityBackend
    from roleclarity.ai.gateway import LLMGateway
    from roleclarity.ai.prompt_registry import PromptRegistry

    app.extensions["clarity_backend"] = LLMClarityBackend(
        LLMGateway.from_app(app),
        PromptRegistry(app.config.get("PROMPTS_DIR")),
        max_retries=app.config.get("CLARITY_MAX_RETRIES", 1),
        temperature=app.config.get("CLARITY_TEMPERATURE", 0.2),
    )


def _init_app_routes(app):
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "service": "roleclarity"}

    @app.errorhandler(404)
    def not_found(_e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return {"error": f"{request.method} not allowed here", "code": "ERR_METHOD"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s %s: %s", request.method, request.path, e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500


def _init_cli(app):
    @app.cli.command("seed-demo-workspace")
    @click.option("--name", default="Demo Agency", help="Workspace name.")
    def seed_demo_workspace_cmd(name):
        """Create a small workspace (4 roles, 4 stages) to try the engine on."""
        ws = seed_demo_workspace(name)
        db.session.commit()
        click.echo(f"Seeded workspace {ws.id} ({ws.name}).")


def seed_demo_workspace(name="Demo Agency"):
    """Insert a demo workspace and return it (caller commits)."""
    from roleclarity.models.workspace import (
        Activity,
        ActivityAssignment,
        Handoff,
        Role,
        Stage,
        StageRoleAssignment,
        Workspace,
    )

    ws = Workspace(name=name, description="Sample content pipeline")
    db.session.add(ws)
    db.session.flush()

    roles = {
        "strategist": Role(
            workspace_id=ws.id, name="Content Strategist", job_title="Content Strategist",
            core_purpose="Decide what content we publish and why.",
            owns=[{"title": "Editorial", "items": ["Editorial calendar", "Topic research"]}],
            contributes_to=["Campaign briefs"],
            does_not_own=["Pricing"],
            key_deliverables=["Monthly editorial calendar"],
            budget_level="influence",
            strength_profile=["research", "planning"],
        ),
        "writer": Role(
            workspace_id=ws.id, name="Writer", job_title="Senior Writer",
            core_purpose="Turn briefs into publishable drafts.",
            owns=[{"title": "Drafting", "items": ["First drafts", "Copy edits"]}],
            outputs=["Draft articles"],
            budget_level="none",
            strength_profile=["writing"],
        ),
        "editor": Role(
            workspace_id=ws.id, name="Editor", job_title="Managing Editor",
            core_purpose="Keep quality and schedule on track.",
            owns=[{"title": "Quality", "items": ["Final approval", "Style guide"]}],
            contributes_to=["First drafts"],
            key_deliverables=["Weekly publish list"],
            budget_level="manage",
        ),
        "lead": Role(
            workspace_id=ws.id, name="Content Lead", job_title="Head of Content",
            core_purpose="Own the content function end to end.",
            owns=[{"title": "Commercial", "items": ["Pricing", "Freelancer budget"]}],
            budget_level="own",
        ),
    }
    db.session.add_all(roles.values())
    db.session.flush()

    stages = []
    for order, stage_name in enumerate(("Plan", "Draft", "Review", "Publish"), start=1):
        stage = Stage(workspace_id=ws.id, name=stage_name, sort_order=order)
        stages.append(stage)
    db.session.add_all(stages)
    db.session.flush()
    roles["lead"].oversees_stage_ids = [s.id for s in stages]

    placement = (("strategist", 0), ("writer", 1), ("editor", 2), ("editor", 3))
    for key, idx in placement:
        db.session.add(StageRoleAssignment(stage_id=stages[idx].id, role_id=roles[key].id))

    db.session.add(Handoff(workspace_id=ws.id, from_stage_id=stages[0].id, to_stage_id=stages[1].id,
                           sla="2 business days", sla_owner="Content Strategist"))
    db.session.add(Handoff(workspace_id=ws.id, from_stage_id=stages[1].id, to_stage_id=stages[2].id))

    activity = Activity(workspace_id=ws.id, name="Quarterly content audit", stage_id=stages[2].id)
    db.session.add(activity)
    db.session.flush()
    db.session.add(ActivityAssignment(activity_id=activity.id, role_id=roles["editor"].id))
    db.session.flush()
    logger.info("Seeded demo workspace %s", ws.id, extra={"workspace_id": ws.id})
    return ws
