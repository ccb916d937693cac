"""
Shared pytest fixtures for the Role Clarity Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - fake_backend: FakeBackend installed as the app's clarity backend
    - workspace / pricing_workspace: pre-created entities
"""

import pytest

from roleclarity import create_app
from roleclarity.models import db as _db
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
from tests.fakes import FakeBackend


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def fake_backend(app):
    """Swap the generative backend for a FakeBackend for one test."""
    original = app.extensions["clarity_backend"]
    backend = FakeBackend()
    app.extensions["clarity_backend"] = backend
    yield backend
    app.extensions["clarity_backend"] = original


# ── Entity helpers ───────────────────────────────────────────────────────


def make_workspace(name="Test Workspace"):
    ws = Workspace(name=name)
    _db.session.add(ws)
    _db.session.flush()
    return ws


def make_role(ws, name, **fields):
    role = Role(workspace_id=ws.id, name=name, **fields)
    _db.session.add(role)
    _db.session.flush()
    return role


def make_stage(ws, name, order, role_ids=()):
    stage = Stage(workspace_id=ws.id, name=name, sort_order=order)
    _db.session.add(stage)
    _db.session.flush()
    for rid in role_ids:
        _db.session.add(StageRoleAssignment(stage_id=stage.id, role_id=rid))
    _db.session.flush()
    return stage


def make_handoff(ws, from_stage, to_stage, **fields):
    handoff = Handoff(workspace_id=ws.id, from_stage_id=from_stage.id, to_stage_id=to_stage.id, **fields)
    _db.session.add(handoff)
    _db.session.flush()
    return handoff


def make_activity(ws, name, role_ids=(), **fields):
    activity = Activity(workspace_id=ws.id, name=name, **fields)
    _db.session.add(activity)
    _db.session.flush()
    for rid in role_ids:
        _db.session.add(ActivityAssignment(activity_id=activity.id, role_id=rid))
    _db.session.flush()
    return activity


def make_progression(role, activity_ids):
    progression = Progression(role_id=role.id, growth_activity_ids=list(activity_ids))
    _db.session.add(progression)
    _db.session.flush()
    return progression


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def workspace():
    ws = make_workspace()
    _db.session.commit()
    return ws


@pytest.fixture()
def pricing_workspace():
    """Account Manager (target) and Sales Director, who already owns Pricing."""
    ws = make_workspace("Agency")
    manager = make_role(
        ws, "Account Manager",
        core_purpose="Look after client accounts",
        owns=[{"title": "Client relationships", "items": ["Renewals"]}],
    )
    director = make_role(
        ws, "Sales Director",
        core_purpose="Grow revenue",
        owns=[{"title": "Pricing", "items": ["Discount approval"]}],
    )
    _db.session.commit()
    return {"workspace": ws, "manager": manager, "director": director}
