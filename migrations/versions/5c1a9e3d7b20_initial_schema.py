"""initial_schema

Workspace entities, clarity sessions/proposals/comments, edit snapshots
and LLM call logs.

Tables already created by ``db.create_all()`` are left alone.

Revision ID: 5c1a9e3d7b20
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5c1a9e3d7b20"
down_revision = None
branch_labels = None
depends_on = None


def _llm_call_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=30), nullable=False),
        sa.Column("model", sa.String(length=80), nullable=False),
        sa.Column("purpose", sa.String(length=100), nullable=True),
        sa.Column("user", sa.String(length=150), nullable=True),
        sa.Column("cost_usd", sa.Float(), nullable=True),
        sa.Column("latency_ms", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("workspace_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade():
    existing = set(sa_inspect(op.get_bind()).get_table_names())

    if "workspaces" not in existing:
        op.create_table(
            "workspaces",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "roles" not in existing:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workspace_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("job_title", sa.String(length=200), nullable=True),
            sa.Column("core_purpose", sa.Text(), nullable=True),
            sa.Column("key_deliverables", sa.JSON(), nullable=True),
            sa.Column("owns", sa.JSON(), nullable=True),
            sa.Column("contributes_to", sa.JSON(), nullable=True),
            sa.Column("does_not_own", sa.JSON(), nullable=True),
            sa.Column("outputs", sa.JSON(), nullable=True),
            sa.Column("budget_level", sa.String(length=20), nullable=True,
                      comment="none | influence | manage | own"),
            sa.Column("strength_profile", sa.JSON(), nullable=True, comment="Competency tags"),
            sa.Column("oversees_stage_ids", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_roles_workspace_id", "roles", ["workspace_id"])

    if "stages" not in existing:
        op.create_table(
            "stages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workspace_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stages_workspace_id", "stages", ["workspace_id"])

    if "stage_role_assignments" not in existing:
        op.create_table(
            "stage_role_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("stage_id", sa.Integer(), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["stage_id"], ["stages.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("stage_id", "role_id", name="uq_stage_role"),
        )
        op.create_index("ix_stage_role_assignments_stage_id", "stage_role_assignments", ["stage_id"])
        op.create_index("ix_stage_role_assignments_role_id", "stage_role_assignments", ["role_id"])

    if "handoffs" not in existing:
        op.create_table(
            "handoffs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workspace_id", sa.Integer(), nullable=False),
            sa.Column("from_stage_id", sa.Integer(), nullable=False),
            sa.Column("to_stage_id", sa.Integer(), nullable=False),
            sa.Column("sla", sa.String(length=100), nullable=True),
            sa.Column("sla_owner", sa.String(length=200), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("tensions", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["from_stage_id"], ["stages.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["to_stage_id"], ["stages.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_handoffs_workspace_id", "handoffs", ["workspace_id"])

    if "activities" not in existing:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workspace_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=300), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("stage_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["stage_id"], ["stages.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_activities_workspace_id", "activities", ["workspace_id"])

    if "activity_assignments" not in existing:
        op.create_table(
            "activity_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("activity_id", "role_id", name="uq_activity_role"),
        )
        op.create_index("ix_activity_assignments_activity_id", "activity_assignments", ["activity_id"])
        op.create_index("ix_activity_assignments_role_id", "activity_assignments", ["role_id"])

    if "progressions" not in existing:
        op.create_table(
            "progressions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("role_id", sa.Integer(), nullable=False),
            sa.Column("growth_activity_ids", sa.JSON(), nullable=True),
            sa.ForeignKeyConstraint(["role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("role_id"),
        )

    if "clarity_sessions" not in existing:
        op.create_table(
            "clarity_sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workspace_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=150), nullable=True),
            sa.Column("user_email", sa.String(length=200), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True,
                      comment="draft | analyzing | compared | resolved | archived"),
            sa.Column("step", sa.String(length=30), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("input_type", sa.String(length=10), nullable=True, comment="paste | url | manual"),
            sa.Column("input_text", sa.Text(), nullable=True),
            sa.Column("input_url", sa.String(length=2000), nullable=True),
            sa.Column("target_role_id", sa.Integer(), nullable=True),
            sa.Column("extraction", sa.JSON(), nullable=True),
            sa.Column("extracted_title", sa.String(length=300), nullable=True),
            sa.Column("extracted_purpose", sa.Text(), nullable=True),
            sa.Column("comparison", sa.JSON(), nullable=True),
            sa.Column("comparison_summary", sa.Text(), nullable=True),
            sa.Column("clarity_score", sa.Integer(), nullable=True),
            sa.Column("implementation_plan", sa.JSON(), nullable=True),
            sa.Column("proposal_ids", sa.JSON(), nullable=True, comment="Proposals of the live comparison"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["workspace_id"], ["workspaces.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["target_role_id"], ["roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clarity_sessions_workspace_id", "clarity_sessions", ["workspace_id"])
        op.create_index("ix_clarity_sessions_user_id", "clarity_sessions", ["user_id"])
        op.create_index("ix_clarity_sessions_status", "clarity_sessions", ["status"])

    if "clarity_proposals" not in existing:
        op.create_table(
            "clarity_proposals",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("type", sa.String(length=30), nullable=False),
            sa.Column("target_role_id", sa.Integer(), nullable=True),
            sa.Column("target_handoff_id", sa.Integer(), nullable=True),
            sa.Column("field", sa.String(length=50), nullable=False),
            sa.Column("current_value", sa.JSON(), nullable=True),
            sa.Column("proposed_value", sa.JSON(), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("explanation", sa.Text(), nullable=True),
            sa.Column("impact", sa.Text(), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            sa.Column("sequence_group", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("resolved_by", sa.String(length=150), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["session_id"], ["clarity_sessions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["target_role_id"], ["roles.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["target_handoff_id"], ["handoffs.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clarity_proposals_session_id", "clarity_proposals", ["session_id"])
        op.create_index("ix_clarity_proposals_target_role_id", "clarity_proposals", ["target_role_id"])
        op.create_index("ix_clarity_proposals_status", "clarity_proposals", ["status"])

    if "clarity_comments" not in existing:
        op.create_table(
            "clarity_comments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("session_id", sa.Integer(), nullable=False),
            sa.Column("proposal_id", sa.Integer(), nullable=True),
            sa.Column("user_id", sa.String(length=150), nullable=False),
            sa.Column("user_email", sa.String(length=200), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("is_approval", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["session_id"], ["clarity_sessions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["proposal_id"], ["clarity_proposals.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_clarity_comments_session_id", "clarity_comments", ["session_id"])
        op.create_index("ix_clarity_comments_proposal_id", "clarity_comments", ["proposal_id"])

    if "edit_snapshots" not in existing:
        op.create_table(
            "edit_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.Integer(), nullable=False),
            sa.Column("snapshot", sa.JSON(), nullable=False),
            sa.Column("buffer", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("entity_type", "entity_id", name="uq_edit_snapshot_entity"),
        )

    if "ai_usage_logs" not in existing:
        op.create_table(
            "ai_usage_logs",
            *_llm_call_columns(),
            sa.Column("prompt_tokens", sa.Integer(), nullable=True),
            sa.Column("completion_tokens", sa.Integer(), nullable=True),
            sa.Column("total_tokens", sa.Integer(), nullable=True),
        )
        op.create_index("ix_ai_usage_logs_workspace_id", "ai_usage_logs", ["workspace_id"])

    if "ai_audit_logs" not in existing:
        op.create_table(
            "ai_audit_logs",
            *_llm_call_columns(),
            sa.Column("action", sa.String(length=50), nullable=False),
            sa.Column("prompt_hash", sa.String(length=64), nullable=True),
            sa.Column("prompt_summary", sa.String(length=500), nullable=True),
            sa.Column("response_summary", sa.String(length=500), nullable=True),
            sa.Column("tokens_used", sa.Integer(), nullable=True),
        )
        op.create_index("ix_ai_audit_logs_workspace_id", "ai_audit_logs", ["workspace_id"])


def downgrade():
    for table in (
        "ai_audit_logs", "ai_usage_logs", "edit_snapshots", "clarity_comments",
        "clarity_proposals", "clarity_sessions", "progressions", "activity_assignments",
        "activities", "handoffs", "stage_role_assignments", "stages", "roles", "workspaces",
    ):
        op.drop_table(table)
