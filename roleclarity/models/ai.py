"""
Accounting for calls the clarity engine makes to language models.

``AIUsageLog`` is the cost ledger (one row per attempt, tokens and USD);
``AIAuditLog`` is the trace of what was asked and answered, kept as a hash
plus truncated summaries so raw role descriptions are never stored twice.
Both are written by ``roleclarity.ai.gateway.LLMGateway``.
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from roleclarity.models import db

AI_PROVIDERS = ("anthropic", "openai", "gemini", "local")

# one purpose per backend operation
AI_PURPOSES = ("role_extraction", "role_comparison", "workspace_overlaps", "handoff_sla")

# USD per 1M tokens: (input, output)
TOKEN_COSTS = {
    "claude-3-5-haiku-20241022": (1.00, 5.00),
    "claude-3-5-sonnet-20241022": (3.00, 15.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gemini-2.5-flash": (0.30, 2.50),
    "gemini-2.5-pro": (1.25, 10.00),
}


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    per_input, per_output = TOKEN_COSTS.get(model, (0.0, 0.0))
    return (prompt_tokens * per_input + completion_tokens * per_output) / 1_000_000


class _LLMCallColumns:
    """Columns shared by both ledgers: who called what, for which purpose, and how it went."""

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(30), nullable=False, default="local")
    model = db.Column(db.String(80), nullable=False, default="")
    purpose = db.Column(db.String(100), default="")
    user = db.Column(db.String(150), default="system")
    cost_usd = db.Column(db.Float, default=0.0)
    latency_ms = db.Column(db.Integer, default=0)
    success = db.Column(db.Boolean, default=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @declared_attr
    def workspace_id(cls):
        return db.Column(
            db.Integer, db.ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True, index=True,
        )

    def to_dict(self):
        out = {col.name: getattr(self, col.name) for col in self.__table__.columns}
        out["cost_usd"] = round(self.cost_usd or 0.0, 6)
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        out.pop("prompt_hash", None)
        return out


class AIUsageLog(_LLMCallColumns, db.Model):
    __tablename__ = "ai_usage_logs"

    prompt_tokens = db.Column(db.Integer, default=0)
    completion_tokens = db.Column(db.Integer, default=0)
    total_tokens = db.Column(db.Integer, default=0)


class AIAuditLog(_LLMCallColumns, db.Model):
    """Append-only; rows are never updated after the call completes."""

    __tablename__ = "ai_audit_logs"

    action = db.Column(db.String(50), nullable=False, default="llm_call")
    prompt_hash = db.Column(db.String(64), default="")
    prompt_summary = db.Column(db.String(500), default="")
    response_summary = db.Column(db.String(500), default="")
    tokens_used = db.Column(db.Integer, default=0)
