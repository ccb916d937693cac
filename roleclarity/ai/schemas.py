"""
Role Clarity Platform
Structured output contracts.

Every object that crosses the generative boundary, and every result the
engine returns, is one of these pydantic models. Wire names are camelCase
(``doesNotOwn``), Python attributes are snake_case.

Backend output is validated with ``parse_structured`` in strict JSON mode:
wrong types, unknown enum values or missing required keys raise
``StructuredOutputError`` instead of being coerced.
"""

import json
import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

Score = Annotated[int, Field(ge=0, le=100)]

RaciType = Literal["accountable", "responsible", "consulted", "informed"]
Frequency = Literal["daily", "weekly", "periodic", "ad-hoc", "unclear"]
DecisionRights = Literal["full", "shared", "advisory", "unclear"]
SkillCategory = Literal["technical", "leadership", "interpersonal", "domain", "strategic"]
Tier = Literal["entry", "mid", "senior", "lead", "head", "director"]
Autonomy = Literal["low", "moderate", "high", "full"]
Span = Literal["individual", "team", "cross-team", "department", "organization"]
Level = Literal["high", "medium", "low"]


class StructuredOutputError(ValueError):
    """Backend output could not be parsed or validated against its contract."""

    def __init__(self, message: str, errors: list | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class ClarityModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def dump(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ── Entity value types ───────────────────────────────────────────────────────


class OwnershipCategory(ClarityModel):
    title: str
    items: list[str] = Field(default_factory=list)


# ── Extraction ───────────────────────────────────────────────────────────────


class Responsibility(ClarityModel):
    text: str
    raci_type: RaciType
    frequency: Frequency
    is_core: bool = False


class Deliverable(ClarityModel):
    text: str
    measurable: bool = False
    suggested_metric: str | None = None


class OwnershipDomain(ClarityModel):
    title: str
    items: list[str] = Field(default_factory=list)
    decision_rights: DecisionRights = "unclear"


class Skill(ClarityModel):
    text: str
    category: SkillCategory
    required: bool = True


class Ambiguity(ClarityModel):
    area: str
    quote: str = ""
    risk: str = ""
    suggested_clarification: str = ""


class ExpectedRoleExtraction(ClarityModel):
    title: str
    purpose: str
    responsibilities: list[Responsibility] = Field(default_factory=list)
    deliverables: list[Deliverable] = Field(default_factory=list)
    ownership_domains: list[OwnershipDomain] = Field(default_factory=list)
    does_not_own: list[str] = Field(default_factory=list)
    contributes_to: list[str] = Field(default_factory=list)
    skills: list[Skill] = Field(default_factory=list)
    suggested_tier: Tier | None = None
    autonomy_level: Autonomy = "moderate"
    span_of_influence: Span = "team"
    ambiguities: list[Ambiguity] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)


# ── Comparison ───────────────────────────────────────────────────────────────


class DimensionScores(ClarityModel):
    purpose_alignment: Score
    boundary_clarity: Score
    deliverable_completeness: Score
    overlap_risk: Score
    accountability_clarity: Score


class ClarityScore(ClarityModel):
    overall: Score
    dimensions: DimensionScores
    interpretation: str


GapCategory = Literal[
    "missing_accountability", "missing_deliverable", "missing_boundary",
    "purpose_mismatch", "skill_gap", "authority_gap", "scope_gap",
]
OverlapType = Literal["dual_accountability", "unclear_boundary", "scope_creep", "legitimate_collaboration"]
RaciIssueType = Literal[
    "no_accountable", "multiple_accountable",
    "accountable_without_authority", "responsible_without_accountable",
]


class Gap(ClarityModel):
    area: str
    expected: str
    current: str
    severity: Level
    category: GapCategory
    risk_statement: str
    affected_parties: list[str] = Field(default_factory=list)


class Overlap(ClarityModel):
    item: str
    current_owner: str
    expected_owner: str
    overlap_type: OverlapType
    friction_cost: Level
    recommendation: str


class RaciIssue(ClarityModel):
    domain: str
    issue: RaciIssueType
    current_state: str
    recommendation: str


class Conversation(ClarityModel):
    with_: str = Field(alias="with")
    about: str
    why: str


class ManagerBrief(ClarityModel):
    top_priority: str
    quick_wins: list[str] = Field(default_factory=list)
    conversations_needed: list[Conversation] = Field(default_factory=list)
    do_nothing_risk: str


class ComparisonResult(ClarityModel):
    summary: str
    clarity_score: ClarityScore
    gaps: list[Gap] = Field(default_factory=list)
    overlaps: list[Overlap] = Field(default_factory=list)
    raci_issues: list[RaciIssue] = Field(default_factory=list)
    manager_brief: ManagerBrief


class ComparisonNarrative(ClarityModel):
    """Prose the backend writes on top of the deterministic comparison."""

    summary: str
    do_nothing_risk: str
    top_priority: str | None = None


# ── Workspace overlaps ───────────────────────────────────────────────────────


class OwnershipClaim(ClarityModel):
    role_id: int
    role_title: str
    ownership_type: Literal["primary", "contributor", "unclear"]
    evidence: str


class WorkspaceOverlap(ClarityModel):
    item: str
    roles: list[OwnershipClaim]
    severity: Literal["critical", "warning", "info"]
    overlap_type: Literal[
        "dual_accountability", "unclear_boundary", "scope_creep",
        "legitimate_collaboration", "sequential_handoff_gap",
    ]
    interdependence_type: Literal["pooled", "sequential", "reciprocal"]
    weekly_friction_cost: float = Field(ge=0)
    recommendation: str
    suggested_owner: str | None = None
    ownership_rationale: str = ""
    conversation_needed: bool = False


class WorkspaceGap(ClarityModel):
    item: str
    category: Literal["strategic", "operational", "handoff_boundary", "leadership", "cross_functional"]
    severity: Literal["critical", "high", "medium"]
    likely_owner: str | None = None
    reason: str
    risk_if_unowned: str


class StructuralInsight(ClarityModel):
    type: Literal[
        "span_of_control", "role_overload", "role_underload",
        "single_point_of_failure", "missing_role", "communication_bottleneck",
    ]
    description: str
    affected_roles: list[str] = Field(default_factory=list)
    recommendation: str
    priority: Level


class WorkspaceConversation(ClarityModel):
    between: list[str]
    about: str
    suggested_outcome: str


class WorkspaceBrief(ClarityModel):
    fix_first: str
    quick_wins: list[str] = Field(default_factory=list)
    conversations_needed: list[WorkspaceConversation] = Field(default_factory=list)


class WorkspaceHealth(ClarityModel):
    overall_score: Score
    active_overlap_count: int = Field(ge=0)
    critical_gap_count: int = Field(ge=0)
    estimated_weekly_friction_hours: float = Field(ge=0)
    top_risk_statement: str


class WorkspaceOverlapResult(ClarityModel):
    workspace_health: WorkspaceHealth
    overlaps: list[WorkspaceOverlap] = Field(default_factory=list)
    gaps: list[WorkspaceGap] = Field(default_factory=list)
    structural_insights: list[StructuralInsight] = Field(default_factory=list)
    manager_brief: WorkspaceBrief


class OverlapNarrative(ClarityModel):
    top_risk_statement: str
    recommendations: dict[str, str] = Field(default_factory=dict)


# ── Handoff SLAs ─────────────────────────────────────────────────────────────


class HandoffSuggestion(ClarityModel):
    from_stage: str
    to_stage: str
    existing_handoff_id: int | None = None
    suggested_sla: str = Field(alias="suggestedSLA")
    sla_rationale: str
    suggested_owner: str
    owner_rationale: str
    completion_criteria: list[str] = Field(min_length=3, max_length=5)
    does_not_own_boundaries: list[str] = Field(default_factory=list)
    escalation_path: str
    explanation: str
    priority: Level
    risk_if_missing: str


class ProcessInsight(ClarityModel):
    type: Literal[
        "bottleneck", "unnecessary_handoff", "missing_feedback_loop",
        "automation_opportunity", "stage_consolidation",
    ]
    description: str
    affected_stages: list[str] = Field(default_factory=list)
    recommendation: str


class HandoffHealth(ClarityModel):
    covered_handoffs: int = Field(ge=0)
    uncovered_handoffs: int = Field(ge=0)
    highest_risk_handoff: str | None = None
    estimated_weekly_wait_hours: float = Field(ge=0)


class HandoffSLAResult(ClarityModel):
    handoff_health: HandoffHealth
    suggestions: list[HandoffSuggestion] = Field(default_factory=list)
    process_insights: list[ProcessInsight] = Field(default_factory=list)


class HandoffNarrativeItem(ClarityModel):
    from_stage: str
    to_stage: str
    sla_rationale: str | None = None
    owner_rationale: str | None = None
    explanation: str | None = None


class HandoffNarrative(ClarityModel):
    suggestions: list[HandoffNarrativeItem] = Field(default_factory=list)


# ── Proposals ────────────────────────────────────────────────────────────────

ProposalType = Literal[
    "edit_role", "add_ownership", "remove_ownership", "add_deliverable",
    "remove_deliverable", "set_boundary", "add_handoff_sla",
    "update_handoff_sla", "resolve_overlap",
]

# Value type of every patchable field, per entity kind
ROLE_FIELD_TYPES: dict[str, Any] = {
    "name": str,
    "core_purpose": str,
    "job_title": str,
    "owns": list[OwnershipCategory],
    "does_not_own": list[str],
    "contributes_to": list[str],
    "key_deliverables": list[str],
    "outputs": list[str],
    "strength_profile": list[str],
    "budget_level": Literal["none", "influence", "manage", "own"],
}
HANDOFF_FIELD_TYPES: dict[str, Any] = {
    "sla": str,
    "sla_owner": str,
    "notes": str,
    "tensions": list[str],
}
ACTIVITY_FIELD_TYPES: dict[str, Any] = {
    "name": str,
    "notes": str,
    "category_id": int | None,
    "stage_id": int | None,
}
_ADAPTERS = {
    ("role", name): TypeAdapter(tp) for name, tp in ROLE_FIELD_TYPES.items()
} | {
    ("handoff", name): TypeAdapter(tp) for name, tp in HANDOFF_FIELD_TYPES.items()
} | {
    ("activity", name): TypeAdapter(tp) for name, tp in ACTIVITY_FIELD_TYPES.items()
}


def field_adapter(entity_type: str, field: str) -> TypeAdapter:
    try:
        return _ADAPTERS[(entity_type, field)]
    except KeyError:
        raise ValueError(f"{entity_type}.{field} is not a patchable field") from None


class ProposalMetadata(ClarityModel):
    effort: Literal["trivial", "small", "medium", "large"]
    confidence: Level
    requires_conversation: bool = False
    affected_roles: list[str] = Field(default_factory=list)
    sequence_group: int = Field(ge=1, le=5)
    reversible: bool = True
    do_nothing_cost: str = ""


class ProposalDraft(ClarityModel):
    type: ProposalType
    target_role_id: int | None = None
    target_handoff_id: int | None = None
    field: str
    current_value: Any = None
    proposed_value: Any
    title: str
    explanation: str
    impact: str = ""
    metadata: ProposalMetadata

    @property
    def entity_type(self) -> str:
        return "handoff" if self.target_handoff_id is not None else "role"

    @model_validator(mode="after")
    def _check_target_and_value(self):
        if (self.target_role_id is None) == (self.target_handoff_id is None):
            raise ValueError("exactly one of targetRoleId / targetHandoffId must be set")
        adapter = field_adapter(self.entity_type, self.field)
        adapter.validate_python(self.proposed_value)
        return self


class ImplementationPlan(ClarityModel):
    estimated_time: str
    suggested_sequence: list[str] = Field(default_factory=list)
    biggest_risk: str
    well_defined: bool = False


class ProposalSet(ClarityModel):
    proposals: list[ProposalDraft] = Field(default_factory=list)
    implementation_plan: ImplementationPlan


# ── Parsing ──────────────────────────────────────────────────────────────────

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    return _FENCE.sub("", (content or "").strip()).strip()


def parse_structured(content: str, model: type[BaseModel]):
    """Validate raw backend text against ``model``; fail closed on any mismatch."""
    cleaned = strip_code_fences(content)
    if not cleaned:
        raise StructuredOutputError("empty response")
    try:
        json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"response is not JSON: {exc.msg}") from exc
    try:
        return model.model_validate_json(cleaned, strict=True)
    except PydanticValidationError as exc:
        raise StructuredOutputError(
            f"response does not match {model.__name__}: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
