"""
Handoff SLA Advisor — proposes an SLA and owner for every uncovered handoff
between adjacent pipeline stages.

A handoff is covered when it has both an SLA and an SLA owner. For every
other adjacent pair the advisor sizes the SLA from a complexity score:

    complexity = roles in both stages + known tensions + 1 if the target is the last stage

    ≤2 → "4 business hours"   ≤4 → "1 business day"
    ≤6 → "2 business days"    else "3 business days"

Suggestions on handoffs that already exist can also be turned into
``update_handoff_sla`` proposals, one per changed field.
"""

import logging
import re

from roleclarity.ai.backend import BackendError
from roleclarity.ai.schemas import (
    HandoffHealth,
    HandoffSLAResult,
    HandoffSuggestion,
    ProcessInsight,
    ProposalDraft,
    ProposalMetadata,
)
from roleclarity.clarity.entities import WorkspaceSnapshot
from roleclarity.clarity.text import normalize, same_value
from roleclarity.core.exceptions import AnalysisFailed

logger = logging.getLogger(__name__)

SLA_SCALE = (
    (2, "4 business hours"),
    (4, "1 business day"),
    (6, "2 business days"),
)
SLA_MAX = "3 business days"

MAX_WAIT_HOURS = 5
SLOW_SLA_DAYS = 2.0
SLOW_SLA_WAIT_HOURS = 1.0
AUTOMATION_CUES = ("manual", "copy", "spreadsheet", "email")

HANDOFF_PROPOSAL_TYPES = ("update_handoff_sla",)
HANDOFF_PROPOSAL_GROUP = 3
UNASSIGNED = "Unassigned"

_SLA_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(business\s+hours?|hours?|hrs?|h|business\s+days?|days?|d|weeks?|wks?)\b",
                     re.IGNORECASE)


def sla_for_complexity(complexity: int) -> str:
    for upper, sla in SLA_SCALE:
        if complexity <= upper:
            return sla
    return SLA_MAX


def sla_in_business_days(sla: str) -> float | None:
    """Rough duration of a free-text SLA in business days; None when unparseable."""
    m = _SLA_RE.search(sla or "")
    if not m:
        return None
    amount = float(m.group(1))
    unit = m.group(2).lower()
    if unit.startswith("business h"):
        return amount / 8
    if unit.startswith("h"):
        return amount / 24
    if unit.startswith("w"):
        return amount * 5
    return amount


class HandoffAdvisor:
    """
    Args:
        backend: ClarityBackend for optional rationale rewriting; None skips it.
    """

    def __init__(self, backend=None):
        self.backend = backend

    def suggest(self, snapshot: WorkspaceSnapshot, *, user: str = "system") -> HandoffSLAResult:
        result = self.analyze(snapshot)
        if self.backend is None or not result.suggestions:
            return result
        return self._narrate(result, snapshot, user=user)

    def analyze(self, snapshot: WorkspaceSnapshot) -> HandoffSLAResult:
        stages = snapshot.ordered_stages()
        roles = {r.id: r for r in snapshot.roles}
        by_pair = {}
        for h in sorted(snapshot.handoffs, key=lambda h: h.id):
            by_pair.setdefault((h.from_stage_id, h.to_stage_id), h)

        suggestions = []
        covered = 0
        wait_hours = 0.0
        riskiest = None
        for upstream, downstream in zip(stages, stages[1:]):
            handoff = by_pair.get((upstream.id, downstream.id))
            if handoff is not None and handoff.covered:
                covered += 1
                days = sla_in_business_days(handoff.sla)
                if days is not None and days > SLOW_SLA_DAYS:
                    wait_hours += SLOW_SLA_WAIT_HOURS
                continue

            involved = set(snapshot.stage_roles.get(upstream.id, ())) | set(snapshot.stage_roles.get(downstream.id, ()))
            tensions = list(handoff.tensions) if handoff else []
            is_last = downstream.id == stages[-1].id
            complexity = len(involved) + len(tensions) + (1 if is_last else 0)
            wait_hours += min(2 + complexity, MAX_WAIT_HOURS)

            suggestion = self._suggestion(snapshot, roles, upstream, downstream, handoff,
                                          involved, tensions, is_last, complexity)
            suggestions.append(suggestion)
            if riskiest is None or complexity > riskiest[0]:
                riskiest = (complexity, f"{upstream.name} → {downstream.name}")

        health = HandoffHealth(
            covered_handoffs=covered,
            uncovered_handoffs=len(suggestions),
            highest_risk_handoff=riskiest[1] if riskiest else None,
            estimated_weekly_wait_hours=wait_hours,
        )
        logger.info(
            "Workspace %s handoff SLAs: %d covered, %d uncovered",
            snapshot.workspace_id, covered, len(suggestions),
            extra={"workspace_id": snapshot.workspace_id},
        )
        return HandoffSLAResult(
            handoff_health=health,
            suggestions=suggestions,
            process_insights=self.process_insights(snapshot),
        )

    def proposals(self, result: HandoffSLAResult, snapshot: WorkspaceSnapshot) -> list[ProposalDraft]:
        """Drafts for suggestions that target an existing handoff.

        A suggestion for a stage pair with no handoff row stays advisory.
        Values equal to the current one and the Unassigned owner are skipped.
        """
        handoffs = {h.id: h for h in snapshot.handoffs}
        drafts = []
        for s in result.suggestions:
            handoff = handoffs.get(s.existing_handoff_id)
            if handoff is None:
                continue
            pair = f"{s.from_stage} → {s.to_stage}"
            for field, label, current, proposed, rationale in (
                ("sla", "SLA", handoff.sla, s.suggested_sla, s.sla_rationale),
                ("sla_owner", "SLA owner", handoff.sla_owner, s.suggested_owner, s.owner_rationale),
            ):
                if proposed == UNASSIGNED or same_value(current, proposed):
                    continue
                drafts.append(ProposalDraft(
                    type="update_handoff_sla",
                    target_handoff_id=handoff.id,
                    field=field,
                    current_value=current,
                    proposed_value=proposed,
                    title=f"Set the {pair} {label} to {proposed}",
                    explanation=rationale,
                    impact=s.explanation,
                    metadata=ProposalMetadata(
                        effort="trivial",
                        confidence="high" if s.priority == "high" else "medium",
                        sequence_group=HANDOFF_PROPOSAL_GROUP,
                        reversible=True,
                        do_nothing_cost=s.risk_if_missing,
                    ),
                ))
        logger.info("Workspace %s: %d handoff proposal(s)", snapshot.workspace_id, len(drafts),
                    extra={"workspace_id": snapshot.workspace_id})
        return drafts

    def _suggestion(self, snapshot, roles, upstream, downstream, handoff,
                    involved, tensions, is_last, complexity) -> HandoffSuggestion:
        up_roles = sorted(snapshot.stage_roles.get(upstream.id, ()))
        down_roles = sorted(snapshot.stage_roles.get(downstream.id, ()))

        existing_sla = handoff.sla.strip() if handoff else ""
        sla = existing_sla or sla_for_complexity(complexity)
        parts = [f"{len(involved)} role(s) across both stages", f"{len(tensions)} known tension(s)"]
        if is_last:
            parts.append(f"{downstream.name} is the final stage")
        sla_rationale = (f"Keeps the existing SLA '{existing_sla}'" if existing_sla
                         else f"Complexity {complexity}: " + ", ".join(parts))

        overseers = [r for r in sorted(roles.values(), key=lambda r: r.id)
                     if upstream.id in r.oversees_stage_ids or downstream.id in r.oversees_stage_ids]
        if handoff and handoff.sla_owner.strip():
            owner = handoff.sla_owner.strip()
            owner_rationale = "Keeps the owner already named on the handoff"
        elif up_roles and up_roles[0] in roles:
            owner = roles[up_roles[0]].title
            owner_rationale = f"{owner} produces the work leaving {upstream.name}"
        elif down_roles and down_roles[0] in roles:
            owner = roles[down_roles[0]].title
            owner_rationale = f"Nobody staffs {upstream.name}; {owner} pulls the work into {downstream.name}"
        elif overseers:
            owner = overseers[0].title
            owner_rationale = f"{owner} oversees these stages"
        else:
            owner = UNASSIGNED
            owner_rationale = "Neither stage has a role assigned"

        criteria = [
            f"{upstream.name} output is complete and attached",
            f"{downstream.name} has acknowledged receipt",
            "Open questions are listed with a named owner",
        ]
        criteria += [f"Known tension addressed: {t}" for t in tensions[:2]]

        boundaries = [f"{owner} does not own the {downstream.name} work itself"]
        if down_roles:
            names = ", ".join(roles[r].title for r in down_roles if r in roles)
            boundaries.append(f"{names} do not own rework of {upstream.name} output")

        escalation = (f"{overseers[0].title} decides when the SLA is missed" if overseers
                      else "Escalate to the team manager when the SLA is missed")
        priority = "high" if complexity >= 5 else "medium" if complexity >= 3 else "low"

        return HandoffSuggestion(**{
            "from_stage": upstream.name,
            "to_stage": downstream.name,
            "existing_handoff_id": handoff.id if handoff else None,
            "suggestedSLA": sla,
            "sla_rationale": sla_rationale,
            "suggested_owner": owner,
            "owner_rationale": owner_rationale,
            "completion_criteria": criteria[:5],
            "does_not_own_boundaries": boundaries,
            "escalation_path": escalation,
            "explanation": f"Work moving from {upstream.name} to {downstream.name} has no agreed "
                           f"turnaround or owner; {sla} with {owner} accountable closes that gap.",
            "priority": priority,
            "risk_if_missing": f"Work waits between {upstream.name} and {downstream.name} with nobody chasing it",
        })

    def process_insights(self, snapshot) -> list[ProcessInsight]:
        stages = snapshot.ordered_stages()
        roles = {r.id: r for r in snapshot.roles}
        staffing = {s.id: set(snapshot.stage_roles.get(s.id, ())) for s in stages}
        insights = []

        if len(stages) >= 2:
            for role in sorted(roles.values(), key=lambda r: r.id):
                count = sum(1 for s in stages if role.id in staffing[s.id])
                if count > len(stages) / 2:
                    insights.append(ProcessInsight(
                        type="bottleneck",
                        description=f"{role.title} works in {count} of {len(stages)} stages",
                        affected_stages=[s.name for s in stages if role.id in staffing[s.id]],
                        recommendation=f"Spread {role.title}'s stage work across other roles",
                    ))

        for a, b in zip(stages, stages[1:]):
            if staffing[a.id] and staffing[a.id] == staffing[b.id]:
                insights.append(ProcessInsight(
                    type="unnecessary_handoff",
                    description=f"{a.name} and {b.name} are staffed by the same roles",
                    affected_stages=[a.name, b.name],
                    recommendation="Drop the formal handoff or merge the stages",
                ))

        if len(stages) >= 3:
            position = {s.id: i for i, s in enumerate(stages)}
            backward = [h for h in snapshot.handoffs
                        if h.from_stage_id in position and h.to_stage_id in position
                        and position[h.from_stage_id] > position[h.to_stage_id]]
            if not backward:
                insights.append(ProcessInsight(
                    type="missing_feedback_loop",
                    description=f"No handoff flows back across the {len(stages)} stages",
                    affected_stages=[stages[-1].name, stages[0].name],
                    recommendation=f"Add a feedback handoff from {stages[-1].name} to {stages[0].name}",
                ))

        names = {s.id: s.name for s in stages}
        for h in sorted(snapshot.handoffs, key=lambda h: h.id):
            text = normalize(" ".join([h.notes, *h.tensions]))
            cues = [c for c in AUTOMATION_CUES if re.search(rf"\b{c}", text)]
            if cues:
                insights.append(ProcessInsight(
                    type="automation_opportunity",
                    description=f"Handoff notes mention {', '.join(cues)} work",
                    affected_stages=[names.get(h.from_stage_id, str(h.from_stage_id)),
                                     names.get(h.to_stage_id, str(h.to_stage_id))],
                    recommendation="Automate the transfer instead of moving data by hand",
                ))

        for prev, stage, nxt in zip(stages, stages[1:], stages[2:]):
            if not staffing[stage.id] and staffing[prev.id] and staffing[nxt.id]:
                insights.append(ProcessInsight(
                    type="stage_consolidation",
                    description=f"{stage.name} has no roles between two staffed stages",
                    affected_stages=[prev.name, stage.name, nxt.name],
                    recommendation=f"Fold {stage.name} into {prev.name} or {nxt.name}",
                ))
        return insights

    def _narrate(self, result, snapshot, *, user) -> HandoffSLAResult:
        context = {
            "stages": [s.name for s in snapshot.ordered_stages()],
            "suggestions": [s.dump() for s in result.suggestions],
        }
        try:
            narrative = self.backend.suggest_slas(context, workspace_id=snapshot.workspace_id, user=user)
        except BackendError as exc:
            raise AnalysisFailed(
                f"Handoff SLA analysis failed: {exc}",
                details={"kind": exc.kind, "purpose": exc.purpose},
            ) from exc

        rewrites = {(normalize(n.from_stage), normalize(n.to_stage)): n for n in narrative.suggestions}
        suggestions = []
        for s in result.suggestions:
            n = rewrites.get((normalize(s.from_stage), normalize(s.to_stage)))
            if n is None:
                suggestions.append(s)
                continue
            update = {k: v for k, v in (
                ("sla_rationale", n.sla_rationale),
                ("owner_rationale", n.owner_rationale),
                ("explanation", n.explanation),
            ) if v}
            suggestions.append(s.model_copy(update=update))
        return result.model_copy(update={"suggestions": suggestions})
