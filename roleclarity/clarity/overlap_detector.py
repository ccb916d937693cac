"""
Workspace Overlap Detector — ownership overlaps and gaps across all roles.

Pipeline:
    1. Build an ownership index: item key → {role_id: claim}
    2. Classify every item with a primary owner and more than one claimant
    3. Find responsibilities nobody holds (handoff owners, empty stages,
       pipeline oversight, contributions without an owner)
    4. Health score + structural insights + manager brief
    5. Optional backend narrative (top risk statement, recommendation text)

Steps 1–4 are pure functions of the snapshot: running twice on an unchanged
workspace yields identical counts and scores.
"""

import logging
from dataclasses import dataclass, field

from roleclarity.ai.backend import BackendError
from roleclarity.ai.schemas import (
    OwnershipClaim,
    StructuralInsight,
    WorkspaceBrief,
    WorkspaceConversation,
    WorkspaceGap,
    WorkspaceHealth,
    WorkspaceOverlap,
    WorkspaceOverlapResult,
)
from roleclarity.clarity.entities import WorkspaceSnapshot
from roleclarity.clarity.text import item_key, normalize
from roleclarity.core.exceptions import AnalysisFailed, InsufficientData

logger = logging.getLogger(__name__)

FRICTION_HOURS = {"reciprocal": 3.0, "sequential": 1.5, "pooled": 0.5}
OVERLAP_PENALTY = {"critical": 15, "warning": 5, "info": 1}
GAP_PENALTY = {"critical": 10, "high": 5, "medium": 0}
MISSING_SLA_PENALTY = 3

SPAN_OF_CONTROL_LIMIT = 8
OVERLOAD_ITEMS = 20
CRITICAL_DOMAIN_ITEMS = 3
BOTTLENECK_SHARE = 0.5
BOTTLENECK_MIN_HANDOFFS = 3

_SEVERITY_RANK = {"critical": 0, "warning": 1, "info": 2, "high": 1, "medium": 2}


@dataclass
class _Entry:
    item: str
    claims: dict = field(default_factory=dict)  # role_id -> [type, evidence]


def build_ownership_index(snapshot: WorkspaceSnapshot) -> dict[str, _Entry]:
    """Map every owned, contributed or output item to the roles claiming it."""
    index: dict[str, _Entry] = {}

    def claim(role, text, kind, evidence):
        key = item_key(text)
        if not key:
            return
        entry = index.setdefault(key, _Entry(item=text.strip()))
        previous = entry.claims.get(role.id)
        if previous is None:
            entry.claims[role.id] = [kind, evidence]
        elif previous[0] != kind and "output" not in (kind, previous[0]):
            previous[0] = "unclear"
            previous[1] = f"{previous[1]}; {evidence}"

    for role in sorted(snapshot.roles, key=lambda r: r.id):
        for area in role.owns:
            claim(role, area.title, "primary", f"owns › {area.title}")
            for item in area.items:
                claim(role, item, "primary", f"owns › {area.title}")
        for item in role.contributes_to:
            claim(role, item, "contributor", "contributesTo")
        for item in role.outputs:
            claim(role, item, "output", "outputs")

    for entry in index.values():
        for role_claim in entry.claims.values():
            if role_claim[0] == "output":
                role_claim[0] = "unclear"
    return index


class OverlapDetector:
    """
    Args:
        backend: ClarityBackend for the optional narrative; None skips it.
    """

    def __init__(self, backend=None):
        self.backend = backend

    def detect(self, snapshot: WorkspaceSnapshot, *, user: str = "system") -> WorkspaceOverlapResult:
        result = self.analyze(snapshot)
        if self.backend is None:
            return result
        return self._narrate(result, snapshot, user=user)

    def analyze(self, snapshot: WorkspaceSnapshot) -> WorkspaceOverlapResult:
        if len(snapshot.roles) < 2:
            raise InsufficientData(
                "Overlap detection needs at least 2 roles",
                details={"role_count": len(snapshot.roles)},
            )

        index = build_ownership_index(snapshot)
        overlaps = self.classify_overlaps(snapshot, index)
        gaps = self.find_gaps(snapshot, index)
        insights = self.structural_insights(snapshot, index, gaps)

        missing_sla = sum(1 for h in snapshot.handoffs if not h.sla.strip())
        score = 100
        score -= sum(OVERLAP_PENALTY[o.severity] for o in overlaps)
        score -= sum(GAP_PENALTY[g.severity] for g in gaps)
        score -= MISSING_SLA_PENALTY * missing_sla
        score = max(0, min(100, score))

        health = WorkspaceHealth(
            overall_score=score,
            active_overlap_count=len(overlaps),
            critical_gap_count=sum(1 for g in gaps if g.severity == "critical"),
            estimated_weekly_friction_hours=round(sum(o.weekly_friction_cost for o in overlaps), 1),
            top_risk_statement=self._top_risk(overlaps, gaps),
        )
        logger.info(
            "Workspace %s overlap analysis: score=%d overlaps=%d gaps=%d",
            snapshot.workspace_id, score, len(overlaps), len(gaps),
            extra={"workspace_id": snapshot.workspace_id},
        )
        return WorkspaceOverlapResult(
            workspace_health=health,
            overlaps=overlaps,
            gaps=gaps,
            structural_insights=insights,
            manager_brief=self._brief(overlaps, gaps),
        )

    # ── Overlaps ──────────────────────────────────────────────────────────

    def classify_overlaps(self, snapshot, index) -> list[WorkspaceOverlap]:
        roles = {r.id: r for r in snapshot.roles}
        out = []
        for key in sorted(index):
            entry = index[key]
            if len(entry.claims) < 2:
                continue
            primaries = [rid for rid, c in entry.claims.items() if c[0] == "primary"]
            if not primaries:
                continue
            unclear = [rid for rid, c in entry.claims.items() if c[0] == "unclear"]

            if len(primaries) >= 2:
                interdependence = "reciprocal"
            elif self._sequential(snapshot, list(entry.claims)):
                interdependence = "sequential"
            else:
                interdependence = "pooled"

            if len(primaries) >= 2:
                severity, kind = "critical", "dual_accountability"
            elif unclear:
                severity, kind = "warning", "unclear_boundary"
            elif interdependence == "sequential":
                severity, kind = "warning", "sequential_handoff_gap"
            else:
                severity, kind = "info", "legitimate_collaboration"

            owner = min((roles[rid] for rid in primaries),
                        key=lambda r: (sum(len(a.items) for a in r.owns), r.id))
            others = [roles[rid].title for rid in entry.claims if rid != owner.id]
            recommendation = {
                "dual_accountability": f"Make {owner.title} the single owner of '{entry.item}'; "
                                       f"{', '.join(others)} move to contributes-to.",
                "unclear_boundary": f"Clarify whether {', '.join(others)} own or support '{entry.item}'.",
                "sequential_handoff_gap": f"Define the handoff point for '{entry.item}' between "
                                          f"{owner.title} and {', '.join(others)}.",
                "legitimate_collaboration": f"No change needed: {owner.title} owns '{entry.item}', "
                                            f"{', '.join(others)} contribute.",
            }[kind]

            out.append(WorkspaceOverlap(
                item=entry.item,
                roles=[
                    OwnershipClaim(role_id=rid, role_title=roles[rid].title,
                                   ownership_type=c[0], evidence=c[1])
                    for rid, c in sorted(entry.claims.items())
                ],
                severity=severity,
                overlap_type=kind,
                interdependence_type=interdependence,
                weekly_friction_cost=FRICTION_HOURS[interdependence],
                recommendation=recommendation,
                suggested_owner=owner.title,
                ownership_rationale=f"{owner.title} carries the lighter ownership load",
                conversation_needed=severity == "critical",
            ))
        out.sort(key=lambda o: (_SEVERITY_RANK[o.severity], item_key(o.item)))
        return out

    @staticmethod
    def _sequential(snapshot, role_ids) -> bool:
        linked = {(h.from_stage_id, h.to_stage_id) for h in snapshot.handoffs}
        linked |= {(b, a) for a, b in linked}
        stages = {rid: snapshot.stages_of_role(rid) for rid in role_ids}
        for a in role_ids:
            for b in role_ids:
                if a >= b:
                    continue
                if any((sa, sb) in linked for sa in stages[a] for sb in stages[b] if sa != sb):
                    return True
        return False

    # ── Gaps ──────────────────────────────────────────────────────────────

    def find_gaps(self, snapshot, index) -> list[WorkspaceGap]:
        roles = {r.id: r for r in snapshot.roles}
        stage_names = {s.id: s.name for s in snapshot.stages}
        gaps = []

        for h in snapshot.handoffs:
            if h.sla_owner.strip():
                continue
            upstream = sorted(snapshot.stage_roles.get(h.from_stage_id, ()))
            gaps.append(WorkspaceGap(
                item=f"{stage_names.get(h.from_stage_id, h.from_stage_id)} → "
                     f"{stage_names.get(h.to_stage_id, h.to_stage_id)} handoff",
                category="handoff_boundary",
                severity="high",
                likely_owner=roles[upstream[0]].title if upstream and upstream[0] in roles else None,
                reason="No role owns the SLA for this handoff",
                risk_if_unowned="Work waits between stages and nobody is accountable for the delay",
            ))

        for stage in snapshot.ordered_stages():
            if not snapshot.stage_roles.get(stage.id):
                gaps.append(WorkspaceGap(
                    item=stage.name,
                    category="operational",
                    severity="critical",
                    reason="No role is assigned to this stage",
                    risk_if_unowned=f"Everything that reaches {stage.name} stalls",
                ))

        if snapshot.stages and not any(r.oversees_stage_ids for r in snapshot.roles):
            gaps.append(WorkspaceGap(
                item="Pipeline oversight",
                category="leadership",
                severity="high",
                reason="No role oversees any stage",
                risk_if_unowned="Cross-stage trade-offs and escalations have no decision-maker",
            ))

        for key in sorted(index):
            entry = index[key]
            kinds = {c[0] for c in entry.claims.values()}
            if "contributor" in kinds and "primary" not in kinds:
                helper = min(rid for rid, c in entry.claims.items() if c[0] == "contributor")
                gaps.append(WorkspaceGap(
                    item=entry.item,
                    category="cross_functional",
                    severity="medium",
                    likely_owner=roles[helper].title,
                    reason="Roles contribute to this but no role owns it",
                    risk_if_unowned="Contributors wait for a decision nobody is responsible for",
                ))
        return gaps

    # ── Insights ──────────────────────────────────────────────────────────

    def structural_insights(self, snapshot, index, gaps) -> list[StructuralInsight]:
        insights = []
        handoff_text = " ".join(
            normalize(" ".join([h.notes, *h.tensions])) for h in snapshot.handoffs
        )

        for role in sorted(snapshot.roles, key=lambda r: r.id):
            item_count = sum(len(a.items) for a in role.owns)
            if len(role.owns) > SPAN_OF_CONTROL_LIMIT:
                insights.append(StructuralInsight(
                    type="span_of_control",
                    description=f"{role.title} owns {len(role.owns)} domains",
                    affected_roles=[role.title],
                    recommendation="Split the role or move whole domains to another role",
                    priority="medium",
                ))
            if item_count > OVERLOAD_ITEMS:
                insights.append(StructuralInsight(
                    type="role_overload",
                    description=f"{role.title} owns {item_count} items",
                    affected_roles=[role.title],
                    recommendation="Move lower-value items to contributors or drop them",
                    priority="high",
                ))
            if not role.owns and not role.contributes_to:
                insights.append(StructuralInsight(
                    type="role_underload",
                    description=f"{role.title} neither owns nor contributes to anything",
                    affected_roles=[role.title],
                    recommendation="Define what this role owns or retire it",
                    priority="medium",
                ))
            for area in role.owns:
                entry = index.get(item_key(area.title))
                if entry is None or list(entry.claims) != [role.id]:
                    continue
                referenced = bool(normalize(area.title)) and normalize(area.title) in handoff_text
                if len(area.items) >= CRITICAL_DOMAIN_ITEMS or referenced:
                    insights.append(StructuralInsight(
                        type="single_point_of_failure",
                        description=f"Only {role.title} holds '{area.title}' and nobody contributes",
                        affected_roles=[role.title],
                        recommendation=f"Name a contributor who can cover '{area.title}'",
                        priority="high",
                    ))

        if len(snapshot.handoffs) >= BOTTLENECK_MIN_HANDOFFS:
            for role in sorted(snapshot.roles, key=lambda r: r.id):
                stages = snapshot.stages_of_role(role.id)
                involved = sum(
                    1 for h in snapshot.handoffs
                    if h.from_stage_id in stages or h.to_stage_id in stages
                    or h.sla_owner.strip() in (str(role.id), role.title)
                )
                if involved / len(snapshot.handoffs) > BOTTLENECK_SHARE:
                    insights.append(StructuralInsight(
                        type="communication_bottleneck",
                        description=f"{role.title} takes part in {involved} of {len(snapshot.handoffs)} handoffs",
                        affected_roles=[role.title],
                        recommendation="Let adjacent stages hand off directly where possible",
                        priority="medium",
                    ))

        for gap in gaps:
            if gap.category in ("operational", "leadership"):
                insights.append(StructuralInsight(
                    type="missing_role",
                    description=f"Nobody holds '{gap.item}'",
                    recommendation=f"Assign '{gap.item}' to an existing role or open a new one",
                    priority="high" if gap.severity == "critical" else "medium",
                ))
        return insights

    # ── Prose ─────────────────────────────────────────────────────────────

    @staticmethod
    def _top_risk(overlaps, gaps) -> str:
        critical = [o for o in overlaps if o.severity == "critical"]
        if critical:
            return (f"{len(critical)} item(s) have more than one accountable owner, "
                    f"starting with '{critical[0].item}'.")
        critical_gaps = [g for g in gaps if g.severity == "critical"]
        if critical_gaps:
            return f"'{critical_gaps[0].item}' has no owner at all."
        if gaps or overlaps:
            return "No critical risks; a few boundaries need tightening."
        return "No ownership risks found."

    @staticmethod
    def _brief(overlaps, gaps) -> WorkspaceBrief:
        critical = [o for o in overlaps if o.severity == "critical"]
        critical_gaps = [g for g in gaps if g.severity == "critical"]
        high_gaps = [g for g in gaps if g.severity == "high"]
        if critical:
            fix_first = f"Choose one owner for '{critical[0].item}'"
        elif critical_gaps:
            fix_first = f"Staff '{critical_gaps[0].item}'"
        elif high_gaps:
            fix_first = f"Assign an owner for {high_gaps[0].item}"
        else:
            fix_first = "Nothing urgent; review boundaries at the next team sync"

        quick_wins = [f"Assign an SLA owner to the {g.item}" for g in gaps if g.category == "handoff_boundary"]
        quick_wins += [o.recommendation for o in overlaps if o.severity == "info"]
        conversations = [
            WorkspaceConversation(
                between=[c.role_title for c in o.roles],
                about=o.item,
                suggested_outcome=f"{o.suggested_owner} owns '{o.item}'; the others contribute",
            )
            for o in overlaps if o.severity in ("critical", "warning")
        ]
        return WorkspaceBrief(fix_first=fix_first, quick_wins=quick_wins[:5], conversations_needed=conversations)

    def _narrate(self, result, snapshot, *, user) -> WorkspaceOverlapResult:
        context = {
            "score": result.workspace_health.overall_score,
            "overlaps": [o.dump() for o in result.overlaps[:15]],
            "gaps": [g.dump() for g in result.gaps[:15]],
        }
        try:
            narrative = self.backend.detect_overlaps(context, workspace_id=snapshot.workspace_id, user=user)
        except BackendError as exc:
            raise AnalysisFailed(
                f"Overlap analysis failed: {exc}",
                details={"kind": exc.kind, "purpose": exc.purpose},
            ) from exc

        recs = {item_key(k): v for k, v in narrative.recommendations.items() if v.strip()}
        overlaps = [
            o.model_copy(update={"recommendation": recs.get(item_key(o.item), o.recommendation)})
            for o in result.overlaps
        ]
        health = result.workspace_health.model_copy(update={"top_risk_statement": narrative.top_risk_statement})
        return result.model_copy(update={"overlaps": overlaps, "workspace_health": health})
