"""
Comparator — expected role vs. the role as currently defined.

The analysis is deterministic: five dimension scores, gaps, overlaps with
sibling roles and a RACI audit are computed from the extraction and the
entity views alone. The backend only writes prose (summary, do-nothing
risk, optionally the top priority) on top of the finished result.

Scoring:
    overall = .30·accountability + .25·boundaries + .20·deliverables
              + .15·purpose + .10·overlap, rounded, clamped to [0, 100]
    role without any ownership data → clamped into [20, 40]
"""

import logging

from roleclarity.ai.backend import BackendError
from roleclarity.ai.schemas import (
    ClarityScore,
    ComparisonResult,
    Conversation,
    DimensionScores,
    ExpectedRoleExtraction,
    Gap,
    ManagerBrief,
    Overlap,
    RaciIssue,
)
from roleclarity.clarity.entities import RoleView
from roleclarity.clarity.text import coverage, find_match, matches, normalize, similarity
from roleclarity.core.exceptions import ComparisonFailed, RoleNotFound

logger = logging.getLogger(__name__)

WEIGHTS = {
    "accountability_clarity": 0.30,
    "boundary_clarity": 0.25,
    "deliverable_completeness": 0.20,
    "purpose_alignment": 0.15,
    "overlap_risk": 0.10,
}
NO_OWNERSHIP_BAND = (20, 40)
FRICTION_PENALTY = {"high": 20, "medium": 10, "low": 5}
RACI_PENALTY = 15

INTERPRETATION_BANDS = (
    (40, "high dysfunction"),
    (70, "needs work"),
    (85, "functional"),
    (100, "well defined"),
)


def clamp(value, low=0, high=100) -> int:
    return int(max(low, min(high, round(value))))


def interpret(score: int) -> str:
    for upper, label in INTERPRETATION_BANDS:
        if score <= upper:
            return label
    return INTERPRETATION_BANDS[-1][1]


def overall_score(dimensions: DimensionScores, has_ownership: bool = True) -> int:
    total = clamp(sum(getattr(dimensions, name) * w for name, w in WEIGHTS.items()))
    if not has_ownership:
        total = clamp(total, *NO_OWNERSHIP_BAND)
    return total


def _domain_terms(domain) -> list[str]:
    return [domain.title] + list(domain.items)


def _owns_domain(role: RoleView, domain) -> bool:
    return any(find_match(term, role.owned_items) for term in _domain_terms(domain))


def _responsibilities_for(expected: ExpectedRoleExtraction, domain, raci_type: str) -> list:
    return [
        r for r in expected.responsibilities
        if r.raci_type == raci_type and any(matches(r.text, t) for t in _domain_terms(domain))
    ]


class RoleComparator:
    """
    Args:
        backend: ClarityBackend used for the narrative; None keeps the
            deterministic prose.
    """

    def __init__(self, backend=None):
        self.backend = backend

    # ── Public API ────────────────────────────────────────────────────────

    def compare(self, expected: ExpectedRoleExtraction, role_id: int, *, store,
                workspace_id: int | None = None, user: str = "system") -> ComparisonResult:
        """Load the role and its siblings through ``store`` and run the full comparison."""
        try:
            role = store.role_view(role_id)
            siblings = store.siblings(role_id)
        except RoleNotFound as exc:
            raise ComparisonFailed(str(exc), cause=exc) from exc

        result = self.analyze(expected, role, siblings)
        if self.backend is None:
            return result
        return self._narrate(result, expected, role, workspace_id=workspace_id, user=user)

    def analyze(self, expected: ExpectedRoleExtraction, role: RoleView,
                siblings: list[RoleView]) -> ComparisonResult:
        overlaps = self.find_overlaps(expected, role, siblings)
        raci_issues = self.audit_raci(expected, role, siblings)
        dimensions = self.score_dimensions(expected, role, overlaps, raci_issues)
        overall = overall_score(dimensions, role.has_ownership)
        gaps = self.find_gaps(expected, role, siblings, dimensions)
        interpretation = interpret(overall)

        brief = self.build_brief(role, gaps, overlaps, raci_issues)
        summary = (
            f"{role.title} scores {overall}/100 ({interpretation}) against the expected "
            f"'{expected.title}' role: {len(gaps)} gap(s), {len(overlaps)} overlap(s), "
            f"{len(raci_issues)} accountability issue(s)."
        )
        logger.info("Compared role %s: overall=%d", role.id, overall, extra={"role_id": role.id})
        return ComparisonResult(
            summary=summary,
            clarity_score=ClarityScore(overall=overall, dimensions=dimensions, interpretation=interpretation),
            gaps=gaps,
            overlaps=overlaps,
            raci_issues=raci_issues,
            manager_brief=brief,
        )

    # ── Scores ────────────────────────────────────────────────────────────

    def score_dimensions(self, expected, role, overlaps, raci_issues) -> DimensionScores:
        if not role.purpose.strip():
            purpose = 10
        else:
            alignment = max(similarity(expected.purpose, role.purpose),
                            coverage(expected.purpose, role.purpose) * 0.8)
            purpose = clamp(30 + 70 * alignment)

        role_bounds = list(role.does_not_own) + list(role.contributes_to)
        expected_bounds = list(expected.does_not_own) + list(expected.contributes_to)
        if not role_bounds:
            boundary = 15
        elif not expected_bounds:
            boundary = 70
        else:
            hit = sum(1 for b in expected_bounds if find_match(b, role_bounds))
            boundary = clamp(15 + 85 * hit / len(expected_bounds))

        role_deliverables = list(role.deliverables) + list(role.outputs)
        if not expected.deliverables:
            deliverable = 80 if role_deliverables else 40
        else:
            hit = sum(1 for d in expected.deliverables if find_match(d.text, role_deliverables))
            deliverable = clamp(100 * hit / len(expected.deliverables))

        overlap = clamp(100 - sum(FRICTION_PENALTY[o.friction_cost] for o in overlaps))

        if not role.has_ownership:
            accountability = 10
        elif not expected.ownership_domains:
            accountability = clamp(60 - RACI_PENALTY * len(raci_issues))
        else:
            covered = sum(1 for d in expected.ownership_domains if _owns_domain(role, d))
            base = 100 * covered / len(expected.ownership_domains)
            accountability = clamp(base - RACI_PENALTY * len(raci_issues))

        return DimensionScores(
            purpose_alignment=purpose,
            boundary_clarity=boundary,
            deliverable_completeness=deliverable,
            overlap_risk=overlap,
            accountability_clarity=accountability,
        )

    # ── Findings ──────────────────────────────────────────────────────────

    def find_overlaps(self, expected, role, siblings) -> list[Overlap]:
        """One overlap per claimed item, naming every sibling that claims it.

        Items are keyed by the sibling's own wording, so "Pricing" and
        "Client pricing" colliding with one sibling "Pricing" report once.
        """
        found: dict[str, Overlap] = {}

        for domain in expected.ownership_domains:
            for item in _domain_terms(domain):
                if not normalize(item):
                    continue
                owners, helpers, claimed = [], [], []
                for s in siblings:
                    hit = find_match(item, s.owned_items)
                    if hit:
                        owners.append(s.title)
                        claimed.append(hit)
                for s in siblings:
                    hit = find_match(item, s.contributes_to)
                    if hit and s.title not in owners:
                        helpers.append(s.title)
                        claimed.append(hit)
                if not claimed:
                    continue
                key = normalize(claimed[0])
                if key in found:
                    continue
                if owners and domain.decision_rights == "full":
                    kind, cost = "dual_accountability", "high"
                    rec = f"Decide one accountable owner for '{item}'; the other role moves to contributes-to."
                elif owners:
                    kind, cost = "unclear_boundary", "medium"
                    rec = f"Write down where {role.title}'s part of '{item}' ends and {', '.join(owners)}'s begins."
                else:
                    kind, cost = "legitimate_collaboration", "low"
                    rec = f"Keep '{item}' with {role.title}; record {', '.join(helpers)} as contributors."
                found[key] = Overlap(
                    item=item,
                    current_owner=", ".join(owners + helpers),
                    expected_owner=role.title,
                    overlap_type=kind,
                    friction_cost=cost,
                    recommendation=rec,
                )

        for item in role.owned_items:
            key = normalize(item)
            if not key or key in found or not find_match(item, expected.does_not_own):
                continue
            owners = [s.title for s in siblings if find_match(item, s.owned_items)]
            if owners:
                found[key] = Overlap(
                    item=item,
                    current_owner=role.title,
                    expected_owner=", ".join(owners),
                    overlap_type="scope_creep",
                    friction_cost="medium",
                    recommendation=f"Hand '{item}' back to {', '.join(owners)} and add it to {role.title}'s does-not-own list.",
                )
        return list(found.values())

    def audit_raci(self, expected, role, siblings) -> list[RaciIssue]:
        issues = []
        for domain in expected.ownership_domains:
            accountable_resps = _responsibilities_for(expected, domain, "accountable")
            target_accountable = domain.decision_rights == "full" or bool(accountable_resps)
            sibling_owners = [s.title for s in siblings if _owns_domain(s, domain)]
            holders = ([role.title] if target_accountable else []) + sibling_owners

            if not holders:
                if _responsibilities_for(expected, domain, "responsible"):
                    issues.append(RaciIssue(
                        domain=domain.title,
                        issue="responsible_without_accountable",
                        current_state="Work is done here but nobody is accountable for the outcome",
                        recommendation=f"Name one accountable owner for {domain.title}.",
                    ))
                else:
                    issues.append(RaciIssue(
                        domain=domain.title,
                        issue="no_accountable",
                        current_state="No role is accountable",
                        recommendation=f"Make {role.title} accountable for {domain.title} or assign it explicitly.",
                    ))
            elif len(holders) > 1:
                issues.append(RaciIssue(
                    domain=domain.title,
                    issue="multiple_accountable",
                    current_state=f"Accountable: {', '.join(holders)}",
                    recommendation=f"Keep exactly one accountable role for {domain.title}.",
                ))
            elif target_accountable and domain.decision_rights in ("advisory", "unclear"):
                issues.append(RaciIssue(
                    domain=domain.title,
                    issue="accountable_without_authority",
                    current_state=f"{role.title} is accountable but decision rights are {domain.decision_rights}",
                    recommendation=f"Give {role.title} decision rights over {domain.title} or move accountability.",
                ))
        return issues

    def find_gaps(self, expected, role, siblings, dimensions) -> list[Gap]:
        gaps = []

        if dimensions.purpose_alignment < 60:
            gaps.append(Gap(
                area="Core purpose",
                expected=expected.purpose,
                current=role.purpose or "(not defined)",
                severity="high" if dimensions.purpose_alignment < 40 else "medium",
                category="purpose_mismatch",
                risk_statement="If not fixed → people prioritise different outcomes for the same role.",
            ))

        for domain in expected.ownership_domains:
            claimants = [s.title for s in siblings if _owns_domain(s, domain)]
            if not _owns_domain(role, domain):
                gaps.append(Gap(
                    area=domain.title,
                    expected=f"Owns {domain.title}" + (f": {', '.join(domain.items)}" if domain.items else ""),
                    current="Not part of the role's ownership",
                    severity="high" if domain.decision_rights == "full" else "medium",
                    category="missing_accountability",
                    risk_statement=f"If not fixed → decisions about {domain.title} stall or get made twice.",
                    affected_parties=claimants,
                ))
                continue
            missing = [i for i in domain.items if not find_match(i, role.owned_items)]
            if missing:
                gaps.append(Gap(
                    area=domain.title,
                    expected=", ".join(missing),
                    current="Domain owned, items not listed",
                    severity="low",
                    category="scope_gap",
                    risk_statement=f"If not fixed → {', '.join(missing)} fall between the cracks.",
                    affected_parties=claimants,
                ))

        for item in role.owned_items:
            if find_match(item, expected.does_not_own) and not any(find_match(item, s.owned_items) for s in siblings):
                gaps.append(Gap(
                    area=item,
                    expected="Outside the role",
                    current="Owned by the role",
                    severity="medium",
                    category="scope_gap",
                    risk_statement=f"If not fixed → {role.title} keeps spending time on {item}.",
                ))

        role_deliverables = list(role.deliverables) + list(role.outputs)
        for d in expected.deliverables:
            if not find_match(d.text, role_deliverables):
                gaps.append(Gap(
                    area="Deliverables",
                    expected=d.text + (f" ({d.suggested_metric})" if d.suggested_metric else ""),
                    current="Not listed",
                    severity="medium" if d.measurable else "low",
                    category="missing_deliverable",
                    risk_statement=f"If not fixed → nobody can tell whether '{d.text}' is being delivered.",
                ))

        for b in expected.does_not_own:
            if not find_match(b, role.does_not_own):
                owners = [s.title for s in siblings if find_match(b, s.owned_items)]
                gaps.append(Gap(
                    area="Boundaries",
                    expected=f"Does not own {b}",
                    current="Boundary not stated",
                    severity="medium" if owners else "low",
                    category="missing_boundary",
                    risk_statement=f"If not fixed → {role.title} gets pulled into {b}.",
                    affected_parties=owners,
                ))
        for c in expected.contributes_to:
            if not find_match(c, role.contributes_to):
                gaps.append(Gap(
                    area="Boundaries",
                    expected=f"Contributes to {c}",
                    current="Contribution not stated",
                    severity="low",
                    category="missing_boundary",
                    risk_statement=f"If not fixed → it is unclear whether {role.title} leads or supports {c}.",
                ))

        if expected.autonomy_level in ("high", "full") and role.budget_level in ("none", "influence"):
            gaps.append(Gap(
                area="Authority",
                expected=f"{expected.autonomy_level} autonomy",
                current=f"budget level '{role.budget_level}'",
                severity="medium",
                category="authority_gap",
                risk_statement="If not fixed → the role is expected to decide but cannot commit resources.",
            ))

        required = [s.text for s in expected.skills if s.required]
        missing_skills = [s for s in required if not find_match(s, role.competencies)]
        if missing_skills:
            gaps.append(Gap(
                area="Skills",
                expected=", ".join(missing_skills),
                current=", ".join(role.competencies) or "(none recorded)",
                severity="medium" if len(missing_skills) > 3 else "low",
                category="skill_gap",
                risk_statement="If not fixed → hiring and development target the wrong strengths.",
            ))
        return gaps

    def build_brief(self, role, gaps, overlaps, raci_issues) -> ManagerBrief:
        dual = [o for o in overlaps if o.overlap_type == "dual_accountability"]
        high_gaps = [g for g in gaps if g.severity == "high"]
        if dual:
            top = f"Settle who is accountable for '{dual[0].item}' between {role.title} and {dual[0].current_owner}."
        elif high_gaps:
            top = f"Fix {role.title}'s {high_gaps[0].area.lower()}: {high_gaps[0].expected}."
        elif raci_issues:
            top = raci_issues[0].recommendation
        elif gaps:
            top = f"Close the {gaps[0].category.replace('_', ' ')} in {gaps[0].area}."
        else:
            top = f"Keep the {role.title} definition current; no structural fix is needed."

        quick_wins = []
        if not role.purpose.strip():
            quick_wins.append(f"Write a one-line core purpose for {role.title}")
        for g in gaps:
            if g.category == "missing_boundary":
                quick_wins.append(f"{role.title}: add '{g.expected}' to the boundaries")
            elif g.category == "missing_deliverable":
                quick_wins.append(f"{role.title}: add deliverable '{g.expected}'")
        quick_wins = quick_wins[:5]

        conversations = []
        seen = set()
        for o in overlaps:
            if o.overlap_type == "legitimate_collaboration":
                continue
            other = o.expected_owner if o.overlap_type == "scope_creep" else o.current_owner
            if normalize(other) in seen:
                continue
            seen.add(normalize(other))
            conversations.append(Conversation(**{
                "with": other,
                "about": o.item,
                "why": f"{o.overlap_type.replace('_', ' ')} with {role.title}",
            }))

        if dual or high_gaps:
            risk = (f"Within 3-6 months {role.title} and its neighbours keep making conflicting calls; "
                    "work is duplicated or dropped and escalations land on the manager.")
        elif gaps or overlaps:
            risk = (f"Within 3-6 months small ambiguities around {role.title} turn into recurring "
                    "friction and slower handoffs.")
        else:
            risk = "Low: the role is clear today; drift is the main risk over 3-6 months."

        return ManagerBrief(top_priority=top, quick_wins=quick_wins,
                            conversations_needed=conversations, do_nothing_risk=risk)

    # ── Narrative ─────────────────────────────────────────────────────────

    def _narrate(self, result, expected, role, *, workspace_id, user) -> ComparisonResult:
        context = {
            "roleTitle": role.title,
            "expectedTitle": expected.title,
            "overall": result.clarity_score.overall,
            "interpretation": result.clarity_score.interpretation,
            "findings": {
                "dimensions": result.clarity_score.dimensions.dump(),
                "gaps": [g.dump() for g in result.gaps[:10]],
                "overlaps": [o.dump() for o in result.overlaps[:10]],
                "raciIssues": [r.dump() for r in result.raci_issues],
            },
        }
        try:
            narrative = self.backend.compare(context, workspace_id=workspace_id, user=user)
        except BackendError as exc:
            raise ComparisonFailed(
                f"Role comparison failed: {exc}",
                details={"kind": exc.kind, "errors": exc.errors[:5]},
            ) from exc

        brief = result.manager_brief.model_copy(update={
            "do_nothing_risk": narrative.do_nothing_risk,
            "top_priority": narrative.top_priority or result.manager_brief.top_priority,
        })
        return result.model_copy(update={"summary": narrative.summary, "manager_brief": brief})
