"""
Proposal Generator — comparison findings → atomic, sequenced change proposals.

Each proposal touches exactly one (entity, field) pair and carries the full
replacement value for that field. Proposals come out ordered by sequence
group, then creation order:

    1  core purpose
    2  owns
    3  boundaries (does_not_own / contributes_to, sibling resolve_overlap)
    4  deliverables / outputs
    5  fine tuning (strength_profile, budget_level)

A proposal whose value equals the current one (ignoring case, whitespace
and list order) is never emitted.
"""

import logging

from roleclarity.ai.schemas import (
    ComparisonResult,
    ExpectedRoleExtraction,
    ImplementationPlan,
    ProposalDraft,
    ProposalMetadata,
    ProposalSet,
)
from roleclarity.clarity.entities import RoleView
from roleclarity.clarity.text import dedupe, find_match, matches, same_value
from roleclarity.models.workspace import BUDGET_LEVELS

logger = logging.getLogger(__name__)

WELL_DEFINED_THRESHOLD = 5
PURPOSE_ALIGNED = 80
EFFORT_MINUTES = {"trivial": 2, "small": 10, "medium": 30, "large": 60}
AUTONOMY_BUDGET = {"high": "manage", "full": "own"}

GROUP_LABELS = {
    1: "Align the core purpose",
    2: "Settle what the role owns",
    3: "Write down the boundaries and resolve overlaps with neighbouring roles",
    4: "Complete deliverables and outputs",
    5: "Fine-tune strengths and budget authority",
}


def _effort(changes: int) -> str:
    if changes <= 1:
        return "trivial"
    if changes <= 3:
        return "small"
    if changes <= 6:
        return "medium"
    return "large"


def _format_minutes(minutes: int) -> str:
    if minutes < 60:
        return f"~{minutes} minutes"
    hours = minutes / 60
    return f"~{hours:.1f} hours".replace(".0 ", " ")


class ProposalGenerator:

    def generate(self, comparison: ComparisonResult, role: RoleView,
                 expected: ExpectedRoleExtraction, siblings=()) -> ProposalSet:
        self._drafts: list[ProposalDraft] = []

        self._purpose(comparison, role, expected)
        self._ownership(role, expected, siblings)
        self._boundaries(role, expected, siblings)
        self._deliverables(role, expected)
        self._fine_tuning(role, expected)

        proposals = sorted(self._drafts, key=lambda d: d.metadata.sequence_group)
        plan = self._plan(role, comparison, proposals)
        logger.info("Generated %d proposals for role %s", len(proposals), role.id,
                    extra={"role_id": role.id})
        return ProposalSet(proposals=proposals, implementation_plan=plan)

    # ── Groups ────────────────────────────────────────────────────────────

    def _purpose(self, comparison, role, expected):
        if not expected.purpose.strip() or comparison.clarity_score.dimensions.purpose_alignment >= PURPOSE_ALIGNED:
            return
        self._emit(
            type="edit_role", role_id=role.id, field="core_purpose",
            current=role.purpose, proposed=expected.purpose.strip(),
            title=f"Set {role.title}'s core purpose",
            explanation="The written purpose does not match what the role is expected to achieve.",
            impact="Everyone prioritises against the same outcome.",
            effort="trivial", confidence="medium" if role.purpose else "high",
            group=1, do_nothing_cost="Conflicting priorities for the same role",
        )

    def _ownership(self, role, expected, siblings):
        current = role.owns_as_dicts()
        proposed = []
        removed = []
        for cat in current:
            items = [i for i in cat["items"] if not find_match(i, expected.does_not_own)]
            removed += [i for i in cat["items"] if i not in items]
            if not items and find_match(cat["title"], expected.does_not_own):
                removed.append(cat["title"])
                continue
            proposed.append({"title": cat["title"], "items": items})

        added = []
        for domain in expected.ownership_domains:
            target = next((c for c in proposed if matches(c["title"], domain.title)), None)
            if target is None:
                proposed.append({"title": domain.title, "items": dedupe(domain.items)})
                added.append(domain.title)
                continue
            new_items = [i for i in domain.items if not find_match(i, target["items"] + [target["title"]])]
            if new_items:
                target["items"] = target["items"] + new_items
                added += new_items

        contested = [s.title for s in siblings if any(find_match(a, s.owned_items) for a in added)]
        self._emit(
            type="add_ownership" if added else "remove_ownership",
            role_id=role.id, field="owns", current=current, proposed=proposed,
            title=f"Update what {role.title} owns (+{len(added)} / -{len(removed)})",
            explanation=(
                (f"Adds {', '.join(added)}. " if added else "")
                + (f"Removes {', '.join(removed)}, which the role should not own." if removed else "")
            ).strip(),
            impact="One clear accountable owner per domain.",
            effort=_effort(len(added) + len(removed)),
            confidence="medium" if contested else "high",
            group=2, requires_conversation=bool(contested), affected_roles=contested,
            do_nothing_cost="Decisions in these domains stall or get made twice",
        )

    def _boundaries(self, role, expected, siblings):
        owned_terms = [t for d in expected.ownership_domains for t in [d.title, *d.items]]

        kept = [x for x in role.does_not_own if not find_match(x, owned_terms)]
        additions = [x for x in expected.does_not_own if not find_match(x, kept)]
        self._emit(
            type="set_boundary", role_id=role.id, field="does_not_own",
            current=list(role.does_not_own), proposed=dedupe(kept + additions),
            title=f"Record what {role.title} does not own",
            explanation="Explicit exclusions stop the role from being pulled into neighbouring work.",
            impact="Fewer 'is this mine?' questions.",
            effort=_effort(len(additions)), confidence="high",
            group=3, do_nothing_cost="Scope creep into neighbouring roles",
        )

        kept = [x for x in role.contributes_to if not find_match(x, owned_terms)]
        additions = [x for x in expected.contributes_to if not find_match(x, kept)]
        self._emit(
            type="set_boundary", role_id=role.id, field="contributes_to",
            current=list(role.contributes_to), proposed=dedupe(kept + additions),
            title=f"Record where {role.title} contributes without owning",
            explanation="Support work is listed separately from ownership.",
            impact="Contributions no longer read as accountability.",
            effort=_effort(len(additions)), confidence="high",
            group=3, do_nothing_cost="Support work is mistaken for ownership",
        )

        for sibling in siblings:
            claimed = [t for t in owned_terms if find_match(t, sibling.owned_items)]
            if not claimed:
                continue
            self._emit(
                type="resolve_overlap", role_id=sibling.id, field="does_not_own",
                current=list(sibling.does_not_own),
                proposed=dedupe(list(sibling.does_not_own) + [t for t in claimed if not find_match(t, sibling.does_not_own)]),
                title=f"Hand {', '.join(claimed)} over from {sibling.title} to {role.title}",
                explanation=(f"{sibling.title} also claims {', '.join(claimed)}. Recording it as outside "
                             f"{sibling.title}'s ownership leaves {role.title} as the single owner."),
                impact="One accountable owner instead of two.",
                effort="small", confidence="medium",
                group=3, requires_conversation=True, affected_roles=[sibling.title, role.title],
                do_nothing_cost="Duplicate work and conflicting decisions",
            )

    def _deliverables(self, role, expected):
        additions = [d.text for d in expected.deliverables if not find_match(d.text, role.deliverables)]
        self._emit(
            type="add_deliverable", role_id=role.id, field="key_deliverables",
            current=list(role.deliverables), proposed=dedupe(list(role.deliverables) + additions),
            title=f"Add {len(additions)} key deliverable(s) to {role.title}",
            explanation="Expected results that are not written down cannot be reviewed.",
            impact="Performance conversations have concrete anchors.",
            effort=_effort(len(additions)), confidence="high",
            group=4, do_nothing_cost="Nobody can tell whether the role delivers",
        )

        kept = [o for o in role.outputs if not find_match(o, expected.does_not_own)]
        self._emit(
            type="remove_deliverable", role_id=role.id, field="outputs",
            current=list(role.outputs), proposed=kept,
            title=f"Remove outputs that fall outside {role.title}",
            explanation="These outputs belong to work the role should not own.",
            impact="The role stops producing work that belongs elsewhere.",
            effort=_effort(len(role.outputs) - len(kept)), confidence="medium",
            group=4, do_nothing_cost="Time spent on work owned by someone else",
        )

    def _fine_tuning(self, role, expected):
        required = [s.text for s in expected.skills if s.required]
        additions = [s for s in required if not find_match(s, role.competencies)]
        self._emit(
            type="edit_role", role_id=role.id, field="strength_profile",
            current=list(role.competencies), proposed=dedupe(list(role.competencies) + additions),
            title=f"Add required strengths to {role.title}",
            explanation="Required skills from the expected role are missing from the strength profile.",
            impact="Hiring and development target the right strengths.",
            effort=_effort(len(additions)), confidence="medium",
            group=5, do_nothing_cost="Skill gaps stay invisible",
        )

        wanted = AUTONOMY_BUDGET.get(expected.autonomy_level)
        current = role.budget_level if role.budget_level in BUDGET_LEVELS else "none"
        if wanted and BUDGET_LEVELS.index(wanted) > BUDGET_LEVELS.index(current):
            self._emit(
                type="edit_role", role_id=role.id, field="budget_level",
                current=role.budget_level, proposed=wanted,
                title=f"Raise {role.title}'s budget authority to '{wanted}'",
                explanation=f"The role is expected to work with {expected.autonomy_level} autonomy.",
                impact="The role can commit the resources its decisions need.",
                effort="trivial", confidence="low",
                group=5, requires_conversation=True, affected_roles=[role.title],
                do_nothing_cost="Decisions wait for someone else's budget approval",
            )

    # ── Helpers ───────────────────────────────────────────────────────────

    def _emit(self, *, type, role_id, field, current, proposed, title, explanation, impact,
              effort, confidence, group, requires_conversation=False, affected_roles=None,
              do_nothing_cost=""):
        if same_value(current, proposed):
            return
        self._drafts.append(ProposalDraft(
            type=type,
            target_role_id=role_id,
            field=field,
            current_value=current,
            proposed_value=proposed,
            title=title,
            explanation=explanation,
            impact=impact,
            metadata=ProposalMetadata(
                effort=effort,
                confidence=confidence,
                requires_conversation=requires_conversation,
                affected_roles=affected_roles or [],
                sequence_group=group,
                reversible=True,
                do_nothing_cost=do_nothing_cost,
            ),
        ))

    @staticmethod
    def _plan(role, comparison, proposals) -> ImplementationPlan:
        minutes = sum(EFFORT_MINUTES[p.metadata.effort] for p in proposals)
        talks = [p for p in proposals if p.metadata.requires_conversation]
        estimated = _format_minutes(minutes) + (f" plus {len(talks)} conversation(s)" if talks else "")

        groups = sorted({p.metadata.sequence_group for p in proposals})
        sequence = [f"{i}. {GROUP_LABELS[g]}" for i, g in enumerate(groups, 1)]
        well_defined = len(proposals) < WELL_DEFINED_THRESHOLD
        if well_defined:
            sequence.insert(0, f"{role.title} is already well defined; "
                               f"{len(proposals)} small refinement(s) suggested.")

        if talks:
            risk = f"Changing ownership before talking to {', '.join(dict.fromkeys(r for p in talks for r in p.metadata.affected_roles))}"
        elif proposals:
            risk = comparison.manager_brief.do_nothing_risk
        else:
            risk = "None: the role already matches the expectations."
        return ImplementationPlan(
            estimated_time=estimated,
            suggested_sequence=sequence,
            biggest_risk=risk,
            well_defined=well_defined,
        )
