"""
Read-only views of workspace entities as the clarity engine sees them.

The engine never touches ORM rows directly: the entity store builds these
frozen views, and every analysis works on them. That keeps the scoring and
sequencing code runnable on plain data in tests.
"""

from dataclasses import dataclass, field

from roleclarity.clarity.text import normalize


@dataclass(frozen=True)
class OwnershipArea:
    title: str
    items: tuple[str, ...] = ()


@dataclass(frozen=True)
class RoleView:
    id: int
    title: str
    purpose: str = ""
    job_title: str = ""
    owns: tuple[OwnershipArea, ...] = ()
    does_not_own: tuple[str, ...] = ()
    contributes_to: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    deliverables: tuple[str, ...] = ()
    budget_level: str = "none"
    competencies: tuple[str, ...] = ()
    oversees_stage_ids: tuple[int, ...] = ()

    @property
    def owned_items(self) -> list[str]:
        """Category titles followed by their items, in declaration order."""
        out = []
        for area in self.owns:
            out.append(area.title)
            out.extend(area.items)
        return out

    @property
    def has_ownership(self) -> bool:
        return any(normalize(x) for x in self.owned_items)

    def owns_as_dicts(self) -> list[dict]:
        return [{"title": a.title, "items": list(a.items)} for a in self.owns]


@dataclass(frozen=True)
class StageView:
    id: int
    name: str
    sort_order: int = 0


@dataclass(frozen=True)
class HandoffView:
    id: int
    from_stage_id: int
    to_stage_id: int
    sla: str = ""
    sla_owner: str = ""
    notes: str = ""
    tensions: tuple[str, ...] = ()

    @property
    def covered(self) -> bool:
        return bool(self.sla.strip()) and bool(self.sla_owner.strip())


@dataclass(frozen=True)
class WorkspaceSnapshot:
    workspace_id: int
    roles: tuple[RoleView, ...] = ()
    stages: tuple[StageView, ...] = ()
    handoffs: tuple[HandoffView, ...] = ()
    # stage_id -> role ids working in that stage
    stage_roles: dict[int, tuple[int, ...]] = field(default_factory=dict)

    def role(self, role_id: int) -> RoleView | None:
        return next((r for r in self.roles if r.id == role_id), None)

    def ordered_stages(self) -> list[StageView]:
        return sorted(self.stages, key=lambda s: (s.sort_order, s.id))

    def stages_of_role(self, role_id: int) -> set[int]:
        return {sid for sid, rids in self.stage_roles.items() if role_id in rids}
