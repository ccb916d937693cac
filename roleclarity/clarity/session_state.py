"""
Guided clarity session — immutable state machine.

    welcome → import → extracting → review-extraction → select-role
            → comparing → comparison → proposals → done

Every operation takes a ``SessionState`` and returns a new one; nothing is
mutated in place. Busy steps (extracting, comparing) hand out a ``Ticket``;
a result presented with a ticket whose version or step no longer matches
is dropped and the state returned unchanged.
"""

import logging
from dataclasses import dataclass, replace

from roleclarity.core.exceptions import InvalidTransition

logger = logging.getLogger(__name__)

STEPS = (
    "welcome", "import", "select-role", "extracting", "review-extraction",
    "comparing", "comparison", "proposals", "done",
)

TRANSITIONS = {
    "welcome": {"import"},
    "import": {"extracting", "welcome"},
    "extracting": {"review-extraction", "import"},
    "review-extraction": {"select-role", "import"},
    "select-role": {"select-role", "comparing", "review-extraction"},
    "comparing": {"comparison", "review-extraction"},
    "comparison": {"proposals", "review-extraction"},
    "proposals": {"done", "comparison"},
    "done": set(),
}

BACK = {
    "import": "welcome",
    "select-role": "review-extraction",
    "review-extraction": "import",
    "comparison": "review-extraction",
    "proposals": "comparison",
}

BUSY_STEPS = {"extracting", "comparing"}

# step → persisted ClaritySession.status
STATUS_FOR_STEP = {
    "welcome": "draft",
    "import": "draft",
    "select-role": "draft",
    "extracting": "analyzing",
    "review-extraction": "draft",
    "comparing": "analyzing",
    "comparison": "compared",
    "proposals": "compared",
    "done": "resolved",
}


@dataclass(frozen=True)
class Ticket:
    version: int
    step: str


@dataclass(frozen=True)
class SessionState:
    step: str = "welcome"
    version: int = 0
    input_type: str = "paste"
    input_text: str = ""
    input_url: str | None = None
    selected_role_id: int | None = None
    extraction: dict | None = None
    comparison: dict | None = None
    implementation_plan: dict | None = None
    proposals: tuple[int, ...] = ()
    error: str | None = None

    @property
    def status(self) -> str:
        return STATUS_FOR_STEP[self.step]

    @property
    def busy(self) -> bool:
        return self.step in BUSY_STEPS


def transition(state: SessionState, target: str, **changes) -> SessionState:
    """Move to ``target`` if allowed, bumping the version."""
    if target not in TRANSITIONS.get(state.step, set()):
        raise InvalidTransition(state.step, target)
    return replace(state, step=target, version=state.version + 1, **changes)


def is_current(state: SessionState, ticket: Ticket) -> bool:
    return state.version == ticket.version and state.step == ticket.step


# ── Operations ───────────────────────────────────────────────────────────────


def start(state: SessionState) -> SessionState:
    return transition(state, "import", error=None)


def begin_extraction(state: SessionState, *, text: str = "", url: str | None = None,
                     input_type: str = "paste") -> tuple[SessionState, Ticket]:
    new = transition(state, "extracting", input_type=input_type, input_text=text or "",
                     input_url=url, error=None)
    return new, Ticket(new.version, new.step)


def finish_extraction(state: SessionState, ticket: Ticket, *, extraction: dict | None = None,
                      error: str | None = None) -> SessionState:
    if not is_current(state, ticket):
        logger.warning("Discarding late extraction result (ticket v%d, session v%d at %s)",
                       ticket.version, state.version, state.step)
        return state
    if error is not None:
        return transition(state, "import", error=error)
    return transition(state, "review-extraction", extraction=extraction, error=None)


def select_role(state: SessionState, role_id: int) -> SessionState:
    if state.extraction is None:
        raise InvalidTransition(state.step, "select-role")
    return transition(state, "select-role", selected_role_id=role_id, error=None)


def begin_comparison(state: SessionState) -> tuple[SessionState, Ticket]:
    if state.selected_role_id is None or state.extraction is None:
        raise InvalidTransition(state.step, "comparing")
    new = transition(state, "comparing", error=None)
    return new, Ticket(new.version, new.step)


def finish_comparison(state: SessionState, ticket: Ticket, *, comparison: dict | None = None,
                      implementation_plan: dict | None = None, proposals: tuple[int, ...] = (),
                      error: str | None = None) -> SessionState:
    if not is_current(state, ticket):
        logger.warning("Discarding late comparison result (ticket v%d, session v%d at %s)",
                       ticket.version, state.version, state.step)
        return state
    if error is not None:
        return transition(state, "review-extraction", error=error)
    return transition(state, "comparison", comparison=comparison,
                      implementation_plan=implementation_plan,
                      proposals=tuple(proposals), error=None)


def show_proposals(state: SessionState) -> SessionState:
    return transition(state, "proposals")


def complete(state: SessionState) -> SessionState:
    return transition(state, "done")


def back(state: SessionState) -> SessionState:
    """Step back along the fixed back map. Derived artifacts are kept."""
    target = BACK.get(state.step)
    if target is None:
        raise InvalidTransition(state.step, "back")
    return replace(state, step=target)


def reset(state: SessionState) -> SessionState:
    """Back to welcome from anywhere; clears everything derived from the input."""
    return replace(
        state,
        step="welcome",
        version=state.version + 1,
        selected_role_id=None,
        extraction=None,
        comparison=None,
        implementation_plan=None,
        proposals=(),
        error=None,
    )


def rewind_for_comparison(state: SessionState) -> SessionState:
    """Walk back to review-extraction so a new comparison can start.

    A comparison still marked in flight is abandoned; the version bump makes
    its ticket stale, so a late result is dropped.
    """
    if state.step == "comparing":
        return transition(state, "review-extraction", error=None)
    while state.step in ("comparison", "proposals"):
        state = back(state)
    return state
