"""
Role Clarity Platform
Generative backend for the clarity engine.

The engine only ever talks to ``ClarityBackend``: four calls, each returning
a validated pydantic object or raising ``BackendError``. ``LLMClarityBackend``
implements it on top of the LLM gateway and prompt registry; tests swap in
a fake.

Pipeline per call:
    1. Render the prompt for the purpose
    2. gateway.chat(...) with the configured timeout, no automatic retry
    3. Strip code fences, validate strictly against the output contract
"""

import json
import logging
from abc import ABC, abstractmethod

from roleclarity.ai.gateway import LLMError
from roleclarity.ai.schemas import (
    ComparisonNarrative,
    ExpectedRoleExtraction,
    HandoffNarrative,
    OverlapNarrative,
    StructuredOutputError,
    parse_structured,
)

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """The backend could not produce a valid object.

    ``kind`` is "upstream" (provider error/timeout) or "schema" (invalid output).
    """

    def __init__(self, message: str, *, kind: str, purpose: str, errors: list | None = None) -> None:
        self.kind = kind
        self.purpose = purpose
        self.errors = errors or []
        super().__init__(message)


class ClarityBackend(ABC):
    """Swappable text → validated-structure capability."""

    @abstractmethod
    def extract(self, content: str, *, source: str = "paste", workspace_id: int | None = None,
                user: str = "system") -> ExpectedRoleExtraction:
        ...

    @abstractmethod
    def compare(self, context: dict, *, workspace_id: int | None = None,
                user: str = "system") -> ComparisonNarrative:
        ...

    @abstractmethod
    def detect_overlaps(self, context: dict, *, workspace_id: int | None = None,
                        user: str = "system") -> OverlapNarrative:
        ...

    @abstractmethod
    def suggest_slas(self, context: dict, *, workspace_id: int | None = None,
                     user: str = "system") -> HandoffNarrative:
        ...


class LLMClarityBackend(ClarityBackend):
    """
    Backend that routes every call through ``LLMGateway``.

    Args:
        gateway: LLMGateway instance.
        prompt_registry: PromptRegistry with the four clarity templates.
        max_retries: Total attempts per call (1 = no automatic retry).
        temperature: Sampling temperature passed to the provider.
    """

    def __init__(self, gateway, prompt_registry, *, max_retries: int = 1, temperature: float = 0.2):
        self.gateway = gateway
        self.prompt_registry = prompt_registry
        self.max_retries = max_retries
        self.temperature = temperature

    def extract(self, content, *, source="paste", workspace_id=None, user="system"):
        messages = self.prompt_registry.render("role_extraction", content=content, source=source)
        return self._call("role_extraction", messages, ExpectedRoleExtraction,
                          workspace_id=workspace_id, user=user)

    def compare(self, context, *, workspace_id=None, user="system"):
        messages = self.prompt_registry.render(
            "role_comparison",
            role_title=context.get("roleTitle", ""),
            expected_title=context.get("expectedTitle", ""),
            overall=context.get("overall", ""),
            interpretation=context.get("interpretation", ""),
            findings=json.dumps(context.get("findings", {}), indent=1),
        )
        return self._call("role_comparison", messages, ComparisonNarrative,
                          workspace_id=workspace_id, user=user)

    def detect_overlaps(self, context, *, workspace_id=None, user="system"):
        messages = self.prompt_registry.render(
            "workspace_overlaps",
            score=context.get("score", ""),
            overlaps=json.dumps(context.get("overlaps", []), indent=1),
            gaps=json.dumps(context.get("gaps", []), indent=1),
        )
        return self._call("workspace_overlaps", messages, OverlapNarrative,
                          workspace_id=workspace_id, user=user)

    def suggest_slas(self, context, *, workspace_id=None, user="system"):
        messages = self.prompt_registry.render(
            "handoff_sla",
            stages=", ".join(context.get("stages", [])),
            suggestions=json.dumps(context.get("suggestions", []), indent=1),
        )
        return self._call("handoff_sla", messages, HandoffNarrative,
                          workspace_id=workspace_id, user=user)

    # ── Internal ──────────────────────────────────────────────────────────

    def _call(self, purpose, messages, model, *, workspace_id, user):
        try:
            response = self.gateway.chat(
                messages,
                purpose=purpose,
                user=user,
                workspace_id=workspace_id,
                max_retries=self.max_retries,
                temperature=self.temperature,
            )
        except LLMError as exc:
            raise BackendError(str(exc), kind="upstream", purpose=purpose) from exc

        try:
            return parse_structured(response["content"], model)
        except StructuredOutputError as exc:
            logger.warning("Backend output rejected for %s: %s", purpose, exc,
                           extra={"purpose": purpose, "workspace_id": workspace_id})
            raise BackendError(str(exc), kind="schema", purpose=purpose, errors=exc.errors) from exc
