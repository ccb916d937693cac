"""
Routing layer between the clarity backend and language-model providers.

The model name picks the provider (``claude-*`` → Anthropic, ``gpt-*`` →
OpenAI, ``gemini-*`` → Gemini). A provider is only registered when its API
key is present; anything unroutable goes to ``LocalStubProvider``, which
answers deterministically from the prompt's "Output contract:" line so the
whole engine runs offline.

Each attempt is timed, costed and written to ``AIUsageLog`` / ``AIAuditLog``
in a savepoint, leaving the caller's transaction alone.
"""

import hashlib
import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from roleclarity.models import db
from roleclarity.models.ai import AIAuditLog, AIUsageLog, calculate_cost

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 500


class LLMError(RuntimeError):
    """No attempt produced a usable answer."""


def _split_system(messages: list) -> tuple[str, list]:
    system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
    return system, [m for m in messages if m["role"] != "system"]


def _reply(content, prompt_tokens, completion_tokens, model) -> dict:
    return {
        "content": content or "",
        "prompt_tokens": prompt_tokens or 0,
        "completion_tokens": completion_tokens or 0,
        "model": model,
    }


class LLMProvider(ABC):
    """One chat-completion backend.

    ``chat`` returns ``{content, prompt_tokens, completion_tokens, model}``
    and raises on any transport or API failure.
    """

    env_key: str | None = None

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = self._connect()
        return self._client

    def _connect(self):
        return None

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        ...


class AnthropicProvider(LLMProvider):
    env_key = "ANTHROPIC_API_KEY"

    def _connect(self):
        import anthropic

        return anthropic.Anthropic(api_key=os.environ[self.env_key], max_retries=0)

    def chat(self, messages, model, **kwargs):
        system, turns = _split_system(messages)
        params = dict(
            model=model,
            messages=turns,
            max_tokens=kwargs.get("max_tokens", 4096),
            temperature=kwargs.get("temperature", 0.2),
            timeout=kwargs.get("timeout", self.timeout),
        )
        if system:
            params["system"] = system
        response = self.client.messages.create(**params)
        text = "".join(block.text for block in response.content if getattr(block, "type", "text") == "text")
        return _reply(text, response.usage.input_tokens, response.usage.output_tokens, model)


class OpenAIProvider(LLMProvider):
    env_key = "OPENAI_API_KEY"

    def _connect(self):
        import openai

        return openai.OpenAI(api_key=os.environ[self.env_key], max_retries=0)

    def chat(self, messages, model, **kwargs):
        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            response_format={"type": "json_object"},
            max_tokens=kwargs.get("max_tokens", 4096),
            temperature=kwargs.get("temperature", 0.2),
            timeout=kwargs.get("timeout", self.timeout),
        )
        usage = response.usage
        return _reply(response.choices[0].message.content, usage.prompt_tokens, usage.completion_tokens, model)


class GeminiProvider(LLMProvider):
    env_key = "GEMINI_API_KEY"

    def _connect(self):
        from google import genai
        from google.genai import types

        return genai.Client(
            api_key=os.environ[self.env_key],
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )

    def chat(self, messages, model, **kwargs):
        from google.genai import types

        system, turns = _split_system(messages)
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in turns
        ]
        response = self.client.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system or None,
                temperature=kwargs.get("temperature", 0.2),
                max_output_tokens=kwargs.get("max_tokens", 8192),
                response_mime_type="application/json",
            ),
        )
        meta = response.usage_metadata
        return _reply(
            response.text,
            getattr(meta, "prompt_token_count", 0),
            getattr(meta, "candidates_token_count", 0),
            model,
        )


class LocalStubProvider(LLMProvider):
    """Offline provider: contract-valid JSON shaped by the prompt, no network."""

    _CONTRACT = re.compile(r"Output contract:\s*(\w+)")
    _BULLETS = " -*•\t"

    def chat(self, messages, model="local-stub", **kwargs):
        system, turns = _split_system(messages)
        asked = next((m["content"] for m in reversed(turns) if m["role"] == "user"), "")
        found = self._CONTRACT.search(system)
        answer = {
            "ExpectedRoleExtraction": self._extraction,
            "ComparisonNarrative": self._comparison,
            "OverlapNarrative": self._overlaps,
            "HandoffNarrative": self._handoffs,
        }.get(found.group(1) if found else "", lambda _text: {})(asked)
        content = json.dumps(answer)
        # word counts stand in for tokens
        return _reply(content, len(asked.split()) * 2, len(content.split()) * 2, "local-stub")

    @staticmethod
    def _comparison(_text):
        return {
            "summary": "The current role definition covers part of what is expected. "
                       "Ownership and boundaries need the most attention.",
            "doNothingRisk": "Over the next 3-6 months unclear ownership keeps causing "
                             "duplicated work and decisions that stall between roles.",
        }

    @staticmethod
    def _overlaps(_text):
        return {
            "topRiskStatement": "Shared ownership of core items is the largest source of friction.",
            "recommendations": {},
        }

    @staticmethod
    def _handoffs(_text):
        return {"suggestions": []}

    @classmethod
    def _extraction(cls, text):
        """Read the pasted description back as a plausible extraction."""
        body = text.split("---", 1)[-1]
        lines = [ln.strip(cls._BULLETS) for ln in body.splitlines() if ln.strip(cls._BULLETS)]
        sentences = [
            part.strip()
            for ln in lines
            for part in re.split(r"(?<=[.!?])\s+", ln)
            if len(part.strip()) > 3
        ]
        title = (lines[0] if lines else "Role")[:80].rstrip(".:")

        responsibilities, deliverables, owned = [], [], []
        for position, sentence in enumerate(sentences[1:13]):
            lower = sentence.lower()
            owning = re.search(r"\b(own|owns|accountable|decide)\b", lower) is not None
            responsibilities.append({
                "text": sentence,
                "raciType": "accountable" if owning else "responsible",
                "frequency": "weekly" if "weekly" in lower else "unclear",
                "isCore": position < 5,
            })
            if re.search(r"\b(deliver|report|produce|publish)\w*", lower):
                deliverables.append({"text": sentence, "measurable": False, "suggestedMetric": None})
            if owning:
                owned.append(sentence.rstrip("."))

        return {
            "title": title,
            "purpose": sentences[0] if sentences else title,
            "responsibilities": responsibilities,
            "deliverables": deliverables,
            "ownershipDomains": [{"title": title, "items": owned, "decisionRights": "shared"}] if owned else [],
            "doesNotOwn": [],
            "contributesTo": [],
            "skills": [],
            "suggestedTier": None,
            "autonomyLevel": "moderate",
            "spanOfInfluence": "team",
            "ambiguities": [],
            "redFlags": [],
        }


# model-name prefix → provider key
MODEL_PREFIXES = (("claude-", "anthropic"), ("gpt-", "openai"), ("gemini-", "gemini"))

REMOTE_PROVIDERS = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


@dataclass
class _Call:
    """What gets written to the usage and audit ledgers for one ``chat``."""

    provider: str
    model: str
    purpose: str
    user: str
    workspace_id: int | None
    prompt_hash: str
    prompt_summary: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0
    response_summary: str = ""
    error: str | None = None


class LLMGateway:
    """Single entry point for model calls made by the clarity backend.

        gw = LLMGateway.from_app(app)
        result = gw.chat(messages, purpose="role_comparison", workspace_id=3)
        result["content"], result["provider"], result["cost_usd"]
    """

    def __init__(self, default_model: str | None = None, timeout: float = 60.0):
        self.default_model = default_model or os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")
        self.timeout = timeout
        self._providers = {"local": LocalStubProvider(timeout)}
        for key, provider_cls in REMOTE_PROVIDERS.items():
            if os.getenv(provider_cls.env_key):
                self._providers[key] = provider_cls(timeout)

    @classmethod
    def from_app(cls, app):
        return cls(
            default_model=app.config.get("LLM_DEFAULT_CHAT_MODEL"),
            timeout=app.config.get("LLM_TIMEOUT_SECONDS", 60.0),
        )

    def route(self, model: str) -> str:
        """Provider key that will serve ``model``; ``local`` when unroutable or unconfigured."""
        wanted = next((key for prefix, key in MODEL_PREFIXES if model.startswith(prefix)), "local")
        if wanted in self._providers:
            return wanted
        logger.warning("No %s provider configured; model '%s' served by the local stub", wanted, model)
        return "local"

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        purpose: str = "",
        user: str = "system",
        workspace_id: int | None = None,
        max_retries: int = 1,
        timeout: float | None = None,
        **kwargs,
    ) -> dict:
        """Run one completion, retrying up to ``max_retries`` attempts in total.

        Returns the provider reply plus ``provider``, ``cost_usd`` and
        ``latency_ms``. Raises ``LLMError`` when every attempt failed or came
        back empty.
        """
        model = model or self.default_model
        kwargs["timeout"] = self.timeout if timeout is None else timeout
        key = self.route(model)
        provider = self._providers[key]
        call = _Call(
            provider=key, model=model, purpose=purpose, user=user, workspace_id=workspace_id,
            prompt_hash=hashlib.sha256(json.dumps(messages).encode()).hexdigest(),
            prompt_summary=messages[-1]["content"][:SUMMARY_CHARS] if messages else "",
        )
        log_extra = {"purpose": purpose, "workspace_id": workspace_id}
        attempts = max(1, max_retries)

        failure = None
        for attempt in range(1, attempts + 1):
            started = time.monotonic()
            try:
                result = provider.chat(messages, model, **kwargs)
                if not result.get("content", "").strip():
                    raise LLMError("provider returned an empty response")
            except Exception as exc:
                failure = exc
                logger.warning("Model call %d/%d for %s failed: %s", attempt, attempts, purpose or "chat", exc,
                               extra=log_extra)
                if attempt < attempts:
                    time.sleep(min(2 ** (attempt - 1), 4))
                continue

            call.latency_ms = int((time.monotonic() - started) * 1000)
            call.prompt_tokens = result["prompt_tokens"]
            call.completion_tokens = result["completion_tokens"]
            call.cost_usd = calculate_cost(model, call.prompt_tokens, call.completion_tokens)
            call.response_summary = result["content"][:SUMMARY_CHARS]
            self._record(call)
            logger.info("Model call for %s answered by %s/%s in %dms", purpose or "chat", key, model,
                        call.latency_ms, extra=log_extra)
            return {**result, "provider": key, "cost_usd": call.cost_usd, "latency_ms": call.latency_ms}

        call.error = str(failure)
        self._record(call)
        raise LLMError(f"{model} gave no usable answer after {attempts} attempt(s): {failure}") from failure

    @staticmethod
    def _record(call: _Call):
        shared = dict(
            provider=call.provider, model=call.model, purpose=call.purpose, user=call.user,
            workspace_id=call.workspace_id, cost_usd=call.cost_usd, latency_ms=call.latency_ms,
            success=call.error is None, error_message=call.error,
        )
        tokens = call.prompt_tokens + call.completion_tokens
        try:
            with db.session.begin_nested():
                db.session.add(AIUsageLog(
                    prompt_tokens=call.prompt_tokens,
                    completion_tokens=call.completion_tokens,
                    total_tokens=tokens,
                    **shared,
                ))
                db.session.add(AIAuditLog(
                    action="llm_call",
                    prompt_hash=call.prompt_hash,
                    prompt_summary=call.prompt_summary,
                    response_summary=call.response_summary,
                    tokens_used=tokens,
                    **shared,
                ))
        except Exception:
            logger.exception("Could not write model call ledger for %s", call.purpose or "chat")
