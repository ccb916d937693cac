"""
Structured Extractor — free-text (or URL) role expectations → ExpectedRoleExtraction.

Flow:
    1. Resolve input: pasted text, or page content fetched with a 10s timeout
    2. Enforce the minimum length (InputTooShort)
    3. backend.extract(...) → validated ExpectedRoleExtraction (ExtractionFailed on any error)
    4. Deterministic post-pass: boundary inference + structural red flags

Nothing is persisted here; the session layer stores the result only after
the whole call succeeded.
"""

import html
import logging
import re
from urllib.parse import urlparse

import requests

from roleclarity.ai.backend import BackendError
from roleclarity.ai.schemas import ExpectedRoleExtraction, OwnershipDomain
from roleclarity.clarity.text import dedupe, find_match, matches, same_item
from roleclarity.core.exceptions import ExtractionFailed, InputTooShort, InvalidURL

logger = logging.getLogger(__name__)

MAX_CORE_RESPONSIBILITIES = 12
MAX_REQUIRED_SKILLS = 10

_SCRIPT_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAGS = re.compile(r"<[^>]+>")
_WS = re.compile(r"\s+")

_CONTRIBUTES = re.compile(
    r"\b(?:supports?|supporting|assists?|assisting|helps?(?:\s+with)?|"
    r"contributes?\s+to|contributing\s+to|partners?\s+with)\s+(?:the\s+)?([^.;,\n]+)",
    re.IGNORECASE,
)
_DOES_NOT_OWN = re.compile(
    r"\b(?:not\s+responsible\s+for|does\s+not\s+own|doesn't\s+own|is\s+not\s+accountable\s+for|"
    r"excludes?|excluding|outside\s+(?:the\s+)?scope(?:\s+of)?:?)\s+(?:the\s+)?([^.;\n]+)",
    re.IGNORECASE,
)

_OWNS = re.compile(
    r"(?<!not )(?<!n't )\b(?:owns?|owning|accountable\s+for|responsible\s+for|in\s+charge\s+of|decides\s+on)"
    r"\s+(?:the\s+)?([^.;,\n]+)",
    re.IGNORECASE,
)
# prepositions that end the object of a boundary clause
_TRAILING = re.compile(r"\s+(?:with|for|on|in|by|across|through|during|via|when)\s+", re.IGNORECASE)

HIGH_AUTONOMY_CUES = (
    "autonomous", "autonomously", "independently", "full authority",
    "final say", "final decision", "without approval",
)
LOW_AUTONOMY_CUES = (
    "requires approval", "require approval", "needs approval", "sign-off from",
    "sign off from", "under supervision", "close supervision", "escalate all",
    "must consult", "approved by",
)


def meaningful_length(text: str | None) -> int:
    """Length after trimming and collapsing internal whitespace."""
    return len(_WS.sub(" ", text or "").strip())


def strip_html(raw: str, max_chars: int = 15000) -> str:
    """Drop script/style blocks and tags, unescape entities, collapse whitespace."""
    text = _SCRIPT_STYLE.sub(" ", raw or "")
    text = _TAGS.sub(" ", text)
    text = html.unescape(text)
    return _WS.sub(" ", text).strip()[:max_chars]


def _phrase(fragment: str, max_words: int = 8) -> str:
    """Object noun phrase of a boundary clause: stops at the first trailing preposition."""
    head = _TRAILING.split(fragment.strip(), maxsplit=1)[0]
    words = head.split()
    return " ".join(words[:max_words]).strip(" :-")


def infer_boundaries(extraction: ExpectedRoleExtraction, source_text: str = "") -> ExpectedRoleExtraction:
    """
    Add contributesTo / doesNotOwn entries implied by boundary language.

    "Supports X" makes X a contribution and removes an ownership item only
    when it names exactly X. Items the text explicitly claims ("owns X",
    "accountable for X") always stay owned. "Not responsible for X" adds X
    to doesNotOwn.
    """
    texts = [r.text for r in extraction.responsibilities]
    if source_text:
        texts.append(source_text)

    contributes = list(extraction.contributes_to)
    does_not_own = list(extraction.does_not_own)
    claimed = []
    for text in texts:
        for m in _CONTRIBUTES.finditer(text):
            target = _phrase(m.group(1))
            if target and not find_match(target, contributes):
                contributes.append(target)
        for m in _DOES_NOT_OWN.finditer(text):
            target = _phrase(m.group(1))
            if target and not find_match(target, does_not_own):
                does_not_own.append(target)
        claimed.extend(_phrase(m.group(1)) for m in _OWNS.finditer(text))

    def demoted(text):
        return any(same_item(text, c) for c in contributes) and not any(matches(text, o) for o in claimed if o)

    domains = []
    for domain in extraction.ownership_domains:
        kept = [i for i in domain.items if not demoted(i)]
        if not kept and demoted(domain.title):
            continue
        domains.append(OwnershipDomain(title=domain.title, items=kept, decision_rights=domain.decision_rights))

    return extraction.model_copy(update={
        "contributes_to": dedupe(contributes),
        "does_not_own": dedupe(does_not_own),
        "ownership_domains": domains,
    })


def detect_red_flags(extraction: ExpectedRoleExtraction, source_text: str = "") -> list[str]:
    """Structural problems that make the role hard to fill or manage."""
    flags = []

    core = [r for r in extraction.responsibilities if r.is_core]
    if len(core) > MAX_CORE_RESPONSIBILITIES:
        flags.append(
            f"{len(core)} core responsibilities (more than {MAX_CORE_RESPONSIBILITIES}): "
            "the role is likely overloaded or unprioritised"
        )

    lower = (source_text or "").lower()
    high = [c for c in HIGH_AUTONOMY_CUES if c in lower]
    low = [c for c in LOW_AUTONOMY_CUES if c in lower]
    if low and (high or extraction.autonomy_level in ("high", "full")):
        flags.append(
            "Contradictory autonomy: the text grants independent authority "
            f"but also requires approval ({', '.join((high or [extraction.autonomy_level])[:1] + low[:1])})"
        )

    required = [s for s in extraction.skills if s.required]
    if len(required) > MAX_REQUIRED_SKILLS:
        flags.append(f"{len(required)} required skills: unlikely to be found in one person")
    categories = {s.category for s in required}
    if extraction.suggested_tier == "entry" and len(categories) >= 3 and categories & {"leadership", "strategic"}:
        flags.append("Entry-level tier combined with senior leadership/strategic skill requirements")

    return flags


class RoleExtractor:
    """
    Turns role expectations into a validated ExpectedRoleExtraction.

    Args:
        backend: ClarityBackend.
        min_chars: Minimum meaningful characters of input.
        fetch_timeout: Seconds allowed for URL fetches.
        max_chars: Cap on fetched page text.
        http: requests.Session (or module) used for URL fetches.
    """

    def __init__(self, backend, *, min_chars: int = 20, fetch_timeout: float = 10.0,
                 max_chars: int = 15000, http=None):
        self.backend = backend
        self.min_chars = min_chars
        self.fetch_timeout = fetch_timeout
        self.max_chars = max_chars
        self.http = http or requests

    def load_input(self, text: str | None = None, url: str | None = None) -> tuple[str, str]:
        """Return (content, source) where source is "paste" or "url"."""
        if url:
            return self.fetch_url(url), "url"
        return (text or "").strip(), "paste"

    def fetch_url(self, url: str) -> str:
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidURL(url, "only http(s) URLs are supported")
        try:
            resp = self.http.get(
                url,
                timeout=self.fetch_timeout,
                headers={"User-Agent": "roleclarity/1.0 (+role extraction)"},
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.info("URL fetch failed for %s: %s", url, exc)
            raise InvalidURL(url, f"fetch failed ({exc.__class__.__name__})") from exc
        return strip_html(resp.text, self.max_chars)

    def extract(self, text: str | None = None, url: str | None = None, *,
                workspace_id: int | None = None, user: str = "system") -> ExpectedRoleExtraction:
        content, source = self.load_input(text, url)
        length = meaningful_length(content)
        if length < self.min_chars:
            raise InputTooShort(length=length, minimum=self.min_chars)

        try:
            extraction = self.backend.extract(content, source=source, workspace_id=workspace_id, user=user)
        except BackendError as exc:
            raise ExtractionFailed(
                f"Role extraction failed: {exc}",
                details={"kind": exc.kind, "errors": exc.errors[:5]},
            ) from exc

        extraction = infer_boundaries(extraction, content)
        flags = detect_red_flags(extraction, content)
        extraction = extraction.model_copy(update={"red_flags": dedupe(list(extraction.red_flags) + flags)})

        logger.info(
            "Extracted role '%s': %d responsibilities, %d domains, %d red flags",
            extraction.title, len(extraction.responsibilities),
            len(extraction.ownership_domains), len(extraction.red_flags),
            extra={"workspace_id": workspace_id},
        )
        return extraction
