"""
Text matching helpers shared by the comparator, overlap detector and
proposal generator.

Matching is deliberately simple and deterministic: normalized equality,
token containment, or token Jaccard ≥ 0.6. Same inputs always give the same
answer, so scores built on top of it are reproducible.
"""

import re

STOPWORDS = frozenset({
    "a", "an", "and", "the", "of", "for", "to", "in", "on", "with", "by",
    "at", "or", "all", "any", "its", "their", "our", "from", "into", "per",
})

_NON_WORD = re.compile(r"[^a-z0-9 ]+")
_SPACES = re.compile(r"\s+")

JACCARD_MATCH = 0.6


def normalize(text: str | None) -> str:
    """Lowercase, '&' → 'and', drop punctuation, collapse whitespace."""
    if not text:
        return ""
    text = text.lower().replace("&", " and ")
    text = _NON_WORD.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


def _stem(token: str) -> str:
    if len(token) > 4 and token.endswith("ies"):
        return token[:-3] + "y"
    if len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def tokens(text: str | None) -> frozenset[str]:
    return frozenset(_stem(t) for t in normalize(text).split() if t not in STOPWORDS)


def similarity(a: str | None, b: str | None) -> float:
    """Token Jaccard similarity in [0, 1]."""
    ta, tb = tokens(a), tokens(b)
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def coverage(expected: str | None, actual: str | None) -> float:
    """Share of the expected tokens present in ``actual``."""
    te, ta = tokens(expected), tokens(actual)
    if not te:
        return 1.0
    return len(te & ta) / len(te)


def matches(a: str | None, b: str | None) -> bool:
    """True when two short phrases name the same thing."""
    na, nb = normalize(a), normalize(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    ta, tb = tokens(a), tokens(b)
    if not ta or not tb:
        return False
    if ta <= tb or tb <= ta:
        return True
    return len(ta & tb) / len(ta | tb) >= JACCARD_MATCH


def item_key(text: str) -> str:
    """Order- and plural-insensitive key used to group claims on the same item."""
    return " ".join(sorted(tokens(text))) or normalize(text)


def same_item(a: str | None, b: str | None) -> bool:
    """Strict identity: normalized equality or equal item keys. No containment, no Jaccard."""
    na, nb = normalize(a), normalize(b)
    return bool(na) and (na == nb or item_key(a) == item_key(b))


def find_match(item: str, pool) -> str | None:
    """First entry of ``pool`` that matches ``item``, else None."""
    for candidate in pool:
        if matches(item, candidate):
            return candidate
    return None


def dedupe(items) -> list[str]:
    """Drop empty and normalized-duplicate entries, keeping first spelling and order."""
    seen = set()
    out = []
    for item in items:
        key = normalize(item)
        if key and key not in seen:
            seen.add(key)
            out.append(item.strip())
    return out


def same_value(a, b) -> bool:
    """Equality that ignores case, whitespace and list order.

    Strings compare normalized; lists of strings compare as normalized sets;
    ownership categories compare as {title: set(items)}.
    """
    if isinstance(a, str) or isinstance(b, str):
        return normalize(a if isinstance(a, str) else "") == normalize(b if isinstance(b, str) else "")
    a = a or []
    b = b or []
    if all(isinstance(x, dict) for x in list(a) + list(b)):
        return _owns_key(a) == _owns_key(b)
    return sorted({normalize(str(x)) for x in a}) == sorted({normalize(str(x)) for x in b})


def _owns_key(categories) -> dict:
    key = {}
    for cat in categories:
        title = normalize(cat.get("title", ""))
        key.setdefault(title, set()).update(normalize(i) for i in cat.get("items", []) if normalize(i))
    return key
