"""
Query Shaping
=============

Pure functions turning a widget message (and its history) into search
queries, plus route helpers.
"""

import re
from typing import Iterable, Optional, Sequence
from urllib.parse import urlparse

from supportdesk.assist.domain.entities import ConversationTurn
from supportdesk.config.rules import SynonymRule

_WHITESPACE = re.compile(r"\s+")
_FOLLOW_UP = re.compile(r"^follow[\s-]?up:\s*", re.IGNORECASE)
_SAFE_APP_SLUG = re.compile(r"^[a-z0-9-]+$")

_FLUFF_PATTERNS = [
    re.compile(
        r"^(how|what|where|when|why)\s+(do|does|did|can|could|would|should|is|are|was|were)\s+(i|we|you|they|it)\s+",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(how|what|where|when|why)\s+(do|does|did|can|could|would|should|is|are|was|were)\s+",
        re.IGNORECASE,
    ),
    re.compile(r"^(can|could|would|should|may|might)\s+(i|we|you|they|it)\s+", re.IGNORECASE),
    re.compile(r"^(please|help)\s+", re.IGNORECASE),
]

# Context parts at or below this length carry no retrieval signal
_MIN_CONTEXT_PART = 3
# Shorter current messages are treated as follow-ups to the last user turn
_SHORT_MESSAGE = 30


def normalize_query(raw: str) -> str:
    """
    Collapse whitespace, trim and drop a leading "follow-up:" marker.

    Idempotent: normalize_query(normalize_query(q)) == normalize_query(q).
    """
    if not raw:
        return ""
    s = _WHITESPACE.sub(" ", raw).strip()
    # Stripping can expose a second marker ("follow up: followup: x")
    while True:
        stripped = _FOLLOW_UP.sub("", s).strip()
        if stripped == s:
            return s
        s = stripped


def strip_question_fluff(query: str) -> str:
    """
    Remove interrogative lead-ins ("how do I", "can you", "please").

    Returns the normalized input when stripping would leave fewer than
    three characters.
    """
    s = normalize_query(query)
    out = s
    for pattern in _FLUFF_PATTERNS:
        out = pattern.sub("", out)
    out = normalize_query(out)
    return out if len(out) >= 3 else s


def extract_conversation_context(
    history: Optional[Sequence[ConversationTurn]],
    current_message: str
) -> Optional[str]:
    """
    Supplementary query built from prior user turns only.

    Assistant turns never contribute.
    """
    if not history:
        return None

    recent = [turn for turn in history if turn.is_user][-3:]
    parts = [normalize_query(turn.content) for turn in recent]
    parts = [p for p in parts if len(p) > _MIN_CONTEXT_PART]
    if not parts:
        return None

    if current_message and len(current_message) < _SHORT_MESSAGE:
        return f"{parts[-1]} {current_message}"
    return " ".join(parts)


def synonym_fallback_query(query: str, rules: Iterable[SynonymRule]) -> Optional[str]:
    """Replacement query of the first rule with a phrase contained in `query`."""
    lowered = query.lower()
    for rule in rules:
        if any(phrase in lowered for phrase in rule.phrases):
            return rule.query
    return None


def route_matches_pattern(pattern: str, route: str) -> bool:
    """Exact match, or prefix match when the pattern ends with `*`."""
    if not pattern or not route:
        return False
    if pattern == route:
        return True
    if pattern.endswith("*"):
        return route.startswith(pattern[:-1])
    return False


def _url_path(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    if parsed.path and parsed.path != "/":
        return parsed.path
    return None


def resolve_route(
    route: Optional[str] = None,
    page_url: Optional[str] = None,
    referer: Optional[str] = None
) -> Optional[str]:
    """Explicit route, else the page URL's path, else the Referer's path."""
    if route and route.strip():
        return route.strip()
    return _url_path(page_url) or _url_path(referer)


def is_safe_app_slug(app_slug: str) -> bool:
    """Lowercase alphanumerics and hyphens, or the `*` wildcard."""
    return app_slug == "*" or bool(_SAFE_APP_SLUG.match(app_slug))


_DOC_ID = re.compile(r"support_kb_articles[_:](\d+)$", re.IGNORECASE)
KB_DOCUMENT_PREFIX = "support_kb_articles_"


def normalize_doc_id(raw_id: Optional[str]) -> Optional[int]:
    """"29", "support_kb_articles_29" and "support_kb_articles:29" all give 29."""
    if not raw_id:
        return None
    s = raw_id.strip()
    if s.isdigit():
        return int(s)
    match = _DOC_ID.search(s)
    if match:
        return int(match.group(1))
    return None
