"""
Telemetry Abuse Rules
=====================

Ordered abuse checks for widget telemetry events.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

MAX_EVENT_DATA_CHARS = 5000

_SUSPICIOUS = re.compile(r"<script|javascript:|on\w+=", re.IGNORECASE)


class AbuseReason(str):
    """Why an event was flagged."""
    NOT_ALLOWED = "event_type_not_allowed"
    BODY_TOO_LARGE = "body_too_large"
    RATE_LIMITED = "rate_limited"
    DUPLICATE = "duplicate"
    DATA_TOO_LARGE = "event_data_too_large"
    SUSPICIOUS = "suspicious_content"


@dataclass(frozen=True)
class AbuseVerdict:
    is_abuse: bool
    reason: Optional[str] = None


CLEAN = AbuseVerdict(is_abuse=False)


def is_event_type_allowed(event_type: str, allowlist: List[str]) -> bool:
    """An empty allowlist accepts every event type."""
    return not allowlist or event_type in allowlist


def serialize_event_data(event_data: Dict[str, Any]) -> str:
    return json.dumps(event_data, separators=(",", ":"), ensure_ascii=False, default=str)


def detect_abuse(
    event_data: Dict[str, Any],
    body_size: int,
    max_body_size: int,
    allowed: bool,
    rate_limited: bool,
    duplicate: bool
) -> AbuseVerdict:
    """First failing check wins, in the order listed on `AbuseReason`."""
    if not allowed:
        return AbuseVerdict(True, AbuseReason.NOT_ALLOWED)
    if body_size > max_body_size:
        return AbuseVerdict(True, AbuseReason.BODY_TOO_LARGE)
    if rate_limited:
        return AbuseVerdict(True, AbuseReason.RATE_LIMITED)
    if duplicate:
        return AbuseVerdict(True, AbuseReason.DUPLICATE)

    if event_data:
        serialized = serialize_event_data(event_data)
        if len(serialized) > MAX_EVENT_DATA_CHARS:
            return AbuseVerdict(True, AbuseReason.DATA_TOO_LARGE)
        if _SUSPICIOUS.search(serialized):
            return AbuseVerdict(True, AbuseReason.SUSPICIOUS)

    return CLEAN
