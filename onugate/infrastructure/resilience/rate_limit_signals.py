"""Rate-limit detection for upstream responses.

The upstream signals throttling through free text in ``error``/``message``
rather than a structured code, so detection is a substring match against a
known list of phrases. Keep every phrase here; nothing else in the code base
should inspect upstream error text for throttling.
"""

from typing import Any, Optional

RATE_LIMIT_PHRASES = (
    "hora limite",
    "hourly limit",
    "too many",
    "forbidden",
    "rate limit",
)


def is_rate_limited(text: Optional[str]) -> bool:
    """True if ``text`` contains one of the known throttling phrases (case-insensitive)."""
    if not text:
        return False
    lowered = str(text).lower()
    return any(phrase in lowered for phrase in RATE_LIMIT_PHRASES)


def result_message(result: Any) -> str:
    """Extracts the upstream's error text from a result envelope."""
    if not isinstance(result, dict):
        return ""
    return str(result.get("error") or result.get("message") or "")


def is_failed(result: Any) -> bool:
    """True only when the upstream explicitly answered ``status: false``."""
    return isinstance(result, dict) and result.get("status") is False


def is_rate_limited_result(result: Any) -> bool:
    return is_failed(result) and is_rate_limited(result_message(result))
