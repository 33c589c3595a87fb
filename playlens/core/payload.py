"""
Coercion helpers for loosely-typed event payloads

Gameplay code may omit fields or send garbage; these helpers turn any
missing or malformed value into the documented default instead of raising.
"""
from typing import Any, Mapping, Optional
import math


def as_number(payload: Optional[Mapping[str, Any]], key: str, default: Optional[float] = 0.0) -> Optional[float]:
    """Finite float at ``payload[key]``, else ``default``"""
    if not payload:
        return default
    value = payload.get(key)
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def as_text(payload: Optional[Mapping[str, Any]], key: str, default: Optional[str] = None) -> Optional[str]:
    if not payload:
        return default
    value = payload.get(key)
    if value is None:
        return default
    return str(value)


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))
