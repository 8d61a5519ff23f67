"""Line normalization and severity classification for digest bucketing."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable

from bridgeline.config.models import SeverityConfig

#: Severity levels in precedence order, plus the catch-all.
SEVERITY_LEVELS = ("error", "warn", "info", "debug")
SEVERITY_BUCKETS = (*SEVERITY_LEVELS, "other")

# Applied in this order: integers last, or they would eat the digits of
# timestamps, addresses, UUIDs and hex ids before those are recognized.
_SUBSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?"),
        "<ts>",
    ),
    (re.compile(r"\b\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?:[.,]\d+)?\b"), "<ts>"),
    (re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b"), "<ip>"),
    (
        re.compile(
            r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b"
        ),
        "<uuid>",
    ),
    (re.compile(r"\b[0-9a-fA-F]{8,}\b"), "<hex>"),
    (re.compile(r"\b\d+\b"), "<n>"),
)

_WHITESPACE_RE = re.compile(r"\s+")

#: Default max length of a normalized key.
DEFAULT_KEY_LENGTH = 180


def normalize(line: str, max_length: int = DEFAULT_KEY_LENGTH) -> str:
    """Reduce *line* to a canonical pattern key.

    Volatile tokens become placeholders (``<ts>``, ``<ip>``, ``<uuid>``,
    ``<hex>``, ``<n>``), whitespace runs collapse to one space, and the
    result is capped at *max_length*.  ``normalize(normalize(x)) ==
    normalize(x)``.
    """
    out = _normalize_once(line, max_length)
    # Truncation can split a token such as "5x" and expose a bare integer;
    # re-run until stable (converges in a pass or two).
    for _ in range(3):
        again = _normalize_once(out, max_length)
        if again == out:
            break
        out = again
    return out


def _normalize_once(line: str, max_length: int) -> str:
    out = line
    for pattern, placeholder in _SUBSTITUTIONS:
        out = pattern.sub(placeholder, out)
    out = _WHITESPACE_RE.sub(" ", out).strip()
    return out[:max_length].rstrip()


class SeverityClassifier:
    """Maps text to error / warn / info / debug / other by keyword."""

    def __init__(self, config: SeverityConfig | None = None) -> None:
        config = config or SeverityConfig()
        self._rules: list[tuple[str, re.Pattern[str]]] = [
            (level, _keyword_pattern(getattr(config, level))) for level in SEVERITY_LEVELS
        ]

    def classify(self, text: str) -> str:
        """Return the first level whose keywords appear in *text*."""
        lowered = text.lower()
        for level, pattern in self._rules:
            if pattern.search(lowered):
                return level
        return "other"


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(k.lower()) for k in keywords)
    return re.compile(rf"\b(?:{alternatives})\b")


def as_number(value: object) -> float | None:
    """Coerce a JSON value to a finite float, or ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None
