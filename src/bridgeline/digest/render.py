"""Character-budgeted digest rendering."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from bridgeline.config.models import DigestConfig
from bridgeline.digest.window import PatternBucket, RouteBucket, Window

TRUNCATION_MARKER = "…(truncated)\n"

#: Patterns (each with one sample) shown per source in a combined digest.
MULTI_SOURCE_TOP = 2


@dataclass
class RenderedDigest:
    """Text of one flush plus what the budget did to it."""

    text: str
    truncated: bool
    omitted: int


def quantile(sorted_values: Sequence[float], q: float) -> int:
    """Nearest-rank quantile of an ascending sequence, rounded."""
    if not sorted_values:
        return 0
    rank = math.ceil(q * len(sorted_values))
    idx = min(len(sorted_values) - 1, max(0, rank - 1))
    return round(sorted_values[idx])


def rank_patterns(window: Window, top: int) -> list[tuple[str, PatternBucket]]:
    """Top patterns by count; ties keep first-seen order (stable sort)."""
    ranked = sorted(window.patterns.items(), key=lambda kv: -kv[1].count)
    return ranked[:top]


def rank_routes(window: Window, top: int) -> list[tuple[str, RouteBucket]]:
    """Top routes by slowest latency, then by hits."""
    ranked = sorted(window.routes.items(), key=lambda kv: (-kv[1].slowest, -kv[1].hits))
    return ranked[:top]


def elapsed_seconds(window: Window, now: float) -> int:
    return max(1, round(now - window.started))


def severity_summary(window: Window) -> str:
    sev = window.severity
    return (
        f"sev={{error:{sev.get('error', 0)}, warn:{sev.get('warn', 0)}, "
        f"info:{sev.get('info', 0)}, debug:{sev.get('debug', 0)}, "
        f"other:{sev.get('other', 0)}}}"
    )


def render_digest(
    window: Window,
    config: DigestConfig,
    label: str,
    now: float,
) -> RenderedDigest:
    """Render one window as a header plus ranked, budgeted sections."""
    budget = config.max_chars
    pct = (window.errors / window.total * 100) if window.total else 0.0
    header = (
        f"[{label}] window={elapsed_seconds(window, now)}s total={window.total} "
        f"errors={window.errors} ({pct:.1f}%) {severity_summary(window)}"
    )
    if window.latencies:
        ordered = sorted(window.latencies)
        header += (
            f" latency_ms={{p50:{quantile(ordered, 0.50)}, "
            f"p95:{quantile(ordered, 0.95)}, p99:{quantile(ordered, 0.99)}}}"
        )
    out = [header[: budget - 1] + "\n"]
    used = len(out[0])

    sections: list[tuple[str, list[str]]] = []
    routes = rank_routes(window, config.top)
    if routes:
        sections.append(
            (
                "Slow routes:\n",
                [
                    f"• {route}  (hits={b.hits}, slowest={round(b.slowest)}ms)\n"
                    for route, b in routes
                ],
            )
        )
    patterns = rank_patterns(window, config.top)
    if patterns:
        sections.append(
            (
                "Top patterns:\n",
                [
                    f"• {b.count}× {key}\n" + "".join(f"    ↳ {s}\n" for s in b.samples)
                    for key, b in patterns
                ],
            )
        )

    truncated = False
    for heading, blocks in sections:
        for block in [heading, *blocks]:
            if used + len(block) > budget:
                truncated = True
                break
            out.append(block)
            used += len(block)
        if truncated:
            out.append(TRUNCATION_MARKER)
            break

    # The footer may follow the truncation marker; only budgeted text counts.
    omitted = len(window.patterns) - len(patterns)
    if omitted > 0:
        footer = f"(omitted {omitted} lesser patterns)\n"
        if used + len(footer) <= budget:
            out.append(footer)

    return RenderedDigest(text="".join(out), truncated=truncated, omitted=omitted)


def render_multi(
    windows: Mapping[str, Window],
    config: DigestConfig,
    now: float,
) -> RenderedDigest:
    """Combined digest with one compact section per non-empty source."""
    budget = config.max_chars
    started = min((w.started for w in windows.values()), default=now)
    secs = max(1, round(now - started))
    out = [f"[logs:multi] sources={len(windows)} window={secs}s\n"]
    used = len(out[0])

    truncated = False
    for source, window in windows.items():
        if window.empty:
            continue
        section = (
            f"\n— {source}\n"
            f"  total={window.total}  {severity_summary(window)}\n"
        )
        for key, bucket in rank_patterns(window, MULTI_SOURCE_TOP):
            section += f"  • {bucket.count}× {key}\n"
            if bucket.samples:
                section += f"      ↳ {bucket.samples[0]}\n"
        if used + len(section) > budget:
            out.append("\n" + TRUNCATION_MARKER)
            truncated = True
            break
        out.append(section)
        used += len(section)

    return RenderedDigest(text="".join(out), truncated=truncated, omitted=0)
