"""Accumulation window — bounded per-epoch state for the digest aggregator."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

from bridgeline.config.models import DigestConfig
from bridgeline.digest.normalize import SEVERITY_BUCKETS, SeverityClassifier, as_number, normalize

#: Record fields probed, in order, for a latency value.
LATENCY_FIELDS = ("latency_ms", "latency", "duration_ms", "ms")

#: Record fields probed, in order, for a route.
ROUTE_FIELDS = ("route", "path", "url")

#: Record fields probed, in order, for a human message.
MESSAGE_FIELDS = ("message", "msg")


@dataclass
class PatternBucket:
    """Lines sharing one normalized key.  ``samples`` never exceeds the cap."""

    count: int = 0
    samples: list[str] = field(default_factory=list)


@dataclass
class RouteBucket:
    """Hits and worst latency for one route."""

    hits: int = 0
    slowest: float = 0.0


@dataclass
class Window:
    """One accumulation epoch.

    Buckets live in insertion-ordered dicts, so a stable sort by count keeps
    first-seen order among ties.  The aggregator never clears a window; it
    swaps in a fresh one at flush time.
    """

    started: float = field(default_factory=time.monotonic)
    total: int = 0
    errors: int = 0
    severity: dict[str, int] = field(default_factory=lambda: dict.fromkeys(SEVERITY_BUCKETS, 0))
    patterns: dict[str, PatternBucket] = field(default_factory=dict)
    routes: dict[str, RouteBucket] = field(default_factory=dict)
    latencies: list[float] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.total == 0

    # ------------------------------------------------------------------ #
    # Ingestion
    # ------------------------------------------------------------------ #

    def observe_line(
        self,
        line: str,
        config: DigestConfig,
        classifier: SeverityClassifier,
    ) -> str:
        """Count one raw text line.  Returns its severity."""
        self.total += 1
        level = classifier.classify(line)
        self._bump(level)
        self.add_pattern(line, config)
        return level

    def observe_record(
        self,
        record: dict[str, Any],
        config: DigestConfig,
        classifier: SeverityClassifier,
    ) -> str:
        """Count one structured record.  Returns its severity."""
        self.total += 1

        status = as_number(record.get("status"))
        if status is None:
            status = as_number(record.get("statusCode"))
        message = _record_message(record)

        level = "other"
        raw_level = record.get("level", record.get("severity"))
        if isinstance(raw_level, str) and raw_level.strip():
            level = classifier.classify(raw_level)
        if level == "other" and status is not None:
            if status >= 500:
                level = "error"
            elif status >= 400:
                level = "warn"
        if level == "other" and message:
            level = classifier.classify(message)
        self._bump(level, http_error=status is not None and status >= 500)

        latency = None
        for name in LATENCY_FIELDS:
            latency = as_number(record.get(name))
            if latency is not None:
                break
        if latency is not None:
            latency = min(max(latency, 0.0), config.max_latency_ms)
            self.add_latency(latency, config.reservoir_size)

        route = ""
        for name in ROUTE_FIELDS:
            value = record.get(name)
            if isinstance(value, str) and value:
                route = value
                break
        if route:
            self.add_route(route, latency)

        if not message:
            message = json.dumps(record, sort_keys=True, separators=(",", ":"), default=str)
        self.add_pattern(message, config)
        return level

    def add_pattern(self, raw: str, config: DigestConfig) -> PatternBucket:
        key = normalize(raw, config.key_length)
        bucket = self.patterns.get(key)
        if bucket is None:
            bucket = self.patterns[key] = PatternBucket()
        bucket.count += 1
        if len(bucket.samples) < config.samples:
            # An exemplar never takes more than half the budget.
            clip = min(config.sample_length, config.max_chars // 2)
            bucket.samples.append(raw.strip()[:clip])
        return bucket

    def add_latency(self, value: float, capacity: int) -> None:
        if len(self.latencies) < capacity:
            self.latencies.append(value)

    def add_route(self, route: str, latency: float | None) -> None:
        bucket = self.routes.get(route)
        if bucket is None:
            bucket = self.routes[route] = RouteBucket()
        bucket.hits += 1
        if latency is not None and latency > bucket.slowest:
            bucket.slowest = latency

    def _bump(self, level: str, http_error: bool = False) -> None:
        self.severity[level] = self.severity.get(level, 0) + 1
        if level == "error" or http_error:
            self.errors += 1


def _record_message(record: dict[str, Any]) -> str:
    err = record.get("err", record.get("error"))
    if isinstance(err, dict):
        nested = err.get("message")
        if isinstance(nested, str) and nested:
            return nested
    elif isinstance(err, str) and err:
        return err
    for name in MESSAGE_FIELDS:
        value = record.get(name)
        if isinstance(value, str) and value:
            return value
    return ""
