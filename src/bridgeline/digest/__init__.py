"""Streaming digest engine — normalize, bucket, and render raw events."""

from bridgeline.digest.aggregator import DigestAggregator
from bridgeline.digest.normalize import SeverityClassifier, normalize
from bridgeline.digest.render import RenderedDigest, quantile, render_digest, render_multi
from bridgeline.digest.window import PatternBucket, RouteBucket, Window

__all__ = [
    "DigestAggregator",
    "PatternBucket",
    "RenderedDigest",
    "RouteBucket",
    "SeverityClassifier",
    "Window",
    "normalize",
    "quantile",
    "render_digest",
    "render_multi",
]
