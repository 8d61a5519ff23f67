"""bridgeline — keep a headless agent subprocess fed with digested events."""

__version__ = "0.1.0"
