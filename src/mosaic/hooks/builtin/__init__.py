"""Built-in hooks."""

from mosaic.hooks.builtin.logging import LoggingHook
from mosaic.hooks.builtin.metrics import MetricsHook

__all__ = ["LoggingHook", "MetricsHook"]
