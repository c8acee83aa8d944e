"""Hook system (event bus)."""

from mosaic.hooks.base import FunctionHook, Hook, HookContext, HookResult
from mosaic.hooks.engine import HookEngine

__all__ = ["FunctionHook", "Hook", "HookContext", "HookResult", "HookEngine"]
