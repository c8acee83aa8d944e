"""Hook engine: the event bus observers subscribe to."""

import importlib
import logging
from pathlib import Path
from typing import Any

import yaml

from mosaic.hooks.base import FunctionHook, Hook, HookCallback, HookContext

logger = logging.getLogger(__name__)


class HookEngine:
    """
    Priority-ordered publish/subscribe for engine events.

    Hooks subscribe to an exact topic or to ``*``. Publishing is
    fire-and-forget from the caller's point of view: hook errors are logged
    and never reach the publisher.

    Topics published by the engine:
        item.created, item.updated, item.deleted, item.completed, item.failed,
        tool.before_execute, tool.after_execute, agent.started, agent.stopped
    """

    def __init__(self, config: dict) -> None:
        """
        Initialize hook engine.

        Args:
            config: Hook configuration (the ``hooks`` section)
        """
        self.config = config
        self.enabled = config.get("enabled", True)
        self.hooks: dict[str, list[tuple[int, Hook]]] = {}

    async def initialize(self) -> None:
        """Load hooks declared in the YAML hook file, if any."""
        if not self.enabled:
            logger.info("Hook system disabled in configuration")
            return

        config_file = self.config.get("config_file")
        if config_file:
            if Path(config_file).exists():
                self._load_hooks_from_yaml(config_file)
            else:
                logger.warning(f"Hook config file not found: {config_file}")

        logger.info(f"Hook engine initialized with {self._count_hooks()} hooks")

    def _count_hooks(self) -> int:
        return sum(len(hooks) for hooks in self.hooks.values())

    def _load_hooks_from_yaml(self, config_file: str) -> None:
        """
        Load hooks from a YAML file of the form::

            hooks:
              item.completed:
                - path: myhooks:NotifyHook
              "*":
                - path: mosaic.hooks.builtin.logging:LoggingHook
                  priority: 10
                  config: {log_file: .mosaic/events.log}
        """
        with open(config_file) as f:
            hook_config = yaml.safe_load(f) or {}

        for event, hook_list in (hook_config.get("hooks") or {}).items():
            if not isinstance(hook_list, list):
                logger.warning(f"Invalid hook list for event {event}")
                continue
            for spec in hook_list:
                self._register_from_spec(event, spec)

    def _register_from_spec(self, event: str, spec: dict) -> None:
        if not spec.get("enabled", True):
            logger.debug(f"Skipping disabled hook for event {event}")
            return

        hook_path = spec.get("path", "")
        if ":" not in hook_path:
            logger.warning(f"Invalid hook path format for event {event}: {hook_path!r}")
            return

        module_path, class_name = hook_path.split(":", 1)
        try:
            hook_class = getattr(importlib.import_module(module_path), class_name)
            hook = hook_class(config=spec.get("config", {}))
        except (ImportError, AttributeError, TypeError) as e:
            logger.error(f"Error loading hook {hook_path} for event {event}: {e}", exc_info=True)
            return

        self.register(event, hook, priority=spec.get("priority", hook.priority))

    def register(self, event: str, hook: Hook, priority: int | None = None) -> None:
        """
        Register a hook for an event.

        Args:
            event: Event name, or "*" for every event
            hook: Hook instance
            priority: Overrides the hook's own priority (lower runs first)
        """
        priority = hook.priority if priority is None else priority
        self.hooks.setdefault(event, []).append((priority, hook))
        self.hooks[event].sort(key=lambda x: x[0])
        logger.debug(
            f"Registered hook {hook.__class__.__name__} for event '{event}' (priority={priority})"
        )

    def subscribe(self, event: str, callback: HookCallback, priority: int = 100) -> Hook:
        """Register a plain callable as a hook and return the wrapping Hook."""
        hook = FunctionHook(callback, priority=priority)
        self.register(event, hook, priority)
        return hook

    def unregister(self, event: str, hook: Hook) -> None:
        """Remove a previously registered hook."""
        self.hooks[event] = [(p, h) for p, h in self.hooks.get(event, []) if h is not hook]

    async def publish(self, event: str, data: dict[str, Any]) -> None:
        """
        Deliver an event to every matching hook in priority order.

        Args:
            event: Event name
            data: Event payload
        """
        if not self.enabled:
            return

        all_hooks = self.hooks.get(event, []) + self.hooks.get("*", [])
        if not all_hooks:
            return
        all_hooks.sort(key=lambda x: x[0])

        context = HookContext(event=event, data=data)
        for priority, hook in all_hooks:
            try:
                if not hook.should_run(context):
                    continue
                result = await hook.execute(context)
            except Exception as e:
                logger.error(
                    f"Error executing hook {hook.__class__.__name__} for event '{event}': {e}",
                    exc_info=True,
                )
                continue

            if result.metadata:
                context.metadata.update(result.metadata)
            if result.action == "stop":
                logger.debug(f"Hook {hook.__class__.__name__} stopped delivery of '{event}'")
                break

    def get_hooks_for_event(self, event: str) -> list[Hook]:
        """All hooks that would receive the event, including wildcard hooks."""
        return [hook for _, hook in self.hooks.get(event, []) + self.hooks.get("*", [])]
