"""Runtime: builds and owns every engine component from one config dict."""

import logging
from pathlib import Path
from typing import Optional

from mosaic.actions.recorder import InMemoryActionRecorder
from mosaic.engine.agent import WorkItemAgent
from mosaic.engine.execution import ExecutionLoop
from mosaic.engine.interrupt import InterruptController
from mosaic.engine.planner import DecompositionPlanner
from mosaic.errors import ExecutionInterrupted, MosaicError
from mosaic.hooks.engine import HookEngine
from mosaic.items.models import WorkItem, WorkItemKind, WorkItemPriority
from mosaic.items.store import WorkItemStore
from mosaic.llm.client import LLMClient, LLMProvider
from mosaic.tools.base import ToolProvider
from mosaic.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class Runtime:
    """
    Composition root.

    Providers are created here and passed down explicitly; nothing in the
    engine reaches for a global instance. An LLM provider or tool provider
    may be injected instead of being built from config.
    """

    def __init__(
        self,
        config: dict,
        llm: Optional[LLMProvider] = None,
        tools: Optional[ToolProvider] = None,
        setup_logging: bool = True,
    ) -> None:
        """
        Initialize runtime.

        Args:
            config: Full configuration dictionary
            llm: Optional LLM provider, otherwise built from ``llm`` config
            tools: Optional tool provider, otherwise a ToolRegistry
            setup_logging: Configure the root logger from ``logging`` config
        """
        self.config = config
        self._llm = llm
        self._tools = tools
        self.initialized = False

        if setup_logging:
            self._setup_logging()

        self.hook_engine = HookEngine(config.get("hooks", {}))
        self.store = WorkItemStore(config.get("items", {}), event_bus=self.hook_engine)
        self.recorder = InMemoryActionRecorder(config.get("actions", {}))
        self.interrupt = InterruptController()
        self.agent: Optional[WorkItemAgent] = None

    def _setup_logging(self) -> None:
        """Setup logging based on configuration."""
        log_config = self.config.get("logging", {})
        log_level = log_config.get("level", "INFO")
        log_file = log_config.get("file", "./.mosaic/logs/mosaic.log")

        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        handlers: list[logging.Handler] = [logging.FileHandler(log_file)]
        if log_config.get("console", False):
            handlers.append(logging.StreamHandler())

        logging.basicConfig(
            level=getattr(logging, log_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=handlers,
        )

    async def initialize(self) -> None:
        """Load hooks and persisted state, then wire the agent."""
        if self.initialized:
            return

        await self.hook_engine.initialize()
        await self.store.load_state()

        if self._tools is None:
            registry = ToolRegistry(self.config.get("tools", {}), event_bus=self.hook_engine)
            await registry.initialize()
            self._tools = registry

        if self._llm is None:
            self._llm = LLMClient(self.config.get("llm", {}))

        engine_config = self.config.get("engine", {})
        planner = DecompositionPlanner(self._llm, engine_config.get("planner", {}))
        loop = ExecutionLoop(
            self._llm,
            engine_config.get("execution", {}),
            recorder=self.recorder,
            interrupt=self.interrupt,
        )
        self.agent = WorkItemAgent(
            self.store,
            planner,
            loop,
            self._tools,
            interrupt=self.interrupt,
            recorder=self.recorder,
            event_bus=self.hook_engine,
            agent_id=self.config.get("agent", {}).get("id", "mosaic-agent"),
        )

        self.initialized = True
        logger.info("Runtime initialized")

    async def run_objective(
        self,
        title: str,
        description: str = "",
        kind: WorkItemKind = WorkItemKind.GOAL,
        priority: WorkItemPriority = WorkItemPriority.MEDIUM,
        tags: Optional[set[str]] = None,
    ) -> WorkItem:
        """
        Create a root item for an objective and drive it to a terminal status.

        Engine failures are already recorded on the item, so they are logged
        here and the final root is returned either way.
        """
        await self.initialize()
        root = await self.store.create(
            {
                "title": title,
                "description": description,
                "kind": kind,
                "priority": priority,
                "tags": tags or set(),
                "created_by": self.agent.agent_id,
                "assigned_to": self.agent.agent_id,
            }
        )
        return await self.resume(root.id)

    async def resume(self, item_id: str) -> WorkItem:
        """Work on (or resume) an existing item; returns it in its final state."""
        await self.initialize()
        try:
            await self.agent.run(item_id)
        except ExecutionInterrupted:
            logger.info(f"Run of {item_id} interrupted")
        except MosaicError as e:
            logger.error(f"Run of {item_id} failed: {e}")
        finally:
            await self.store.save_state()
        return await self.store.require(item_id)

    async def stop(self, reopen: bool = False) -> None:
        if self.agent is not None:
            await self.agent.stop(reopen=reopen)

    async def shutdown(self) -> None:
        """Persist state."""
        await self.store.save_state()
        logger.info("Runtime shut down")
