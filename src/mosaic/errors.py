"""Error taxonomy for the work-item engine."""


class MosaicError(Exception):
    """Base class for all engine errors."""


class ParseError(MosaicError):
    """Model output could not be decoded into the expected payload."""


class PlanningError(MosaicError):
    """A decomposition plan could not be produced or parsed."""


class StepBudgetExceeded(MosaicError):
    """The execution loop ran out of iterations before completing."""

    def __init__(self, max_steps: int) -> None:
        self.max_steps = max_steps
        super().__init__(f"Execution exceeded maximum steps ({max_steps})")


class ToolNotFound(MosaicError):
    """The requested tool is not registered with the tool provider."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ToolExecutionError(MosaicError):
    """A tool raised while being invoked."""


class ProviderError(MosaicError):
    """The LLM provider failed (transport, auth, or exhausted retries)."""


class InvalidState(MosaicError):
    """An illegal transition or delete was attempted on a work item."""


class WorkItemNotFound(MosaicError, LookupError):
    """No work item exists with the given id."""

    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        super().__init__(f"Work item not found: {item_id}")


class ExecutionInterrupted(MosaicError):
    """Execution was stopped by a cooperative cancellation request."""
