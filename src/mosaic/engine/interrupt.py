"""
Cooperative cancellation for running agents.

The agent checks the controller before starting each item and the execution
loop checks it before every step; a request never cancels an in-flight LLM
or tool call.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from mosaic.errors import ExecutionInterrupted

logger = logging.getLogger(__name__)


class InterruptReason(Enum):
    """Reason for interrupt."""

    USER_REQUEST = "user_request"
    SIGNAL = "signal"
    SHUTDOWN = "shutdown"


@dataclass
class InterruptState:
    """Current interrupt state."""

    requested: bool = False
    reason: InterruptReason = InterruptReason.USER_REQUEST
    message: str | None = None
    timestamp: float | None = None


class InterruptController:
    """
    Cancellation signal shared by the agent and its execution loop.

    One controller belongs to one agent; it is passed in through the
    constructor rather than looked up globally.
    """

    def __init__(self) -> None:
        self._state = InterruptState()
        self._interrupt_count = 0

    def request_interrupt_sync(
        self,
        reason: InterruptReason = InterruptReason.USER_REQUEST,
        message: str | None = None,
    ) -> None:
        """Request a stop; safe to call from a signal handler."""
        self._interrupt_count += 1
        self._state = InterruptState(
            requested=True, reason=reason, message=message, timestamp=time.time()
        )
        logger.info(f"Interrupt requested: reason={reason.value}, message={message}")

    async def request_interrupt(
        self,
        reason: InterruptReason = InterruptReason.USER_REQUEST,
        message: str | None = None,
    ) -> None:
        """
        Request that the running agent stop at its next checkpoint.

        Args:
            reason: Why the interrupt was requested
            message: Optional message carried by ExecutionInterrupted
        """
        self.request_interrupt_sync(reason, message)

    def check_interrupt(self) -> InterruptState | None:
        """
        Check if interrupt is requested (non-blocking).

        Returns:
            InterruptState if interrupt requested, None otherwise
        """
        if self._state.requested:
            return self._state
        return None

    def raise_if_interrupted(self) -> None:
        """
        Raises:
            ExecutionInterrupted: If an interrupt has been requested
        """
        state = self.check_interrupt()
        if state is not None:
            raise ExecutionInterrupted(state.message or f"Interrupted ({state.reason.value})")

    async def reset(self) -> None:
        """Clear interrupt state before the next run."""
        self._state = InterruptState()
        self._interrupt_count = 0
        logger.debug("Interrupt controller reset")

    @property
    def is_interrupted(self) -> bool:
        return self._state.requested

    @property
    def interrupt_count(self) -> int:
        return self._interrupt_count
