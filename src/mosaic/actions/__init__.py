"""Action timeline recording."""

from mosaic.actions.recorder import (
    ActionRecord,
    ActionRecorder,
    ActionStatus,
    InMemoryActionRecorder,
    SafeRecorder,
)

__all__ = ["ActionRecord", "ActionRecorder", "ActionStatus", "InMemoryActionRecorder", "SafeRecorder"]
