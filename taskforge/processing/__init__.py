"""Per-project queue pump and its event bus and queue store."""

from taskforge.processing.events import EventBus
from taskforge.processing.processor import TaskProcessor
from taskforge.processing.store import InMemoryTaskQueueStore

__all__ = ["EventBus", "InMemoryTaskQueueStore", "TaskProcessor"]
