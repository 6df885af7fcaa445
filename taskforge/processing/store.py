"""In-memory per-project queue store."""

from typing import Any

from loguru import logger

from taskforge.core.constants import Events, QueueItemStatus
from taskforge.core.errors import ValidationError
from taskforge.core.models import QueueItem, utc_now
from taskforge.execution.interfaces import EventBus

UPDATABLE_FIELDS = frozenset(
    {"status", "started_at", "completed_at", "result", "error", "attempt", "context", "options"}
)


class InMemoryTaskQueueStore:
    """
    Project id -> ordered list of queue items.

    Insertion order is submission order. Adding an item emits
    ``queue:item:added`` when an event bus is attached.

    Attributes:
        project_queues: Queues keyed by project id.
    """

    def __init__(self, event_bus: EventBus | None = None):
        self.project_queues: dict[str, list[QueueItem]] = {}
        self.event_bus = event_bus

    async def add_queue_item(
        self,
        project_id: str,
        context: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> QueueItem:
        """Append a new queued item to the project's queue."""
        item = QueueItem(project_id=project_id, context=dict(context), options=dict(options or {}))
        self.project_queues.setdefault(project_id, []).append(item)
        logger.info(f"Queued item {item.id} (task {item.task_id}) in project {project_id}")

        if self.event_bus is not None:
            await self.event_bus.emit(
                Events.QUEUE_ITEM_ADDED,
                {
                    "project_id": project_id,
                    "item_id": item.id,
                    "task_id": item.task_id,
                    "auto_execute": item.auto_execute,
                },
            )
        return item

    async def update_queue_item(
        self, project_id: str, item_id: str, patch: dict[str, Any]
    ) -> QueueItem | None:
        """
        Apply ``patch`` to an item.

        Returns:
            The updated item, or None if it no longer exists.

        Raises:
            ValidationError: The patch names a field that cannot be updated.
        """
        item = self.get_item(project_id, item_id)
        if item is None:
            logger.warning(f"Queue item {item_id} not found in project {project_id}")
            return None

        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update queue item fields: {', '.join(sorted(unknown))}")

        for key, value in patch.items():
            if key == "status":
                value = QueueItemStatus(value)
            setattr(item, key, value)
        item.updated_at = utc_now()
        return item

    def get_queue(self, project_id: str) -> list[QueueItem]:
        return list(self.project_queues.get(project_id, []))

    def get_item(self, project_id: str, item_id: str) -> QueueItem | None:
        for item in self.project_queues.get(project_id, []):
            if item.id == item_id:
                return item
        return None

    async def remove_queue_item(self, project_id: str, item_id: str) -> bool:
        item = self.get_item(project_id, item_id)
        if item is None:
            return False
        self.project_queues[project_id].remove(item)
        logger.debug(f"Removed queue item {item_id} from project {project_id}")
        return True

    def clear_completed(self, project_id: str | None = None) -> int:
        """Drop terminal items; returns how many were removed."""
        project_ids = [project_id] if project_id else list(self.project_queues)
        removed = 0
        for pid in project_ids:
            items = self.project_queues.get(pid)
            if items is None:
                continue
            kept = [item for item in items if not item.is_terminal]
            removed += len(items) - len(kept)
            self.project_queues[pid] = kept
        return removed
