"""
Per-project queue pump.

Each tick walks every project queue and promotes at most one item per
project to ``running``: a stuck running item first, otherwise the oldest
queued item whose ``auto_execute`` option is not False. A project whose
running item is still within the stuck threshold is skipped. Promotion is
synchronous bookkeeping, so two overlapping ticks can never both promote an
item of the same project.

Every promotion bumps the item's ``attempt``. A run only settles the item if
its attempt is still current; when a stuck item is reclaimed the superseded
run is cancelled and anything it reports afterwards is ignored.
"""

import asyncio
import os
import time
from datetime import datetime
from typing import Any

from loguru import logger

from taskforge.core.config import Settings, get_settings
from taskforge.core.constants import Events, QueueItemStatus
from taskforge.core.errors import ValidationError
from taskforge.core.models import QueueItem, utc_now
from taskforge.execution.interfaces import (
    EventBus,
    IDEManager,
    ProjectRepository,
    TaskQueueStore,
    WorkflowRunner,
)


class TaskProcessor:
    """
    Queue pump driving queued items through the workflow runner.

    Drive it either tick by tick with ``process_execution_queue()`` or as a
    background loop with ``start()``/``stop()``. The loop wakes on bus
    events, on the re-arm timer after each settled item, or when the poll
    interval elapses.

    Attributes:
        workflow_executor: Runner invoked with ``(task_id, options)``.
        queue_store: Source of project queues.
        paused: While True, ticks do nothing.

    Example:
        >>> processor = TaskProcessor(engine, queue_store, event_bus=bus)
        >>> await processor.start()
        >>> await queue_store.add_queue_item("p1", {"task_id": task.id})
        >>> await processor.stop()
    """

    def __init__(
        self,
        workflow_executor: WorkflowRunner,
        queue_store: TaskQueueStore | None,
        event_bus: EventBus | None = None,
        project_repository: ProjectRepository | None = None,
        ide_manager: IDEManager | None = None,
        settings: Settings | None = None,
        stuck_task_threshold_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
        requeue_delay_seconds: float | None = None,
    ):
        settings = settings or get_settings()
        self.workflow_executor = workflow_executor
        self.queue_store = queue_store
        self.event_bus = event_bus
        self.project_repository = project_repository
        self.ide_manager = ide_manager

        self.stuck_task_threshold_seconds = (
            stuck_task_threshold_seconds
            if stuck_task_threshold_seconds is not None
            else settings.taskforge_stuck_task_threshold_seconds
        )
        self.poll_interval_seconds = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.taskforge_queue_poll_interval_seconds
        )
        self.requeue_delay_seconds = (
            requeue_delay_seconds
            if requeue_delay_seconds is not None
            else settings.taskforge_requeue_delay_seconds
        )

        self.paused = False
        self._running = False
        self._wake = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._runs: dict[str, asyncio.Task] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._listening = False

        if event_bus is not None:
            self.setup_event_listeners()

    # =========================================================================
    # EVENTS
    # =========================================================================

    def setup_event_listeners(self) -> None:
        """Subscribe to queue and execution events (idempotent)."""
        if self.event_bus is None or self._listening:
            return
        self.event_bus.on(Events.QUEUE_ITEM_ADDED, self._on_queue_item_added)
        self.event_bus.on(Events.EXECUTION_REQUESTED, self._on_execution_requested)
        self.event_bus.on(Events.EXECUTION_CANCELLED, self._on_execution_cancelled)
        self.event_bus.on(Events.EXECUTION_PAUSED, self._on_execution_paused)
        self.event_bus.on(Events.EXECUTION_RESUMED, self._on_execution_resumed)
        self._listening = True
        logger.debug("Task processor event listeners registered")

    async def _on_queue_item_added(self, data: dict[str, Any]) -> None:
        if data.get("auto_execute") is False:
            logger.debug(f"Queue item {data.get('item_id')} waits for manual execution")
            return
        self.wake()

    async def _on_execution_requested(self, data: dict[str, Any]) -> None:
        logger.debug(f"Execution requested for task {data.get('task_id')}")
        self.wake()

    async def _on_execution_cancelled(self, data: dict[str, Any]) -> None:
        task_id = data.get("task_id") or data.get("taskId")
        if not task_id or self.queue_store is None:
            return

        removed = 0
        for project_id, items in self.queue_store.project_queues.items():
            stale = [i for i in items if i.task_id == task_id and i.status == QueueItemStatus.QUEUED]
            for item in stale:
                items.remove(item)
                removed += 1
                logger.info(f"Removed cancelled queue item {item.id} from project {project_id}")
        if removed:
            logger.info(f"Dropped {removed} queued items for cancelled task {task_id}")

    async def _on_execution_paused(self, data: dict[str, Any]) -> None:
        self.pause_queue_processing()

    async def _on_execution_resumed(self, data: dict[str, Any]) -> None:
        self.resume_queue_processing()

    # =========================================================================
    # CONTROL
    # =========================================================================

    def pause_queue_processing(self) -> None:
        """Skip ticks until resumed; running items are not interrupted."""
        if not self.paused:
            self.paused = True
            logger.info("Queue processing paused")

    def resume_queue_processing(self) -> None:
        if self.paused:
            self.paused = False
            logger.info("Queue processing resumed")
        self.wake()

    def wake(self) -> None:
        """Request an immediate tick from the background loop."""
        if self._running:
            self._wake.set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background loop."""
        if self._running:
            return
        self.setup_event_listeners()
        self._running = True
        self._wake.set()
        self._loop_task = asyncio.create_task(self._run_loop(), name="taskforge-queue-pump")

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop the background loop.

        In-flight runs get ``timeout`` seconds to settle (forever when None);
        whatever is still running afterwards is cancelled.
        """
        if not self._running:
            return
        self._running = False
        self._wake.set()
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        runs = [run for run in self._runs.values() if not run.done()]
        if runs:
            _, pending = await asyncio.wait(runs, timeout=timeout)
            for run in pending:
                run.cancel()
            if pending:
                logger.warning(f"Cancelled {len(pending)} queue runs still in flight at shutdown")
                await asyncio.gather(*pending, return_exceptions=True)

    async def _run_loop(self) -> None:
        logger.info("Task processor started")
        while self._running:
            self._wake.clear()
            try:
                await self.process_execution_queue(wait=False)
            except Exception as e:
                logger.error(f"Queue tick failed: {e}")

            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval_seconds)
            except TimeoutError:
                pass
        logger.info("Task processor stopped")

    def _request_tick(self, delay: float) -> None:
        if not self._running:
            return
        loop = asyncio.get_running_loop()
        timer: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._timers.discard(timer)
            self.wake()

        timer = loop.call_later(delay, fire)
        self._timers.add(timer)

    # =========================================================================
    # TICK
    # =========================================================================

    async def process_execution_queue(self, wait: bool = True) -> list[QueueItem]:
        """
        Run one tick over every project queue.

        Args:
            wait: Await the promoted runs before returning.

        Returns:
            Items promoted by this tick.
        """
        if self.paused:
            logger.debug("Queue processing is paused, skipping tick")
            return []
        if self.queue_store is None:
            logger.warning("No task queue store configured, skipping tick")
            return []

        now = utc_now()
        promoted: list[tuple[str, QueueItem]] = []
        for project_id, items in list(self.queue_store.project_queues.items()):
            item = self._select_item(project_id, items, now)
            if item is None:
                continue
            self._promote(item, now)
            promoted.append((project_id, item))

        runs = [self._launch(project_id, item) for project_id, item in promoted]
        if wait and runs:
            await asyncio.gather(*runs, return_exceptions=True)

        return [item for _, item in promoted]

    def _select_item(
        self, project_id: str, items: list[QueueItem], now: datetime
    ) -> QueueItem | None:
        running = [i for i in items if i.status == QueueItemStatus.RUNNING]
        stuck = [
            i for i in running if i.running_seconds(now) > self.stuck_task_threshold_seconds
        ]

        if stuck:
            item = min(stuck, key=lambda i: i.started_at or now)
            logger.warning(
                f"Reclaiming stuck queue item {item.id} in project {project_id} "
                f"(running {item.running_seconds(now):.0f}s, attempt {item.attempt})"
            )
            return item

        if running:
            return None

        for item in items:
            if item.status == QueueItemStatus.QUEUED and item.auto_execute:
                return item
        return None

    def _promote(self, item: QueueItem, now: datetime) -> None:
        item.status = QueueItemStatus.RUNNING
        item.started_at = now
        item.updated_at = now
        item.completed_at = None
        item.error = None
        item.attempt += 1

    def _launch(self, project_id: str, item: QueueItem) -> asyncio.Task:
        previous = self._runs.get(item.id)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.warning(f"Cancelled superseded run of queue item {item.id}")

        run = asyncio.create_task(
            self._execute_item(project_id, item, item.attempt),
            name=f"queue-item-{item.id}-{item.attempt}",
        )
        self._runs[item.id] = run
        run.add_done_callback(lambda finished, item_id=item.id: self._forget(item_id, finished))
        return run

    def _forget(self, item_id: str, run: asyncio.Task) -> None:
        if self._runs.get(item_id) is run:
            del self._runs[item_id]

    # =========================================================================
    # RUN
    # =========================================================================

    async def _execute_item(self, project_id: str, item: QueueItem, attempt: int) -> None:
        started = time.monotonic()
        task_id = item.task_id
        logger.info(
            f"Executing queue item {item.id} (task {task_id}) in project {project_id}, attempt {attempt}"
        )

        await self._persist(
            project_id,
            item,
            {"status": QueueItemStatus.RUNNING, "started_at": item.started_at, "attempt": attempt},
        )
        await self._emit(
            Events.EXECUTION_START,
            {"project_id": project_id, "queue_item_id": item.id, "task_id": task_id, "attempt": attempt},
        )

        try:
            if not task_id:
                raise ValidationError(f"Queue item {item.id} has no task id")
            options = await self._build_options(project_id, item)
            result = await self.workflow_executor.run(task_id, options)
        except Exception as e:
            await self._settle(
                project_id,
                item,
                attempt,
                QueueItemStatus.FAILED,
                elapsed_ms=int((time.monotonic() - started) * 1000),
                error=str(e),
            )
        else:
            await self._settle(
                project_id,
                item,
                attempt,
                QueueItemStatus.COMPLETED,
                elapsed_ms=int((time.monotonic() - started) * 1000),
                result=result,
            )

    async def _settle(
        self,
        project_id: str,
        item: QueueItem,
        attempt: int,
        status: QueueItemStatus,
        elapsed_ms: int,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        if item.attempt != attempt:
            logger.warning(
                f"Discarding outcome of attempt {attempt} for queue item {item.id}; "
                f"attempt {item.attempt} owns it now"
            )
            return

        patch = {
            "status": status,
            "completed_at": utc_now(),
            "result": result,
            "error": error,
        }
        await self._persist(project_id, item, patch)

        if status == QueueItemStatus.COMPLETED:
            logger.info(f"Queue item {item.id} completed in {elapsed_ms}ms")
            await self._emit(
                Events.EXECUTION_COMPLETE,
                {
                    "project_id": project_id,
                    "queue_item_id": item.id,
                    "task_id": item.task_id,
                    "result": result,
                    "execution_time": elapsed_ms,
                },
            )
        else:
            logger.error(f"Queue item {item.id} failed after {elapsed_ms}ms: {error}")
            await self._emit(
                Events.EXECUTION_ERROR,
                {
                    "project_id": project_id,
                    "queue_item_id": item.id,
                    "task_id": item.task_id,
                    "error": error,
                    "execution_time": elapsed_ms,
                },
            )

        self._request_tick(self.requeue_delay_seconds)

    async def _persist(self, project_id: str, item: QueueItem, patch: dict[str, Any]) -> None:
        for key, value in patch.items():
            setattr(item, key, value)
        item.updated_at = utc_now()
        try:
            await self.queue_store.update_queue_item(project_id, item.id, patch)
        except Exception as e:
            logger.error(f"Failed to persist queue item {item.id} in project {project_id}: {e}")

    # =========================================================================
    # CONTEXT
    # =========================================================================

    async def _build_options(self, project_id: str, item: QueueItem) -> dict[str, Any]:
        active_ide = await self.get_active_ide()
        project_path = await self.resolve_project_path(project_id, item)
        return {
            **item.options,
            **item.context,
            "active_ide": active_ide,
            "project_id": project_id,
            "project_path": project_path,
            "queue_item_id": item.id,
        }

    async def get_active_ide(self) -> dict[str, Any] | None:
        """Active IDE, else the first available one; None on any failure."""
        if self.ide_manager is None:
            return None
        try:
            ide = await self.ide_manager.get_active_ide()
            if not ide:
                available = await self.ide_manager.get_available_ides()
                ide = available[0] if available else None
            return ide
        except Exception as e:
            logger.warning(f"Could not resolve active IDE: {e}")
            return None

    async def resolve_project_path(self, project_id: str, item: QueueItem) -> str:
        """Context path, then option path, then the project's workspace, then cwd."""
        for source in (item.context, item.options):
            path = source.get("project_path") or source.get("projectPath")
            if path:
                return path

        if self.project_repository is not None:
            try:
                project = await self.project_repository.find_by_id(project_id)
            except Exception as e:
                logger.warning(f"Project lookup failed for {project_id}: {e}")
                project = None
            path = _workspace_path(project)
            if path:
                return path

        return os.getcwd()

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        projects: dict[str, dict[str, int]] = {}
        if self.queue_store is not None:
            for project_id, items in self.queue_store.project_queues.items():
                projects[project_id] = {
                    status.value: sum(1 for i in items if i.status == status)
                    for status in QueueItemStatus
                }
        return {
            "running": self._running,
            "paused": self.paused,
            "in_flight": len(self._runs),
            "projects": projects,
        }

    async def _emit(self, event: str, data: dict[str, Any]) -> None:
        if self.event_bus is None:
            return
        try:
            await self.event_bus.emit(event, data)
        except Exception as e:
            logger.warning(f"Failed to emit {event}: {e}")


def _workspace_path(project: Any) -> str | None:
    if project is None:
        return None
    if isinstance(project, dict):
        return project.get("workspace_path") or project.get("workspacePath")
    return getattr(project, "workspace_path", None)
