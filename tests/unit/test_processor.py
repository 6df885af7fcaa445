"""Unit tests for the per-project queue pump."""

import asyncio
import os
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskforge.core.constants import Events, QueueItemStatus
from taskforge.core.errors import ExecutionError
from taskforge.core.models import QueueItem, utc_now
from taskforge.processing.events import EventBus
from taskforge.processing.processor import TaskProcessor
from taskforge.processing.store import InMemoryTaskQueueStore

# =============================================================================
# HELPERS
# =============================================================================


class FakeRunner:
    """Workflow runner recording calls, optionally blocking or failing per task."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: set[str] = set()

    async def run(self, task_id: str, options: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((task_id, options))
        gate = self.gates.get(task_id)
        if gate is not None:
            await gate.wait()
        if task_id in self.failures:
            raise ExecutionError(f"workflow failed for {task_id}")
        return {"task_id": task_id}

    @property
    def task_ids(self) -> list[str]:
        return [task_id for task_id, _ in self.calls]


async def wait_for_status(item: QueueItem, status: QueueItemStatus, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while item.status != status:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def store() -> InMemoryTaskQueueStore:
    return InMemoryTaskQueueStore()


@pytest.fixture
def processor(runner, store, settings) -> TaskProcessor:
    return TaskProcessor(runner, store, settings=settings)


# =============================================================================
# SELECTION
# =============================================================================


class TestTick:
    """Tests for process_execution_queue."""

    @pytest.mark.asyncio
    async def test_one_running_item_per_project(self, processor, store, runner) -> None:
        """Test each project promotes at most one item per tick."""
        runner.gates["a1"] = asyncio.Event()
        runner.gates["b1"] = asyncio.Event()
        a1 = await store.add_queue_item("p1", {"task_id": "a1"})
        a2 = await store.add_queue_item("p1", {"task_id": "a2"})
        b1 = await store.add_queue_item("p2", {"task_id": "b1"})

        promoted = await processor.process_execution_queue(wait=False)

        assert {i.id for i in promoted} == {a1.id, b1.id}
        assert a2.status == QueueItemStatus.QUEUED

        # Running items within the threshold block their project
        assert await processor.process_execution_queue(wait=False) == []

        for gate in runner.gates.values():
            gate.set()
        await asyncio.gather(*processor._runs.values())

        assert a1.status == QueueItemStatus.COMPLETED
        assert a2.status == QueueItemStatus.QUEUED

    @pytest.mark.asyncio
    async def test_fifo_order(self, processor, store, runner) -> None:
        """Test items of a project run in submission order."""
        first = await store.add_queue_item("p1", {"task_id": "t1"})
        second = await store.add_queue_item("p1", {"task_id": "t2"})

        await processor.process_execution_queue()
        await processor.process_execution_queue()

        assert runner.task_ids == ["t1", "t2"]
        assert first.status == QueueItemStatus.COMPLETED
        assert second.status == QueueItemStatus.COMPLETED
        assert first.completed_at <= second.started_at
        assert first.result == {"task_id": "t1"}

    @pytest.mark.asyncio
    async def test_manual_items_are_skipped(self, processor, store, runner) -> None:
        """Test items with autoExecute False are never promoted."""
        manual = await store.add_queue_item("p1", {"task_id": "t1"}, {"autoExecute": False})
        auto = await store.add_queue_item("p1", {"task_id": "t2"})

        promoted = await processor.process_execution_queue()

        assert promoted == [auto]
        assert manual.status == QueueItemStatus.QUEUED
        assert await processor.process_execution_queue() == []

    @pytest.mark.asyncio
    async def test_failure_marks_item_failed(self, processor, store, runner) -> None:
        """Test workflow errors settle the item as failed."""
        runner.failures.add("t1")
        item = await store.add_queue_item("p1", {"task_id": "t1"})

        await processor.process_execution_queue()

        assert item.status == QueueItemStatus.FAILED
        assert item.error == "workflow failed for t1"
        assert item.completed_at is not None

    @pytest.mark.asyncio
    async def test_missing_task_id_fails(self, processor, store, runner) -> None:
        """Test an item without a task id fails without calling the runner."""
        item = await store.add_queue_item("p1", {})

        await processor.process_execution_queue()

        assert item.status == QueueItemStatus.FAILED
        assert "no task id" in item.error
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_options_passed_to_runner(self, processor, store, runner) -> None:
        """Test item options and context reach the runner."""
        item = await store.add_queue_item(
            "p1", {"task_id": "t1", "project_path": "/srv/app"}, {"task_mode": "standard"}
        )

        await processor.process_execution_queue()

        [(task_id, options)] = runner.calls
        assert task_id == "t1"
        assert options["task_mode"] == "standard"
        assert options["project_path"] == "/srv/app"
        assert options["project_id"] == "p1"
        assert options["queue_item_id"] == item.id
        assert options["active_ide"] is None

    @pytest.mark.asyncio
    async def test_no_store(self, runner, settings) -> None:
        """Test a processor without a store does nothing."""
        processor = TaskProcessor(runner, None, settings=settings)

        assert await processor.process_execution_queue() == []


# =============================================================================
# STUCK ITEMS
# =============================================================================


class TestStuckItems:
    """Tests for stuck item recovery."""

    @pytest.mark.asyncio
    async def test_stuck_item_reclaimed_before_queued(self, processor, store, runner) -> None:
        """Test an item running past the threshold is promoted again first."""
        stuck = await store.add_queue_item("p1", {"task_id": "t1"})
        queued = await store.add_queue_item("p1", {"task_id": "t2"})
        stuck.status = QueueItemStatus.RUNNING
        stuck.started_at = utc_now() - timedelta(seconds=60)
        stuck.attempt = 1

        promoted = await processor.process_execution_queue()

        assert promoted == [stuck]
        assert stuck.attempt == 2
        assert stuck.status == QueueItemStatus.COMPLETED
        assert queued.status == QueueItemStatus.QUEUED

    @pytest.mark.asyncio
    async def test_reclaim_cancels_superseded_run(self, processor, store, runner) -> None:
        """Test the earlier run is cancelled and the new attempt settles."""
        runner.gates["t1"] = asyncio.Event()
        item = await store.add_queue_item("p1", {"task_id": "t1"})

        await processor.process_execution_queue(wait=False)
        first_run = processor._runs[item.id]
        await asyncio.sleep(0)
        item.started_at = utc_now() - timedelta(seconds=60)

        await processor.process_execution_queue(wait=False)
        second_run = processor._runs[item.id]
        runner.gates["t1"].set()
        await second_run
        await asyncio.gather(first_run, return_exceptions=True)

        assert first_run.cancelled()
        assert item.attempt == 2
        assert item.status == QueueItemStatus.COMPLETED
        assert len(runner.calls) == 2

    @pytest.mark.asyncio
    async def test_stale_outcome_discarded(self, processor, store) -> None:
        """Test an older attempt cannot settle the item."""
        item = await store.add_queue_item("p1", {"task_id": "t1"})
        item.status = QueueItemStatus.RUNNING
        item.attempt = 2

        await processor._settle("p1", item, 1, QueueItemStatus.FAILED, elapsed_ms=5, error="late")

        assert item.status == QueueItemStatus.RUNNING
        assert item.error is None

    @pytest.mark.asyncio
    async def test_fresh_running_item_not_reclaimed(self, processor, store) -> None:
        """Test items under the threshold stay put."""
        item = await store.add_queue_item("p1", {"task_id": "t1"})
        item.status = QueueItemStatus.RUNNING
        item.started_at = utc_now() - timedelta(seconds=5)

        assert await processor.process_execution_queue() == []


# =============================================================================
# CONTROL AND EVENTS
# =============================================================================


class TestControl:
    """Tests for pause/resume and event handling."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, processor, store, runner) -> None:
        """Test paused ticks promote nothing."""
        item = await store.add_queue_item("p1", {"task_id": "t1"})

        processor.pause_queue_processing()
        assert await processor.process_execution_queue() == []
        assert item.status == QueueItemStatus.QUEUED

        processor.resume_queue_processing()
        assert await processor.process_execution_queue() == [item]

    @pytest.mark.asyncio
    async def test_pause_events(self, runner, store, settings) -> None:
        """Test execution pause/resume events pause the pump."""
        bus = EventBus()
        processor = TaskProcessor(runner, store, event_bus=bus, settings=settings)

        await bus.emit(Events.EXECUTION_PAUSED, {"execution_id": "e1"})
        assert processor.paused is True

        await bus.emit(Events.EXECUTION_RESUMED, {"execution_id": "e1"})
        assert processor.paused is False

    @pytest.mark.asyncio
    async def test_cancelled_event_drops_queued_items(self, runner, store, settings) -> None:
        """Test cancelling a task removes its queued items only."""
        bus = EventBus()
        TaskProcessor(runner, store, event_bus=bus, settings=settings)
        running = await store.add_queue_item("p1", {"task_id": "t1"})
        running.status = QueueItemStatus.RUNNING
        queued = await store.add_queue_item("p1", {"task_id": "t1"})
        other = await store.add_queue_item("p2", {"task_id": "t2"})

        await bus.emit(Events.EXECUTION_CANCELLED, {"task_id": "t1"})

        assert store.get_queue("p1") == [running]
        assert store.get_item("p1", queued.id) is None
        assert store.get_queue("p2") == [other]

    @pytest.mark.asyncio
    async def test_listeners_registered_once(self, runner, store, settings) -> None:
        """Test listener setup is idempotent."""
        bus = EventBus()
        processor = TaskProcessor(runner, store, event_bus=bus, settings=settings)

        processor.setup_event_listeners()

        assert bus.listener_count(Events.QUEUE_ITEM_ADDED) == 1

    @pytest.mark.asyncio
    async def test_background_loop(self, runner, settings) -> None:
        """Test the loop drains a project queue in order after item events."""
        bus = EventBus()
        store = InMemoryTaskQueueStore(event_bus=bus)
        processor = TaskProcessor(runner, store, event_bus=bus, settings=settings)
        completed: list[dict] = []
        bus.on(Events.EXECUTION_COMPLETE, completed.append)

        await processor.start()
        assert processor.is_running
        first = await store.add_queue_item("p1", {"task_id": "t1"})
        second = await store.add_queue_item("p1", {"task_id": "t2"})

        await wait_for_status(second, QueueItemStatus.COMPLETED)
        await processor.stop(timeout=1.0)

        assert not processor.is_running
        assert runner.task_ids == ["t1", "t2"]
        assert first.completed_at <= second.started_at
        assert [e["task_id"] for e in completed] == ["t1", "t2"]
        assert all("execution_time" in e for e in completed)

    @pytest.mark.asyncio
    async def test_stop_cancels_runs_past_timeout(self, runner, store, settings) -> None:
        """Test stop cancels runs that outlive the grace period."""
        runner.gates["t1"] = asyncio.Event()
        processor = TaskProcessor(runner, store, settings=settings)
        item = await store.add_queue_item("p1", {"task_id": "t1"})

        await processor.start()
        processor.wake()
        await wait_for_status(item, QueueItemStatus.RUNNING)
        await asyncio.sleep(0.01)
        await processor.stop(timeout=0.05)

        assert item.status == QueueItemStatus.RUNNING
        assert processor.get_status()["in_flight"] == 0

    @pytest.mark.asyncio
    async def test_status(self, processor, store) -> None:
        """Test status reports per-project counts."""
        await store.add_queue_item("p1", {"task_id": "t1"})

        status = processor.get_status()

        assert status["running"] is False
        assert status["paused"] is False
        assert status["projects"]["p1"]["queued"] == 1
        assert status["projects"]["p1"]["running"] == 0


# =============================================================================
# CONTEXT RESOLUTION
# =============================================================================


class TestContextResolution:
    """Tests for project path and IDE resolution."""

    @pytest.mark.asyncio
    async def test_project_path_sources(self, runner, store, settings) -> None:
        """Test context, options, repository and cwd are tried in order."""
        repository = MagicMock(find_by_id=AsyncMock(return_value={"workspace_path": "/ws"}))
        processor = TaskProcessor(runner, store, project_repository=repository, settings=settings)

        from_context = QueueItem(context={"project_path": "/ctx"}, options={"projectPath": "/opt"})
        from_options = QueueItem(options={"projectPath": "/opt"})

        assert await processor.resolve_project_path("p1", from_context) == "/ctx"
        assert await processor.resolve_project_path("p1", from_options) == "/opt"
        assert await processor.resolve_project_path("p1", QueueItem()) == "/ws"

    @pytest.mark.asyncio
    async def test_project_path_falls_back_to_cwd(self, runner, store, settings) -> None:
        """Test repository failures fall back to the working directory."""
        repository = MagicMock(find_by_id=AsyncMock(side_effect=RuntimeError("db down")))
        processor = TaskProcessor(runner, store, project_repository=repository, settings=settings)

        assert await processor.resolve_project_path("p1", QueueItem()) == os.getcwd()

    @pytest.mark.asyncio
    async def test_ide_fallback_to_first_available(self, runner, store, settings) -> None:
        """Test the first available IDE is used when none is active."""
        ide_manager = MagicMock(
            get_active_ide=AsyncMock(return_value=None),
            get_available_ides=AsyncMock(return_value=[{"name": "vscode"}, {"name": "cursor"}]),
        )
        processor = TaskProcessor(runner, store, ide_manager=ide_manager, settings=settings)

        assert await processor.get_active_ide() == {"name": "vscode"}

    @pytest.mark.asyncio
    async def test_ide_errors_yield_none(self, runner, store, settings) -> None:
        """Test IDE lookup failures do not block execution."""
        ide_manager = MagicMock(get_active_ide=AsyncMock(side_effect=RuntimeError("no cdp")))
        processor = TaskProcessor(runner, store, ide_manager=ide_manager, settings=settings)

        assert await processor.get_active_ide() is None
