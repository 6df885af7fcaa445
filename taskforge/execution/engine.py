"""
Task execution engine.

The engine tracks executions, bounds how many are active at once and runs
tasks two ways:

- ``execute_workflow``: load the task and a named workflow, then hand both
  to the workflow execution service. This is the path the queue pump uses.
- ``run_task``: dispatch directly to the task-type service registered for
  the task's type and track the run as an Execution.
"""

import asyncio
from collections import deque
from typing import Any

from loguru import logger

from taskforge.core.config import Settings, get_settings
from taskforge.core.constants import Events, ExecutionStatus, Priority
from taskforge.core.errors import (
    DependencyError,
    ExecutionError,
    TaskNotFoundError,
    WorkflowNotFoundError,
)
from taskforge.core.models import Execution, ExecutionOptions, PendingExecution, Task
from taskforge.execution.dependencies import EngineDependencies
from taskforge.execution.store import ExecutionStore, InMemoryExecutionStore
from taskforge.execution.validator import TaskValidator
from taskforge.services.registry import TaskHandlerRegistry

WORKFLOW_DEPENDENCIES = ("workflow_execution_service", "task_repository", "workflow_loader")


class TaskExecutionEngine:
    """
    Owns active executions and the pending execution queue.

    Attributes:
        deps: Engine collaborators.
        registry: Task-type services.
        store: Execution records keyed by execution id.
        max_concurrent_executions: Ceiling on active executions.
        execution_queue: Pending executions in submission order.

    Example:
        >>> engine = TaskExecutionEngine(deps)
        >>> engine.add_to_queue(Task(type="script", data={"script": "echo hi"}))
        'pending_3f2a9c1b7d4e'
        >>> executions = await engine.process_queue()
    """

    def __init__(
        self,
        dependencies: EngineDependencies,
        registry: TaskHandlerRegistry | None = None,
        store: ExecutionStore | None = None,
        settings: Settings | None = None,
        max_concurrent_executions: int | None = None,
    ):
        self.settings = settings or get_settings()
        self.deps = dependencies
        self.missing_optional = dependencies.validate()

        self.registry = registry or TaskHandlerRegistry.with_defaults(dependencies, self.settings)
        self.store: ExecutionStore = store if store is not None else InMemoryExecutionStore()
        self.max_concurrent_executions = (
            max_concurrent_executions or self.settings.taskforge_max_concurrent_executions
        )
        self.execution_queue: deque[PendingExecution] = deque()
        self.validator = TaskValidator()

        logger.info(
            f"TaskExecutionEngine ready (max {self.max_concurrent_executions} concurrent executions)"
        )

    # =========================================================================
    # WORKFLOW PATH
    # =========================================================================

    async def execute_workflow(self, task_id: str, options: dict[str, Any] | None = None) -> Any:
        """
        Run the named workflow for a stored task.

        The workflow name is ``options.task_mode`` or the configured default.

        Args:
            task_id: Id known to the task repository.
            options: Execution options; merged into the workflow context.

        Returns:
            Whatever the workflow execution service returns.

        Raises:
            DependencyError: Workflow collaborators are not wired.
            TaskNotFoundError: The task id is unknown.
            WorkflowNotFoundError: The workflow name is unknown.
        """
        missing = [name for name in WORKFLOW_DEPENDENCIES if getattr(self.deps, name) is None]
        if missing:
            raise DependencyError(f"Workflow execution requires: {', '.join(missing)}")

        options = dict(options or {})

        task = await self.deps.task_repository.find_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        workflow_name = (
            options.get("task_mode") or options.get("taskMode") or self.settings.taskforge_default_workflow
        )
        workflow = await self._load_workflow(workflow_name)

        context = {
            "task_id": task_id,
            "task": task,
            "user_id": options.get("user_id", options.get("userId")),
            "project_id": options.get("project_id", options.get("projectId")),
            "project_path": (
                options.get("project_path") or options.get("projectPath") or task.project_path
            ),
            "task_mode": workflow_name,
            **{key: value for key, value in options.items() if value is not None},
        }

        logger.info(f"Executing workflow '{workflow_name}' for task {task_id}")
        return await self.deps.workflow_execution_service.execute_workflow(workflow, context)

    async def execute_task(self, task: Task, options: dict[str, Any] | None = None) -> Any:
        """Run ``task`` through its workflow; forwards to ``execute_workflow``."""
        return await self.execute_workflow(task.id, options)

    async def run(self, task_id: str, options: dict[str, Any]) -> Any:
        """Workflow runner entry point used by the queue pump."""
        return await self.execute_workflow(task_id, options)

    async def _load_workflow(self, name: str) -> Any:
        loader = self.deps.workflow_loader
        workflow = loader.get_workflow(name)
        if workflow is None:
            await loader.load_workflows()
            workflow = loader.get_workflow(name)
        if workflow is None:
            raise WorkflowNotFoundError(name)
        return workflow

    # =========================================================================
    # DIRECT PATH
    # =========================================================================

    async def run_task(
        self,
        task: Task | dict[str, Any],
        options: ExecutionOptions | dict[str, Any] | None = None,
    ) -> Execution:
        """
        Execute a task through its task-type service.

        Returns:
            The completed (or cancelled) Execution.

        Raises:
            ValidationError: The task or its payload is invalid.
            ExecutionError: The task is already running or capacity is exhausted.
            Exception: Whatever the service raised; the execution is marked as error.
        """
        execution = self._prepare(task, options)
        return await self._run(execution)

    def _prepare(
        self,
        task: Task | dict[str, Any],
        options: ExecutionOptions | dict[str, Any] | None,
    ) -> Execution:
        task = self.validator.validate_task(task)
        options = self._coerce_options(options)

        if any(e.task_id == task.id for e in self.get_active_executions()):
            raise ExecutionError(f"Task is already running: {task.id}")

        if len(self.get_active_executions()) >= self.max_concurrent_executions:
            raise ExecutionError(
                f"Execution capacity reached ({self.max_concurrent_executions} active)"
            )

        execution = Execution(task_id=task.id, task=task, options=options)
        self.store.set(execution)
        logger.debug(f"Registered execution {execution.id} for task {task.id}")
        return execution

    async def _run(self, execution: Execution) -> Execution:
        await self._emit(
            Events.EXECUTION_START,
            {"execution_id": execution.id, "task_id": execution.task_id},
        )

        try:
            service = self.registry.get(execution.task.type)
            result = await service.execute(execution)
        except asyncio.CancelledError:
            if execution.is_active:
                execution.mark_cancelled()
                logger.info(f"Execution {execution.id} interrupted")
            raise
        except Exception as e:
            if execution.status == ExecutionStatus.CANCELLED:
                logger.info(f"Execution {execution.id} failed after cancellation: {e}")
            else:
                execution.mark_failed(str(e))
                logger.error(f"Execution {execution.id} failed: {e}")
                await self._emit(
                    Events.EXECUTION_ERROR,
                    {"execution_id": execution.id, "task_id": execution.task_id, "error": str(e)},
                )
            raise

        if execution.status == ExecutionStatus.CANCELLED:
            logger.info(f"Execution {execution.id} was cancelled, discarding result")
            return execution

        execution.mark_completed(result)
        logger.info(f"Execution {execution.id} completed in {execution.duration_ms}ms")
        await self._emit(
            Events.EXECUTION_COMPLETE,
            {
                "execution_id": execution.id,
                "task_id": execution.task_id,
                "duration_ms": execution.duration_ms,
            },
        )
        return execution

    # =========================================================================
    # CONTROL
    # =========================================================================

    async def cancel_execution(self, execution_id: str) -> bool:
        """
        Mark a tracked execution as cancelled.

        Cancellation is cooperative: in-flight scripts and AI calls finish,
        their outcome is discarded.

        Returns:
            True if the execution was found, else False.
        """
        execution = self.store.get(execution_id)
        if execution is None:
            return False

        execution.mark_cancelled()
        logger.info(f"Cancelled execution {execution_id}")
        await self._emit(
            Events.EXECUTION_CANCELLED,
            {"execution_id": execution_id, "task_id": execution.task_id},
        )
        return True

    async def pause_execution(self, execution_id: str) -> bool:
        """Flip a running execution to paused."""
        execution = self.store.get(execution_id)
        if execution is None or execution.status != ExecutionStatus.RUNNING:
            return False

        execution.status = ExecutionStatus.PAUSED
        logger.info(f"Paused execution {execution_id}")
        await self._emit(
            Events.EXECUTION_PAUSED,
            {"execution_id": execution_id, "task_id": execution.task_id},
        )
        return True

    async def resume_execution(self, execution_id: str) -> bool:
        """Flip a paused execution back to running."""
        execution = self.store.get(execution_id)
        if execution is None or execution.status != ExecutionStatus.PAUSED:
            return False

        execution.status = ExecutionStatus.RUNNING
        logger.info(f"Resumed execution {execution_id}")
        await self._emit(
            Events.EXECUTION_RESUMED,
            {"execution_id": execution_id, "task_id": execution.task_id},
        )
        return True

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_execution_status(self, execution_id: str) -> Execution | None:
        return self.store.get(execution_id)

    def get_active_executions(self) -> list[Execution]:
        """Executions that count against the concurrency ceiling."""
        return [e for e in self.store.values() if e.is_active]

    def get_queue_status(self) -> dict[str, Any]:
        active = len(self.get_active_executions())
        return {
            "queue_length": len(self.execution_queue),
            "active_executions": active,
            "max_concurrent_executions": self.max_concurrent_executions,
            "available_slots": max(0, self.max_concurrent_executions - active),
        }

    # =========================================================================
    # QUEUE
    # =========================================================================

    def add_to_queue(
        self,
        task: Task,
        options: dict[str, Any] | None = None,
        priority: Priority | str | None = None,
    ) -> str:
        """
        Append a task to the execution queue without starting it.

        Priority is recorded but does not reorder the queue.

        Returns:
            The pending entry id.
        """
        options = dict(options or {})
        pending = PendingExecution(
            task=task,
            options=options,
            priority=priority or options.get("priority") or Priority.NORMAL,
        )
        self.execution_queue.append(pending)
        logger.debug(f"Queued {pending.id} for task {task.id} ({len(self.execution_queue)} pending)")
        return pending.id

    async def process_queue(self) -> list[Execution]:
        """
        Drain the execution queue within the concurrency ceiling.

        Entries are started in order while capacity allows; a failing entry
        is logged and does not stop the loop. Returns once the queue is empty
        and every started execution has settled, or when the queue is blocked
        by executions this call did not start.

        Returns:
            Executions started by this call.
        """
        started: list[Execution] = []
        in_flight: set[asyncio.Task] = set()

        while self.execution_queue or in_flight:
            while (
                self.execution_queue
                and len(self.get_active_executions()) < self.max_concurrent_executions
            ):
                pending = self.execution_queue.popleft()
                try:
                    execution = self._prepare(pending.task, pending.options)
                except Exception as e:
                    logger.error(f"Queued entry {pending.id} rejected: {e}")
                    continue
                started.append(execution)
                in_flight.add(asyncio.create_task(self._run(execution)))

            if not in_flight:
                if self.execution_queue:
                    logger.warning(
                        f"Execution capacity exhausted, {len(self.execution_queue)} entries left queued"
                    )
                break

            done, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for finished in done:
                if finished.cancelled():
                    continue
                error = finished.exception()
                if error is not None:
                    logger.error(f"Queued execution failed: {error}")

        return started

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _coerce_options(
        self, options: ExecutionOptions | dict[str, Any] | None
    ) -> ExecutionOptions:
        if isinstance(options, ExecutionOptions):
            return options
        return ExecutionOptions.model_validate(options or {})

    async def _emit(self, event: str, data: dict[str, Any]) -> None:
        if self.deps.event_bus is None:
            return
        try:
            await self.deps.event_bus.emit(event, data)
        except Exception as e:
            logger.warning(f"Failed to emit {event}: {e}")
