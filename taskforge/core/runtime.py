"""
Runtime wiring.

``TaskForge`` assembles the default collaborators, the execution engine and
the queue pump into one object. Anything passed in replaces the default.
"""

from typing import Any

from loguru import logger

from taskforge.core.config import Settings, get_settings
from taskforge.core.constants import Events
from taskforge.core.logging import configure_logging
from taskforge.core.models import QueueItem, Task
from taskforge.execution.dependencies import EngineDependencies
from taskforge.execution.engine import TaskExecutionEngine
from taskforge.execution.interfaces import (
    AIService,
    DockerService,
    FileSystemService,
    GitService,
    IDEManager,
    ProjectRepository,
    ScriptExecutor,
)
from taskforge.execution.workflows import (
    DirectWorkflowExecutionService,
    InMemoryTaskRepository,
    StaticWorkflowLoader,
    Workflow,
)
from taskforge.infrastructure.ai import ClaudeAIService
from taskforge.infrastructure.filesystem import LocalFileSystemService
from taskforge.infrastructure.scripts import SubprocessScriptExecutor
from taskforge.processing.events import EventBus
from taskforge.processing.processor import TaskProcessor
from taskforge.processing.store import InMemoryTaskQueueStore


class TaskForge:
    """
    Main entry point.

    Example:
        >>> forge = TaskForge()
        >>> await forge.start()
        >>> item = await forge.submit("p1", Task(type="script", data={"script": "make lint"}))
        >>> await forge.stop()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        ai_service: AIService | None = None,
        script_executor: ScriptExecutor | None = None,
        file_system_service: FileSystemService | None = None,
        git_service: GitService | None = None,
        docker_service: DockerService | None = None,
        project_repository: ProjectRepository | None = None,
        ide_manager: IDEManager | None = None,
        workflows: list[Workflow | dict[str, Any]] | None = None,
        configure_logs: bool = True,
    ):
        self.settings = settings or get_settings()
        if configure_logs:
            configure_logging(self.settings)

        self.event_bus = EventBus()
        self.queue_store = InMemoryTaskQueueStore(event_bus=self.event_bus)
        self.task_repository = InMemoryTaskRepository()
        self.workflow_loader = StaticWorkflowLoader(workflows)
        self.workflow_execution_service = DirectWorkflowExecutionService()

        self.dependencies = EngineDependencies(
            ai_service=ai_service or ClaudeAIService(self.settings),
            script_executor=script_executor
            or SubprocessScriptExecutor(self.settings.taskforge_default_timeout_ms),
            file_system_service=file_system_service or LocalFileSystemService(),
            git_service=git_service,
            docker_service=docker_service,
            event_bus=self.event_bus,
            task_repository=self.task_repository,
            workflow_loader=self.workflow_loader,
            workflow_execution_service=self.workflow_execution_service,
        )
        self.engine = TaskExecutionEngine(self.dependencies, settings=self.settings)
        self.workflow_execution_service.bind(self.engine)

        self.processor = TaskProcessor(
            workflow_executor=self.engine,
            queue_store=self.queue_store,
            event_bus=self.event_bus,
            project_repository=project_repository,
            ide_manager=ide_manager,
            settings=self.settings,
        )

        logger.info("TaskForge initialized")

    async def submit(
        self,
        project_id: str,
        task: Task | dict[str, Any],
        options: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
    ) -> QueueItem:
        """
        Store ``task`` and queue it for ``project_id``.

        Args:
            project_id: Queue the item joins.
            task: Task or raw task dict; validated before queueing.
            options: Queue item options (``auto_execute``, ``task_mode``, ...).
            context: Extra workflow context merged into the item's context.

        Returns:
            The queued item.
        """
        task = self.engine.validator.validate_task(task)
        await self.task_repository.save(task)

        item_context = {**(context or {}), "task_id": task.id}
        if task.project_path and "project_path" not in item_context:
            item_context["project_path"] = task.project_path

        return await self.queue_store.add_queue_item(project_id, item_context, options)

    async def request_execution(self, task_id: str) -> None:
        """Ask the pump for an immediate tick."""
        await self.event_bus.emit(Events.EXECUTION_REQUESTED, {"task_id": task_id})

    async def start(self) -> None:
        await self.workflow_loader.load_workflows()
        await self.processor.start()

    async def stop(self, timeout: float | None = None) -> None:
        await self.processor.stop(timeout=timeout)

    async def __aenter__(self) -> "TaskForge":
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()
