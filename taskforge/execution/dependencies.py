"""Collaborators wired into the execution engine."""

from dataclasses import dataclass, fields

from loguru import logger

from taskforge.core.errors import DependencyError
from taskforge.execution.interfaces import (
    AIService,
    DockerService,
    EventBus,
    FileSystemService,
    GitService,
    ScriptExecutor,
    TaskRepository,
    WorkflowExecutionService,
    WorkflowLoader,
)

REQUIRED_DEPENDENCIES = ("ai_service", "script_executor", "file_system_service")


@dataclass
class EngineDependencies:
    """
    Required and optional collaborators of the execution engine.

    The three required services are what the task-type services delegate
    to; everything else only narrows what the engine can do.

    Example:
        >>> deps = EngineDependencies(
        ...     ai_service=ClaudeAIService(),
        ...     script_executor=SubprocessScriptExecutor(),
        ...     file_system_service=LocalFileSystemService(),
        ... )
        >>> deps.validate()
    """

    ai_service: AIService | None
    script_executor: ScriptExecutor | None
    file_system_service: FileSystemService | None

    git_service: GitService | None = None
    docker_service: DockerService | None = None
    event_bus: EventBus | None = None
    task_repository: TaskRepository | None = None
    workflow_loader: WorkflowLoader | None = None
    workflow_execution_service: WorkflowExecutionService | None = None

    def validate(self) -> list[str]:
        """
        Check the dependency set once, at engine construction.

        Returns:
            Names of missing optional collaborators.

        Raises:
            DependencyError: A required collaborator is missing.
        """
        missing_required = [name for name in REQUIRED_DEPENDENCIES if getattr(self, name) is None]
        if missing_required:
            raise DependencyError(
                f"Missing required dependencies: {', '.join(missing_required)}"
            )

        missing_optional = [
            f.name
            for f in fields(self)
            if f.name not in REQUIRED_DEPENDENCIES and getattr(self, f.name) is None
        ]
        for name in missing_optional:
            logger.warning(f"Optional dependency not provided: {name}")

        return missing_optional
