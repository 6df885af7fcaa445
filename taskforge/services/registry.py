"""Mapping from task type to the service that executes it."""

from typing import TYPE_CHECKING

from loguru import logger

from taskforge.core.config import Settings
from taskforge.core.constants import TaskType
from taskforge.core.errors import UnknownTaskTypeError
from taskforge.services.analysis import AnalysisService
from taskforge.services.base import TaskTypeService
from taskforge.services.custom import CustomService
from taskforge.services.deployment import DeploymentService
from taskforge.services.optimization import OptimizationService
from taskforge.services.refactoring import RefactoringService
from taskforge.services.script import ScriptService
from taskforge.services.security import SecurityService
from taskforge.services.testing import TestingService

if TYPE_CHECKING:
    from taskforge.execution.dependencies import EngineDependencies

DEFAULT_SERVICES: tuple[type[TaskTypeService], ...] = (
    AnalysisService,
    ScriptService,
    OptimizationService,
    SecurityService,
    RefactoringService,
    TestingService,
    DeploymentService,
    CustomService,
)


class TaskHandlerRegistry:
    """
    Registry of task-type services.

    Example:
        >>> registry = TaskHandlerRegistry.with_defaults(deps)
        >>> registry.get(TaskType.SCRIPT)
        <taskforge.services.script.ScriptService object at ...>
    """

    def __init__(self) -> None:
        self._services: dict[TaskType, TaskTypeService] = {}

    @classmethod
    def with_defaults(
        cls, deps: "EngineDependencies", settings: Settings | None = None
    ) -> "TaskHandlerRegistry":
        """Registry populated with the built-in service for every task type."""
        registry = cls()
        for service_cls in DEFAULT_SERVICES:
            registry.register(service_cls(deps, settings))
        return registry

    def register(self, service: TaskTypeService, task_type: TaskType | None = None) -> None:
        """Register ``service``, replacing any previous one for the type."""
        key = task_type or service.task_type
        if key in self._services:
            logger.debug(f"Replacing handler for task type {key.value}")
        self._services[key] = service

    def get(self, task_type: TaskType | str) -> TaskTypeService:
        """
        Service for ``task_type``.

        Raises:
            UnknownTaskTypeError: Nothing is registered for the type.
        """
        try:
            return self._services[TaskType(task_type)]
        except (KeyError, ValueError) as e:
            raise UnknownTaskTypeError(f"Unknown task type: {task_type}") from e

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._services

    @property
    def task_types(self) -> list[TaskType]:
        return list(self._services)
