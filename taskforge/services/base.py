"""
Base class for task-type services.

A service turns one Execution into a structured result dict. Services mutate
only the execution's status/progress/step; terminal state is recorded by the
engine or the queue pump.
"""

import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from taskforge.core.config import Settings, get_settings
from taskforge.core.constants import ExecutionStatus, TaskType
from taskforge.core.models import Execution, TaskPayload
from taskforge.utils.execution import (
    execution_metrics,
    resolve_timeout,
    update_execution_progress,
)

if TYPE_CHECKING:
    from taskforge.execution.dependencies import EngineDependencies


class TaskTypeService(ABC):
    """
    Abstract strategy for one task type.

    Subclasses implement ``execute`` and a public ``execute_<type>_task``
    alias.

    Attributes:
        task_type: The TaskType this service handles.
        deps: Engine collaborators.
        settings: Runtime settings.
    """

    task_type: TaskType

    def __init__(self, deps: "EngineDependencies", settings: Settings | None = None):
        self.deps = deps
        self.settings = settings or get_settings()

    @abstractmethod
    async def execute(self, execution: Execution) -> dict[str, Any]:
        """
        Run the task referenced by ``execution``.

        Returns:
            Result dict with findings, ``summary`` and ``metrics``.

        Raises:
            ValidationError: Required payload fields are missing.
            ExecutionError: The work itself failed.
        """
        ...

    # =========================================================================
    # HELPERS
    # =========================================================================

    def start(self, execution: Execution, step: str) -> TaskPayload:
        """Flip the execution to running and validate its payload."""
        execution.status = ExecutionStatus.RUNNING
        update_execution_progress(execution, 5, step)
        return execution.task.payload

    def progress(self, execution: Execution, progress: int, step: str) -> None:
        update_execution_progress(execution, progress, step)

    def metrics(self, execution: Execution, **extra: Any) -> dict[str, Any]:
        return execution_metrics(execution, **extra)

    def timeout_for(self, execution: Execution) -> int:
        return resolve_timeout(execution, self.settings.taskforge_default_timeout_ms)

    def target_path(self, execution: Execution, target: str | None = None) -> str:
        """Resolve a payload target against the execution's project path."""
        base = execution.project_path or "."
        if not target:
            return base
        return os.path.join(base, target)

    @property
    def ai(self):
        return self.deps.ai_service

    @property
    def scripts(self):
        return self.deps.script_executor

    @property
    def fs(self):
        return self.deps.file_system_service
