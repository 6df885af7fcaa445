"""Core configuration, constants, errors and models."""

from taskforge.core.config import Settings, clear_settings_cache, get_settings
from taskforge.core.constants import (
    Events,
    ExecutionStatus,
    Priority,
    QueueItemStatus,
    TaskType,
)
from taskforge.core.errors import (
    ConfigurationError,
    DependencyError,
    ExecutionError,
    NotFoundError,
    ScriptTimeoutError,
    TaskForgeError,
    TaskNotFoundError,
    UnknownTaskTypeError,
    ValidationError,
    WorkflowNotFoundError,
)
from taskforge.core.models import (
    Execution,
    ExecutionOptions,
    PendingExecution,
    QueueItem,
    Task,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Constants
    "Events",
    "ExecutionStatus",
    "Priority",
    "QueueItemStatus",
    "TaskType",
    # Errors
    "TaskForgeError",
    "ValidationError",
    "UnknownTaskTypeError",
    "DependencyError",
    "ConfigurationError",
    "NotFoundError",
    "TaskNotFoundError",
    "WorkflowNotFoundError",
    "ExecutionError",
    "ScriptTimeoutError",
    # Models
    "Task",
    "Execution",
    "ExecutionOptions",
    "PendingExecution",
    "QueueItem",
]
