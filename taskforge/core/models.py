"""Pydantic models for tasks, executions and queue items.

A Task carries an untyped ``data`` dict supplied by the caller; each task
type has a payload model that gives that dict its shape. ``Task.payload``
resolves the variant for the task's type, so services work against typed
fields instead of raw dictionary lookups. Callers may use either camelCase
(``scanType``) or snake_case (``scan_type``) keys.
"""

from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from taskforge.core.constants import (
    ACTIVE_EXECUTION_STATUSES,
    ExecutionStatus,
    Priority,
    QueueItemStatus,
    TaskType,
)
from taskforge.core.errors import ValidationError


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(UTC)


# =============================================================================
# TASK PAYLOADS
# =============================================================================


class TaskPayload(BaseModel):
    """Base class for type-specific task payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )


class AnalysisPayload(TaskPayload):
    """Project analysis delegated to the AI service."""

    target: str | None = None
    analysis_type: str = "full"
    include_metrics: bool = True


class ScriptPayload(TaskPayload):
    """Shell command run through the script executor."""

    script: str = Field(min_length=1)
    working_directory: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)


class OptimizationPayload(TaskPayload):
    """AI code optimization over a file or directory."""

    target: str = Field(min_length=1)
    optimization_type: str = "performance"
    file_patterns: list[str] = Field(
        default_factory=lambda: ["*.py", "*.js", "*.jsx", "*.ts", "*.tsx"]
    )
    max_files: int = Field(default=20, ge=1)


class SecurityPayload(TaskPayload):
    """Security scan plus AI risk assessment."""

    target: str = Field(min_length=1)
    scan_type: Literal["dependencies", "code", "configuration", "full"]


class RefactoringPayload(TaskPayload):
    """Pattern-based refactoring over a file or directory."""

    target: str = Field(min_length=1)
    refactoring_type: str = "general"
    max_files: int = Field(default=50, ge=1)


class TestingPayload(TaskPayload):
    """Test run with output parsing and AI result analysis."""

    __test__ = False

    target: str | None = None
    test_type: Literal["unit", "integration", "e2e", "all"] = "unit"
    test_command: str | None = None
    coverage: bool = False
    environment: dict[str, str] = Field(default_factory=dict)


class DeploymentPayload(TaskPayload):
    """Build, check, deploy, verify."""

    target: str = Field(min_length=1)
    environment: str = Field(min_length=1)
    deployment_type: str = Field(min_length=1)
    build_command: str | None = None
    deploy_command: str | None = None
    health_check_url: str | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)


class CustomPayload(TaskPayload):
    """Arbitrary caller-supplied script."""

    custom_script: str = Field(min_length=1)
    custom_data: Any = None
    working_directory: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)


PAYLOAD_MODELS: dict[TaskType, type[TaskPayload]] = {
    TaskType.ANALYSIS: AnalysisPayload,
    TaskType.SCRIPT: ScriptPayload,
    TaskType.OPTIMIZATION: OptimizationPayload,
    TaskType.SECURITY: SecurityPayload,
    TaskType.REFACTORING: RefactoringPayload,
    TaskType.TESTING: TestingPayload,
    TaskType.DEPLOYMENT: DeploymentPayload,
    TaskType.CUSTOM: CustomPayload,
}


def parse_payload(task_type: TaskType, data: dict[str, Any]) -> TaskPayload:
    """Validate ``data`` against the payload model for ``task_type``.

    Raises:
        ValidationError: Required fields are missing or malformed.
    """
    model = PAYLOAD_MODELS[task_type]
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        raise ValidationError(
            f"Invalid {task_type.value} task data, check fields: {', '.join(fields)}"
        ) from e


# =============================================================================
# TASK
# =============================================================================


class Task(BaseModel):
    """Immutable work order."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=lambda: str(uuid4()))
    type: TaskType
    data: dict[str, Any] = Field(default_factory=dict)
    project_path: str | None = None
    title: str | None = None

    @property
    def payload(self) -> TaskPayload:
        """Typed view over ``data`` for this task's type."""
        return parse_payload(self.type, self.data)


# =============================================================================
# EXECUTION
# =============================================================================


class ExecutionOptions(BaseModel):
    """Runtime options merged into an execution.

    Unknown keys (queue item context, active IDE, ...) are kept as extras.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    user_id: str | None = None
    project_id: str | None = None
    project_path: str | None = None
    timeout: int | None = Field(default=None, ge=1, description="Timeout in milliseconds")
    auto_apply: bool = False
    ai_model: str | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    task_mode: str | None = None
    priority: Priority = Priority.NORMAL


class Execution(BaseModel):
    """Mutable run record of one task."""

    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=lambda: f"exec_{uuid4().hex[:12]}")
    task_id: str
    task: Task
    options: ExecutionOptions = Field(default_factory=ExecutionOptions)
    status: ExecutionStatus = ExecutionStatus.PREPARING
    progress: int = Field(default=0, ge=0, le=100)
    current_step: str = "Preparing execution"
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    duration_ms: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_active(self) -> bool:
        """True while the execution counts against the concurrency ceiling."""
        return self.status in ACTIVE_EXECUTION_STATUSES

    @property
    def project_path(self) -> str | None:
        """Options path first, then the task's own path."""
        return self.options.project_path or self.task.project_path

    def elapsed_ms(self) -> int:
        """Milliseconds since ``start_time`` (or until ``end_time``)."""
        end = self.end_time or utc_now()
        return int((end - self.start_time).total_seconds() * 1000)

    def _finish(self, status: ExecutionStatus) -> None:
        self.status = status
        self.end_time = utc_now()
        self.duration_ms = self.elapsed_ms()

    def mark_completed(self, result: dict[str, Any]) -> None:
        """Record a successful result."""
        self.result = result
        self.progress = 100
        self.current_step = "Completed"
        self._finish(ExecutionStatus.COMPLETED)

    def mark_failed(self, error: str) -> None:
        """Record a failure message."""
        self.error = error
        self.current_step = "Failed"
        self._finish(ExecutionStatus.ERROR)

    def mark_cancelled(self) -> None:
        """Record a cancellation."""
        self.current_step = "Cancelled"
        self._finish(ExecutionStatus.CANCELLED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "task_id": self.task_id,
            "task_type": self.task.type.value,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
        }


class PendingExecution(BaseModel):
    """Entry of the engine's in-memory execution queue."""

    id: str = Field(default_factory=lambda: f"pending_{uuid4().hex[:12]}")
    task: Task
    options: dict[str, Any] = Field(default_factory=dict)
    priority: Priority = Priority.NORMAL
    queued_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# QUEUE ITEM
# =============================================================================


class QueueItem(BaseModel):
    """Unit scheduled by the per-project queue pump."""

    model_config = ConfigDict(frozen=False)

    id: str = Field(default_factory=lambda: f"queue_{uuid4().hex[:12]}")
    project_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)
    status: QueueItemStatus = QueueItemStatus.QUEUED
    attempt: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    result: Any = None
    error: str | None = None

    @property
    def task_id(self) -> str | None:
        """Task id carried in the context."""
        return self.context.get("task_id") or self.context.get("taskId")

    @property
    def auto_execute(self) -> bool:
        """Whether the pump may promote this item on its own."""
        value = self.options.get("auto_execute", self.options.get("autoExecute"))
        return value is not False

    @property
    def is_terminal(self) -> bool:
        return self.status in (QueueItemStatus.COMPLETED, QueueItemStatus.FAILED)

    def running_seconds(self, now: datetime | None = None) -> float:
        """Seconds since the item was last promoted to running."""
        if self.started_at is None:
            return 0.0
        return ((now or utc_now()) - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "status": self.status.value,
            "attempt": self.attempt,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
