"""Shared constants: task types, statuses and event names."""

from enum import Enum


class TaskType(str, Enum):
    """Kind of work a task describes."""

    ANALYSIS = "analysis"
    SCRIPT = "script"
    OPTIMIZATION = "optimization"
    SECURITY = "security"
    REFACTORING = "refactoring"
    TESTING = "testing"
    DEPLOYMENT = "deployment"
    CUSTOM = "custom"


class ExecutionStatus(str, Enum):
    """Lifecycle of an engine execution."""

    PREPARING = "preparing"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"
    PAUSED = "paused"


ACTIVE_EXECUTION_STATUSES = frozenset(
    {ExecutionStatus.PREPARING, ExecutionStatus.RUNNING, ExecutionStatus.PAUSED}
)


class QueueItemStatus(str, Enum):
    """Lifecycle of a queue item in a project queue."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Priority(str, Enum):
    """Priority label carried by engine queue items (not a sort key)."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Events:
    """Event names exchanged over the event bus."""

    EXECUTION_REQUESTED = "task:execution:requested"
    EXECUTION_CANCELLED = "task:execution:cancelled"
    EXECUTION_PAUSED = "task:execution:paused"
    EXECUTION_RESUMED = "task:execution:resumed"
    EXECUTION_START = "task:execution:start"
    EXECUTION_COMPLETE = "task:execution:complete"
    EXECUTION_ERROR = "task:execution:error"
    QUEUE_ITEM_ADDED = "queue:item:added"


# Script, test and build invocations
DEFAULT_TIMEOUT_MS = 300_000

# Workflow step understood by DirectWorkflowExecutionService
EXECUTE_TASK_STEP = "execute-task"

FALLBACK_BUILD_COMMAND = "make build || ./build.sh || echo 'No build script found'"

KNOWN_ENVIRONMENTS = ("development", "staging", "production", "test")
