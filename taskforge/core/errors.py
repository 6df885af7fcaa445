"""Exception hierarchy for taskforge."""


class TaskForgeError(Exception):
    """Base exception for taskforge errors."""

    pass


class ValidationError(TaskForgeError):
    """Task, payload or dependency shape is invalid."""

    pass


class UnknownTaskTypeError(ValidationError):
    """No handler is registered for a task type."""

    pass


class DependencyError(TaskForgeError):
    """A required collaborator is missing."""

    pass


class ConfigurationError(TaskForgeError):
    """Settings are missing or inconsistent."""

    pass


class NotFoundError(TaskForgeError):
    """A referenced entity does not exist."""

    pass


class TaskNotFoundError(NotFoundError):
    """Task id is unknown to the task repository."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class WorkflowNotFoundError(NotFoundError):
    """Workflow name is unknown to the workflow loader."""

    def __init__(self, name: str):
        super().__init__(f"Workflow not found: {name}")
        self.name = name


class ExecutionError(TaskForgeError):
    """Task execution failed."""

    pass


class ScriptTimeoutError(ExecutionError):
    """A script did not finish within its timeout."""

    def __init__(self, command: str, timeout_ms: int):
        super().__init__(f"Script timed out after {timeout_ms}ms: {command}")
        self.command = command
        self.timeout_ms = timeout_ms
