"""Collaborator interfaces consumed by the engine and the queue pump.

The host application supplies implementations; ``taskforge.infrastructure``
and ``taskforge.execution.workflows`` ship local defaults.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from taskforge.core.models import QueueItem, Task


@dataclass
class ScriptResult:
    """Outcome of one script invocation."""

    output: str
    error: str
    exit_code: int
    duration_ms: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "output": self.output,
            "error": self.error,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
        }


@runtime_checkable
class AIService(Protocol):
    """AI provider facade. Failures surface as raised exceptions."""

    async def analyze_project(self, path: str, options: dict[str, Any]) -> dict[str, Any]: ...

    async def optimize_code(
        self, content: str, spec: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def perform_security_analysis(
        self, data: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def analyze_test_results(
        self, results: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]: ...


@runtime_checkable
class ScriptExecutor(Protocol):
    """Runs shell commands with a timeout in milliseconds."""

    async def execute_script(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> ScriptResult: ...


@runtime_checkable
class FileSystemService(Protocol):
    """Project filesystem access."""

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, content: str) -> None: ...

    async def exists(self, path: str) -> bool: ...

    async def find_files_by_pattern(self, root: str, patterns: Sequence[str]) -> list[str]: ...

    async def get_all_files(self, root: str) -> list[str]: ...

    async def get_project_structure(self, root: str) -> dict[str, Any]: ...

    async def get_dependency_info(self, root: str) -> dict[str, Any]: ...

    async def get_configuration_files(self, root: str) -> list[str]: ...

    async def get_git_info(self, root: str) -> dict[str, Any]: ...

    async def calculate_project_metrics(self, root: str) -> dict[str, Any]: ...

    def is_code_file(self, path: str) -> bool: ...

    async def create_backup(self, path: str) -> str: ...


class GitService(Protocol):
    """Optional git integration used by deployment checks."""

    async def get_status(self, path: str) -> dict[str, Any]: ...


class DockerService(Protocol):
    """Optional docker integration used by container deployments."""

    async def deploy(self, path: str, options: dict[str, Any]) -> dict[str, Any]: ...


class TaskRepository(Protocol):
    """Lookup of tasks by id."""

    async def find_by_id(self, task_id: str) -> Task | None: ...


class WorkflowLoader(Protocol):
    """Source of named workflow definitions."""

    async def load_workflows(self) -> None: ...

    def get_workflow(self, name: str) -> Any | None: ...


class WorkflowExecutionService(Protocol):
    """Interprets a workflow definition for a given context."""

    async def execute_workflow(self, workflow: Any, context: dict[str, Any]) -> dict[str, Any]: ...


class WorkflowRunner(Protocol):
    """What the queue pump invokes for each promoted item."""

    async def run(self, task_id: str, options: dict[str, Any]) -> Any: ...


class EventBus(Protocol):
    """In-process publish/subscribe."""

    def on(self, event: str, handler: Callable[[dict[str, Any]], Any]) -> None: ...

    async def emit(self, event: str, data: dict[str, Any]) -> None: ...


class TaskQueueStore(Protocol):
    """Per-project queues of queue items."""

    project_queues: dict[str, list[QueueItem]]

    async def update_queue_item(
        self, project_id: str, item_id: str, patch: dict[str, Any]
    ) -> QueueItem | None: ...


class ProjectRepository(Protocol):
    """Project lookup used to resolve workspace paths."""

    async def find_by_id(self, project_id: str) -> Any | None: ...


class IDEManager(Protocol):
    """Source of the IDE the workflow should target."""

    async def get_active_ide(self) -> dict[str, Any] | None: ...

    async def get_available_ides(self) -> list[dict[str, Any]]: ...
