"""Pytest configuration and shared fixtures."""

import fnmatch
import os
from collections.abc import Callable, Generator
from pathlib import PurePosixPath
from typing import Any

import pytest

# Set test environment
os.environ.setdefault("ANTHROPIC_API_KEY", "sk-ant-REDACTED")
os.environ.setdefault("TASKFORGE_LOG_LEVEL", "DEBUG")


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeAIService:
    """AI service returning canned responses and recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple]] = []
        self.analysis: dict[str, Any] = {"summary": "Looks fine", "recommendations": []}
        self.optimized: dict[str, str] = {}
        self.security: dict[str, Any] = {"risk_level": "low", "vulnerabilities": []}
        self.test_analysis: dict[str, Any] = {"assessment": "ok"}
        self.fail_with: Exception | None = None

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.fail_with is not None:
            raise self.fail_with

    async def analyze_project(self, path: str, options: dict[str, Any]) -> dict[str, Any]:
        self._record("analyze_project", path, options)
        return self.analysis

    async def optimize_code(
        self, content: str, spec: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]:
        self._record("optimize_code", content, spec, options)
        optimized = self.optimized.get(spec.get("file_path"), content)
        return {"optimized_code": optimized, "changes": ["tightened loop"], "explanation": "faster"}

    async def perform_security_analysis(
        self, data: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]:
        self._record("perform_security_analysis", data, options)
        return self.security

    async def analyze_test_results(
        self, results: dict[str, Any], options: dict[str, Any]
    ) -> dict[str, Any]:
        self._record("analyze_test_results", results, options)
        return self.test_analysis


class FakeScriptExecutor:
    """Script executor answering from a responder and recording commands."""

    def __init__(self, responder: Callable[[str], Any] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.responder = responder

    async def execute_script(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ):
        from taskforge.execution.interfaces import ScriptResult

        self.calls.append({"command": command, "cwd": cwd, "env": env, "timeout": timeout})
        if self.responder is not None:
            outcome = self.responder(command)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, ScriptResult):
                return outcome
        return ScriptResult(output="ok\n", error="", exit_code=0, duration_ms=1)

    @property
    def commands(self) -> list[str]:
        return [call["command"] for call in self.calls]


class InMemoryFileSystem:
    """File system service over a dict, logging every mutating operation."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.operations: list[tuple[str, str]] = []
        self.git_info: dict[str, Any] = {"is_repository": True, "branch": "main", "clean": True}

    async def read_file(self, path: str) -> str:
        return self.files[path]

    async def write_file(self, path: str, content: str) -> None:
        self.operations.append(("write", path))
        self.files[path] = content

    async def exists(self, path: str) -> bool:
        path = path.rstrip("/")
        return path in self.files or any(f.startswith(path + "/") for f in self.files)

    async def find_files_by_pattern(self, root: str, patterns) -> list[str]:
        return [
            f
            for f in await self.get_all_files(root)
            if any(fnmatch.fnmatch(PurePosixPath(f).name, p) for p in patterns)
        ]

    async def get_all_files(self, root: str) -> list[str]:
        root = root.rstrip("/")
        return sorted(f for f in self.files if f == root or f.startswith(root + "/"))

    async def get_project_structure(self, root: str) -> dict[str, Any]:
        return {"root": root, "total_files": len(await self.get_all_files(root))}

    async def get_dependency_info(self, root: str) -> dict[str, Any]:
        return {"package_managers": [], "dependencies": {}, "dev_dependencies": {}}

    async def get_configuration_files(self, root: str) -> list[str]:
        return []

    async def get_git_info(self, root: str) -> dict[str, Any]:
        return self.git_info

    async def calculate_project_metrics(self, root: str) -> dict[str, Any]:
        return {"total_files": len(await self.get_all_files(root))}

    def is_code_file(self, path: str) -> bool:
        return PurePosixPath(path).suffix in {".py", ".js", ".ts"}

    async def create_backup(self, path: str) -> str:
        backup = f"{path}.backup-test"
        self.operations.append(("backup", path))
        self.files[backup] = self.files[path]
        return backup


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator:
    """Isolate tests from cached settings."""
    from taskforge.core.config import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings():
    """Settings with short pump delays, ignoring any local .env file."""
    from taskforge.core.config import Settings

    return Settings(
        _env_file=None,
        taskforge_requeue_delay_seconds=0.0,
        taskforge_queue_poll_interval_seconds=0.05,
    )


@pytest.fixture
def ai_service() -> FakeAIService:
    return FakeAIService()


@pytest.fixture
def script_executor() -> FakeScriptExecutor:
    return FakeScriptExecutor()


@pytest.fixture
def file_system() -> InMemoryFileSystem:
    return InMemoryFileSystem()


@pytest.fixture
def deps(ai_service, script_executor, file_system):
    """Engine dependencies with the required fakes and no optional ones."""
    from taskforge.execution.dependencies import EngineDependencies

    return EngineDependencies(
        ai_service=ai_service,
        script_executor=script_executor,
        file_system_service=file_system,
    )


@pytest.fixture
def make_execution() -> Callable[..., Any]:
    """Build an Execution for a task type and payload."""
    from taskforge.core.models import Execution, ExecutionOptions, Task

    def factory(task_type: str, data: dict[str, Any], **options: Any) -> Execution:
        options.setdefault("project_path", "/project")
        task = Task(id=f"task-{task_type}", type=task_type, data=data)
        return Execution(
            task_id=task.id,
            task=task,
            options=ExecutionOptions(**options),
        )

    return factory


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
