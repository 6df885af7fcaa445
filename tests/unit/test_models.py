"""Unit tests for task, execution and queue item models."""

from datetime import timedelta

import pytest

from taskforge.core.constants import ExecutionStatus, QueueItemStatus, TaskType
from taskforge.core.errors import ValidationError
from taskforge.core.models import (
    DeploymentPayload,
    Execution,
    ExecutionOptions,
    QueueItem,
    ScriptPayload,
    SecurityPayload,
    Task,
    parse_payload,
    utc_now,
)

# =============================================================================
# PAYLOAD TESTS
# =============================================================================


class TestPayloads:
    """Tests for type-specific payload parsing."""

    def test_script_payload(self) -> None:
        """Test a script payload resolves through the task."""
        task = Task(type=TaskType.SCRIPT, data={"script": "echo hi"})

        payload = task.payload

        assert isinstance(payload, ScriptPayload)
        assert payload.script == "echo hi"
        assert payload.environment == {}

    def test_camel_case_keys(self) -> None:
        """Test camelCase keys populate snake_case fields."""
        payload = parse_payload(
            TaskType.DEPLOYMENT,
            {"target": ".", "environment": "staging", "deploymentType": "docker"},
        )

        assert isinstance(payload, DeploymentPayload)
        assert payload.deployment_type == "docker"

    def test_snake_case_keys(self) -> None:
        """Test snake_case keys are accepted too."""
        payload = parse_payload(TaskType.SECURITY, {"target": "src", "scan_type": "code"})

        assert isinstance(payload, SecurityPayload)
        assert payload.scan_type == "code"

    def test_missing_script_raises(self) -> None:
        """Test a script task without a script is rejected."""
        with pytest.raises(ValidationError, match="script"):
            parse_payload(TaskType.SCRIPT, {})

    def test_security_requires_target_and_scan_type(self) -> None:
        """Test both security fields are reported when missing."""
        with pytest.raises(ValidationError) as exc_info:
            parse_payload(TaskType.SECURITY, {})

        message = str(exc_info.value)
        assert "target" in message
        assert "scanType" in message or "scan_type" in message

    def test_custom_requires_custom_script(self) -> None:
        """Test a custom task needs customScript."""
        with pytest.raises(ValidationError, match="customScript|custom_script"):
            parse_payload(TaskType.CUSTOM, {"customData": {"a": 1}})

    def test_analysis_needs_nothing(self) -> None:
        """Test analysis payload defaults."""
        payload = parse_payload(TaskType.ANALYSIS, {})

        assert payload.analysis_type == "full"
        assert payload.include_metrics is True


# =============================================================================
# TASK / EXECUTION TESTS
# =============================================================================


class TestTask:
    """Tests for Task."""

    def test_generated_id(self) -> None:
        """Test tasks get a generated id."""
        first = Task(type=TaskType.ANALYSIS)
        second = Task(type=TaskType.ANALYSIS)

        assert first.id
        assert first.id != second.id

    def test_immutable(self) -> None:
        """Test tasks cannot be mutated."""
        task = Task(type=TaskType.ANALYSIS)

        with pytest.raises(Exception):
            task.title = "changed"

    def test_project_path_alias(self) -> None:
        """Test projectPath populates project_path."""
        task = Task.model_validate({"type": "analysis", "projectPath": "/srv/app"})

        assert task.project_path == "/srv/app"


class TestExecution:
    """Tests for Execution."""

    def _execution(self, **options) -> Execution:
        task = Task(id="t1", type=TaskType.SCRIPT, data={"script": "ls"}, project_path="/task")
        return Execution(task_id=task.id, task=task, options=ExecutionOptions(**options))

    def test_defaults(self) -> None:
        """Test a new execution is preparing at zero progress."""
        execution = self._execution()

        assert execution.id.startswith("exec_")
        assert execution.status == ExecutionStatus.PREPARING
        assert execution.progress == 0
        assert execution.is_active

    def test_project_path_prefers_options(self) -> None:
        """Test option path wins over task path."""
        assert self._execution(project_path="/opts").project_path == "/opts"
        assert self._execution().project_path == "/task"

    def test_mark_completed(self) -> None:
        """Test completion sets progress, result and timing."""
        execution = self._execution()

        execution.mark_completed({"ok": True})

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.progress == 100
        assert execution.result == {"ok": True}
        assert execution.end_time is not None
        assert execution.duration_ms is not None
        assert not execution.is_active

    def test_mark_failed(self) -> None:
        """Test failure records the error message."""
        execution = self._execution()

        execution.mark_failed("boom")

        assert execution.status == ExecutionStatus.ERROR
        assert execution.error == "boom"

    def test_to_dict(self) -> None:
        """Test conversion to dictionary."""
        d = self._execution().to_dict()

        assert d["task_id"] == "t1"
        assert d["task_type"] == "script"
        assert d["status"] == "preparing"
        assert d["end_time"] is None

    def test_options_accept_camel_case(self) -> None:
        """Test options parse camelCase and keep unknown keys."""
        options = ExecutionOptions.model_validate(
            {"autoApply": True, "projectId": "p1", "activeIde": {"port": 9222}}
        )

        assert options.auto_apply is True
        assert options.project_id == "p1"
        assert options.model_extra["activeIde"] == {"port": 9222}


# =============================================================================
# QUEUE ITEM TESTS
# =============================================================================


class TestQueueItem:
    """Tests for QueueItem."""

    def test_task_id_from_context(self) -> None:
        """Test both context spellings resolve the task id."""
        assert QueueItem(context={"task_id": "a"}).task_id == "a"
        assert QueueItem(context={"taskId": "b"}).task_id == "b"
        assert QueueItem().task_id is None

    def test_auto_execute(self) -> None:
        """Test only an explicit False disables auto execution."""
        assert QueueItem().auto_execute is True
        assert QueueItem(options={"autoExecute": None}).auto_execute is True
        assert QueueItem(options={"autoExecute": False}).auto_execute is False
        assert QueueItem(options={"auto_execute": False}).auto_execute is False

    def test_running_seconds(self) -> None:
        """Test running time is measured from started_at."""
        now = utc_now()
        item = QueueItem(status=QueueItemStatus.RUNNING, started_at=now - timedelta(seconds=45))

        assert item.running_seconds(now) == pytest.approx(45.0)
        assert QueueItem().running_seconds(now) == 0.0

    def test_terminal(self) -> None:
        """Test completed and failed are terminal."""
        assert QueueItem(status=QueueItemStatus.COMPLETED).is_terminal
        assert QueueItem(status=QueueItemStatus.FAILED).is_terminal
        assert not QueueItem(status=QueueItemStatus.RUNNING).is_terminal
