"""Task and dependency validation run before any work starts."""

from typing import Any

from loguru import logger

from taskforge.core.constants import TaskType
from taskforge.core.errors import ValidationError
from taskforge.core.models import Task, TaskPayload


class TaskValidator:
    """
    Validate task shape and dependency sets.

    Example:
        >>> validator = TaskValidator()
        >>> validator.validate_task({"id": "t1", "type": "script", "data": {"script": "ls"}})
        Task(id='t1', ...)
    """

    def validate_task(self, task: Task | dict[str, Any]) -> Task:
        """
        Validate a task and its type-specific payload.

        Args:
            task: Task instance or raw task dict.

        Returns:
            The validated Task.

        Raises:
            ValidationError: Missing id, unknown type or invalid payload.
        """
        if isinstance(task, dict):
            task = self._coerce(task)

        if not task.id:
            raise ValidationError("Task id is required")

        self.validate_payload(task)
        return task

    def validate_payload(self, task: Task) -> TaskPayload:
        """Resolve the typed payload, raising on missing fields."""
        return task.payload

    def validate_task_type(self, task_type: str | TaskType) -> TaskType:
        """Normalise a task type, raising on unknown values."""
        try:
            return TaskType(task_type)
        except ValueError as e:
            valid = ", ".join(t.value for t in TaskType)
            raise ValidationError(f"Invalid task type: {task_type!r} (expected one of {valid})") from e

    def validate_dependencies(self, task_ids: list[str], dependencies: dict[str, list[str]]) -> None:
        """
        Validate a task dependency set.

        Every referenced dependency must be a known task, no task may depend
        on itself and the graph must be acyclic.

        Raises:
            ValidationError: The dependency set is invalid.
        """
        known = set(task_ids)

        for task_id, deps in dependencies.items():
            if task_id not in known:
                raise ValidationError(f"Dependencies declared for unknown task: {task_id}")
            for dep in deps:
                if dep == task_id:
                    raise ValidationError(f"Task {task_id} depends on itself")
                if dep not in known:
                    raise ValidationError(f"Task {task_id} depends on unknown task {dep}")

        cycle = self._find_cycle(dependencies)
        if cycle:
            raise ValidationError(f"Circular dependency: {' -> '.join(cycle)}")

        logger.debug(f"Validated dependencies for {len(task_ids)} tasks")

    def _coerce(self, data: dict[str, Any]) -> Task:
        task_type = self.validate_task_type(data.get("type", ""))
        if not data.get("id"):
            raise ValidationError("Task id is required")
        try:
            return Task.model_validate({**data, "type": task_type})
        except Exception as e:
            raise ValidationError(f"Invalid task: {e}") from e

    def _find_cycle(self, dependencies: dict[str, list[str]]) -> list[str] | None:
        visiting: set[str] = set()
        visited: set[str] = set()
        path: list[str] = []

        def visit(node: str) -> list[str] | None:
            if node in visiting:
                return path[path.index(node) :] + [node]
            if node in visited:
                return None
            visiting.add(node)
            path.append(node)
            for dep in dependencies.get(node, []):
                found = visit(dep)
                if found:
                    return found
            path.pop()
            visiting.discard(node)
            visited.add(node)
            return None

        for node in dependencies:
            found = visit(node)
            if found:
                return found
        return None
