"""Execution record storage.

State is held in process memory only; a restart loses every execution.
"""

from typing import Protocol

from taskforge.core.models import Execution


class ExecutionStore(Protocol):
    """Keyed storage for execution records."""

    def get(self, execution_id: str) -> Execution | None: ...

    def set(self, execution: Execution) -> None: ...

    def delete(self, execution_id: str) -> bool: ...

    def values(self) -> list[Execution]: ...


class InMemoryExecutionStore:
    """Dict-backed ExecutionStore."""

    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}

    def get(self, execution_id: str) -> Execution | None:
        return self._executions.get(execution_id)

    def set(self, execution: Execution) -> None:
        self._executions[execution.id] = execution

    def delete(self, execution_id: str) -> bool:
        return self._executions.pop(execution_id, None) is not None

    def values(self) -> list[Execution]:
        return list(self._executions.values())

    def __len__(self) -> int:
        return len(self._executions)

    def __contains__(self, execution_id: object) -> bool:
        return execution_id in self._executions
