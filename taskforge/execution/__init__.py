"""Execution engine, its collaborators and the local workflow path."""

from taskforge.execution.dependencies import EngineDependencies
from taskforge.execution.engine import TaskExecutionEngine
from taskforge.execution.interfaces import ScriptResult
from taskforge.execution.store import ExecutionStore, InMemoryExecutionStore
from taskforge.execution.validator import TaskValidator
from taskforge.execution.workflows import (
    DirectWorkflowExecutionService,
    InMemoryTaskRepository,
    StaticWorkflowLoader,
    Workflow,
    WorkflowStep,
)

__all__ = [
    "TaskExecutionEngine",
    "EngineDependencies",
    "ScriptResult",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "TaskValidator",
    # Workflows
    "DirectWorkflowExecutionService",
    "InMemoryTaskRepository",
    "StaticWorkflowLoader",
    "Workflow",
    "WorkflowStep",
]
