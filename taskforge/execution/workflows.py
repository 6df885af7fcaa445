"""
Local workflow collaborators.

These make the workflow path usable without an external workflow system:
tasks are kept in memory, workflows are static step lists, and the only
step kind understood is ``execute-task``, which runs the task through the
engine's task-type services.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from taskforge.core.constants import EXECUTE_TASK_STEP
from taskforge.core.errors import ConfigurationError, ExecutionError, ValidationError
from taskforge.core.models import Task

if TYPE_CHECKING:
    from taskforge.execution.engine import TaskExecutionEngine


# =============================================================================
# TASK REPOSITORY
# =============================================================================


class InMemoryTaskRepository:
    """Dict-backed task repository."""

    def __init__(self, tasks: list[Task] | None = None):
        self._tasks: dict[str, Task] = {}
        for task in tasks or []:
            self._tasks[task.id] = task

    async def save(self, task: Task) -> Task:
        self._tasks[task.id] = task
        return task

    async def find_by_id(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    async def delete(self, task_id: str) -> bool:
        return self._tasks.pop(task_id, None) is not None

    def __len__(self) -> int:
        return len(self._tasks)


# =============================================================================
# WORKFLOWS
# =============================================================================


@dataclass
class WorkflowStep:
    """One step of a workflow definition."""

    name: str
    type: str = EXECUTE_TASK_STEP
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class Workflow:
    """Named, ordered list of steps."""

    name: str
    steps: list[WorkflowStep] = field(default_factory=list)
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Workflow":
        """Build from ``{"name", "description", "steps": [{"name", "type", "options"}]}``."""
        if not data.get("name"):
            raise ValidationError("Workflow name is required")
        steps = [
            WorkflowStep(
                name=step.get("name", step.get("type", EXECUTE_TASK_STEP)),
                type=step.get("type", EXECUTE_TASK_STEP),
                options=dict(step.get("options", {})),
            )
            for step in data.get("steps", [])
        ]
        return cls(name=data["name"], steps=steps, description=data.get("description", ""))


STANDARD_WORKFLOW = Workflow(
    name="standard",
    description="Run the task through its task-type service",
    steps=[WorkflowStep(name="execute", type=EXECUTE_TASK_STEP)],
)


class StaticWorkflowLoader:
    """
    Workflow loader over a fixed set of definitions.

    The ``standard`` workflow is always available.

    Example:
        >>> loader = StaticWorkflowLoader([{"name": "review", "steps": [{"type": "execute-task"}]}])
        >>> await loader.load_workflows()
        >>> loader.get_workflow("review").name
        'review'
    """

    def __init__(self, definitions: list[Workflow | dict[str, Any]] | None = None):
        self._definitions = list(definitions or [])
        self._workflows: dict[str, Workflow] = {STANDARD_WORKFLOW.name: STANDARD_WORKFLOW}

    async def load_workflows(self) -> None:
        for definition in self._definitions:
            workflow = definition if isinstance(definition, Workflow) else Workflow.from_dict(definition)
            self._workflows[workflow.name] = workflow
        logger.debug(f"Loaded {len(self._workflows)} workflows")

    def get_workflow(self, name: str) -> Workflow | None:
        return self._workflows.get(name)

    def register(self, workflow: Workflow) -> None:
        self._workflows[workflow.name] = workflow

    @property
    def names(self) -> list[str]:
        return sorted(self._workflows)


# =============================================================================
# WORKFLOW EXECUTION
# =============================================================================


class DirectWorkflowExecutionService:
    """
    Interpret workflows by running ``execute-task`` steps on the engine.

    The service and the engine reference each other, so the engine is bound
    after construction.
    """

    def __init__(self, engine: "TaskExecutionEngine | None" = None):
        self.engine = engine

    def bind(self, engine: "TaskExecutionEngine") -> None:
        self.engine = engine

    async def execute_workflow(self, workflow: Workflow, context: dict[str, Any]) -> dict[str, Any]:
        """
        Run each step of ``workflow`` in order.

        Returns:
            ``{"success", "workflow", "task_id", "steps"}`` with one entry
            per step.

        Raises:
            ConfigurationError: No engine is bound.
            ExecutionError: A step has an unknown type.
        """
        if self.engine is None:
            raise ConfigurationError("DirectWorkflowExecutionService is not bound to an engine")

        task: Task = context["task"]
        options = {key: value for key, value in context.items() if key != "task"}

        steps: list[dict[str, Any]] = []
        for step in workflow.steps:
            if step.type != EXECUTE_TASK_STEP:
                raise ExecutionError(f"Unsupported workflow step type: {step.type}")

            logger.info(f"Workflow '{workflow.name}' step '{step.name}' for task {task.id}")
            execution = await self.engine.run_task(task, {**options, **step.options})
            steps.append(
                {
                    "name": step.name,
                    "type": step.type,
                    "execution_id": execution.id,
                    "status": execution.status.value,
                    "result": execution.result,
                }
            )

        return {
            "success": True,
            "workflow": workflow.name,
            "task_id": task.id,
            "steps": steps,
        }
