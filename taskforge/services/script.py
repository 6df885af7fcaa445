"""Shell script tasks."""

from typing import Any

from loguru import logger

from taskforge.core.constants import TaskType
from taskforge.core.errors import ExecutionError
from taskforge.core.models import Execution, ScriptPayload
from taskforge.services.base import TaskTypeService
from taskforge.utils.execution import build_environment


class ScriptService(TaskTypeService):
    """Run ``data.script`` through the script executor."""

    task_type = TaskType.SCRIPT

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_script_task(execution)

    async def execute_script_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: ScriptPayload = self.start(execution, "Preparing script")
            cwd = self.target_path(execution, payload.working_directory)
            env = build_environment(execution.options.environment, payload.environment)

            self.progress(execution, 20, f"Running: {payload.script}")
            logger.info(f"Execution {execution.id}: running script in {cwd}")
            result = await self.scripts.execute_script(
                payload.script,
                cwd=cwd,
                env=env,
                timeout=self.timeout_for(execution),
            )

            if not result.success:
                raise ExecutionError(
                    f"Script exited with code {result.exit_code}: {result.error.strip() or result.output.strip()}"
                )

            self.progress(execution, 95, "Script finished")
            return {
                "script": payload.script,
                "output": result.output,
                "error": result.error,
                "exit_code": result.exit_code,
                "summary": {
                    "success": True,
                    "exit_code": result.exit_code,
                },
                "metrics": self.metrics(execution, script_duration_ms=result.duration_ms),
            }
        except Exception as e:
            logger.error(f"Script execution failed for execution {execution.id}: {e}")
            raise
