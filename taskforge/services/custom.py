"""Caller-supplied custom scripts."""

import json
from typing import Any

from loguru import logger

from taskforge.core.constants import TaskType
from taskforge.core.errors import ExecutionError
from taskforge.core.models import CustomPayload, Execution
from taskforge.services.base import TaskTypeService
from taskforge.utils.execution import build_environment, parse_json_output


class CustomService(TaskTypeService):
    """
    Run ``data.customScript`` with ``data.customData`` exposed to the script
    as JSON in the ``CUSTOM_DATA`` environment variable.
    """

    task_type = TaskType.CUSTOM

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_custom_task(execution)

    async def execute_custom_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: CustomPayload = self.start(execution, "Preparing custom task")
            cwd = self.target_path(execution, payload.working_directory)
            env = build_environment(
                execution.options.environment,
                payload.environment,
                {
                    "CUSTOM_DATA": json.dumps(payload.custom_data, default=str),
                    "TASK_ID": execution.task_id,
                    "EXECUTION_ID": execution.id,
                },
            )

            self.progress(execution, 25, "Running custom script")
            logger.info(f"Execution {execution.id}: running custom script in {cwd}")
            result = await self.scripts.execute_script(
                payload.custom_script,
                cwd=cwd,
                env=env,
                timeout=self.timeout_for(execution),
            )

            if not result.success:
                raise ExecutionError(
                    f"Custom script exited with code {result.exit_code}: {result.error.strip()}"
                )

            self.progress(execution, 90, "Parsing custom script output")
            output = parse_json_output(result.output)
            return {
                "output": output,
                "raw_output": result.output,
                "error": result.error,
                "exit_code": result.exit_code,
                "summary": {
                    "success": True,
                    "structured_output": not isinstance(output, str),
                },
                "metrics": self.metrics(execution, script_duration_ms=result.duration_ms),
            }
        except Exception as e:
            logger.error(f"Custom task failed for execution {execution.id}: {e}")
            raise
