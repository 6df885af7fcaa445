"""AI-driven code optimization."""

from typing import Any

from loguru import logger

from taskforge.core.constants import TaskType
from taskforge.core.models import Execution, OptimizationPayload
from taskforge.services.base import TaskTypeService


class OptimizationService(TaskTypeService):
    """
    Ask the AI service to optimize each file under the target.

    Proposed changes are only written when ``options.auto_apply`` is set, and
    every write is preceded by a backup of the original file.
    """

    task_type = TaskType.OPTIMIZATION

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_optimization_task(execution)

    async def execute_optimization_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: OptimizationPayload = self.start(execution, "Preparing optimization")
            target = self.target_path(execution, payload.target)

            self.progress(execution, 10, "Collecting files")
            files = await self._collect_files(target, payload)
            logger.info(f"Execution {execution.id}: optimizing {len(files)} files under {target}")

            proposed: list[dict[str, Any]] = []
            failures: list[dict[str, str]] = []
            for index, file_path in enumerate(files):
                self.progress(
                    execution,
                    10 + int(60 * index / max(len(files), 1)),
                    f"Optimizing {file_path}",
                )
                try:
                    change = await self._optimize_file(execution, file_path, payload)
                except Exception as e:
                    logger.warning(f"Execution {execution.id}: could not optimize {file_path}: {e}")
                    failures.append({"file_path": file_path, "error": str(e)})
                    continue
                if change is not None:
                    proposed.append(change)

            applied: list[dict[str, Any]] = []
            if execution.options.auto_apply and proposed:
                self.progress(execution, 75, "Applying optimizations")
                applied = await self._apply(execution, proposed)

            self.progress(execution, 95, "Compiling optimization results")
            return {
                "target": target,
                "optimization_type": payload.optimization_type,
                "proposed_changes": proposed,
                "applied_changes": applied,
                "failures": failures,
                "summary": {
                    "files_scanned": len(files),
                    "files_with_changes": len(proposed),
                    "changes_applied": len(applied),
                    "auto_apply": execution.options.auto_apply,
                },
                "metrics": self.metrics(execution),
            }
        except Exception as e:
            logger.error(f"Optimization failed for execution {execution.id}: {e}")
            raise

    async def _collect_files(self, target: str, payload: OptimizationPayload) -> list[str]:
        if self.fs.is_code_file(target) and await self.fs.exists(target):
            return [target]
        files = await self.fs.find_files_by_pattern(target, payload.file_patterns)
        return files[: payload.max_files]

    async def _optimize_file(
        self, execution: Execution, file_path: str, payload: OptimizationPayload
    ) -> dict[str, Any] | None:
        original = await self.fs.read_file(file_path)
        response = await self.ai.optimize_code(
            original,
            {"file_path": file_path, "optimization_type": payload.optimization_type},
            {"model": execution.options.ai_model},
        )

        optimized = response.get("optimized_code")
        if not optimized or optimized == original:
            return None

        return {
            "file_path": file_path,
            "original_code": original,
            "optimized_code": optimized,
            "changes": response.get("changes", []),
            "explanation": response.get("explanation"),
        }

    async def _apply(
        self, execution: Execution, proposed: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        applied = []
        for change in proposed:
            backup = await self.fs.create_backup(change["file_path"])
            await self.fs.write_file(change["file_path"], change["optimized_code"])
            logger.info(
                f"Execution {execution.id}: applied optimization to {change['file_path']} "
                f"(backup {backup})"
            )
            applied.append({"file_path": change["file_path"], "backup_path": backup})
        return applied
