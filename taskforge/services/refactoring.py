"""Pattern-based refactoring."""

from typing import TYPE_CHECKING, Any

from loguru import logger

from taskforge.core.config import Settings
from taskforge.core.constants import TaskType
from taskforge.core.models import Execution, RefactoringPayload
from taskforge.services.base import TaskTypeService
from taskforge.utils.patterns import (
    CodePatternDetector,
    RefactoringOpportunity,
    RefactoringPlan,
    RegexPatternDetector,
    apply_mechanical_fixes,
    create_plan,
)

if TYPE_CHECKING:
    from taskforge.execution.dependencies import EngineDependencies


class RefactoringService(TaskTypeService):
    """
    Detect refactoring opportunities, build a plan and optionally apply the
    mechanical part of it.

    Example:
        >>> service = RefactoringService(deps, detector=RegexPatternDetector())
        >>> result = await service.execute_refactoring_task(execution)
        >>> result["summary"]["opportunities_found"]
        12
    """

    task_type = TaskType.REFACTORING

    def __init__(
        self,
        deps: "EngineDependencies",
        settings: Settings | None = None,
        detector: CodePatternDetector | None = None,
    ):
        super().__init__(deps, settings)
        self.detector = detector or RegexPatternDetector()

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_refactoring_task(execution)

    async def execute_refactoring_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: RefactoringPayload = self.start(execution, "Preparing refactoring")
            target = self.target_path(execution, payload.target)

            self.progress(execution, 15, "Collecting source files")
            files = await self._collect_files(target, payload.max_files)

            self.progress(execution, 30, f"Analyzing {len(files)} files")
            opportunities: list[RefactoringOpportunity] = []
            contents: dict[str, str] = {}
            for file_path in files:
                content = await self.fs.read_file(file_path)
                contents[file_path] = content
                opportunities.extend(self.detector.detect(file_path, content))

            self.progress(execution, 60, "Creating refactoring plan")
            plan = create_plan(
                opportunities,
                refactoring_type=payload.refactoring_type,
                min_confidence=self.settings.taskforge_refactoring_min_confidence,
            )
            logger.info(
                f"Execution {execution.id}: {len(opportunities)} opportunities, "
                f"{len(plan.opportunities)} planned"
            )

            applied: list[dict[str, Any]] = []
            if execution.options.auto_apply and plan.auto_applicable:
                self.progress(execution, 75, "Applying refactorings")
                applied = await self._apply(execution, plan, contents)

            self.progress(execution, 95, "Compiling refactoring results")
            return {
                "target": target,
                "refactoring_type": payload.refactoring_type,
                "opportunities": [o.to_dict() for o in opportunities],
                "plan": plan.to_dict(),
                "applied_changes": applied,
                "summary": {
                    "files_analyzed": len(files),
                    "opportunities_found": len(opportunities),
                    "planned": len(plan.opportunities),
                    "changes_applied": sum(len(a["applied"]) for a in applied),
                    "auto_apply": execution.options.auto_apply,
                },
                "metrics": self.metrics(execution),
            }
        except Exception as e:
            logger.error(f"Refactoring failed for execution {execution.id}: {e}")
            raise

    async def _collect_files(self, target: str, max_files: int) -> list[str]:
        if self.fs.is_code_file(target) and await self.fs.exists(target):
            return [target]
        files = [f for f in await self.fs.get_all_files(target) if self.fs.is_code_file(f)]
        return files[:max_files]

    async def _apply(
        self,
        execution: Execution,
        plan: RefactoringPlan,
        contents: dict[str, str],
    ) -> list[dict[str, Any]]:
        applied = []
        for file_path, opportunities in plan.files.items():
            new_content, done = apply_mechanical_fixes(contents[file_path], opportunities)
            if not done or new_content == contents[file_path]:
                continue

            backup = await self.fs.create_backup(file_path)
            await self.fs.write_file(file_path, new_content)
            logger.info(
                f"Execution {execution.id}: applied {len(done)} fixes to {file_path} (backup {backup})"
            )
            applied.append(
                {
                    "file_path": file_path,
                    "backup_path": backup,
                    "applied": [o.to_dict() for o in done],
                }
            )
        return applied
