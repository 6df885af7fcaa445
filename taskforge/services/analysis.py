"""Project analysis delegated to the AI service."""

from typing import Any

from loguru import logger

from taskforge.core.constants import TaskType
from taskforge.core.models import AnalysisPayload, Execution
from taskforge.services.base import TaskTypeService


class AnalysisService(TaskTypeService):
    """
    Gather project structure, dependencies and metrics, then ask the AI
    service for an assessment.
    """

    task_type = TaskType.ANALYSIS

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_analysis_task(execution)

    async def execute_analysis_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: AnalysisPayload = self.start(execution, "Starting project analysis")
            path = self.target_path(execution, payload.target)
            logger.info(f"Execution {execution.id}: analyzing {path}")

            self.progress(execution, 20, "Reading project structure")
            structure = await self.fs.get_project_structure(path)

            self.progress(execution, 40, "Collecting dependency information")
            dependencies = await self.fs.get_dependency_info(path)

            self.progress(execution, 60, "Running AI analysis")
            analysis = await self.ai.analyze_project(
                path,
                {
                    "analysis_type": payload.analysis_type,
                    "structure": structure,
                    "dependencies": dependencies,
                    "model": execution.options.ai_model,
                },
            )

            project_metrics: dict[str, Any] = {}
            if payload.include_metrics:
                self.progress(execution, 85, "Calculating project metrics")
                project_metrics = await self.fs.calculate_project_metrics(path)

            self.progress(execution, 95, "Compiling analysis results")
            return {
                "project_path": path,
                "analysis_type": payload.analysis_type,
                "structure": structure,
                "dependencies": dependencies,
                "analysis": analysis,
                "project_metrics": project_metrics,
                "summary": {
                    "files_analyzed": structure.get("total_files", 0),
                    "has_dependencies": bool(dependencies),
                    "metrics_included": payload.include_metrics,
                },
                "metrics": self.metrics(execution),
            }
        except Exception as e:
            logger.error(f"Analysis failed for execution {execution.id}: {e}")
            raise
