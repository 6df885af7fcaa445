"""Task-type services, one per task type."""

from taskforge.services.analysis import AnalysisService
from taskforge.services.base import TaskTypeService
from taskforge.services.custom import CustomService
from taskforge.services.deployment import DeploymentService
from taskforge.services.optimization import OptimizationService
from taskforge.services.refactoring import RefactoringService
from taskforge.services.registry import TaskHandlerRegistry
from taskforge.services.script import ScriptService
from taskforge.services.security import SecurityService
from taskforge.services.testing import TestingService, parse_test_output

__all__ = [
    "TaskTypeService",
    "TaskHandlerRegistry",
    "AnalysisService",
    "ScriptService",
    "OptimizationService",
    "SecurityService",
    "RefactoringService",
    "TestingService",
    "DeploymentService",
    "CustomService",
    "parse_test_output",
]
