"""Test runs with output parsing and AI result analysis."""

import os
import re
from typing import Any

from loguru import logger

from taskforge.core.constants import TaskType
from taskforge.core.errors import ValidationError
from taskforge.core.models import Execution, TestingPayload
from taskforge.services.base import TaskTypeService
from taskforge.utils.execution import build_environment

COUNT_PATTERNS = {
    "total_tests": re.compile(r"(\d+)\s+total", re.IGNORECASE),
    "passed_tests": re.compile(r"(\d+)\s+passed", re.IGNORECASE),
    "failed_tests": re.compile(r"(\d+)\s+failed", re.IGNORECASE),
    "skipped_tests": re.compile(r"(\d+)\s+skipped", re.IGNORECASE),
}

# jest prints a "Test Suites:" line before this one
SUMMARY_LINE = re.compile(r"^\s*Tests:\s+(.*)$", re.MULTILINE)

COVERAGE_PATTERNS = (
    # istanbul/jest text summary
    re.compile(r"All files\s*\|\s*([\d.]+)"),
    # pytest-cov
    re.compile(r"^TOTAL\s+.*?([\d.]+)%\s*$", re.MULTILINE),
    re.compile(r"coverage:?\s*([\d.]+)\s*%", re.IGNORECASE),
)

PYTHON_PROJECT_FILES = ("pyproject.toml", "pytest.ini", "setup.cfg", "tox.ini")


def parse_test_output(output: str) -> dict[str, int]:
    """
    Best-effort extraction of test counts from runner output.

    A ``Tests:`` summary line is read in preference to the rest of the
    output. Unrecognised output yields zero counts. When no explicit total
    is printed the total is the sum of the other counts.

    Example:
        >>> parse_test_output("Test Suites: 1 failed, 2 total\\nTests: 2 failed, 8 passed, 10 total")
        {'total_tests': 10, 'passed_tests': 8, 'failed_tests': 2, 'skipped_tests': 0}
    """
    output = output or ""
    summary = SUMMARY_LINE.search(output)
    scope = summary.group(1) if summary else output

    counts = {}
    for key, pattern in COUNT_PATTERNS.items():
        match = pattern.search(scope)
        counts[key] = int(match.group(1)) if match else 0

    if not counts["total_tests"]:
        counts["total_tests"] = (
            counts["passed_tests"] + counts["failed_tests"] + counts["skipped_tests"]
        )
    return counts


def parse_coverage(output: str) -> float | None:
    """Coverage percentage printed by the runner, if any."""
    for pattern in COVERAGE_PATTERNS:
        match = pattern.search(output or "")
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                continue
    return None


class TestingService(TaskTypeService):
    """
    Run the project's test suite.

    A failing suite is a result, not an error: the execution completes with
    ``summary.success`` set to False. Only an undeterminable command, a
    timeout or an executor failure raises.
    """

    __test__ = False

    task_type = TaskType.TESTING

    async def execute(self, execution: Execution) -> dict[str, Any]:
        return await self.execute_testing_task(execution)

    async def execute_testing_task(self, execution: Execution) -> dict[str, Any]:
        try:
            payload: TestingPayload = self.start(execution, "Preparing test execution")
            path = self.target_path(execution, payload.target)

            self.progress(execution, 15, "Detecting test command")
            command = payload.test_command or await self.detect_test_command(path, payload)

            self.progress(execution, 30, f"Running tests: {command}")
            logger.info(f"Execution {execution.id}: running '{command}' in {path}")
            result = await self.scripts.execute_script(
                command,
                cwd=path,
                env=build_environment(execution.options.environment, payload.environment),
                timeout=self.timeout_for(execution),
            )

            self.progress(execution, 70, "Parsing test output")
            combined = f"{result.output}\n{result.error}"
            counts = parse_test_output(combined)
            coverage = parse_coverage(combined) if payload.coverage else None

            self.progress(execution, 85, "Analyzing test results")
            analysis = await self._analyze(execution, command, counts, coverage, result.exit_code)

            self.progress(execution, 95, "Compiling test report")
            return {
                "test_command": command,
                "test_type": payload.test_type,
                "output": result.output,
                "error": result.error,
                "exit_code": result.exit_code,
                "test_results": counts,
                "coverage": coverage,
                "analysis": analysis,
                "summary": {
                    "success": result.success,
                    **counts,
                    "coverage": coverage,
                },
                "metrics": self.metrics(execution, test_duration_ms=result.duration_ms),
            }
        except Exception as e:
            logger.error(f"Testing failed for execution {execution.id}: {e}")
            raise

    async def detect_test_command(self, path: str, payload: TestingPayload) -> str:
        """
        Pick a test command from the project files.

        Raises:
            ValidationError: Neither a Node nor a Python project was found.
        """
        if await self.fs.exists(os.path.join(path, "package.json")):
            if payload.test_type == "e2e":
                return "npm run test:e2e"
            if payload.coverage:
                return "npm test -- --coverage"
            return "npm test"

        for name in PYTHON_PROJECT_FILES:
            if await self.fs.exists(os.path.join(path, name)):
                command = "pytest"
                if payload.test_type in ("integration", "e2e"):
                    command += f" -m {payload.test_type}"
                if payload.coverage:
                    command += " --cov"
                return command

        raise ValidationError(f"Could not determine a test command for {path}; set testCommand")

    async def _analyze(
        self,
        execution: Execution,
        command: str,
        counts: dict[str, int],
        coverage: float | None,
        exit_code: int,
    ) -> dict[str, Any] | None:
        try:
            return await self.ai.analyze_test_results(
                {
                    "command": command,
                    "exit_code": exit_code,
                    "coverage": coverage,
                    **counts,
                },
                {"model": execution.options.ai_model},
            )
        except Exception as e:
            logger.warning(f"Execution {execution.id}: AI test analysis unavailable: {e}")
            return None
