"""Helpers shared by the task-type services."""

import json
import os
from typing import Any

from loguru import logger

from taskforge.core.constants import DEFAULT_TIMEOUT_MS
from taskforge.core.models import Execution


def update_execution_progress(execution: Execution, progress: int, step: str) -> None:
    """
    Advance an execution's progress.

    Progress never moves backwards within a run and is clamped to 0-100;
    the step text always follows the latest call.
    """
    clamped = max(0, min(100, int(progress)))
    execution.progress = max(execution.progress, clamped)
    execution.current_step = step
    logger.debug(f"Execution {execution.id}: {execution.progress}% - {step}")


def resolve_timeout(execution: Execution, default: int = DEFAULT_TIMEOUT_MS) -> int:
    """Timeout in milliseconds from the execution options, else the default."""
    return execution.options.timeout or default


def build_environment(*overrides: dict[str, str] | None) -> dict[str, str]:
    """``os.environ`` with each override mapping applied in order."""
    env = os.environ.copy()
    for override in overrides:
        if override:
            env.update({str(k): str(v) for k, v in override.items()})
    return env


def execution_metrics(execution: Execution, **extra: Any) -> dict[str, Any]:
    """Metrics block every service result carries."""
    return {
        "duration_ms": execution.elapsed_ms(),
        "execution_id": execution.id,
        **extra,
    }


def parse_json_output(output: str) -> Any:
    """JSON-decode script output, falling back to the stripped raw string."""
    text = output.strip()
    if not text:
        return text
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text
