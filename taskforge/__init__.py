"""
taskforge - task execution queue and workflow orchestration engine.

Runs typed tasks (analysis, script, optimization, security, refactoring,
testing, deployment, custom) through per-project queues with a concurrency
ceiling and stuck-run recovery.
"""

__version__ = "0.1.0"

from taskforge.core.runtime import TaskForge

__all__ = ["TaskForge", "__version__"]
