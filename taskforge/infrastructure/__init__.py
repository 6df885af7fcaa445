"""Local implementations of the AI, script and filesystem services."""

from taskforge.infrastructure.ai import ClaudeAIService
from taskforge.infrastructure.filesystem import LocalFileSystemService
from taskforge.infrastructure.scripts import SubprocessScriptExecutor

__all__ = ["ClaudeAIService", "LocalFileSystemService", "SubprocessScriptExecutor"]
