"""Shell command execution on the local machine."""

import asyncio
import os
import signal
import time

from loguru import logger

from taskforge.core.constants import DEFAULT_TIMEOUT_MS
from taskforge.core.errors import ExecutionError, ScriptTimeoutError
from taskforge.execution.interfaces import ScriptResult


class SubprocessScriptExecutor:
    """
    Run shell commands with ``asyncio.create_subprocess_shell``.

    Output is decoded as UTF-8 with replacement. A command that outlives its
    timeout is killed with its whole process group and reported as
    ``ScriptTimeoutError``; a non-zero exit is returned, not raised, so
    callers decide what it means.

    Example:
        >>> executor = SubprocessScriptExecutor()
        >>> result = await executor.execute_script("echo hello", timeout=5000)
        >>> result.output
        'hello\\n'
    """

    def __init__(self, default_timeout_ms: int = DEFAULT_TIMEOUT_MS, max_output_chars: int | None = None):
        self.default_timeout_ms = default_timeout_ms
        self.max_output_chars = max_output_chars

    async def execute_script(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout: int | None = None,
    ) -> ScriptResult:
        timeout_ms = timeout or self.default_timeout_ms
        started = time.monotonic()
        logger.debug(f"Running '{command}' in {cwd or '.'} (timeout {timeout_ms}ms)")

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=cwd,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise ExecutionError(f"Could not start '{command}': {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout_ms / 1000,
            )
        except TimeoutError:
            self._kill(process)
            await process.wait()
            logger.warning(f"'{command}' timed out after {timeout_ms}ms")
            raise ScriptTimeoutError(command, timeout_ms) from None
        except asyncio.CancelledError:
            self._kill(process)
            await process.wait()
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        result = ScriptResult(
            output=self._decode(stdout),
            error=self._decode(stderr),
            exit_code=process.returncode if process.returncode is not None else -1,
            duration_ms=duration_ms,
        )
        logger.debug(f"'{command}' exited with {result.exit_code} in {duration_ms}ms")
        return result

    def _kill(self, process: asyncio.subprocess.Process) -> None:
        # the shell runs in its own session, so its group holds every descendant
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug(f"Process group {process.pid} already exited")

    def _decode(self, data: bytes | None) -> str:
        text = (data or b"").decode("utf-8", errors="replace")
        if self.max_output_chars is not None:
            return text[: self.max_output_chars]
        return text
