"""
Boundary with the external registry tool.

The cache only needs ``run(command, args)``: the tool's standard output on
success, ExternalOperationError on launch failure or non-zero exit.
SubprocessExecutor launches reg.exe; tests substitute their own Executor.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, Sequence

from regmirror.config import Settings, get_settings
from regmirror.exceptions import ExternalOperationError
from regmirror.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Captured output of a finished tool invocation."""

    stdout: str
    stderr: str = ""
    exit_code: int = 0


class Executor(Protocol):
    """Runs one registry tool command."""

    async def run(self, command: str, args: Sequence[str]) -> ProcessResult:
        """Run ``<tool> command *args``.

        Raises:
            ExternalOperationError: If the tool cannot be launched or exits non-zero.
        """
        ...


class SubprocessExecutor:
    """Executor that launches the registry tool as a child process.

    Arguments are passed as a list, never through a shell. Concurrent
    launches are bounded by REG_MAX_CONCURRENT_COMMANDS.
    """

    def __init__(
        self,
        executable: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            executable: Tool to launch. Defaults to the configured registry tool.
            settings: Settings to use. Defaults to get_settings().
        """
        self.settings = settings or get_settings()
        self.executable = executable or self.settings.resolved_executable()
        self.encoding = self.settings.resolved_encoding()
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        # Created lazily so the executor can be built outside a running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.settings.REG_MAX_CONCURRENT_COMMANDS)
        return self._semaphore

    async def run(self, command: str, args: Sequence[str]) -> ProcessResult:
        argv = [command, *args]
        context = {"command": command, "args": list(args)}

        async with self._get_semaphore():
            logger.debug("Launching registry tool", executable=self.executable, argv=argv)
            try:
                proc = await asyncio.create_subprocess_exec(
                    self.executable,
                    *argv,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                stdout, stderr = await proc.communicate()
            except OSError as e:
                raise ExternalOperationError(
                    f"Could not launch {self.executable}: {e}",
                    context=context,
                ) from e

        result = ProcessResult(
            stdout=stdout.decode(self.encoding, errors="replace"),
            stderr=stderr.decode(self.encoding, errors="replace"),
            exit_code=proc.returncode or 0,
        )

        if result.exit_code:
            message = (
                f"{self.executable} {' '.join(argv)} command exited with code "
                f"{result.exit_code}:\n{result.stdout.strip()}\n{result.stderr.strip()}"
            )
            raise ExternalOperationError(message, exit_code=result.exit_code, context=context)

        return result
