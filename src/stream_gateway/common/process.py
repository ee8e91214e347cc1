"""Async child process handle for tunnel provider binaries."""

import asyncio
import os
import shutil
from pathlib import Path
from types import TracebackType

from .exceptions import BinaryNotFoundError, ProcessError
from .logging import get_logger

logger = get_logger(__name__)


def resolve_binary(binary: str) -> str:
    """Resolve a binary name or path to an executable path.

    Args:
        binary: Command name looked up on PATH, or an explicit path

    Returns:
        Absolute path to the executable

    Raises:
        BinaryNotFoundError: If binary doesn't exist or isn't executable
    """
    if os.sep in binary or (os.altsep and os.altsep in binary):
        path = Path(binary)
        if not path.exists():
            raise BinaryNotFoundError(f"Binary not found: {binary}")
        if not path.is_file():
            raise BinaryNotFoundError(f"Binary path is not a file: {binary}")
        if not os.access(path, os.X_OK):
            raise BinaryNotFoundError(f"Binary is not executable: {binary}")
        return str(path)

    found = shutil.which(binary)
    if found is None:
        raise BinaryNotFoundError(f"Binary '{binary}' not found in system PATH")
    return found


class AsyncProcessManager:
    """Owns exactly one spawned child with its stdout and stderr merged."""

    def __init__(self, command: list[str], terminate_timeout: float = 5.0):
        if not command:
            raise ValueError("Command cannot be empty")
        self.command = command
        self.terminate_timeout = terminate_timeout
        self._process: asyncio.subprocess.Process | None = None

    async def __aenter__(self) -> "AsyncProcessManager":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """Spawn the child process.

        Raises:
            ProcessError: If a child is already running or spawning fails
        """
        if self.is_running():
            raise ProcessError(f"Process already running (pid {self.pid})")

        logger.debug("Spawning child process", command=self.command)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            logger.error("Failed to spawn child process", error=str(e))
            raise ProcessError(f"Failed to start {self.command[0]}: {e}") from e
        logger.info("Child process started", pid=self._process.pid)

    async def readline(self) -> str | None:
        """Read one decoded output line, or None once the stream is closed."""
        if self._process is None or self._process.stdout is None:
            return None
        try:
            raw = await self._process.stdout.readline()
        except ValueError:
            # line longer than the stream limit; the reader already skipped it
            logger.debug("Discarded overlong output line", pid=self._process.pid)
            return ""
        if not raw:
            return None
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def wait(self) -> int:
        """Wait for the child to exit and return its exit code."""
        if self._process is None:
            raise ProcessError("Process was never started")
        return await self._process.wait()

    async def stop(self) -> bool:
        """Terminate the child, escalating to kill after the grace period.

        Returns:
            True once the child is confirmed gone
        """
        process = self._process
        if process is None:
            return True

        if process.returncode is None:
            logger.info("Stopping child process", pid=process.pid)
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.terminate_timeout)
            except TimeoutError:
                logger.warning(
                    "Process did not terminate gracefully, force killing",
                    pid=process.pid,
                )
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        self._process = None
        return True

    def is_running(self) -> bool:
        """Check if the child is alive."""
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> int | None:
        if self._process is None:
            return None
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        if self._process is None:
            return None
        return self._process.returncode
