# chess_annotator/services/engine_channel.py
"""
Provides the line channel to a UCI engine subprocess.

The channel knows nothing about UCI semantics; it starts the process, writes
newline-terminated commands to its stdin and yields its stdout one stripped
line at a time, in order. All protocol handling lives in `EngineSession`.
"""

import asyncio
from pathlib import Path
from typing import AsyncIterator, Optional

import structlog

from chess_annotator.exceptions import EngineError, EngineInitializationError

logger = structlog.get_logger(__name__)


class UciProcessChannel:
    """An `EngineChannel` backed by an `asyncio` subprocess."""

    _SHUTDOWN_GRACE_S = 2.0

    def __init__(self, engine_path: str):
        self._engine_path = engine_path
        self._process: Optional[asyncio.subprocess.Process] = None

    async def open(self) -> None:
        """
        Starts the engine executable.

        Raises:
            EngineInitializationError: If the executable cannot be launched.
        """
        if self._process is not None:
            return
        try:
            self._process = await asyncio.create_subprocess_exec(
                str(Path(self._engine_path).expanduser()),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError, OSError) as e:
            raise EngineInitializationError(f"Could not start engine at {self._engine_path}: {e}") from e
        logger.info("Engine process started.", path=self._engine_path, pid=self._process.pid)

    async def send(self, line: str) -> None:
        if self._process is None or self._process.stdin is None:
            raise EngineError("Engine channel is not open.")
        try:
            self._process.stdin.write(f"{line}\n".encode("utf-8"))
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise EngineError(f"Engine process stopped accepting input: {e}") from e

    async def lines(self) -> AsyncIterator[str]:
        if self._process is None or self._process.stdout is None:
            raise EngineError("Engine channel is not open.")
        stdout = self._process.stdout
        while True:
            raw = await stdout.readline()
            if not raw:
                break
            yield raw.decode("utf-8", errors="replace").strip()

    async def close(self) -> None:
        """Closes stdin and waits briefly for the process to exit, killing it if it lingers."""
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._SHUTDOWN_GRACE_S)
        except asyncio.TimeoutError:
            logger.warning("Engine process did not exit in time; killing it.", pid=process.pid)
            process.kill()
            await process.wait()
