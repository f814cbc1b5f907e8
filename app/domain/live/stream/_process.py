"""Handle around one spawned FFmpeg process.

The handle is owned by the supervisor: it is the only place that signals the
process, waits for it, or reads its diagnostic (stderr) stream.
"""

from __future__ import annotations

import asyncio
import codecs
import re
import signal
from collections.abc import AsyncIterator, Awaitable, Callable

from loguru import logger

# FFmpeg progress lines end with '\r', regular log lines with '\n'
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

READ_CHUNK_SIZE = 4096


class ProcessSpawnError(Exception):
    """The program could not be started (binary missing or not executable)."""


class SignalDeliveryError(Exception):
    """The OS refused to deliver a termination signal."""


class ProcessHandle:
    """Opaque wrapper around an `asyncio.subprocess.Process`."""

    def __init__(self, process: asyncio.subprocess.Process, program: str):
        self._process = process
        self.program = program
        self.pid = process.pid
        # Names of the signals delivered, in order ("SIGTERM", "SIGKILL")
        self.signals_sent: list[str] = []
        self._exit_task = asyncio.create_task(self._process.wait(), name=f"process-exit:{self.pid}")

    @classmethod
    async def spawn(cls, program: str, args: list[str]) -> ProcessHandle:
        """Start `program` with `args`, capturing stderr.

        Raises:
            ProcessSpawnError: If the OS could not start the program
        """
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Failed to start {program}: {e}") from e

        logger.info("Spawned {} pid={}", program, process.pid)
        return cls(process, program)

    @property
    def returncode(self) -> int | None:
        """Exit code, negative signal number when killed by a signal, None while running."""
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None

    @property
    def exited(self) -> bool:
        return self._exit_task.done()

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code.

        Cancelling the caller does not cancel the underlying exit watch, so the
        call is safe inside `asyncio.wait_for`.
        """
        return await asyncio.shield(self._exit_task)

    def terminate(self) -> None:
        """Send the graceful termination signal (SIGTERM)."""
        self._send("SIGTERM", self._process.terminate)

    def kill(self) -> None:
        """Send the forceful termination signal (SIGKILL)."""
        self._send("SIGKILL", self._process.kill)

    def _send(self, name: str, deliver: Callable[[], None]) -> None:
        if self.exited:
            logger.debug("Skip {} for pid={}: already exited ({})", name, self.pid, self.returncode)
            return
        try:
            deliver()
        except ProcessLookupError:
            logger.debug("Skip {} for pid={}: process is gone", name, self.pid)
            return
        except OSError as e:
            raise SignalDeliveryError(f"Failed to send {name} to pid {self.pid}: {e}") from e
        self.signals_sent.append(name)
        logger.info("Sent {} to pid={}", name, self.pid)

    async def iter_stderr_lines(self) -> AsyncIterator[str]:
        """Yield decoded stderr lines until EOF.

        Chunks are split on '\\n' and '\\r'; a trailing partial line is
        yielded at EOF. Only one consumer may iterate.
        """
        stream = self._process.stderr
        if stream is None:
            return

        # A multi-byte character may be split across two reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *lines, pending = _LINE_BREAK_RE.split(pending)
            for line in lines:
                if line:
                    yield line

        pending += decoder.decode(b"", final=True)
        if pending:
            yield pending

    def describe_exit(self) -> str:
        code = self.returncode
        if code is None:
            return "running"
        if code < 0:
            try:
                return f"killed by {signal.Signals(-code).name}"
            except ValueError:
                return f"killed by signal {-code}"
        return f"exit code {code}"


ProcessSpawner = Callable[[str, list[str]], Awaitable[ProcessHandle]]
