"""Readiness detection from FFmpeg's diagnostic output.

FFmpeg has no structured "I am streaming" signal, so readiness is inferred
from its log wording. The detector is a small strategy object so it can be
swapped for a different probe without touching the supervisor.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger

from ._process import ProcessHandle

# Printed once the output has been opened and FFmpeg starts encoding
DEFAULT_READY_MARKERS = ("Stream mapping:", "Press [q] to stop")

# Upper bound for draining stderr after the process exited
EXIT_DRAIN_SECONDS = 1.0

TAIL_LINES = 20


class Verdict(str, Enum):
    READY = "ready"


class ReadinessDetector(Protocol):
    def feed(self, line: str) -> Verdict | None:
        """Inspect one diagnostic line; return READY at most once."""
        ...


class SubstringReadinessDetector:
    """Fires on the first line containing any of the marker substrings."""

    def __init__(self, markers: tuple[str, ...] = DEFAULT_READY_MARKERS):
        self.markers = tuple(markers)
        self.fired = False

    def feed(self, line: str) -> Verdict | None:
        if self.fired:
            return None
        if any(marker in line for marker in self.markers):
            self.fired = True
            return Verdict.READY
        return None


class ReadinessResult(str, Enum):
    READY = "ready"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ReadinessOutcome:
    result: ReadinessResult
    exit_code: int | None = None
    last_line: str | None = None


class ReadinessWatch:
    """Pumps a process's stderr through a detector and resolves readiness once.

    The pump keeps draining stderr for the whole life of the process (a full
    pipe would stall FFmpeg); lines after readiness are only logged.
    """

    def __init__(
        self,
        handle: ProcessHandle,
        detector: ReadinessDetector,
        redact: Callable[[str], str] | None = None,
    ):
        self._handle = handle
        self._detector = detector
        # Applied to every line before it is logged, kept or inspected
        self._redact = redact or (lambda line: line)
        self._ready = asyncio.Event()
        self._outcome: ReadinessOutcome | None = None
        self.tail: deque[str] = deque(maxlen=TAIL_LINES)
        self._pump_task = asyncio.create_task(self._pump(), name=f"stderr-pump:{handle.pid}")

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def _pump(self) -> None:
        try:
            async for raw_line in self._handle.iter_stderr_lines():
                line = self._redact(raw_line)
                logger.debug("[ffmpeg {}] {}", self._handle.pid, line)
                self.tail.append(line)
                if self._detector.feed(line) is Verdict.READY and not self._ready.is_set():
                    logger.info("FFmpeg pid={} reported ready: {}", self._handle.pid, line)
                    self._ready.set()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("stderr pump crashed: pid={} error={}", self._handle.pid, str(e))

    async def wait(self, timeout: float) -> ReadinessOutcome:
        """Wait for exactly one of ready / failed / timed out.

        Repeated calls return the first outcome.
        """
        if self._outcome is not None:
            return self._outcome

        ready_task = asyncio.create_task(self._ready.wait())
        exit_task = asyncio.create_task(self._handle.wait())
        try:
            await asyncio.wait(
                {ready_task, exit_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (ready_task, exit_task):
                if not task.done():
                    task.cancel()

        if not self._ready.is_set() and self._handle.exited:
            # The readiness line may still sit in the pipe behind the exit
            await self.drain(EXIT_DRAIN_SECONDS)

        if self._ready.is_set():
            outcome = ReadinessOutcome(ReadinessResult.READY)
        elif self._handle.exited:
            outcome = ReadinessOutcome(
                ReadinessResult.FAILED,
                exit_code=self._handle.returncode,
                last_line=self.last_line,
            )
        else:
            outcome = ReadinessOutcome(ReadinessResult.TIMED_OUT, last_line=self.last_line)

        self._outcome = outcome
        return outcome

    @property
    def last_line(self) -> str | None:
        return self.tail[-1] if self.tail else None

    async def drain(self, timeout: float) -> None:
        """Let the pump reach EOF, cancelling it after `timeout` seconds."""
        if self._pump_task.done():
            return
        done, _ = await asyncio.wait({self._pump_task}, timeout=timeout)
        if not done:
            self._pump_task.cancel()
