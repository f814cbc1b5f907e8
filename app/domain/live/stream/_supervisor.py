"""Supervisor owning the single FFmpeg relay process and its status.

All transitions (start, stop, readiness and exit callbacks) run under one
`asyncio.Lock`. Waiting for readiness and the SIGTERM/SIGKILL escalation of
stop() happen outside the lock; whoever re-enters checks the session status
again before acting. status() is a lock-free read.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from app.schemas import StreamState

from ._command import (
    build_destination_url,
    build_ffmpeg_args,
    detect_source_type,
    is_rtmp_url,
    mask_args,
    stream_key_redactor,
)
from ._process import ProcessHandle, ProcessSpawner, ProcessSpawnError, SignalDeliveryError
from ._readiness import (
    EXIT_DRAIN_SECONDS,
    ReadinessDetector,
    ReadinessResult,
    ReadinessWatch,
    SubstringReadinessDetector,
)
from .stream_models import (
    StartOutcome,
    StopOutcome,
    StreamErrorKind,
    StreamEvent,
    StreamSession,
    StreamStartParams,
    StreamStatusSnapshot,
    utc_now,
)
from .stream_state_machine import StreamStateMachine

StreamListener = Callable[[StreamEvent], Awaitable[None] | None]

DEFAULT_START_TIMEOUT_SECONDS = 30.0
DEFAULT_STOP_GRACE_SECONDS = 5.0
DEFAULT_KILL_WAIT_SECONDS = 5.0


@dataclass(frozen=True)
class _Termination:
    exit_code: int | None = None
    forced: bool = False
    error: StreamErrorKind | None = None
    message: str | None = None


class StreamSupervisor:
    """Starts, stops and observes one FFmpeg relay at a time."""

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        start_timeout: float = DEFAULT_START_TIMEOUT_SECONDS,
        stop_grace: float = DEFAULT_STOP_GRACE_SECONDS,
        kill_wait: float = DEFAULT_KILL_WAIT_SECONDS,
        spawner: ProcessSpawner | None = None,
        detector_factory: Callable[[], ReadinessDetector] = SubstringReadinessDetector,
    ):
        """
        Args:
            ffmpeg_path: Program passed to the spawner
            start_timeout: Seconds to wait for readiness before giving up
            stop_grace: Seconds between SIGTERM and SIGKILL
            kill_wait: Seconds to wait for the exit after SIGKILL
            spawner: Coroutine starting a process, defaults to ProcessHandle.spawn
            detector_factory: Builds a fresh readiness detector per session
        """
        self._ffmpeg_path = ffmpeg_path
        self._start_timeout = start_timeout
        self._stop_grace = stop_grace
        self._kill_wait = kill_wait
        self._spawn = spawner or ProcessHandle.spawn
        self._detector_factory = detector_factory

        self._lock = asyncio.Lock()
        self._session: StreamSession | None = None
        self._listeners: list[StreamListener] = []
        self._exit_watchers: set[asyncio.Task] = set()

    # ==================== OBSERVERS ====================

    def subscribe(self, listener: StreamListener) -> None:
        """Register a status-change listener (sync or async)."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: StreamListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def status(self) -> StreamStatusSnapshot:
        """Snapshot of the current status; never blocks."""
        session = self._session
        if session is None:
            return StreamStatusSnapshot(status=StreamState.IDLE, has_active_process=False)
        return StreamStatusSnapshot(
            status=session.status,
            has_active_process=session.handle is not None,
            session=session.to_response(),
        )

    @property
    def current_session(self) -> StreamSession | None:
        """The session in STARTING/LIVE/STOPPING, if any."""
        session = self._session
        if session is None or session.status not in StreamState.active_states():
            return None
        return session

    # ==================== START ====================

    async def start(self, params: StreamStartParams) -> StartOutcome:
        """Spawn FFmpeg and wait until it reports readiness.

        A LIVE session is stopped first; a session still STARTING or
        STOPPING makes the call fail with BUSY.
        """
        rejected = self._validate(params)
        if rejected:
            return rejected

        input_source = params.input_source.strip()  # type: ignore[union-attr]
        destination_url = build_destination_url(params.stream_url, params.stream_key)  # type: ignore[arg-type]

        async with self._lock:
            current = self._session
            if current is not None and current.status in (StreamState.STARTING, StreamState.STOPPING):
                return self._busy(current)
            supersede = current if current is not None and current.status == StreamState.LIVE else None

        if supersede is not None:
            logger.info("Stream {} is live, stopping it before starting a new one", supersede.session_id)
            stopped = await self.stop()
            if not stopped.ok:
                return StartOutcome.failure(
                    StreamErrorKind.BUSY,
                    f"Failed to stop the running stream: {stopped.message}",
                    status=stopped.status,
                    session_id=stopped.session_id,
                )

        async with self._lock:
            current = self._session
            if current is not None and current.status in StreamState.active_states():
                return self._busy(current)

            session = StreamSession(
                input_source=input_source,
                source_type=detect_source_type(input_source),
                destination_url=destination_url,
                loop=params.loop,
            )
            self._session = session
            await self._emit(session, previous=None)

            args = build_ffmpeg_args(input_source, destination_url, params.loop)
            logger.info(
                "Starting stream {}: {} {}",
                session.session_id,
                self._ffmpeg_path,
                " ".join(mask_args(args)),
            )

            try:
                handle = await self._spawn(self._ffmpeg_path, args)
            except ProcessSpawnError as e:
                logger.error("Stream {} spawn failed: {}", session.session_id, str(e))
                await self._transition(session, StreamState.ERROR, error_message=str(e))
                return StartOutcome.failure(
                    StreamErrorKind.PROCESS_SPAWN_FAILED,
                    str(e),
                    status=session.status,
                    session_id=session.session_id,
                )
            except asyncio.CancelledError:
                logger.warning("Stream {} start cancelled while spawning", session.session_id)
                await self._transition(
                    session, StreamState.ERROR, error_message="Start cancelled while spawning"
                )
                raise

            session.handle = handle
            session.watch = ReadinessWatch(
                handle,
                self._detector_factory(),
                redact=stream_key_redactor(destination_url),
            )
            self._watch_exit(session, handle)
            # Owned by the supervisor: the session is resolved even if the caller goes away
            session.start_task = asyncio.create_task(
                self._resolve_start(session, handle), name=f"stream-start:{session.session_id}"
            )
            start_task = session.start_task

        return await asyncio.shield(start_task)

    async def _resolve_start(self, session: StreamSession, handle: ProcessHandle) -> StartOutcome:
        """Wait for readiness outside the lock, then settle the session."""
        outcome = await session.watch.wait(self._start_timeout)  # type: ignore[union-attr]

        async with self._lock:
            if session.status != StreamState.STARTING:
                logger.info(
                    "Stream {} was stopped before it became live (status={})",
                    session.session_id,
                    session.status,
                )
                return StartOutcome.failure(
                    StreamErrorKind.CANCELLED,
                    "Stream was stopped before it became live",
                    status=session.status,
                    session_id=session.session_id,
                    exit_code=session.exit_code,
                )

            if outcome.result is ReadinessResult.READY:
                await self._transition(session, StreamState.LIVE)
                if handle.exited:
                    # Exited right after the readiness line; the exit watcher skipped it
                    await self._handle_exit_while_live(session, handle)
                    return StartOutcome.failure(
                        StreamErrorKind.PROCESS_EXITED_EARLY,
                        session.error_message or "FFmpeg exited right after going live",
                        status=session.status,
                        session_id=session.session_id,
                        exit_code=session.exit_code,
                    )
                logger.info("Stream {} is live -> {}", session.session_id, session.masked_destination)
                return StartOutcome(ok=True, status=session.status, session_id=session.session_id)

            if outcome.result is ReadinessResult.FAILED:
                message = f"FFmpeg exited with {handle.describe_exit()} before going live"
                if outcome.last_line:
                    message += f": {outcome.last_line}"
                logger.error("Stream {} failed to start: {}", session.session_id, message)
                await self._transition(
                    session, StreamState.ERROR, exit_code=outcome.exit_code, error_message=message
                )
                self._release_handle(session)
                return StartOutcome.failure(
                    StreamErrorKind.PROCESS_EXITED_EARLY,
                    message,
                    status=session.status,
                    session_id=session.session_id,
                    exit_code=outcome.exit_code,
                )

            # Timed out: the straggler must be gone before the error is reported
            message = f"FFmpeg failed to start within {self._start_timeout:g}s"
            logger.error("Stream {} {}, terminating pid={}", session.session_id, message, handle.pid)
            termination = await self._terminate(handle)
            if termination.error:
                message += f"; {termination.message}"
            await self._transition(
                session, StreamState.ERROR, exit_code=handle.returncode, error_message=message
            )
            self._release_handle(session)
            return StartOutcome.failure(
                StreamErrorKind.READINESS_TIMEOUT,
                message,
                status=session.status,
                session_id=session.session_id,
                exit_code=handle.returncode,
            )

    def _validate(self, params: StreamStartParams) -> StartOutcome | None:
        required = {
            "input_source": params.input_source,
            "stream_url": params.stream_url,
            "stream_key": params.stream_key,
        }
        missing = [name for name, value in required.items() if not (value or "").strip()]
        if missing:
            return StartOutcome.failure(
                StreamErrorKind.MISSING_PARAMETERS,
                f"Missing required parameters: {', '.join(missing)}",
                status=self.status().status,
            )
        if not is_rtmp_url(params.stream_url):
            return StartOutcome.failure(
                StreamErrorKind.INVALID_DESTINATION,
                "Invalid RTMP stream URL",
                status=self.status().status,
            )
        return None

    def _busy(self, current: StreamSession) -> StartOutcome:
        logger.warning("Start rejected: stream {} is {}", current.session_id, current.status)
        return StartOutcome.failure(
            StreamErrorKind.BUSY,
            f"Stream {current.session_id} is {current.status}, retry once it has settled",
            status=current.status,
            session_id=current.session_id,
        )

    # ==================== STOP ====================

    async def stop(self) -> StopOutcome:
        """Terminate the running process, if any.

        Concurrent callers share the same in-flight stop and observe the same
        outcome; only one signal sequence is ever sent.
        """
        async with self._lock:
            session = self._session
            if session is None or session.status not in StreamState.active_states():
                return StopOutcome(
                    ok=True,
                    status=session.status if session else StreamState.IDLE,
                    session_id=session.session_id if session else None,
                    exit_code=session.exit_code if session else None,
                    message="No active stream",
                )
            if session.stop_task is None:
                session.stop_task = asyncio.create_task(
                    self._run_stop(session), name=f"stream-stop:{session.session_id}"
                )
            stop_task = session.stop_task

        return await asyncio.shield(stop_task)

    async def _run_stop(self, session: StreamSession) -> StopOutcome:
        async with self._lock:
            handle = session.handle
            exited_on_own = handle is not None and handle.exited
            await self._transition(session, StreamState.STOPPING)

        if handle is None:
            termination = _Termination()
        elif exited_on_own:
            termination = _Termination(exit_code=handle.returncode)
        else:
            logger.info("Stopping stream {} pid={}", session.session_id, handle.pid)
            termination = await self._terminate(handle)

        async with self._lock:
            error_message = None
            if termination.error:
                final = StreamState.ERROR
                error_message = termination.message
            elif exited_on_own and termination.exit_code != 0:
                final = StreamState.ERROR
                error_message = f"FFmpeg exited with {handle.describe_exit()} before stop"  # type: ignore[union-attr]
            else:
                final = StreamState.STOPPED

            await self._transition(
                session, final, exit_code=termination.exit_code, error_message=error_message
            )
            self._release_handle(session)

            return StopOutcome(
                ok=termination.error is None,
                status=session.status,
                session_id=session.session_id,
                error=termination.error,
                exit_code=termination.exit_code,
                forced=termination.forced,
                message=termination.message or f"Stream {session.status}",
            )

    async def _terminate(self, handle: ProcessHandle) -> _Termination:
        """SIGTERM, race the exit against the grace period, then SIGKILL."""
        try:
            handle.terminate()
        except SignalDeliveryError as e:
            logger.warning("{}; escalating to SIGKILL", str(e))
        else:
            try:
                code = await asyncio.wait_for(handle.wait(), timeout=self._stop_grace)
                return _Termination(exit_code=code)
            except asyncio.TimeoutError:
                logger.warning(
                    "pid={} still running {:g}s after SIGTERM, sending SIGKILL",
                    handle.pid,
                    self._stop_grace,
                )

        try:
            handle.kill()
        except SignalDeliveryError as e:
            logger.error(str(e))
            return _Termination(
                forced=True, error=StreamErrorKind.SIGNAL_DELIVERY_FAILED, message=str(e)
            )

        try:
            code = await asyncio.wait_for(handle.wait(), timeout=self._kill_wait)
        except asyncio.TimeoutError:
            message = f"pid {handle.pid} did not exit {self._kill_wait:g}s after SIGKILL"
            logger.error(message)
            return _Termination(
                forced=True, error=StreamErrorKind.TERMINATION_UNCONFIRMED, message=message
            )
        return _Termination(exit_code=code, forced=True)

    async def shutdown(self) -> None:
        """Stop any running process; used on application exit."""
        if self.current_session is not None:
            logger.info("Shutting down: stopping active stream")
            await self.stop()
        for task in list(self._exit_watchers):
            task.cancel()

    # ==================== EXIT WATCH ====================

    def _watch_exit(self, session: StreamSession, handle: ProcessHandle) -> None:
        task = asyncio.create_task(
            self._on_process_exit(session, handle), name=f"stream-exit:{session.session_id}"
        )
        self._exit_watchers.add(task)
        task.add_done_callback(self._exit_watchers.discard)

    async def _on_process_exit(self, session: StreamSession, handle: ProcessHandle) -> None:
        await handle.wait()
        async with self._lock:
            # STARTING and STOPPING exits are resolved by start() and stop()
            if session.status == StreamState.LIVE:
                await self._handle_exit_while_live(session, handle)

    async def _handle_exit_while_live(self, session: StreamSession, handle: ProcessHandle) -> None:
        if session.handle is not handle:
            return
        if session.watch:
            await session.watch.drain(EXIT_DRAIN_SECONDS)

        code = handle.returncode
        if code == 0:
            logger.info("Stream {} input finished, FFmpeg exited cleanly", session.session_id)
            await self._transition(session, StreamState.STOPPED, exit_code=code)
        else:
            message = f"FFmpeg {handle.describe_exit()} while live"
            if session.watch and session.watch.last_line:
                message += f": {session.watch.last_line}"
            logger.error("Stream {} crashed: {}", session.session_id, message)
            await self._transition(session, StreamState.ERROR, exit_code=code, error_message=message)
        self._release_handle(session)

    # ==================== STATE ====================

    async def _transition(
        self,
        session: StreamSession,
        new_state: StreamState,
        *,
        exit_code: int | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Apply a validated transition and notify listeners. Lock must be held."""
        previous = session.status
        if not StreamStateMachine.can_transition(previous, new_state):
            logger.error(
                "Invalid state transition from {} to {} for stream {}",
                previous,
                new_state,
                session.session_id,
            )
            return False

        session.status = new_state
        if exit_code is not None:
            session.exit_code = exit_code
        if error_message:
            session.error_message = error_message
        if StreamStateMachine.is_terminal(new_state):
            session.ended_at = utc_now()

        logger.info("Stream {} {} -> {}", session.session_id, previous, new_state)
        await self._emit(session, previous=previous)
        return True

    def _release_handle(self, session: StreamSession) -> None:
        handle = session.handle
        if handle is None:
            return
        session.handle = None
        logger.debug(
            "Released process handle pid={} ({}) for stream {}",
            handle.pid,
            handle.describe_exit(),
            session.session_id,
        )

    async def _emit(self, session: StreamSession, *, previous: StreamState | None) -> None:
        event = StreamEvent(
            session_id=session.session_id,
            previous=previous,
            status=session.status,
            session=session.to_response(),
        )
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Stream listener failed: stream={} status={} error={}",
                    session.session_id,
                    session.status,
                    str(e),
                )
