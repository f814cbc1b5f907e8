"""Stream domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from app.domain.utils.idgen import new_stream_session_id
from app.schemas import StreamState

from ._command import mask_destination_url

if TYPE_CHECKING:
    import asyncio

    from ._process import ProcessHandle
    from ._readiness import ReadinessWatch

utc_now = lambda: datetime.now(timezone.utc)  # noqa: E731


class StreamErrorKind(str, Enum):
    """Stable classification of start/stop failures."""

    # start
    MISSING_PARAMETERS = "missing_parameters"
    INVALID_DESTINATION = "invalid_destination"
    PROCESS_SPAWN_FAILED = "process_spawn_failed"
    READINESS_TIMEOUT = "readiness_timeout"
    PROCESS_EXITED_EARLY = "process_exited_early"
    BUSY = "busy"
    CANCELLED = "cancelled"

    # stop
    SIGNAL_DELIVERY_FAILED = "signal_delivery_failed"
    TERMINATION_UNCONFIRMED = "termination_unconfirmed"

    def __str__(self) -> str:
        return self.value


class StreamStartParams(BaseModel):
    """Parameters for starting a relay stream."""

    input_source: str | None = None
    stream_url: str | None = None
    stream_key: str | None = Field(default=None, repr=False)
    loop: bool = False


class StreamSessionResponse(BaseModel):
    """Session view safe to log and return; never carries the stream key."""

    session_id: str
    status: StreamState
    source_type: Literal["file", "url"]
    input_source: str
    destination: str
    loop: bool = False

    started_at: datetime
    ended_at: datetime | None = None
    duration: int | None = None

    exit_code: int | None = None
    error_message: str | None = None


class StreamStatusSnapshot(BaseModel):
    status: StreamState
    has_active_process: bool
    session: StreamSessionResponse | None = None


class StartOutcome(BaseModel):
    ok: bool
    status: StreamState
    session_id: str | None = None
    error: StreamErrorKind | None = None
    exit_code: int | None = None
    message: str | None = None

    @classmethod
    def failure(
        cls,
        error: StreamErrorKind,
        message: str,
        *,
        status: StreamState,
        session_id: str | None = None,
        exit_code: int | None = None,
    ) -> StartOutcome:
        return cls(
            ok=False,
            status=status,
            session_id=session_id,
            error=error,
            exit_code=exit_code,
            message=message,
        )


class StopOutcome(BaseModel):
    ok: bool
    status: StreamState
    session_id: str | None = None
    error: StreamErrorKind | None = None
    exit_code: int | None = None
    forced: bool = False
    message: str | None = None


class StreamEvent(BaseModel):
    """Status-change notification emitted by the supervisor."""

    session_id: str
    previous: StreamState | None = None
    status: StreamState
    at: datetime = Field(default_factory=utc_now)
    session: StreamSessionResponse


@dataclass(eq=False)
class StreamSession:
    """One start-to-terminal attempt of the relay process.

    Mutated only by the supervisor, under its lock.
    """

    input_source: str
    source_type: Literal["file", "url"]
    destination_url: str = field(repr=False)
    loop: bool = False

    session_id: str = field(default_factory=new_stream_session_id)
    status: StreamState = StreamState.STARTING
    started_at: datetime = field(default_factory=utc_now)
    ended_at: datetime | None = None
    exit_code: int | None = None
    error_message: str | None = None

    handle: ProcessHandle | None = field(default=None, repr=False)
    watch: ReadinessWatch | None = field(default=None, repr=False)
    start_task: asyncio.Task | None = field(default=None, repr=False)
    stop_task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def duration(self) -> int | None:
        if self.ended_at is None:
            return None
        return int((self.ended_at - self.started_at).total_seconds())

    @property
    def masked_destination(self) -> str:
        return mask_destination_url(self.destination_url)

    def to_response(self) -> StreamSessionResponse:
        return StreamSessionResponse(
            session_id=self.session_id,
            status=self.status,
            source_type=self.source_type,
            input_source=self.input_source,
            destination=self.masked_destination,
            loop=self.loop,
            started_at=self.started_at,
            ended_at=self.ended_at,
            duration=self.duration,
            exit_code=self.exit_code,
            error_message=self.error_message,
        )


class StreamPagination(BaseModel):
    current_page: int
    total_pages: int
    total_streams: int
    has_next: bool
    has_prev: bool


class StreamHistoryPage(BaseModel):
    """Stream history page, newest first."""

    streams: list[StreamSessionResponse]
    pagination: StreamPagination
