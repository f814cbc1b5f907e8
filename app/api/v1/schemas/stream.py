from pydantic import BaseModel, Field

from app.domain.live.stream.stream_models import (
    StreamHistoryPage,
    StreamSessionResponse,
)
from app.schemas import StreamState


class GoLiveIn(BaseModel):
    """Request to relay a video source to an RTMP endpoint.

    Missing fields are reported by the supervisor as missing parameters
    rather than as request validation errors.
    """

    stream_url: str | None = Field(default=None, description="RTMP ingest base URL")
    stream_key: str | None = Field(default=None, description="Stream key appended to stream_url", repr=False)
    video_link: str | None = Field(default=None, description="Remote video URL")
    video_path: str | None = Field(
        default=None, description="Local file path already on the server; wins over video_link"
    )
    loop_video: bool = Field(default=False, description="Restart the input indefinitely")

    @property
    def input_source(self) -> str | None:
        return (self.video_path or "").strip() or (self.video_link or "").strip() or None


class GoLiveOut(BaseModel):
    message: str
    status: StreamState
    session_id: str


class StopOut(BaseModel):
    message: str
    status: StreamState
    session_id: str | None = None
    exit_code: int | None = None
    forced: bool = False


class StreamStatusOut(BaseModel):
    status: StreamState
    has_active_process: bool
    session: StreamSessionResponse | None = None


class CurrentStreamOut(BaseModel):
    current_stream: StreamSessionResponse | None = None
    has_active_stream: bool


class StreamHistoryOut(StreamHistoryPage):
    pass
