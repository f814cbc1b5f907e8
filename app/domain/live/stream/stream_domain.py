"""Stream domain service - process-wide supervisor and audit log."""

from loguru import logger

from app.app_config import get_app_environ_config

from ._audit import StreamAuditLog
from ._supervisor import StreamSupervisor
from .stream_models import (
    StartOutcome,
    StopOutcome,
    StreamHistoryPage,
    StreamSessionResponse,
    StreamStartParams,
    StreamStatusSnapshot,
)


class StreamService:
    """Facade used by the HTTP layer.

    One instance per process: the supervisor it wraps owns the only FFmpeg
    relay, so the server must run with a single worker.
    """

    def __init__(self, supervisor: StreamSupervisor, audit_log: StreamAuditLog):
        self.supervisor = supervisor
        self.audit_log = audit_log
        supervisor.subscribe(audit_log.record)

    @classmethod
    def from_config(cls) -> "StreamService":
        config = get_app_environ_config()
        logger.info(
            "Stream supervisor: ffmpeg={} start_timeout={}s stop_grace={}s",
            config.FFMPEG_PATH,
            config.STREAM_START_TIMEOUT_SECONDS,
            config.STREAM_STOP_GRACE_SECONDS,
        )
        supervisor = StreamSupervisor(
            ffmpeg_path=config.FFMPEG_PATH,
            start_timeout=config.STREAM_START_TIMEOUT_SECONDS,
            stop_grace=config.STREAM_STOP_GRACE_SECONDS,
            kill_wait=config.STREAM_KILL_WAIT_SECONDS,
        )
        return cls(supervisor, StreamAuditLog(limit=config.STREAM_HISTORY_LIMIT))

    # ==================== LIFECYCLE ====================

    async def start_stream(self, params: StreamStartParams) -> StartOutcome:
        return await self.supervisor.start(params)

    async def stop_stream(self) -> StopOutcome:
        return await self.supervisor.stop()

    async def shutdown(self) -> None:
        await self.supervisor.shutdown()

    # ==================== QUERIES ====================

    def get_status(self) -> StreamStatusSnapshot:
        return self.supervisor.status()

    def get_current_stream(self) -> StreamSessionResponse | None:
        return self.audit_log.current()

    def get_history(self, page: int = 1, limit: int = 10) -> StreamHistoryPage:
        return self.audit_log.history(page=page, limit=limit)


_stream_service: StreamService | None = None


def get_stream_service() -> StreamService:
    """Get the process-wide StreamService, creating it on first use."""
    global _stream_service
    if _stream_service is None:
        _stream_service = StreamService.from_config()
    return _stream_service
