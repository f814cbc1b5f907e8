from fastapi import APIRouter, Depends, Query

from app.api.v1.schemas.base import ApiOut
from app.api.v1.schemas.stream import (
    CurrentStreamOut,
    GoLiveIn,
    GoLiveOut,
    StopOut,
    StreamHistoryOut,
    StreamStatusOut,
)
from app.domain.live.stream.stream_domain import StreamService, get_stream_service
from app.domain.live.stream.stream_models import StreamErrorKind, StreamStartParams
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/stream")

# Stable mapping of supervisor error kinds to API errors
_STREAM_ERROR_MAP: dict[StreamErrorKind, tuple[AppErrorCode, HttpStatusCode]] = {
    StreamErrorKind.MISSING_PARAMETERS: (
        AppErrorCode.E_MISSING_PARAMETERS,
        HttpStatusCode.BAD_REQUEST,
    ),
    StreamErrorKind.INVALID_DESTINATION: (
        AppErrorCode.E_INVALID_DESTINATION,
        HttpStatusCode.BAD_REQUEST,
    ),
    StreamErrorKind.PROCESS_SPAWN_FAILED: (
        AppErrorCode.E_PROCESS_SPAWN_FAILED,
        HttpStatusCode.INTERNAL_SERVER_ERROR,
    ),
    StreamErrorKind.READINESS_TIMEOUT: (
        AppErrorCode.E_READINESS_TIMEOUT,
        HttpStatusCode.GATEWAY_TIMEOUT,
    ),
    StreamErrorKind.PROCESS_EXITED_EARLY: (
        AppErrorCode.E_PROCESS_EXITED_EARLY,
        HttpStatusCode.BAD_GATEWAY,
    ),
    StreamErrorKind.BUSY: (AppErrorCode.E_STREAM_BUSY, HttpStatusCode.CONFLICT),
    StreamErrorKind.CANCELLED: (AppErrorCode.E_STREAM_CANCELLED, HttpStatusCode.CONFLICT),
    StreamErrorKind.SIGNAL_DELIVERY_FAILED: (
        AppErrorCode.E_STOP_FAILED,
        HttpStatusCode.INTERNAL_SERVER_ERROR,
    ),
    StreamErrorKind.TERMINATION_UNCONFIRMED: (
        AppErrorCode.E_STOP_FAILED,
        HttpStatusCode.INTERNAL_SERVER_ERROR,
    ),
}


def stream_error(kind: StreamErrorKind | None, message: str | None) -> AppError:
    errcode, status_code = _STREAM_ERROR_MAP.get(
        kind,  # type: ignore[arg-type]
        (AppErrorCode.E_INTERNAL_ERROR, HttpStatusCode.INTERNAL_SERVER_ERROR),
    )
    return AppError(
        errcode=errcode,
        errmesg=message or f"Stream operation failed: {kind}",
        status_code=status_code,
    )


@router.post("/go-live")
async def go_live(
    body: GoLiveIn,
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[GoLiveOut]:
    """Start relaying the given source to the RTMP endpoint.

    Blocks until FFmpeg reports it is streaming, fails, or the readiness
    timeout elapses. A running stream is stopped first.
    """
    outcome = await service.start_stream(
        StreamStartParams(
            input_source=body.input_source,
            stream_url=body.stream_url,
            stream_key=body.stream_key,
            loop=body.loop_video,
        )
    )
    if not outcome.ok:
        raise stream_error(outcome.error, outcome.message)

    return ApiOut[GoLiveOut](
        results=GoLiveOut(
            message="Stream started successfully",
            status=outcome.status,
            session_id=outcome.session_id or "",
        )
    )


@router.post("/stop")
async def stop_stream(
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StopOut]:
    """Stop the running stream; succeeds as a no-op when nothing runs."""
    outcome = await service.stop_stream()
    if not outcome.ok:
        raise stream_error(outcome.error, outcome.message)

    return ApiOut[StopOut](
        results=StopOut(
            message="Stream stopped successfully",
            status=outcome.status,
            session_id=outcome.session_id,
            exit_code=outcome.exit_code,
            forced=outcome.forced,
        )
    )


@router.get("/status")
async def get_status(
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[StreamStatusOut]:
    snapshot = service.get_status()
    return ApiOut[StreamStatusOut](
        results=StreamStatusOut(
            status=snapshot.status,
            has_active_process=snapshot.has_active_process,
            session=snapshot.session,
        )
    )


@router.get("/current")
async def get_current_stream(
    service: StreamService = Depends(get_stream_service),
) -> ApiOut[CurrentStreamOut]:
    current = service.get_current_stream()
    return ApiOut[CurrentStreamOut](
        results=CurrentStreamOut(current_stream=current, has_active_stream=current is not None)
    )


@router.get("/history")
async def get_stream_history(
    service: StreamService = Depends(get_stream_service),
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Number of items per page"),
) -> ApiOut[StreamHistoryOut]:
    history = service.get_history(page=page, limit=limit)
    return ApiOut[StreamHistoryOut](results=StreamHistoryOut(**history.model_dump()))
