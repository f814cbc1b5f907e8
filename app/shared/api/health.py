from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.domain.live.stream.stream_domain import StreamService, get_stream_service
from .utils import ApiSuccess


router = APIRouter()


@router.get('/health', response_model=ApiSuccess)
async def health(service: StreamService = Depends(get_stream_service)):
    return ApiSuccess(
        results={
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'stream_status': service.get_status().status,
        }
    )
