"""Tests for the health endpoint."""

from unittest.mock import AsyncMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.domain.live.stream.stream_domain import StreamService, get_stream_service
from app.domain.live.stream.stream_models import StreamStatusSnapshot
from app.schemas import StreamState
from app.shared.api.health import router


def test_health_reports_stream_status():
    service = AsyncMock(spec=StreamService)
    service.get_status.return_value = StreamStatusSnapshot(
        status=StreamState.IDLE, has_active_process=False
    )

    app = FastAPI()
    app.dependency_overrides[get_stream_service] = lambda: service
    app.include_router(router)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["results"]["status"] == "ok"
    assert data["results"]["stream_status"] == "idle"
