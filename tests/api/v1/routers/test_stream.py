"""Unit tests for stream router endpoints."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.v1.errors import app_error_handler
from app.api.v1.routers.stream import get_stream_service, router
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream.stream_models import (
    StartOutcome,
    StopOutcome,
    StreamErrorKind,
    StreamHistoryPage,
    StreamPagination,
    StreamSessionResponse,
    StreamStartParams,
    StreamStatusSnapshot,
)
from app.schemas import StreamState
from app.utils.app_errors import AppError, AppErrorCode


@pytest.fixture
def mock_stream_service() -> AsyncMock:
    """Create a mock StreamService."""
    return AsyncMock(spec=StreamService)


@pytest.fixture
def test_app(mock_stream_service: AsyncMock) -> FastAPI:
    """Create FastAPI test app with dependency overrides."""
    app = FastAPI()

    # Override service dependency
    app.dependency_overrides[get_stream_service] = lambda: mock_stream_service

    # Add exception handler for AppError
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]

    app.include_router(router)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    """Create test client."""
    return TestClient(test_app)


@pytest.fixture
def mock_session_response() -> StreamSessionResponse:
    """Create a mock session response."""
    return StreamSessionResponse(
        session_id="st_123",
        status=StreamState.LIVE,
        source_type="url",
        input_source="https://cdn.example.com/a.mp4",
        destination="rtmp://live.example.com/app/****",
        started_at=datetime.now(timezone.utc),
    )


class TestGoLive:
    """Tests for POST /stream/go-live endpoint."""

    def test_go_live_success(self, client: TestClient, mock_stream_service: AsyncMock):
        """Should start the stream with the local path winning over the link."""
        # Arrange
        mock_stream_service.start_stream.return_value = StartOutcome(
            ok=True, status=StreamState.LIVE, session_id="st_123"
        )

        payload = {
            "stream_url": "rtmp://live.example.com/app",
            "stream_key": "secret-key",
            "video_link": "https://cdn.example.com/a.mp4",
            "video_path": "/videos/local.mp4",
            "loop_video": True,
        }

        # Act
        response = client.post("/stream/go-live", json=payload)

        # Assert
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["results"]["status"] == "live"
        assert data["results"]["session_id"] == "st_123"
        assert "secret-key" not in response.text

        mock_stream_service.start_stream.assert_called_once_with(
            StreamStartParams(
                input_source="/videos/local.mp4",
                stream_url="rtmp://live.example.com/app",
                stream_key="secret-key",
                loop=True,
            )
        )

    def test_go_live_uses_link_without_path(
        self, client: TestClient, mock_stream_service: AsyncMock
    ):
        mock_stream_service.start_stream.return_value = StartOutcome(
            ok=True, status=StreamState.LIVE, session_id="st_123"
        )

        response = client.post(
            "/stream/go-live",
            json={
                "stream_url": "rtmp://live.example.com/app",
                "stream_key": "k",
                "video_link": "https://cdn.example.com/a.mp4",
            },
        )

        assert response.status_code == 200
        params = mock_stream_service.start_stream.call_args.args[0]
        assert params.input_source == "https://cdn.example.com/a.mp4"
        assert params.loop is False

    @pytest.mark.parametrize(
        "error,status_code,errcode",
        [
            (StreamErrorKind.MISSING_PARAMETERS, 400, AppErrorCode.E_MISSING_PARAMETERS),
            (StreamErrorKind.INVALID_DESTINATION, 400, AppErrorCode.E_INVALID_DESTINATION),
            (StreamErrorKind.BUSY, 409, AppErrorCode.E_STREAM_BUSY),
            (StreamErrorKind.CANCELLED, 409, AppErrorCode.E_STREAM_CANCELLED),
            (StreamErrorKind.PROCESS_EXITED_EARLY, 502, AppErrorCode.E_PROCESS_EXITED_EARLY),
            (StreamErrorKind.READINESS_TIMEOUT, 504, AppErrorCode.E_READINESS_TIMEOUT),
            (StreamErrorKind.PROCESS_SPAWN_FAILED, 500, AppErrorCode.E_PROCESS_SPAWN_FAILED),
        ],
    )
    def test_go_live_failure_mapping(
        self,
        client: TestClient,
        mock_stream_service: AsyncMock,
        error: StreamErrorKind,
        status_code: int,
        errcode: AppErrorCode,
    ):
        """Should map each start failure to a stable error code and HTTP status."""
        mock_stream_service.start_stream.return_value = StartOutcome.failure(
            error, "start failed", status=StreamState.ERROR
        )

        response = client.post("/stream/go-live", json={})

        assert response.status_code == status_code
        data = response.json()
        assert data["success"] is False
        assert data["errcode"] == errcode.value
        assert data["errmesg"] == "start failed"


class TestStop:
    """Tests for POST /stream/stop endpoint."""

    def test_stop_success(self, client: TestClient, mock_stream_service: AsyncMock):
        mock_stream_service.stop_stream.return_value = StopOutcome(
            ok=True, status=StreamState.STOPPED, session_id="st_123", exit_code=255
        )

        response = client.post("/stream/stop")

        assert response.status_code == 200
        data = response.json()
        assert data["results"]["status"] == "stopped"
        assert data["results"]["exit_code"] == 255
        assert data["results"]["forced"] is False

    def test_stop_without_stream(self, client: TestClient, mock_stream_service: AsyncMock):
        """Should succeed as a no-op when nothing runs."""
        mock_stream_service.stop_stream.return_value = StopOutcome(
            ok=True, status=StreamState.IDLE, message="No active stream"
        )

        response = client.post("/stream/stop")

        assert response.status_code == 200
        assert response.json()["results"]["status"] == "idle"
        assert response.json()["results"]["session_id"] is None

    def test_stop_failure(self, client: TestClient, mock_stream_service: AsyncMock):
        mock_stream_service.stop_stream.return_value = StopOutcome(
            ok=False,
            status=StreamState.ERROR,
            session_id="st_123",
            error=StreamErrorKind.TERMINATION_UNCONFIRMED,
            forced=True,
            message="pid 42 did not exit 5s after SIGKILL",
        )

        response = client.post("/stream/stop")

        assert response.status_code == 500
        assert response.json()["errcode"] == AppErrorCode.E_STOP_FAILED.value


class TestQueries:
    """Tests for GET /stream/status, /stream/current and /stream/history."""

    def test_status(
        self,
        client: TestClient,
        mock_stream_service: AsyncMock,
        mock_session_response: StreamSessionResponse,
    ):
        mock_stream_service.get_status.return_value = StreamStatusSnapshot(
            status=StreamState.LIVE, has_active_process=True, session=mock_session_response
        )

        response = client.get("/stream/status")

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["status"] == "live"
        assert results["has_active_process"] is True
        assert results["session"]["destination"] == "rtmp://live.example.com/app/****"

    def test_current_without_stream(self, client: TestClient, mock_stream_service: AsyncMock):
        mock_stream_service.get_current_stream.return_value = None

        response = client.get("/stream/current")

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["current_stream"] is None
        assert results["has_active_stream"] is False

    def test_current_with_stream(
        self,
        client: TestClient,
        mock_stream_service: AsyncMock,
        mock_session_response: StreamSessionResponse,
    ):
        mock_stream_service.get_current_stream.return_value = mock_session_response

        response = client.get("/stream/current")

        results = response.json()["results"]
        assert results["has_active_stream"] is True
        assert results["current_stream"]["session_id"] == "st_123"

    def test_history(
        self,
        client: TestClient,
        mock_stream_service: AsyncMock,
        mock_session_response: StreamSessionResponse,
    ):
        mock_stream_service.get_history.return_value = StreamHistoryPage(
            streams=[mock_session_response],
            pagination=StreamPagination(
                current_page=2, total_pages=3, total_streams=21, has_next=True, has_prev=True
            ),
        )

        response = client.get("/stream/history", params={"page": 2, "limit": 10})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["pagination"]["total_streams"] == 21
        assert len(results["streams"]) == 1
        mock_stream_service.get_history.assert_called_once_with(page=2, limit=10)

    def test_history_rejects_bad_limit(self, client: TestClient):
        response = client.get("/stream/history", params={"limit": 500})

        assert response.status_code == 422
