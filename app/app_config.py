from pydantic import BaseModel

from app.shared.config import config


class AppEnvironConfig(BaseModel):
    # FFmpeg binary used for the relay process; resolved through PATH when not absolute.
    FFMPEG_PATH: str = (config.get("FFMPEG_PATH") or "").strip() or "ffmpeg"

    # Upper bound for waiting on the encoder's first readiness line.
    STREAM_START_TIMEOUT_SECONDS: float = float(
        (config.get("STREAM_START_TIMEOUT_SECONDS") or "").strip() or 30
    )
    # Time between SIGTERM and SIGKILL when stopping a stream.
    STREAM_STOP_GRACE_SECONDS: float = float(
        (config.get("STREAM_STOP_GRACE_SECONDS") or "").strip() or 5
    )
    # How long to wait for the exit after SIGKILL before giving up.
    STREAM_KILL_WAIT_SECONDS: float = float(
        (config.get("STREAM_KILL_WAIT_SECONDS") or "").strip() or 5
    )

    # Number of finished sessions kept in the in-memory audit log.
    STREAM_HISTORY_LIMIT: int = int((config.get("STREAM_HISTORY_LIMIT") or "").strip() or 100)

    # Server
    DEBUG: bool = config.get_bool("DEBUG")
    API_HOST: str = (config.get("API_HOST") or "").strip() or "0.0.0.0"
    API_PORT: int = int((config.get("API_PORT") or "").strip() or 5000)
    API_CORS_ORIGINS: list[str] = config.get_list("API_CORS_ORIGINS", ["*"])

    # Observability
    LOGFIRE_ENABLE: bool = config.get_bool("LOGFIRE_ENABLE")
    LOGFIRE_TOKEN: str | None = (config.get("LOGFIRE_TOKEN") or "").strip() or None


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
