"""Application error type raised by routers and translated by app_error_handler."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    UNPROCESSABLE_ENTITY = 422
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


class AppErrorCode(str, Enum):
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_PARAMS = "E_INVALID_PARAMS"

    # Stream lifecycle
    E_MISSING_PARAMETERS = "E_MISSING_PARAMETERS"
    E_INVALID_DESTINATION = "E_INVALID_DESTINATION"
    E_PROCESS_SPAWN_FAILED = "E_PROCESS_SPAWN_FAILED"
    E_READINESS_TIMEOUT = "E_READINESS_TIMEOUT"
    E_PROCESS_EXITED_EARLY = "E_PROCESS_EXITED_EARLY"
    E_STREAM_BUSY = "E_STREAM_BUSY"
    E_STREAM_CANCELLED = "E_STREAM_CANCELLED"
    E_STOP_FAILED = "E_STOP_FAILED"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Error carrying an API error code, message and HTTP status.

    The call site is captured at construction so the handler can log where
    the error was raised rather than where it was caught.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ):
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        caller_frame = inspect.stack()[1]
        module = inspect.getmodule(caller_frame.frame)
        module_name = (
            module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
        )
        self.caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    def __repr__(self) -> str:
        return f"AppError({self.errcode!r}, {self.errmesg!r}, status_code={self.status_code})"
