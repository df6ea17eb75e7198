from .client import ApiResponse, BackendClient, maybe_await
from .logstream import LogStream, LogStreamError, open_log_stream

__all__ = [
    "ApiResponse",
    "BackendClient",
    "maybe_await",
    "LogStream",
    "LogStreamError",
    "open_log_stream",
]
