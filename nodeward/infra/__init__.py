"""Internal machinery: HTTP, retry, subprocesses, background tasks."""

from .http import BearerAuth, HttpClient, HttpError
from .process import ProcessResult, ProcessRunner, run_streaming
from .retry import on_status_code, retry
from .tasks import TaskSupervisor

__all__ = [
    "BearerAuth",
    "HttpClient",
    "HttpError",
    "ProcessResult",
    "ProcessRunner",
    "TaskSupervisor",
    "on_status_code",
    "retry",
    "run_streaming",
]
