"""
Error classification for the agent.

Every failure that crosses a collaborator boundary is wrapped in an
``AppError`` tagged with the step that produced it, so that logs and the
user-facing error annotation share one serializable shape.
"""

import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorStep(str, Enum):
    """Pipeline step a failure is attributed to"""
    MILVUS_CONNECTION = "milvus_connection"
    MILVUS_SEARCH = "milvus_search"
    VECTOR_SEARCH = "vector_search"
    EMBEDDING_GENERATION = "embedding_generation"
    LLM_CALL = "llm_call"
    TOOL_EXECUTION = "tool_execution"
    MESSAGE_PARSING = "message_parsing"
    API_REQUEST = "api_request"


class AppError(Exception):
    """Failure tagged with its step, context and creation time"""

    def __init__(
        self,
        message: str,
        step: ErrorStep,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.step = ErrorStep(step)
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Structured record used for logging and error annotations"""

        stack = None
        if self.__traceback__ is not None:
            stack = "".join(traceback.format_tb(self.__traceback__))

        return {
            "name": type(self).__name__,
            "message": self.message,
            "step": self.step.value,
            "context": {key: _safe_value(value) for key, value in self.context.items()},
            "timestamp": self.timestamp,
            "stack": stack,
        }

    def __repr__(self) -> str:
        return f"AppError(step={self.step.value!r}, message={self.message!r})"


def classify_error(
    error: BaseException,
    step: ErrorStep,
    context: Optional[Dict[str, Any]] = None
) -> AppError:
    """Wrap an arbitrary exception; an AppError keeps its own step"""

    if isinstance(error, AppError):
        return error

    message = str(error) or type(error).__name__
    app_error = AppError(message, step, {"error_type": type(error).__name__, **(context or {})})
    app_error.__cause__ = error
    app_error.__traceback__ = error.__traceback__
    return app_error


def _safe_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_safe_value(v) for v in value]
    return repr(value)
