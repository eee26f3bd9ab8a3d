# api/errors.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from execution.errors import (
    PipelineError, ValidationError, NotFoundError, ExecutorError, InfrastructureError
)
from execution.models import Envelope


class ErrorCode(Enum):
    """Canonical error codes, used for logging and metrics labels"""
    VALIDATION_FAILED = "VALIDATION_FAILED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    DEPENDENCY_FAILED = "DEPENDENCY_FAILED"
    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class APIError(Exception):
    """Request-surface error; rendered as a failed envelope"""
    error_code: ErrorCode
    message: str
    status_code: int = 400
    details: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message

    def to_envelope(self) -> Envelope:
        return Envelope.fail(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return self.to_envelope().to_dict()


def classify(error: BaseException) -> ErrorCode:
    """Map pipeline exceptions onto error codes"""
    if isinstance(error, APIError):
        return error.error_code
    if isinstance(error, ValidationError):
        return ErrorCode.VALIDATION_FAILED
    if isinstance(error, NotFoundError):
        return ErrorCode.RESOURCE_NOT_FOUND
    if isinstance(error, ExecutorError):
        return ErrorCode.EXECUTION_FAILED
    if isinstance(error, InfrastructureError):
        return ErrorCode.DEPENDENCY_FAILED
    if isinstance(error, PipelineError):
        return ErrorCode.VALIDATION_FAILED
    return ErrorCode.INTERNAL_ERROR


def status_code_for(envelope: Envelope) -> int:
    return 200 if envelope.status else 400


def invalid_route_error(path: str) -> APIError:
    return APIError(
        error_code=ErrorCode.ROUTE_NOT_FOUND,
        message="Invalid route. Available routes: /producer, /consumer, /replay",
        status_code=400,
        details={"path": path}
    )


def invalid_body_error(reason: str) -> APIError:
    return APIError(
        error_code=ErrorCode.VALIDATION_FAILED,
        message=f"Invalid request body: {reason}",
        status_code=400
    )


def internal_error(message: str = "Internal server error") -> APIError:
    return APIError(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=message,
        status_code=500
    )
