"""HTTP exceptions raised by the API routes.

Every error leaves the API as ``{"error": {"code", "message", "details"}}``;
routes translate engine and storage errors into one of these.
"""

from typing import Any

from fastapi import HTTPException


class AppException(HTTPException):
    """Base application exception with structured error response."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.error_details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "error": {
                    "code": code,
                    "message": message,
                    "details": self.error_details,
                }
            },
        )


class TaskNotFoundHTTPError(AppException):
    """Unknown analysis task ID."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            code="TASK_NOT_FOUND",
            message=f"Analysis task {task_id} not found",
            status_code=404,
            details={"task_id": task_id},
        )


class ValidationError(AppException):
    """Request rejected before analysis started."""

    def __init__(self, message: str = "Invalid request data") -> None:
        super().__init__(code="VALIDATION_ERROR", message=message, status_code=422)


class StorageError(AppException):
    """Result or task storage failed.

    Retryable failures (timeouts, dropped connections) answer 503 so
    clients can try again; anything else is a 500.
    """

    def __init__(self, message: str, code: str, is_retryable: bool = False) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=503 if is_retryable else 500,
            details={"retryable": is_retryable},
        )
