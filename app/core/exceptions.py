"""
Domain Errors
HTTP-aware exceptions raised by services and dependencies
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class PharmacyError(HTTPException):
    """
    Base class for every error the API raises on purpose.

    ``error`` is a stable machine-readable code; ``detail`` is the human
    message. ``extra`` is merged into the JSON error body.
    """
    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "bad_request"

    def __init__(
        self,
        detail: str,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "detail": self.detail, **self.extra}


class ValidationError(PharmacyError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_error"


class NotFound(PharmacyError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class InsufficientStock(PharmacyError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "insufficient_stock"

    def __init__(self, available: int, requested: int, name: Optional[str] = None):
        subject = f" for {name}" if name else ""
        super().__init__(
            detail=f"Insufficient stock{subject}. Available: {available}, Requested: {requested}",
            extra={"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class OverReturn(PharmacyError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "over_return"

    def __init__(self, outstanding: int, requested: int):
        super().__init__(
            detail=f"Cannot return more than outstanding. Outstanding: {outstanding}, Requested: {requested}",
            extra={"outstanding": outstanding, "requested": requested},
        )
        self.outstanding = outstanding
        self.requested = requested


class Conflict(PharmacyError):
    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class Unauthorized(PharmacyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthorized"

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail=detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(PharmacyError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "forbidden"


class ServerError(PharmacyError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "server_error"

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail=detail)
