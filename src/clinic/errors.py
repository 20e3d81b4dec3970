from __future__ import annotations

from typing import Any, Optional

from fastapi import status


class ClinicError(Exception):
    """Base class for business-rule failures raised by the service layer.

    Each subclass carries the HTTP status the API layer should answer with,
    so services stay free of FastAPI types.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, payload: Optional[Any] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.payload = payload


class ValidationError(ClinicError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(ClinicError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ClinicError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ClinicError):
    status_code = status.HTTP_409_CONFLICT


class GoneError(ClinicError):
    status_code = status.HTTP_410_GONE
