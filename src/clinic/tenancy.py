from __future__ import annotations

from contextvars import ContextVar
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status


# Context variable storing the active clinic for the in-flight request.
# Defaults to None: without a clinic context an identity resolves no
# permissions at all.
_active_clinic: ContextVar[Optional[UUID]] = ContextVar("active_clinic", default=None)


def get_active_clinic_id() -> Optional[UUID]:
    """Return the active clinic identifier, if any.

    In HTTP requests this is set by :func:`clinic_dependency`. In non-request
    contexts (e.g., direct service calls in tests) it can be set with
    :func:`set_active_clinic_id`.
    """

    return _active_clinic.get()


def set_active_clinic_id(clinic_id: Optional[UUID]) -> None:
    _active_clinic.set(clinic_id)


async def clinic_dependency(
    x_clinic_id: Optional[str] = Header(None, alias="X-Clinic-ID"),
) -> Optional[UUID]:
    """FastAPI dependency that establishes the clinic context for a request.

    A missing header leaves the request without a clinic context.
    """

    if not x_clinic_id:
        _active_clinic.set(None)
        return None

    try:
        clinic_id = UUID(x_clinic_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Clinic-ID must be a UUID",
        )

    _active_clinic.set(clinic_id)
    return clinic_id
