from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.clinic.domain.models.availability import (
    AvailabilitySlot,
    AvailabilityWindow,
    ConflictResult,
    CrossClinicConflict,
)
from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.user import User
from src.clinic.security import get_acting_identity, get_api_key, get_current_user
from src.clinic.services.availability.service import availability_service
from src.clinic.tenancy import clinic_dependency


router = APIRouter(
    prefix="/doctors/{doctor_id}/availability",
    tags=["availability"],
    dependencies=[Depends(get_api_key), Depends(clinic_dependency)],
)


class AvailabilityCheckRequest(BaseModel):
    windows: List[AvailabilitySlot] = Field(default_factory=list)


class AvailabilityUpdateRequest(AvailabilityCheckRequest):
    # Persist even when the windows overlap availability at other clinics.
    ignore_conflicts: bool = False


@router.get("/", response_model=List[AvailabilityWindow])
async def get_availability(
    doctor_id: UUID,
    clinic_id: Optional[UUID] = None,
    current_user: User = Depends(get_current_user),
) -> List[AvailabilityWindow]:
    return availability_service.get_doctor_availability(doctor_id, clinic_id)


@router.get("/conflicts", response_model=List[CrossClinicConflict])
async def get_all_conflicts(
    doctor_id: UUID,
    current_user: User = Depends(get_current_user),
) -> List[CrossClinicConflict]:
    """Every overlap between the doctor's windows at different clinics."""

    return availability_service.detector.get_all_availability_conflicts(doctor_id)


@router.post("/{clinic_id}/check", response_model=ConflictResult)
async def check_availability(
    doctor_id: UUID,
    clinic_id: UUID,
    payload: AvailabilityCheckRequest,
    current_user: User = Depends(get_current_user),
) -> ConflictResult:
    """Report overlaps of proposed windows with the doctor's other clinics.

    Nothing is written; the windows at ``clinic_id`` itself are ignored.
    """

    return availability_service.check_conflicts(doctor_id, clinic_id, payload.windows)


@router.put("/{clinic_id}", response_model=List[AvailabilityWindow])
async def replace_availability(
    doctor_id: UUID,
    clinic_id: UUID,
    payload: AvailabilityUpdateRequest,
    identity: ActingIdentity = Depends(get_acting_identity),
) -> List[AvailabilityWindow]:
    return availability_service.replace_doctor_availability(
        identity,
        doctor_id,
        clinic_id,
        payload.windows,
        ignore_conflicts=payload.ignore_conflicts,
    )
