from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

# 24-hour "HH:MM" wall-clock time in the clinic's local time.
TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class AvailabilitySlot(BaseModel):
    """A proposed weekly recurring time range (Sunday=0 .. Saturday=6)."""

    day_of_week: int = Field(ge=0, le=6)
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)

    @model_validator(mode="after")
    def _check_range(self) -> "AvailabilitySlot":
        # Zero-padded HH:MM strings order the same way as their minute values.
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be earlier than end_time")
        return self


class AvailabilityWindow(AvailabilitySlot):
    id: UUID
    doctor_id: UUID
    clinic_id: UUID


class AvailabilityConflict(BaseModel):
    """An existing window in another clinic that a proposed slot overlaps."""

    day_of_week: int
    start_time: str
    end_time: str
    clinic_id: UUID
    clinic_name: Optional[str] = None


class ConflictResult(BaseModel):
    has_conflict: bool
    conflicts: List[AvailabilityConflict] = Field(default_factory=list)


class ClinicRef(BaseModel):
    id: UUID
    name: Optional[str] = None


class OverlappingTime(BaseModel):
    start: str
    end: str


class CrossClinicConflict(BaseModel):
    clinic1: ClinicRef
    clinic2: ClinicRef
    day_of_week: int
    overlapping_time: OverlappingTime
