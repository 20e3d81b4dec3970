from __future__ import annotations

from typing import Dict, List, Optional, Sequence
from uuid import UUID

from src.clinic.domain.models.availability import (
    AvailabilityConflict,
    AvailabilitySlot,
    ClinicRef,
    ConflictResult,
    CrossClinicConflict,
    OverlappingTime,
)
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry


def to_minutes(time: str) -> int:
    """Convert an "HH:MM" wall-clock string to minutes since midnight."""

    hours, minutes = time.split(":")
    return int(hours) * 60 + int(minutes)


def do_times_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    """Return True when [start1, end1) and [start2, end2) intersect.

    Touching endpoints do not overlap. Ranges are not checked for
    start < end here; request validation rejects such windows earlier.
    """

    return to_minutes(start1) < to_minutes(end2) and to_minutes(start2) < to_minutes(end1)


def _later(a: str, b: str) -> str:
    return a if to_minutes(a) >= to_minutes(b) else b


def _earlier(a: str, b: str) -> str:
    return a if to_minutes(a) <= to_minutes(b) else b


class AvailabilityConflictDetector:
    """Finds cross-clinic overlaps in a doctor's weekly availability.

    Both operations only read from the repositories; deciding whether a
    conflict blocks a write is up to the caller.
    """

    def __init__(self, repositories: Optional[RepositoryRegistry] = None) -> None:
        self._repositories = repositories

    @property
    def _repos(self) -> RepositoryRegistry:
        return self._repositories or get_repositories()

    def _clinic_names(self, clinic_ids: Sequence[UUID]) -> Dict[UUID, Optional[str]]:
        names: Dict[UUID, Optional[str]] = {}
        for clinic_id in clinic_ids:
            if clinic_id in names:
                continue
            clinic = self._repos.clinics.get(clinic_id)
            names[clinic_id] = clinic.name if clinic else None
        return names

    def check_availability_conflicts(
        self,
        doctor_id: UUID,
        current_clinic_id: UUID,
        proposed: Sequence[AvailabilitySlot],
    ) -> ConflictResult:
        existing = self._repos.availability.list_for_doctor(doctor_id, exclude_clinic_id=current_clinic_id)
        names = self._clinic_names([w.clinic_id for w in existing])

        conflicts: List[AvailabilityConflict] = []
        for slot in proposed:
            for window in existing:
                if slot.day_of_week != window.day_of_week:
                    continue
                if do_times_overlap(slot.start_time, slot.end_time, window.start_time, window.end_time):
                    conflicts.append(
                        AvailabilityConflict(
                            day_of_week=window.day_of_week,
                            start_time=window.start_time,
                            end_time=window.end_time,
                            clinic_id=window.clinic_id,
                            clinic_name=names.get(window.clinic_id),
                        )
                    )

        return ConflictResult(has_conflict=len(conflicts) > 0, conflicts=conflicts)

    def get_all_availability_conflicts(self, doctor_id: UUID) -> List[CrossClinicConflict]:
        windows = self._repos.availability.list_for_doctor(doctor_id)
        names = self._clinic_names([w.clinic_id for w in windows])

        conflicts: List[CrossClinicConflict] = []
        for i, first in enumerate(windows):
            for second in windows[i + 1:]:
                if first.clinic_id == second.clinic_id or first.day_of_week != second.day_of_week:
                    continue
                if not do_times_overlap(first.start_time, first.end_time, second.start_time, second.end_time):
                    continue
                conflicts.append(
                    CrossClinicConflict(
                        clinic1=ClinicRef(id=first.clinic_id, name=names.get(first.clinic_id)),
                        clinic2=ClinicRef(id=second.clinic_id, name=names.get(second.clinic_id)),
                        day_of_week=first.day_of_week,
                        overlapping_time=OverlappingTime(
                            start=_later(first.start_time, second.start_time),
                            end=_earlier(first.end_time, second.end_time),
                        ),
                    )
                )

        return conflicts


conflict_detector = AvailabilityConflictDetector()
