from __future__ import annotations

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from src.clinic.domain.models.availability import AvailabilitySlot, AvailabilityWindow, ConflictResult
from src.clinic.domain.models.identity import ActingIdentity
from src.clinic.domain.models.permission import Permissions
from src.clinic.errors import ConflictError, NotFoundError, PermissionDeniedError
from src.clinic.infra.db.registry import get_repositories
from src.clinic.infra.db.repositories import RepositoryRegistry
from src.clinic.services.audit.service import audit_service
from src.clinic.services.authz.permissions import ensure_permission
from src.clinic.services.availability.conflicts import AvailabilityConflictDetector, conflict_detector

logger = logging.getLogger("availability")


class AvailabilityService:
    """Reads and replaces a doctor's weekly availability at a clinic.

    Conflict checking and the write are separate steps with no lock between
    them, so two concurrent updates for the same doctor can both pass the
    check.
    """

    def __init__(
        self,
        repositories: Optional[RepositoryRegistry] = None,
        detector: Optional[AvailabilityConflictDetector] = None,
    ) -> None:
        self._repositories = repositories
        self._detector = detector

    @property
    def _repos(self) -> RepositoryRegistry:
        return self._repositories or get_repositories()

    @property
    def detector(self) -> AvailabilityConflictDetector:
        if self._detector is not None:
            return self._detector
        if self._repositories is not None:
            return AvailabilityConflictDetector(self._repositories)
        return conflict_detector

    def get_doctor_availability(self, doctor_id: UUID, clinic_id: Optional[UUID] = None) -> List[AvailabilityWindow]:
        return self._repos.availability.list_for_doctor(doctor_id, clinic_id=clinic_id)

    def _ensure_can_edit(self, identity: ActingIdentity, doctor_id: UUID, clinic_id: UUID) -> None:
        if identity.user.id == doctor_id:
            return
        if identity.clinic_id != clinic_id:
            audit_service.log_event(
                action="replace_availability",
                resource_type="availability",
                resource_id=str(doctor_id),
                subject=str(identity.user.id),
                clinic_id=str(clinic_id),
                outcome="denied",
            )
            raise PermissionDeniedError("Another doctor's availability can only be edited from that clinic")
        ensure_permission(
            identity,
            Permissions.TEAM_MANAGE,
            action="replace_availability",
            detail="You don't have permission to edit another doctor's availability",
        )

    def check_conflicts(
        self,
        doctor_id: UUID,
        clinic_id: UUID,
        slots: Sequence[AvailabilitySlot],
    ) -> ConflictResult:
        return self.detector.check_availability_conflicts(doctor_id, clinic_id, slots)

    def replace_doctor_availability(
        self,
        identity: ActingIdentity,
        doctor_id: UUID,
        clinic_id: UUID,
        slots: Sequence[AvailabilitySlot],
        *,
        ignore_conflicts: bool = False,
    ) -> List[AvailabilityWindow]:
        """Replace every window ``doctor_id`` has at ``clinic_id`` with ``slots``.

        Raises ConflictError carrying the conflict report when the slots
        overlap the doctor's windows at other clinics, unless
        ``ignore_conflicts`` is set.
        """

        if self._repos.clinics.get(clinic_id) is None:
            raise NotFoundError("Clinic not found")

        self._ensure_can_edit(identity, doctor_id, clinic_id)

        if self._repos.memberships.get_for_user(doctor_id, clinic_id) is None:
            raise PermissionDeniedError("Doctor is not a member of this clinic")

        result = self.check_conflicts(doctor_id, clinic_id, slots)
        if result.has_conflict and not ignore_conflicts:
            logger.info(
                "Rejected availability for doctor %s at clinic %s: %d conflicts",
                doctor_id,
                clinic_id,
                len(result.conflicts),
            )
            raise ConflictError(
                "Proposed availability overlaps availability at another clinic",
                payload=result.model_dump(mode="json"),
            )

        windows = self._repos.availability.replace_for_doctor(doctor_id, clinic_id, slots)

        audit_service.log_event(
            action="replace_availability",
            resource_type="availability",
            resource_id=str(doctor_id),
            subject=str(identity.user.id),
            clinic_id=str(clinic_id),
            extra={
                "window_count": len(windows),
                "conflict_count": len(result.conflicts),
                "ignored_conflicts": result.has_conflict,
            },
        )
        return windows


availability_service = AvailabilityService()
