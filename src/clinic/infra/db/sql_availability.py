from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, select

from src.clinic.domain.models.availability import AvailabilitySlot, AvailabilityWindow
from src.clinic.infra.db.models import AvailabilityWindowORM
from src.clinic.infra.db.repositories import AvailabilityRepository
from src.clinic.infra.db.session import SessionFactory


class SqlAvailabilityRepository(AvailabilityRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def list_for_doctor(
        self,
        doctor_id: UUID,
        *,
        clinic_id: Optional[UUID] = None,
        exclude_clinic_id: Optional[UUID] = None,
    ) -> List[AvailabilityWindow]:
        """Load a doctor's windows, optionally scoped to or excluding one clinic."""

        session = self._session_factory()
        try:
            query = select(AvailabilityWindowORM).where(AvailabilityWindowORM.doctor_id == doctor_id)
            if clinic_id is not None:
                query = query.where(AvailabilityWindowORM.clinic_id == clinic_id)
            if exclude_clinic_id is not None:
                query = query.where(AvailabilityWindowORM.clinic_id != exclude_clinic_id)
            query = query.order_by(AvailabilityWindowORM.day_of_week, AvailabilityWindowORM.start_time)
            return [orm.to_domain() for orm in session.scalars(query)]
        finally:
            session.close()

    def replace_for_doctor(
        self,
        doctor_id: UUID,
        clinic_id: UUID,
        slots: Sequence[AvailabilitySlot],
    ) -> List[AvailabilityWindow]:
        """Delete and re-insert the doctor's windows at one clinic in a single commit."""

        session = self._session_factory()
        try:
            session.execute(
                delete(AvailabilityWindowORM).where(
                    AvailabilityWindowORM.doctor_id == doctor_id,
                    AvailabilityWindowORM.clinic_id == clinic_id,
                )
            )
            session.add_all(
                AvailabilityWindowORM(
                    id=uuid4(),
                    doctor_id=doctor_id,
                    clinic_id=clinic_id,
                    day_of_week=slot.day_of_week,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                )
                for slot in slots
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        return self.list_for_doctor(doctor_id, clinic_id=clinic_id)
