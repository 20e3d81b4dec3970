from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.clinic.tenancy import get_active_clinic_id

logger = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """Structured representation of an audit event.

    Payloads stay minimal: ids, action names and outcome flags, never
    patient data or raw credentials.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    subject: Optional[str] = None
    clinic_id: Optional[str] = None
    outcome: str = "permitted"
    extra: Optional[Dict[str, Any]] = None


class AuditService:
    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        subject: Optional[str] = None,
        clinic_id: Optional[str] = None,
        outcome: str = "permitted",
        extra: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Log a structured audit event.

        - `action`: high-level verb, e.g., "change_role", "delete_role".
        - `resource_type`: coarse type, e.g., "membership", "role".
        - `resource_id`: stable identifier (UUID string) when available.
        - `subject`: acting user id.
        - `clinic_id`: defaults to the active clinic of the current request.
        - `outcome`: "permitted" or "denied".
        - `extra`: optional small dict of metadata (counts, flags).
        """

        if clinic_id is None:
            active_clinic_id = get_active_clinic_id()
            clinic_id = str(active_clinic_id) if active_clinic_id else None

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            subject=subject,
            clinic_id=clinic_id,
            outcome=outcome,
            extra=extra,
        )

        try:
            logger.info(json.dumps(asdict(event)))
        except TypeError:
            # Fallback: log a simpler representation if something in extra is
            # not JSON serializable.
            safe_event = asdict(event)
            safe_event["extra"] = None
            logger.info(json.dumps(safe_event))

        return event


audit_service = AuditService()
