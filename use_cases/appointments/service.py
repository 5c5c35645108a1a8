"""
Appointment Service.

Reads appointment records and applies status changes. Sending the status
email is left to the caller so that a failed email never rolls back a
status change.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict

from core.data import SERVER_TIMESTAMP, DocumentStore
from shared.cosmos_config import APPOINTMENTS
from use_cases.messaging.types import CamelModel

logger = logging.getLogger(__name__)

CANCELLED = "Cancelled"


class Appointment(CamelModel):
    """An appointment record; unknown stored fields are kept."""
    model_config = ConfigDict(extra="allow")

    id: str
    date: str
    time: str
    status: str
    patient_id: str
    service: str
    completion_time: Optional[str] = None
    follow_up_from: Optional[str] = None
    created_at: Optional[str] = None
    reason: Optional[str] = None
    remarks: Optional[Any] = None
    sub_services: Optional[List[Any]] = None
    cancel_reason: Optional[str] = None
    cancellation_status: Optional[str] = None


class AppointmentService:
    """Appointment lookups and status transitions."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, appointment_id: str) -> Appointment:
        """Load an appointment. Raises KeyError if it does not exist."""
        document = await self.store.get(APPOINTMENTS, appointment_id)
        if document is None:
            raise KeyError(f"Appointment {appointment_id} not found")
        return Appointment.model_validate(document)

    async def update_status(
        self,
        appointment_id: str,
        status: str,
        reason: Optional[str] = None,
    ) -> Appointment:
        """
        Set an appointment's status.

        A declined appointment keeps its reason in "reason", a cancelled one
        in "cancelReason". A missing or malformed record is rejected before
        anything is written.
        """
        await self.get(appointment_id)

        updates: Dict[str, Any] = {"status": status, "updatedAt": SERVER_TIMESTAMP}
        if reason:
            if status == CANCELLED:
                updates["cancelReason"] = reason
            else:
                updates["reason"] = reason

        try:
            await self.store.update(APPOINTMENTS, appointment_id, updates)
        except KeyError:
            raise KeyError(f"Appointment {appointment_id} not found")
        except Exception as e:
            logger.error(f"Failed to update appointment {appointment_id}: {e}")
            raise

        logger.info(f"Appointment {appointment_id} status set to {status}")
        return await self.get(appointment_id)
