"""
Appointments Use Case.

Appointment status changes and the status email sent to patients.
"""

from .email import (
    AppointmentDetails,
    AppointmentMailer,
    EmailDeliveryError,
    StatusEmailRequestValidator,
    build_appointment_email,
)
from .service import Appointment, AppointmentService

__all__ = [
    "Appointment",
    "AppointmentDetails",
    "AppointmentMailer",
    "AppointmentService",
    "EmailDeliveryError",
    "StatusEmailRequestValidator",
    "build_appointment_email",
]
