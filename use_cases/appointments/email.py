"""
Appointment status emails.

Renders the clinic's status-update email and hands it to the SMTP relay.
"""

import html
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from core.domain import ValidationError, Validator, require_fields, require_text

logger = logging.getLogger(__name__)

DECLINED_STATUS = "Declined"


class AppointmentDetails(BaseModel):
    """Appointment fields quoted in the email."""
    date: str
    time: str
    service: str
    reason: Optional[str] = None


class EmailDeliveryError(RuntimeError):
    """Raised when the relay rejects or cannot deliver a message."""


def build_appointment_email(
    patient_name: str,
    status: str,
    details: AppointmentDetails,
    clinic_name: str,
) -> Tuple[str, str]:
    """
    Build the subject and HTML body of a status email.

    The reason is only included for declined appointments.

    Returns:
        (subject, html_body)
    """
    subject = f"Appointment {status}"
    body = f"""
            <p>Dear {html.escape(patient_name)},</p>
            <p>Your appointment has been <strong>{html.escape(status)}</strong>.</p>
            <p><strong>Details:</strong></p>
            <ul>
                <li><strong>Date:</strong> {html.escape(details.date)}</li>
                <li><strong>Time:</strong> {html.escape(details.time)}</li>
                <li><strong>Service:</strong> {html.escape(details.service)}</li>
            </ul>
        """

    if status == DECLINED_STATUS and details.reason:
        body += f"""
                <p><strong>Reason:</strong> {html.escape(details.reason)}</p>
            """

    body += f"""
            <p>Best regards,</p>
            <p>{html.escape(clinic_name)}</p>
        """
    return subject, body


class AppointmentMailer:
    """Sends appointment status emails through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender_address: str,
        clinic_name: str,
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender_address = sender_address
        self.clinic_name = clinic_name
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "AppointmentMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender_address=settings.mail_from_address or settings.smtp_username,
            clinic_name=settings.clinic_name,
            use_tls=settings.smtp_use_tls,
        )

    def send_appointment_notification(
        self,
        patient_email: str,
        patient_name: str,
        appointment_status: str,
        appointment_details: AppointmentDetails,
    ) -> None:
        """
        Email a patient about an appointment status change.

        Blocking; call from a worker thread in async code.

        Raises:
            EmailDeliveryError: If the message cannot be built or the relay
                connection, login or send fails
        """
        logger.info(
            f"Sending appointment email to {patient_email} "
            f"(status={appointment_status}, date={appointment_details.date}, time={appointment_details.time})"
        )
        try:
            subject, body = build_appointment_email(
                patient_name, appointment_status, appointment_details, self.clinic_name
            )

            message = EmailMessage()
            message["From"] = formataddr((self.clinic_name, self.sender_address))
            message["To"] = patient_email
            message["Subject"] = subject
            message.set_content(f"Your appointment has been {appointment_status}.")
            message.add_alternative(body, subtype="html")

            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)

                # Verify the relay accepts commands before handing over the message
                code, _ = smtp.noop()
                if code != 250:
                    raise smtplib.SMTPResponseException(code, b"SMTP relay verification failed")
                logger.info("SMTP connection verified successfully")

                smtp.send_message(message)
        except (smtplib.SMTPException, OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Error in send_appointment_notification: {e}", exc_info=True)
            raise EmailDeliveryError(f"Failed to send email: {e}") from e

        logger.info(f"Email sent successfully to {patient_email}")


# =============================================================================
# REQUEST VALIDATION
# =============================================================================

REQUIRED_EMAIL_FIELDS = ["patientEmail", "patientName", "status", "appointmentDetails"]
REQUIRED_DETAIL_FIELDS = ["date", "time", "service"]
OPTIONAL_DETAIL_FIELDS = ["reason"]
# Values that reach mail headers or the template as plain text
TEXT_EMAIL_FIELDS = ["patientEmail", "patientName", "status"]


class StatusEmailRequestValidator(Validator):
    """Checks a send-email request carries every field the template needs as plain text."""

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        errors = require_fields(data, REQUIRED_EMAIL_FIELDS)
        if errors or not isinstance(data, dict):
            return errors

        errors = require_text(data, TEXT_EMAIL_FIELDS)
        details = data["appointmentDetails"]
        prefix = "appointmentDetails."
        detail_errors = require_fields(details, REQUIRED_DETAIL_FIELDS, prefix=prefix)
        if not detail_errors:
            detail_errors = require_text(details, REQUIRED_DETAIL_FIELDS, prefix=prefix)
            detail_errors += require_text(details, OPTIONAL_DETAIL_FIELDS, prefix=prefix, single_line=False)
        return errors + detail_errors
