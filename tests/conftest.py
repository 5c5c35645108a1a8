import os
import smtplib

import pytest

# Must be set before config.settings is created on first import of main
os.environ["DOCUMENT_STORE"] = "memory"
os.environ["SUBSCRIPTION_POLL_INTERVAL"] = "0.05"
os.environ["SMTP_USERNAME"] = ""

from core.memory_store import MemoryDocumentStore
from use_cases.appointments import email as email_module
from use_cases.messaging import ChatService
from use_cases.messaging.types import ChatDrawerContext, ChatSenderInfo
from use_cases.notifications import NotificationService


@pytest.fixture
def store():
    return MemoryDocumentStore(poll_interval=0.05, tick=0.005)


@pytest.fixture
def notifications(store):
    return NotificationService(store)


@pytest.fixture
def chat(store, notifications):
    return ChatService(store, notifications)


@pytest.fixture
def dentist():
    return ChatSenderInfo(uid="staff-1", name="Dr. Cruz", email="cruz@clinic.test", role="userDentist")


@pytest.fixture
def secretary():
    return ChatSenderInfo(uid="admin-1", name="Front Desk", role="userSecretary")


@pytest.fixture
def appointment_context():
    return ChatDrawerContext(
        appointment_id="apt-1",
        patient_id="pat-1",
        patient_name="Ana Reyes",
        patient_email="ana@example.com",
        appointment_date="2026-10-20",
        appointment_time="09:30",
        appointment_service="Cleaning",
        source="appointment-card",
    )


class FakeSMTP:
    """Stands in for smtplib.SMTP; records what would have been sent."""

    instances = []
    fail_on = None

    def __init__(self, host, port, timeout=None):
        if FakeSMTP.fail_on == "connect":
            raise ConnectionRefusedError("connection refused")
        self.host = host
        self.port = port
        self.started_tls = False
        self.credentials = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        if FakeSMTP.fail_on == "login":
            raise smtplib.SMTPAuthenticationError(535, b"Username and Password not accepted")
        self.credentials = (username, password)

    def noop(self):
        return 250, b"OK"

    def send_message(self, message):
        if FakeSMTP.fail_on == "send":
            raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"No such user")})
        self.sent.append(message)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_on = None
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP
