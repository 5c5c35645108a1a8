import asyncio

import pytest
from fastapi.testclient import TestClient

import main

DENTIST = {"uid": "staff-1", "name": "Dr. Cruz", "role": "userDentist"}
PATIENT = {"uid": "pat-1", "name": "Ana Reyes", "role": "userPatient"}
APPOINTMENT_CONTEXT = {
    "appointmentId": "apt-1",
    "patientId": "pat-1",
    "patientName": "Ana Reyes",
    "appointmentDate": "2026-10-20",
    "appointmentTime": "09:30",
    "appointmentService": "Cleaning",
}
EMAIL_REQUEST = {
    "patientEmail": "ana@example.com",
    "patientName": "Ana Reyes",
    "status": "Declined",
    "appointmentDetails": {"date": "2026-10-20", "time": "09:30", "service": "Cleaning", "reason": "Fully booked"},
}


@pytest.fixture
def client():
    main.drawer_states.clear_all()
    with TestClient(main.app) as test_client:
        yield test_client


def seed(collection, doc_id, data):
    asyncio.run(main.data_store.set(collection, doc_id, data))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["document_store"] == "memory"


# =============================================================================
# APPOINTMENT EMAIL
# =============================================================================

def test_send_email_success(client, fake_smtp):
    response = client.post("/appointment/sendEmail", json=EMAIL_REQUEST)

    assert response.status_code == 200
    assert response.json() == {"success": True}
    (message,) = fake_smtp.instances[0].sent
    assert message["Subject"] == "Appointment Declined"


@pytest.mark.parametrize("field", ["patientEmail", "patientName", "status", "appointmentDetails"])
def test_send_email_missing_field(client, fake_smtp, field):
    body = {key: value for key, value in EMAIL_REQUEST.items() if key != field}

    response = client.post("/appointment/sendEmail", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert field in response.json()["message"]
    assert fake_smtp.instances == []


def test_send_email_missing_detail_field(client, fake_smtp):
    body = dict(EMAIL_REQUEST, appointmentDetails={"date": "2026-10-20", "time": "09:30"})

    response = client.post("/appointment/sendEmail", json=body)

    assert response.status_code == 400
    assert "appointmentDetails.service" in response.json()["message"]


def test_send_email_invalid_json(client):
    response = client.post(
        "/appointment/sendEmail", content="not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_send_email_relay_failure(client, fake_smtp):
    fake_smtp.fail_on = "connect"

    response = client.post("/appointment/sendEmail", json=EMAIL_REQUEST)

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert response.json()["message"].startswith("Failed to send email")


@pytest.mark.parametrize("updates,detail_updates,field", [
    ({"patientName": 42}, {}, "patientName"),
    ({"patientEmail": ["ana@example.com"]}, {}, "patientEmail"),
    ({"patientEmail": "ana@example.com\r\nBcc: x@y.z"}, {}, "patientEmail"),
    ({"status": "Approved\nX-Priority: 1"}, {}, "status"),
    ({"appointmentDetails": "tomorrow"}, None, "appointmentDetails"),
    ({}, {"date": 20261020}, "appointmentDetails.date"),
    ({}, {"time": "09:30\r\n"}, "appointmentDetails.time"),
    ({}, {"reason": {"text": "Fully booked"}}, "appointmentDetails.reason"),
])
def test_send_email_malformed_field(client, fake_smtp, updates, detail_updates, field):
    body = dict(EMAIL_REQUEST, **updates)
    if detail_updates is not None:
        body["appointmentDetails"] = dict(EMAIL_REQUEST["appointmentDetails"], **detail_updates)

    response = client.post("/appointment/sendEmail", json=body)

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["success"] is False
    assert response.json()["message"].startswith("Invalid fields")
    assert field in response.json()["message"]
    assert fake_smtp.instances == []


# =============================================================================
# CHAT
# =============================================================================

def test_appointment_chat_flow(client):
    opened = client.post("/api/chat/threads", json={"context": APPOINTMENT_CONTEXT, "sender": DENTIST})
    assert opened.status_code == 200
    assert opened.json()["id"] == "apt-1_pat-1"
    assert opened.json()["chatType"] == "appointment"
    assert opened.json()["participants"] == ["staff-1", "pat-1"]

    sent = client.post(
        "/api/chat/threads/apt-1_pat-1/messages",
        json={"text": "See you Monday", "sender": DENTIST, "context": APPOINTMENT_CONTEXT},
    )
    assert sent.status_code == 200
    assert sent.json()["success"] is True
    assert sent.json()["messageId"]

    (message,) = client.get("/api/chat/threads/apt-1_pat-1/messages").json()["messages"]
    assert message["text"] == message["message"] == "See you Monday"
    assert message["sentAt"] == message["timestamp"]
    assert message["senderId"] == "staff-1"

    (notification,) = client.get("/api/notifications/pat-1").json()["notifications"]
    assert notification["threadId"] == "apt-1_pat-1"

    read = client.post("/api/chat/threads/apt-1_pat-1/read", json={"userId": "pat-1"})
    assert read.json() == {"success": True}

    reopened = client.post("/api/chat/threads", json={"context": APPOINTMENT_CONTEXT, "sender": PATIENT})
    assert reopened.json()["unreadCount"] == {"staff-1": 0, "pat-1": 0}
    assert reopened.json()["lastMessage"] == "See you Monday"


def test_blank_message_is_accepted_and_ignored(client):
    response = client.post(
        "/api/chat/threads/apt-1_pat-1/messages",
        json={"text": "  ", "sender": DENTIST, "context": APPOINTMENT_CONTEXT},
    )

    assert response.status_code == 200
    assert response.json()["messageId"] is None


def test_open_thread_without_identifiers_is_rejected(client):
    response = client.post("/api/chat/threads", json={"context": {"patientId": "pat-1"}, "sender": DENTIST})

    assert response.status_code == 400
    assert "appointmentId" in response.json()["error"]


def test_mark_unknown_thread_read_is_not_found(client):
    response = client.post("/api/chat/threads/nope/read", json={"userId": "pat-1"})

    assert response.status_code == 404


def test_member_chat_flow(client):
    secretary = {"uid": "admin-1", "name": "Front Desk", "role": "userSecretary"}

    sent = client.post(
        "/api/chat/threads/mem-1/messages",
        json={"text": "Your results are ready", "chatType": "member", "sender": secretary,
              "context": {"patientName": "Ben Santos"}},
    )
    assert sent.status_code == 200
    assert sent.json()["thread"]["chatType"] == "member"

    (summary,) = client.get("/api/chat/member-chats").json()["chats"]
    assert summary["memberId"] == "mem-1"
    assert summary["memberName"] == "Ben Santos"
    assert summary["unreadCount"] == 1
    assert summary["lastMessage"] == "Your results are ready"

    (message,) = client.get("/api/chat/threads/mem-1/messages", params={"chatType": "member"}).json()["messages"]
    assert message["senderRole"] == "admin"
    assert message["read"] is False

    client.post("/api/chat/threads/mem-1/read", json={"userId": "mem-1", "chatType": "member"})
    (summary,) = client.get("/api/chat/member-chats").json()["chats"]
    assert summary["unreadCount"] == 0


def test_chat_drawer_endpoints(client):
    assert client.get("/api/chat/drawer/staff-1").json()["open"] is False

    opened = client.post("/api/chat/drawer/staff-1", json={"appointmentId": "apt-1", "patientId": "pat-1"})
    assert opened.json()["open"] is True
    assert opened.json()["context"] == {"appointmentId": "apt-1", "patientId": "pat-1"}

    patched = client.patch("/api/chat/drawer/staff-1", json={"patientName": "Ana Reyes"})
    assert patched.json()["context"]["patientName"] == "Ana Reyes"
    assert patched.json()["context"]["appointmentId"] == "apt-1"

    closed = client.post("/api/chat/drawer/staff-1/close")
    assert closed.json() == {"open": False, "context": None, "updatedAt": closed.json()["updatedAt"]}


# =============================================================================
# NOTIFICATIONS
# =============================================================================

def test_notification_read_endpoints(client):
    seed("notifications", "n1", {"userId": "pat-1", "read": False, "createdAt": "2026-10-01T00:00:00.000000Z"})
    seed("notifications", "n2", {"userId": "pat-1", "read": False, "createdAt": "2026-10-02T00:00:00.000000Z"})

    assert client.post("/api/notifications/n1/read").json() == {"success": True}
    assert client.post("/api/notifications/pat-1/read-all").json() == {"success": True, "updated": 1}

    notifications = client.get("/api/notifications/pat-1").json()["notifications"]
    assert [doc["id"] for doc in notifications] == ["n2", "n1"]
    assert all(doc["read"] for doc in notifications)


def test_mark_unknown_notification_read_is_not_found(client):
    assert client.post("/api/notifications/nope/read").status_code == 404


# =============================================================================
# APPOINTMENTS
# =============================================================================

@pytest.fixture
def appointment(client):
    seed("appointments", "apt-1", {
        "date": "2026-10-20", "time": "09:30", "status": "Pending", "patientId": "pat-1", "service": "Cleaning",
    })


def test_get_appointment(client, appointment):
    response = client.get("/api/appointments/apt-1")

    assert response.status_code == 200
    assert response.json()["patientId"] == "pat-1"
    assert client.get("/api/appointments/nope").status_code == 404


def test_status_update_sends_email(client, appointment, fake_smtp):
    response = client.patch("/api/appointments/apt-1/status", json={
        "status": "Declined",
        "reason": "Fully booked",
        "notify": {"patientEmail": "ana@example.com", "patientName": "Ana Reyes"},
    })

    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "Declined"
    assert response.json()["appointment"]["reason"] == "Fully booked"
    assert response.json()["emailSent"] is True
    (message,) = fake_smtp.instances[0].sent
    assert message["To"] == "ana@example.com"


def test_status_update_survives_email_failure(client, appointment, fake_smtp):
    fake_smtp.fail_on = "send"

    response = client.patch("/api/appointments/apt-1/status", json={
        "status": "Approved",
        "notify": {"patientEmail": "ana@example.com", "patientName": "Ana Reyes"},
    })

    assert response.status_code == 200
    assert response.json()["emailSent"] is False
    assert "Failed to send email" in response.json()["emailError"]
    assert client.get("/api/appointments/apt-1").json()["status"] == "Approved"


def test_status_update_with_unsafe_recipient_reports_email_error(client, appointment, fake_smtp):
    response = client.patch("/api/appointments/apt-1/status", json={
        "status": "Approved",
        "notify": {"patientEmail": "ana@example.com\r\nBcc: x@y.z", "patientName": "Ana Reyes"},
    })

    assert response.status_code == 200
    assert response.json()["emailSent"] is False
    assert response.json()["emailError"].startswith("Failed to send email")
    assert fake_smtp.instances == []


def test_status_update_on_malformed_record_writes_nothing(client):
    seed("appointments", "apt-9", {"date": "2026-10-20", "time": "09:30", "status": "Pending", "service": "Cleaning"})

    response = client.patch("/api/appointments/apt-9/status", json={"status": "Approved"})

    assert response.status_code == 400
    assert asyncio.run(main.data_store.get("appointments", "apt-9"))["status"] == "Pending"
