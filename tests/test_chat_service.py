import asyncio

import pytest

from use_cases.messaging import ChatDrawerContext, ChatSenderInfo, ChatThreadMetadata, ChatType
from use_cases.messaging.domain import ThreadResolutionError


@pytest.fixture
def patient():
    return ChatSenderInfo(uid="pat-1", name="Ana Reyes", role="userPatient")


@pytest.fixture
def member_context():
    return ChatDrawerContext(chat_type=ChatType.MEMBER, patient_id="mem-1", patient_name="Ben Santos")


# =============================================================================
# APPOINTMENT CHATS
# =============================================================================

async def test_ensure_thread_creates_appointment_thread(chat, store, dentist, appointment_context):
    thread = await chat.ensure_thread(appointment_context, dentist)

    assert thread.id == "apt-1_pat-1"
    assert thread.chat_type == ChatType.APPOINTMENT
    assert thread.participants == ["staff-1", "pat-1"]
    assert thread.participant_profiles["pat-1"].name == "Ana Reyes"
    assert thread.participant_profiles["staff-1"].role == "userDentist"
    assert thread.appointment_meta.date == "2026-10-20"
    assert thread.unread_count == {}
    assert thread.last_message == ""

    stored = await store.get("appointment_chats", "apt-1_pat-1")
    assert stored["createdAt"] and stored["updatedAt"]


async def test_ensure_thread_refreshes_existing_thread(chat, dentist, patient, appointment_context):
    await chat.ensure_thread(appointment_context, dentist)

    thread = await chat.ensure_thread(ChatDrawerContext(appointment_id="apt-1", patient_id="pat-1"), patient)

    assert thread.participants == ["staff-1", "pat-1"]
    assert set(thread.participant_profiles) == {"staff-1", "pat-1"}
    assert thread.participant_profiles["pat-1"].email == "ana@example.com"
    assert thread.appointment_meta.time == "09:30"


async def test_ensure_thread_without_appointment_fails(chat, dentist):
    with pytest.raises(ThreadResolutionError):
        await chat.ensure_thread(ChatDrawerContext(patient_id="pat-1"), dentist)


async def test_send_updates_thread_and_notifies_recipient(chat, store, notifications, dentist, appointment_context):
    thread = await chat.ensure_thread(appointment_context, dentist)

    message_id = await chat.send_message(thread, "  See you on Monday  ", dentist, appointment_context)

    stored = await store.get("appointment_chats", thread.id)
    assert stored["lastMessage"] == "See you on Monday"
    assert stored["lastSenderId"] == "staff-1"
    assert stored["lastMessageAt"]
    assert stored["unreadCount"] == {"staff-1": 0, "pat-1": 1}

    (message,) = await chat.list_messages(thread.id)
    assert message.id == message_id
    assert message.text == "See you on Monday"
    assert message.read_by == ["staff-1"]
    assert message.sender_role == "userDentist"

    (notification,) = await notifications.list_for_user("pat-1")
    assert notification["type"] == "chat"
    assert notification["read"] is False
    assert notification["threadId"] == "apt-1_pat-1"
    assert notification["appointmentId"] == "apt-1"
    assert notification["metadata"]["senderName"] == "Dr. Cruz"
    assert notification["metadata"]["appointmentDate"] == "2026-10-20"
    assert notification["metadata"]["patientName"] == "Ana Reyes"
    assert await notifications.list_for_user("staff-1") == []


async def test_patient_reply_increments_only_staff_counter(chat, store, dentist, patient, appointment_context):
    thread = await chat.ensure_thread(appointment_context, dentist)
    await chat.send_message(thread, "Please arrive early", dentist, appointment_context)

    patient_context = ChatDrawerContext(appointment_id="apt-1", patient_id="pat-1")
    thread = await chat.ensure_thread(patient_context, patient)
    await chat.send_message(thread, "Will do", patient, patient_context)

    stored = await store.get("appointment_chats", thread.id)
    assert stored["unreadCount"] == {"staff-1": 1, "pat-1": 0}
    assert stored["lastSenderId"] == "pat-1"


async def test_blank_message_is_ignored(chat, notifications, dentist, appointment_context):
    thread = await chat.ensure_thread(appointment_context, dentist)

    assert await chat.send_message(thread, "   ", dentist, appointment_context) is None
    assert await chat.list_messages(thread.id) == []
    assert await notifications.list_for_user("pat-1") == []


async def test_send_without_thread_id_fails(chat, dentist, appointment_context):
    with pytest.raises(ThreadResolutionError):
        await chat.send_message(ChatThreadMetadata(id=""), "Hello", dentist, appointment_context)


async def test_mark_appointment_thread_read(chat, store, dentist, appointment_context):
    thread = await chat.ensure_thread(appointment_context, dentist)
    await chat.send_message(thread, "Hello", dentist, appointment_context)

    await chat.mark_thread_read(thread.id, "pat-1")

    stored = await store.get("appointment_chats", thread.id)
    assert stored["unreadCount"] == {"staff-1": 0, "pat-1": 0}


async def test_email_shaped_user_ids_keep_flat_unread_counters(chat, store, appointment_context):
    staff = ChatSenderInfo(uid="cruz@clinic.test", name="Dr. Cruz", role="userDentist")
    context = appointment_context.model_copy(update={"patient_id": "ana.reyes@example.com"})
    thread = await chat.ensure_thread(context, staff)

    await chat.send_message(thread, "Hello", staff, context)
    stored = await store.get("appointment_chats", thread.id)
    assert stored["unreadCount"] == {"cruz@clinic.test": 0, "ana.reyes@example.com": 1}

    await chat.mark_thread_read(thread.id, "ana.reyes@example.com")
    stored = await store.get("appointment_chats", thread.id)
    assert stored["unreadCount"] == {"cruz@clinic.test": 0, "ana.reyes@example.com": 0}


async def test_mark_missing_thread_read_fails(chat):
    with pytest.raises(KeyError):
        await chat.mark_thread_read("nope", "pat-1")


async def test_messages_are_listed_newest_first(chat, store):
    for message_id, sent_at in [("m1", "09:00"), ("m3", "09:02"), ("m2", "09:01")]:
        await store.set("appointment_chat_messages", message_id, {
            "threadId": "apt-1_pat-1",
            "text": message_id,
            "sentAt": f"2026-10-20T{sent_at}:00.000000Z",
        })
    await store.set("appointment_chat_messages", "other", {"threadId": "apt-2_pat-1", "text": "x"})

    messages = await chat.list_messages("apt-1_pat-1")

    assert [message.id for message in messages] == ["m3", "m2", "m1"]


async def test_message_subscription_yields_new_messages(chat, dentist, appointment_context):
    thread = await chat.ensure_thread(appointment_context, dentist)
    stream = chat.subscribe_to_messages(thread.id)

    assert await stream.__anext__() == []

    await chat.send_message(thread, "Hello", dentist, appointment_context)
    messages = await asyncio.wait_for(stream.__anext__(), timeout=2)
    assert [message.text for message in messages] == ["Hello"]
    await stream.aclose()


# =============================================================================
# MEMBER CHATS
# =============================================================================

async def test_ensure_member_thread_creates_chat(chat, store, secretary, member_context):
    thread = await chat.ensure_thread(member_context, secretary)

    assert thread.id == "mem-1"
    assert thread.chat_type == ChatType.MEMBER
    assert thread.member_name == "Ben Santos"
    assert thread.participants == ["mem-1", "admin-1"]
    assert thread.unread_count == 0
    assert (await store.get("member_chats", "mem-1"))["memberId"] == "mem-1"


async def test_member_send_and_read(chat, store, notifications, secretary, member_context):
    thread = await chat.ensure_thread(member_context, secretary)

    await chat.send_message(thread, "Your x-ray results are ready", secretary, member_context)
    await chat.send_message(thread, "Call us anytime", secretary, member_context)

    stored = await store.get("member_chats", "mem-1")
    assert stored["unreadCount"] == 2
    assert stored["lastMessage"] == "Call us anytime"

    messages = await chat.list_messages("mem-1", ChatType.MEMBER)
    assert {message.message for message in messages} == {"Your x-ray results are ready", "Call us anytime"}
    assert all(message.sender_role == "admin" and message.read is False for message in messages)

    member_notifications = await notifications.list_for_user("mem-1")
    assert len(member_notifications) == 2
    assert member_notifications[0]["chatType"] == "member"
    assert member_notifications[0]["metadata"]["patientName"] == "Ben Santos"

    await chat.mark_thread_read("mem-1", "mem-1", ChatType.MEMBER)

    assert (await store.get("member_chats", "mem-1"))["unreadCount"] == 0
    assert all(message.read for message in await chat.list_messages("mem-1", ChatType.MEMBER))


async def test_member_chats_are_listed_most_recent_first(chat, store):
    await store.set("member_chats", "mem-1", {"memberName": "Ben", "lastMessageTime": "2026-10-01T00:00:00.000000Z"})
    await store.set("member_chats", "mem-2", {
        "memberId": "mem-2", "lastMessageTime": "2026-10-05T00:00:00.000000Z", "unreadCount": -3,
    })

    chats = await chat.list_member_chats()

    assert [summary.member_id for summary in chats] == ["mem-2", "mem-1"]
    assert chats[0].member_name == "Member"
    assert chats[0].unread_count == 0
    assert chats[1].member_name == "Ben"
