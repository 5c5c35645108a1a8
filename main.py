"""
FastAPI Application for the Dental Clinic Messaging service.

Exposes chat, notification and appointment endpoints over the clinic's
document store, streams live updates as Server-Sent Events, and sends
appointment status emails through the SMTP relay.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from config import settings

from core.data import DocumentStore
from core.memory_store import MemoryDocumentStore
from core.cosmos_store import CosmosDocumentStore
from shared.cosmos_config import COSMOS_ENDPOINT, DATABASE_NAME

from use_cases.messaging import (
    ChatDrawerContext,
    ChatDrawerStateManager,
    ChatSenderInfo,
    ChatService,
    ChatType,
)
from use_cases.messaging.types import CamelModel
from use_cases.notifications import NotificationService
from use_cases.appointments import (
    AppointmentDetails,
    AppointmentMailer,
    AppointmentService,
    EmailDeliveryError,
    StatusEmailRequestValidator,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Reduce Azure SDK logging verbosity
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.getLogger("azure.core").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)

# Global instances
data_store: Optional[DocumentStore] = None
chat_service: Optional[ChatService] = None
notification_service: Optional[NotificationService] = None
appointment_service: Optional[AppointmentService] = None
mailer: Optional[AppointmentMailer] = None
drawer_states = ChatDrawerStateManager()
email_request_validator = StatusEmailRequestValidator()


def create_document_store() -> DocumentStore:
    """Build the document store selected by DOCUMENT_STORE."""
    if settings.document_store.lower() == "memory":
        logger.warning("Using in-memory document store - data is not persisted")
        return MemoryDocumentStore(poll_interval=settings.subscription_poll_interval)
    store = CosmosDocumentStore(poll_interval=settings.subscription_poll_interval)
    logger.info(f"Cosmos DB store initialized: {COSMOS_ENDPOINT} ({DATABASE_NAME})")
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    global data_store, chat_service, notification_service, appointment_service, mailer

    logger.info("Starting Dental Clinic Messaging service...")

    data_store = create_document_store()
    notification_service = NotificationService(data_store)
    chat_service = ChatService(data_store, notification_service)
    appointment_service = AppointmentService(data_store)
    mailer = AppointmentMailer.from_settings(settings)
    logger.info(f"Mail relay configured: {settings.smtp_host}:{settings.smtp_port}")

    yield

    # Cleanup
    logger.info("Shutting down...")
    if data_store:
        await data_store.close()


# Create FastAPI app
app = FastAPI(
    title="Dental Clinic Messaging",
    description="Appointment chat, notifications and status emails for the dental clinic",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# REQUEST MODELS
# =============================================================================

class EnsureThreadRequest(CamelModel):
    context: ChatDrawerContext
    sender: ChatSenderInfo


class SendMessageRequest(CamelModel):
    text: str
    sender: ChatSenderInfo
    context: ChatDrawerContext = ChatDrawerContext()
    chat_type: Optional[ChatType] = None


class MarkReadRequest(CamelModel):
    user_id: str
    chat_type: ChatType = ChatType.APPOINTMENT


class StatusNotifyRequest(CamelModel):
    patient_email: str
    patient_name: str


class StatusUpdateRequest(CamelModel):
    status: str
    reason: Optional[str] = None
    notify: Optional[StatusNotifyRequest] = None


# =============================================================================
# HELPERS
# =============================================================================

def error_response(e: Exception, action: str) -> JSONResponse:
    """Map an exception to a JSON error: ValueError 400, KeyError 404, else 500."""
    if isinstance(e, KeyError):
        status_code = 404
        message = str(e.args[0]) if e.args else "Not found"
    elif isinstance(e, ValueError):
        status_code = 400
        message = str(e)
    else:
        status_code = 500
        message = str(e)

    if status_code == 500:
        logger.error(f"Error {action}: {e}", exc_info=True)
    else:
        logger.warning(f"Rejected {action}: {message}")
    return JSONResponse(content={"error": message}, status_code=status_code)


def dump(model: CamelModel) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


def event_stream(
    request: Request,
    snapshots: AsyncIterator[Any],
    serialize: Callable[[Any], Any],
) -> StreamingResponse:
    """Relay subscription snapshots to the client as Server-Sent Events."""

    async def generate():
        try:
            async for snapshot in snapshots:
                if await request.is_disconnected():
                    break
                yield f"data: {json.dumps(serialize(snapshot))}\n\n"
        except Exception as e:
            logger.error(f"Subscription stream failed: {e}", exc_info=True)
            yield f"event: error\ndata: {json.dumps({'error': str(e)})}\n\n"

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )


# =============================================================================
# APPOINTMENT EMAIL ENDPOINT
# =============================================================================

@app.post("/appointment/sendEmail")
async def send_appointment_email(request: Request):
    """
    Email a patient about an appointment status change.

    Body: {patientEmail, patientName, status, appointmentDetails{date, time, service, reason?}}
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(
            content={"success": False, "message": "Request body must be valid JSON"},
            status_code=400,
        )

    errors = email_request_validator.validate(body)
    if errors:
        missing = [error.field for error in errors if error.code == "missing"]
        if missing:
            message = f"Missing required fields: {', '.join(missing)}"
        else:
            message = "Invalid fields: " + ", ".join(f"{error.field} {error.message}" for error in errors)
        logger.warning(f"Rejected email request: {message}")
        return JSONResponse(
            content={"success": False, "message": message},
            status_code=400,
        )

    try:
        details = AppointmentDetails.model_validate(body["appointmentDetails"])
    except ValueError as e:
        return JSONResponse(
            content={"success": False, "message": f"Invalid appointmentDetails: {e}"},
            status_code=400,
        )

    try:
        await run_in_threadpool(
            mailer.send_appointment_notification,
            body["patientEmail"],
            body["patientName"],
            body["status"],
            details,
        )
    except EmailDeliveryError as e:
        logger.error(f"Email API error: {e}")
        return JSONResponse(
            content={"success": False, "message": str(e)},
            status_code=500,
        )

    return {"success": True}


# =============================================================================
# CHAT ENDPOINTS
# =============================================================================

@app.post("/api/chat/threads")
async def ensure_thread(request: EnsureThreadRequest):
    """Open (creating if needed) the thread a chat context points at."""
    try:
        thread = await chat_service.ensure_thread(request.context, request.sender)
        return dump(thread)
    except Exception as e:
        return error_response(e, "opening chat thread")


@app.post("/api/chat/threads/{thread_id}/messages")
async def send_message(thread_id: str, request: SendMessageRequest):
    """Send a message; blank text is accepted and ignored."""
    chat_type = ChatType(request.chat_type or request.context.chat_type or ChatType.APPOINTMENT)
    if chat_type == ChatType.MEMBER:
        context = request.context.model_copy(update={"chat_type": chat_type, "patient_id": thread_id})
    else:
        context = request.context.model_copy(update={"chat_type": chat_type, "thread_id": thread_id})

    try:
        thread = await chat_service.ensure_thread(context, request.sender)
        message_id = await chat_service.send_message(thread, request.text, request.sender, context)
        return {"success": True, "messageId": message_id, "thread": dump(thread)}
    except Exception as e:
        return error_response(e, f"sending message to {thread_id}")


@app.get("/api/chat/threads/{thread_id}/messages")
async def list_messages(
    thread_id: str,
    chat_type: ChatType = Query(ChatType.APPOINTMENT, alias="chatType"),
):
    """Messages of a thread, newest first."""
    try:
        messages = await chat_service.list_messages(thread_id, chat_type)
        return {"messages": [dump(message) for message in messages]}
    except Exception as e:
        return error_response(e, f"listing messages of {thread_id}")


@app.get("/api/chat/threads/{thread_id}/messages/stream")
async def stream_messages(
    request: Request,
    thread_id: str,
    chat_type: ChatType = Query(ChatType.APPOINTMENT, alias="chatType"),
):
    """Live message list of a thread as Server-Sent Events."""
    return event_stream(
        request,
        chat_service.subscribe_to_messages(thread_id, chat_type),
        lambda messages: [dump(message) for message in messages],
    )


@app.post("/api/chat/threads/{thread_id}/read")
async def mark_thread_read(thread_id: str, request: MarkReadRequest):
    """Clear the reader's unread state for a thread."""
    try:
        await chat_service.mark_thread_read(thread_id, request.user_id, request.chat_type)
        return {"success": True}
    except Exception as e:
        return error_response(e, f"marking {thread_id} read")


@app.get("/api/chat/member-chats")
async def list_member_chats():
    """All member chats, most recently active first."""
    try:
        chats = await chat_service.list_member_chats()
        return {"chats": [dump(chat) for chat in chats]}
    except Exception as e:
        return error_response(e, "listing member chats")


@app.get("/api/chat/member-chats/stream")
async def stream_member_chats(request: Request):
    """Live member chat list as Server-Sent Events."""
    return event_stream(
        request,
        chat_service.subscribe_to_member_chats(),
        lambda chats: [dump(chat) for chat in chats],
    )


# =============================================================================
# CHAT DRAWER ENDPOINTS
# =============================================================================

@app.get("/api/chat/drawer/{user_id}")
async def get_chat_drawer(user_id: str):
    return drawer_states.get(user_id).to_dict()


@app.post("/api/chat/drawer/{user_id}")
async def open_chat_drawer(user_id: str, context: ChatDrawerContext):
    return drawer_states.open(user_id, context).to_dict()


@app.patch("/api/chat/drawer/{user_id}")
async def patch_chat_drawer(user_id: str, updates: Dict[str, Any]):
    try:
        return drawer_states.patch(user_id, updates).to_dict()
    except Exception as e:
        return error_response(e, f"updating chat drawer of {user_id}")


@app.post("/api/chat/drawer/{user_id}/close")
async def close_chat_drawer(user_id: str):
    return drawer_states.close(user_id).to_dict()


# =============================================================================
# NOTIFICATION ENDPOINTS
# =============================================================================

@app.get("/api/notifications/{user_id}")
async def list_notifications(user_id: str):
    """A user's notifications, newest first."""
    try:
        return {"notifications": await notification_service.list_for_user(user_id)}
    except Exception as e:
        return error_response(e, f"listing notifications of {user_id}")


@app.get("/api/notifications/{user_id}/stream")
async def stream_notifications(request: Request, user_id: str):
    """Live notification list of a user as Server-Sent Events."""
    return event_stream(request, notification_service.subscribe(user_id), lambda docs: docs)


@app.post("/api/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str):
    try:
        await notification_service.mark_read(notification_id)
        return {"success": True}
    except Exception as e:
        return error_response(e, f"marking notification {notification_id} read")


@app.post("/api/notifications/{user_id}/read-all")
async def mark_all_notifications_read(user_id: str):
    try:
        updated = await notification_service.mark_all_read(user_id)
        return {"success": True, "updated": updated}
    except Exception as e:
        return error_response(e, f"marking notifications of {user_id} read")


# =============================================================================
# APPOINTMENT ENDPOINTS
# =============================================================================

@app.get("/api/appointments/{appointment_id}")
async def get_appointment(appointment_id: str):
    try:
        appointment = await appointment_service.get(appointment_id)
        return dump(appointment)
    except Exception as e:
        return error_response(e, f"loading appointment {appointment_id}")


@app.patch("/api/appointments/{appointment_id}/status")
async def update_appointment_status(appointment_id: str, request: StatusUpdateRequest):
    """
    Change an appointment's status and optionally email the patient.

    A failed email does not undo the status change; it is reported in the response.
    """
    try:
        appointment = await appointment_service.update_status(
            appointment_id, request.status, request.reason
        )
    except Exception as e:
        return error_response(e, f"updating appointment {appointment_id}")

    response = {"success": True, "appointment": dump(appointment)}
    if request.notify:
        details = AppointmentDetails(
            date=appointment.date,
            time=appointment.time,
            service=appointment.service,
            reason=request.reason,
        )
        try:
            await run_in_threadpool(
                mailer.send_appointment_notification,
                request.notify.patient_email,
                request.notify.patient_name,
                request.status,
                details,
            )
            response["emailSent"] = True
        except EmailDeliveryError as e:
            logger.error(f"Status email for appointment {appointment_id} failed: {e}")
            response["emailSent"] = False
            response["emailError"] = str(e)
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
        "document_store": settings.document_store,
        "smtp_configured": bool(settings.smtp_username),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
