import asyncio
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from repairdesk.config import settings
from repairdesk.logging_config import get_logger
from repairdesk.models import WaMessage
from repairdesk.schemas.sop import SopMetadata, SopStage, build_message_metadata
from repairdesk.services.delivery_client import (
    DeliveryError,
    WhatsAppGatewayClient,
    normalize_phone_number,
    session_id_for,
)
from repairdesk.services.state_machine import TicketStatus

logger = get_logger("message_service")

DIRECTION_IN = "in"
DIRECTION_OUT = "out"

STATUS_RECEIVED = "received"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


def save_wa_message(
    db: Session,
    session_id: str,
    direction: str,
    status: str,
    body: str,
    customer_id: Optional[UUID] = None,
    ticket_id: Optional[UUID] = None,
    message_id: Optional[str] = None,
    message_metadata: Optional[dict] = None,
    sent_at: Optional[datetime] = None,
) -> WaMessage:
    """Append a row to the WhatsApp log."""
    now = datetime.now(timezone.utc)
    message = WaMessage(
        session_id=session_id,
        direction=direction,
        status=status,
        body=body,
        customer_id=customer_id,
        ticket_id=ticket_id,
        message_id=message_id,
        message_metadata=message_metadata or {},
        sent_at=sent_at or now,
        created_at=now,
    )
    db.add(message)
    db.flush()
    return message


async def _deliver_and_log(
    db: Session,
    gateway: WhatsAppGatewayClient,
    *,
    phone: str,
    text: str,
    session_id: str,
    metadata: dict,
    customer_id: Optional[UUID],
    ticket_id: Optional[UUID],
    timeout_seconds: Optional[float],
) -> WaMessage:
    timeout = timeout_seconds if timeout_seconds is not None else settings.wa_reply_timeout_seconds
    try:
        result = await asyncio.wait_for(gateway.send(phone, text, metadata=metadata), timeout=timeout)
    except (DeliveryError, asyncio.TimeoutError, ValueError) as e:
        error = str(e) or "WhatsApp delivery timed out"
        logger.warning(
            "Outbound WhatsApp message not delivered",
            extra={"context": {"session_id": session_id, "ticket_id": str(ticket_id) if ticket_id else None, "error": error}},
        )
        return save_wa_message(
            db,
            session_id=session_id,
            direction=DIRECTION_OUT,
            status=STATUS_FAILED,
            body=text,
            customer_id=customer_id,
            ticket_id=ticket_id,
            message_metadata={**metadata, "error": error},
        )

    return save_wa_message(
        db,
        session_id=session_id,
        direction=DIRECTION_OUT,
        status=STATUS_SENT,
        body=text,
        customer_id=customer_id,
        ticket_id=ticket_id,
        message_id=result.message_id,
        message_metadata=metadata,
    )


async def send_workflow_message(
    db: Session,
    gateway: WhatsAppGatewayClient,
    *,
    customer_id: UUID,
    ticket_id: UUID,
    phone: str,
    stage: SopStage,
    text: str,
    ticket_status: Optional[TicketStatus] = None,
    sop: Optional[SopMetadata] = None,
    extra_metadata: Optional[dict] = None,
    timeout_seconds: Optional[float] = None,
) -> Optional[WaMessage]:
    """
    Send a ticket-scoped message and log it as ``sent`` or ``failed``.

    Delivery failures are logged and recorded, never raised. Returns None
    when the phone number is unusable and nothing was attempted.
    """
    normalized = normalize_phone_number(phone)
    if not normalized:
        logger.warning(
            "Skipping WhatsApp send: invalid phone number",
            extra={"context": {"customer_id": str(customer_id), "ticket_id": str(ticket_id)}},
        )
        return None

    snapshot = sop or SopMetadata(stage=stage, ticketId=ticket_id, ticketStatus=ticket_status)
    metadata = build_message_metadata(
        snapshot,
        stage=stage.value,
        ticketId=str(ticket_id),
        normalizedRecipient=normalized,
        **(extra_metadata or {}),
    )
    return await _deliver_and_log(
        db,
        gateway,
        phone=normalized,
        text=text,
        session_id=session_id_for(normalized),
        metadata=metadata,
        customer_id=customer_id,
        ticket_id=ticket_id,
        timeout_seconds=timeout_seconds,
    )


async def send_text_reply(
    db: Session,
    gateway: WhatsAppGatewayClient,
    *,
    phone: str,
    text: str,
    sop: SopMetadata,
    customer_id: Optional[UUID] = None,
    extra_metadata: Optional[dict] = None,
    timeout_seconds: Optional[float] = None,
) -> WaMessage:
    """Plain conversational reply (no resolved ticket, or a support hand-off)."""
    normalized = normalize_phone_number(phone)
    if not normalized:
        raise ValueError("Reply recipient must include a phone number")

    metadata = build_message_metadata(
        sop,
        source="sop-automation",
        normalizedFrom=normalized,
        **(extra_metadata or {}),
    )
    return await _deliver_and_log(
        db,
        gateway,
        phone=normalized,
        text=text,
        session_id=session_id_for(normalized),
        metadata=metadata,
        customer_id=customer_id,
        ticket_id=sop.ticketId,
        timeout_seconds=timeout_seconds,
    )


_PROVIDER_STATUS = {
    0: STATUS_FAILED,
    2: STATUS_SENT,
    3: "delivered",
    4: "read",
    5: "read",
}


def map_provider_status(value) -> Optional[str]:
    """Gateway status code (or name) to a log status; None for states we don't track."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered.isdigit():
            value = int(lowered)
        else:
            aliases = {"error": STATUS_FAILED, "server_ack": STATUS_SENT, "delivery_ack": "delivered", "played": "read"}
            return aliases.get(lowered, lowered if lowered in ("delivered", "read", "failed") else None)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return _PROVIDER_STATUS.get(value)


def update_status_by_message_id(db: Session, message_id: Optional[str], status: str) -> int:
    """Set the status of logged rows with a provider message id. Returns rows touched."""
    if not message_id:
        return 0
    return (
        db.query(WaMessage)
        .filter(WaMessage.message_id == message_id)
        .update({WaMessage.status: status}, synchronize_session=False)
    )
