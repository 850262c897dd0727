from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from repairdesk.database import get_db
from repairdesk.logging_config import get_logger
from repairdesk.routers.dependencies import get_gateway, get_workflow_formatter
from repairdesk.schemas.webhook import InboundMessage, ProviderEvent, WebhookResponse
from repairdesk.services.delivery_client import WhatsAppGatewayClient, normalize_phone_number, parse_remote_jid
from repairdesk.services.message_service import map_provider_status, update_status_by_message_id
from repairdesk.services.sop_engine import handle_inbound_message
from repairdesk.services.workflow_formatter import WorkflowFormatter

logger = get_logger("webhook")

router = APIRouter(prefix="/whatsapp", tags=["whatsapp"])

STATUS_DELETED = "deleted"


@router.post("/webhook", response_model=WebhookResponse, response_model_exclude_none=True)
async def whatsapp_webhook(
    body: InboundMessage,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    """Inbound customer text from the gateway: run the SOP and reply."""
    if not normalize_phone_number(body.sender):
        raise HTTPException(status_code=400, detail="Invalid sender phone number")

    try:
        await handle_inbound_message(db, body.sender, body.text, gateway, formatter)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to process WhatsApp webhook",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to process webhook")

    return WebhookResponse(success=True)


def _extract_text(message: Any) -> Optional[str]:
    if not isinstance(message, dict):
        return None
    if isinstance(message.get("conversation"), str):
        return message["conversation"]
    extended = message.get("extendedTextMessage")
    if isinstance(extended, dict) and isinstance(extended.get("text"), str):
        return extended["text"]
    for media_key in ("imageMessage", "videoMessage", "documentMessage"):
        media = message.get(media_key)
        if isinstance(media, dict) and isinstance(media.get("caption"), str):
            return media["caption"]
    return None


def _as_list(data: Any) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]
    return []


async def _handle_upsert(db: Session, gateway: WhatsAppGatewayClient, formatter: WorkflowFormatter, data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    key = data.get("key") or {}
    if not isinstance(key, dict) or key.get("fromMe"):
        return False

    remote = parse_remote_jid(key.get("remoteJid") or "")
    if remote["is_group"] or not remote["phone_number"]:
        return False

    text = (_extract_text(data.get("message")) or "").strip()
    if not text:
        return False

    await handle_inbound_message(
        db,
        remote["jid"],
        text,
        gateway,
        formatter,
        provider_message_id=key.get("id"),
    )
    return True


def _handle_status_updates(db: Session, data: Any) -> bool:
    touched = 0
    for item in _as_list(data):
        if not isinstance(item, dict):
            continue
        key = item.get("key") or {}
        update = item.get("update") or {}
        status = map_provider_status(update.get("status") if isinstance(update, dict) else None)
        if status and isinstance(key, dict):
            touched += update_status_by_message_id(db, key.get("id"), status)
    db.commit()
    return touched > 0


def _handle_deletes(db: Session, data: Any) -> bool:
    keys = data.get("keys") if isinstance(data, dict) and "keys" in data else data
    touched = 0
    for key in _as_list(keys):
        if isinstance(key, dict):
            touched += update_status_by_message_id(db, key.get("id"), STATUS_DELETED)
    db.commit()
    return touched > 0


@router.post("/events", response_model=WebhookResponse)
async def whatsapp_events(
    body: ProviderEvent,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    """Raw gateway events. Unknown event types are acknowledged and ignored."""
    try:
        if body.event == "messages.upsert":
            handled = await _handle_upsert(db, gateway, formatter, body.data)
        elif body.event == "messages.update":
            handled = _handle_status_updates(db, body.data)
        elif body.event == "messages.delete":
            handled = _handle_deletes(db, body.data)
        else:
            handled = False
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to process WhatsApp event",
            extra={"context": {"event": body.event, "error": str(e)}},
            exc_info=True,
        )
        raise HTTPException(status_code=500, detail="Failed to process webhook")

    if not handled:
        logger.debug("WhatsApp event ignored", extra={"context": {"event": body.event}})
    return WebhookResponse(success=True, handled=handled)
