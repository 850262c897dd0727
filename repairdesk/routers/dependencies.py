from typing import Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from repairdesk.logging_config import get_logger
from repairdesk.models import Customer, Ticket
from repairdesk.schemas.sop import SopMetadata
from repairdesk.services.delivery_client import WhatsAppGatewayClient, get_gateway_client
from repairdesk.services.message_service import send_text_reply, send_workflow_message
from repairdesk.services.result import INVALID_INPUT, INVALID_STATE, NOT_FOUND, Result
from repairdesk.services.state_machine import parse_status
from repairdesk.services.workflow_formatter import FormattedReply, WorkflowFormatter, get_formatter

logger = get_logger("routers")

ERROR_STATUS_CODES = {
    NOT_FOUND: 404,
    INVALID_STATE: 409,
    INVALID_INPUT: 400,
}


def get_gateway() -> WhatsAppGatewayClient:
    return get_gateway_client()


def get_workflow_formatter() -> WorkflowFormatter:
    return get_formatter()


def raise_for_result(result: Result) -> None:
    if result.ok:
        return
    raise HTTPException(status_code=ERROR_STATUS_CODES.get(result.error_code, 500), detail=result.error)


async def notify_customer(
    db: Session,
    gateway: WhatsAppGatewayClient,
    ticket: Ticket,
    reply: FormattedReply,
    extra_metadata: Optional[dict] = None,
) -> None:
    """Send a staff-triggered notification after the ticket change is committed."""
    customer = ticket.customer
    try:
        await send_workflow_message(
            db,
            gateway,
            customer_id=customer.id,
            ticket_id=ticket.id,
            phone=customer.phone,
            stage=reply.stage,
            text=reply.text,
            ticket_status=parse_status(ticket.status),
            extra_metadata=extra_metadata,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to log ticket notification",
            extra={"context": {"ticket_id": str(ticket.id), "error": str(e)}},
        )


async def notify_customer_without_ticket(
    db: Session,
    gateway: WhatsAppGatewayClient,
    customer: Customer,
    reply: FormattedReply,
    extra_metadata: Optional[dict] = None,
) -> None:
    """Like notify_customer, for documents that are not tied to a ticket."""
    try:
        await send_text_reply(
            db,
            gateway,
            phone=customer.phone,
            text=reply.text,
            sop=SopMetadata(stage=reply.stage),
            customer_id=customer.id,
            extra_metadata=extra_metadata,
        )
        db.commit()
    except ValueError:
        logger.warning(
            "Skipping WhatsApp send: invalid phone number",
            extra={"context": {"customer_id": str(customer.id)}},
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Failed to log customer notification",
            extra={"context": {"customer_id": str(customer.id), "error": str(e)}},
        )
