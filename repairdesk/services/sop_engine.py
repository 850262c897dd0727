"""
Customer-facing WhatsApp SOP automation.

One inbound text is handled end to end: load the session snapshot, classify
the command, resolve the ticket, apply approve/reject, log the inbound
message with the new snapshot and send the reply. Ticket changes are
committed before anything is sent, so a failed delivery never undoes them.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from repairdesk.config import settings
from repairdesk.logging_config import bind_logger, get_logger
from repairdesk.models import Customer
from repairdesk.schemas.sop import SopMetadata, SopStage, build_message_metadata
from repairdesk.services.context_resolver import resolve_ticket_context
from repairdesk.services.delivery_client import WhatsAppGatewayClient, normalize_phone_number, session_id_for
from repairdesk.services.intent_service import Command, IntentClassifier, classify_command, is_decision
from repairdesk.services.message_service import (
    DIRECTION_IN,
    STATUS_RECEIVED,
    STATUS_SENT,
    save_wa_message,
    send_text_reply,
    send_workflow_message,
)
from repairdesk.services.session_service import load_session_state, next_session_state
from repairdesk.services.state_machine import TicketStatus
from repairdesk.services.ticket_service import (
    TicketContext,
    apply_customer_decision,
    build_ticket_context,
    find_customer_by_phone,
    get_ticket,
)
from repairdesk.services.workflow_formatter import ReplyContext, WorkflowFormatter, get_formatter

logger = get_logger("sop_engine")


@dataclass
class InboundOutcome:
    session_id: str
    command: Command
    session: SopMetadata
    reply_text: str
    delivered: bool
    ticket_id: Optional[UUID] = None
    ticket_status: Optional[TicketStatus] = None
    decision_applied: bool = False
    inbound_message_id: Optional[UUID] = None


def _reply_context(ctx: TicketContext, customer: Optional[Customer], formatter: WorkflowFormatter) -> ReplyContext:
    return ReplyContext(
        ticket_number=ctx.ticket_number,
        status=ctx.status,
        customer_name=(customer.name if customer else None) or ctx.customer_name,
        estimated_cost=formatter.format_currency(ctx.estimated_cost),
        invoice_number=ctx.invoice_number,
        invoice_total=formatter.format_currency(ctx.invoice_total),
        invoice_status=ctx.invoice_status,
    )


def _reply_without_ticket(command: Command, formatter: WorkflowFormatter) -> str:
    if command == Command.UNKNOWN:
        return formatter.unknown_command()
    return formatter.no_ticket()


async def handle_inbound_message(
    db: Session,
    sender: str,
    text: str,
    gateway: WhatsAppGatewayClient,
    formatter: Optional[WorkflowFormatter] = None,
    classifier: Optional[IntentClassifier] = None,
    *,
    provider_message_id: Optional[str] = None,
    allow_reapproval: Optional[bool] = None,
    reply_timeout_seconds: Optional[float] = None,
) -> InboundOutcome:
    """
    Run the SOP for one inbound message.

    Raises ValueError when the sender has no usable phone number. Database
    errors propagate to the caller, which owns the rollback.
    """
    normalized = normalize_phone_number(sender)
    if not normalized:
        raise ValueError("Invalid sender phone number")

    formatter = formatter or get_formatter()
    if allow_reapproval is None:
        allow_reapproval = settings.allow_reapproval_after_reject
    session_id = session_id_for(normalized)
    log = bind_logger(logger, session_id=session_id)

    previous = load_session_state(db, session_id)
    command = classifier.classify(text) if classifier else classify_command(text)
    customer = find_customer_by_phone(db, normalized)
    ctx = resolve_ticket_context(db, customer, previous, command, allow_reapproval=allow_reapproval)

    decision_applied = False
    if ctx is not None and is_decision(command):
        decision = TicketStatus.APPROVED if command == Command.APPROVE else TicketStatus.REJECTED
        decision_applied = apply_customer_decision(db, ctx.ticket_id, decision, allow_reapproval=allow_reapproval)
        db.commit()
        # Re-read: either our update or a concurrent one may have changed the ticket.
        db.expire_all()
        ticket = get_ticket(db, ctx.ticket_id)
        if ticket is not None:
            ctx = build_ticket_context(db, ticket)
        log.info(
            "Customer decision processed",
            context={"ticket_id": str(ctx.ticket_id), "command": command.value, "applied": decision_applied},
        )

    if ctx is None:
        reply_stage: Optional[SopStage] = previous.stage
        reply_text = _reply_without_ticket(command, formatter)
        send_as_workflow = False
    else:
        reply = formatter.reply_for(command, _reply_context(ctx, customer, formatter), decision_applied=decision_applied)
        reply_stage = reply.stage
        reply_text = reply.text
        send_as_workflow = customer is not None and command != Command.SUPPORT

    session = next_session_state(
        previous,
        command,
        stage=reply_stage,
        ticket_id=ctx.ticket_id if ctx else None,
        ticket_status=ctx.status if ctx else None,
    )

    inbound = save_wa_message(
        db,
        session_id=session_id,
        direction=DIRECTION_IN,
        status=STATUS_RECEIVED,
        body=text,
        customer_id=customer.id if customer else None,
        ticket_id=session.ticketId,
        message_id=provider_message_id,
        message_metadata=build_message_metadata(
            session, **{"from": sender, "normalizedFrom": normalized, "command": command.value}
        ),
    )
    db.commit()

    reply_metadata = {"command": command.value, "respondsTo": str(inbound.id)}
    if send_as_workflow:
        outbound = await send_workflow_message(
            db,
            gateway,
            customer_id=customer.id,
            ticket_id=ctx.ticket_id,
            phone=normalized,
            stage=reply_stage or formatter.stage_from_ticket_status(ctx.status),
            text=reply_text,
            sop=session,
            extra_metadata=reply_metadata,
            timeout_seconds=reply_timeout_seconds,
        )
    else:
        outbound = await send_text_reply(
            db,
            gateway,
            phone=normalized,
            text=reply_text,
            sop=session,
            customer_id=customer.id if customer else None,
            extra_metadata=reply_metadata,
            timeout_seconds=reply_timeout_seconds,
        )
    db.commit()

    delivered = outbound is not None and outbound.status == STATUS_SENT
    log.info(
        "Inbound WhatsApp message handled",
        context={
            "command": command.value,
            "ticket_id": str(session.ticketId) if session.ticketId else None,
            "delivered": delivered,
        },
    )
    return InboundOutcome(
        session_id=session_id,
        command=command,
        session=session,
        reply_text=reply_text,
        delivered=delivered,
        ticket_id=ctx.ticket_id if ctx else None,
        ticket_status=ctx.status if ctx else None,
        decision_applied=decision_applied,
        inbound_message_id=inbound.id,
    )
