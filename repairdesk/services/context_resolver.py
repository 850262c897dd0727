from typing import Optional

from sqlalchemy.orm import Session

from repairdesk.logging_config import get_logger
from repairdesk.models import Customer, Ticket
from repairdesk.schemas.sop import SopMetadata
from repairdesk.services.intent_service import Command, is_decision
from repairdesk.services.state_machine import TicketStatus
from repairdesk.services.ticket_service import TicketContext, build_ticket_context, get_latest_ticket, get_ticket

logger = get_logger("context_resolver")


def _decision_eligible(ticket: Ticket, allow_reapproval: bool, command: Command) -> bool:
    if ticket.status == TicketStatus.AWAITING_APPROVAL.value:
        return True
    return allow_reapproval and command == Command.APPROVE and ticket.status == TicketStatus.REJECTED.value


def resolve_ticket_context(
    db: Session,
    customer: Optional[Customer],
    previous: SopMetadata,
    command: Command,
    allow_reapproval: bool = False,
) -> Optional[TicketContext]:
    """
    Pick the ticket an inbound message is about.

    The ticket remembered in the session wins, unless it belongs to someone
    else or the command is a decision the ticket can no longer take. Decisions
    then fall back to the customer's newest ticket awaiting approval, anything
    else to the customer's newest ticket.
    """
    if customer is None:
        return None

    decision = is_decision(command)

    if previous.ticketId is not None:
        sticky = get_ticket(db, previous.ticketId)
        if sticky is not None and sticky.customer_id != customer.id:
            logger.warning(
                "Ignoring session ticket owned by another customer",
                extra={"context": {"ticket_id": str(sticky.id), "customer_id": str(customer.id)}},
            )
            sticky = None
        if sticky is not None and (not decision or _decision_eligible(sticky, allow_reapproval, command)):
            return build_ticket_context(db, sticky)

    if decision:
        pending = get_latest_ticket(db, customer.id, TicketStatus.AWAITING_APPROVAL)
        if pending is None and allow_reapproval and command == Command.APPROVE:
            pending = get_latest_ticket(db, customer.id, TicketStatus.REJECTED)
        if pending is not None:
            return build_ticket_context(db, pending)

    latest = get_latest_ticket(db, customer.id)
    return build_ticket_context(db, latest) if latest else None
