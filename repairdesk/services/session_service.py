from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from repairdesk.models import WaMessage
from repairdesk.schemas.sop import EMPTY_SOP_METADATA, SopMetadata, SopStage, coerce_sop_metadata
from repairdesk.services.intent_service import Command
from repairdesk.services.state_machine import TicketStatus
from repairdesk.services.workflow_formatter import stage_from_ticket_status


def get_latest_message(db: Session, session_id: str) -> Optional[WaMessage]:
    """Most recently inserted log row for a session, in either direction."""
    return (
        db.query(WaMessage)
        .filter(WaMessage.session_id == session_id)
        .order_by(WaMessage.created_at.desc())
        .first()
    )


def load_session_state(db: Session, session_id: Optional[str]) -> SopMetadata:
    """Current SOP state of a session: the decoded metadata of its newest log row."""
    if not session_id:
        return EMPTY_SOP_METADATA
    latest = get_latest_message(db, session_id)
    if latest is None:
        return EMPTY_SOP_METADATA
    return coerce_sop_metadata(latest.message_metadata)


def next_session_state(
    previous: SopMetadata,
    command: Command,
    *,
    stage: Optional[SopStage] = None,
    ticket_id: Optional[UUID] = None,
    ticket_status: Optional[TicketStatus] = None,
) -> SopMetadata:
    """
    Fold one handled message into the session snapshot.

    Missing values fall back to the previous snapshot. When neither the reply
    nor the previous snapshot provide a stage but a ticket status is known,
    the stage is derived from the status. `unknown` never replaces the last
    command.
    """
    next_status = ticket_status or previous.ticketStatus
    next_stage = stage
    if next_stage is None and ticket_status is not None:
        next_stage = stage_from_ticket_status(ticket_status)
    if next_stage is None:
        next_stage = previous.stage

    return SopMetadata(
        stage=next_stage,
        ticketId=ticket_id or previous.ticketId,
        lastCommand=previous.lastCommand if command == Command.UNKNOWN else command,
        ticketStatus=next_status,
    )
