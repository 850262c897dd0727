import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, String, Text, Uuid

from repairdesk.database import Base
from repairdesk.models.types import JSONType


class WaMessage(Base):
    """Append-only WhatsApp log. The newest row per session carries the SOP state."""

    __tablename__ = "wa_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(String(100), nullable=False, index=True)
    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="SET NULL"))
    ticket_id = Column(Uuid, ForeignKey("tickets.id", ondelete="SET NULL"))
    message_id = Column(String(100), index=True)
    direction = Column(String(8), nullable=False)  # in, out
    status = Column(String(20), nullable=False, default="pending")
    body = Column(Text, nullable=False)
    sent_at = Column(TIMESTAMP(timezone=True), nullable=False)
    message_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
