import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from repairdesk.database import Base


class TicketUpdate(Base):
    __tablename__ = "ticket_updates"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id = Column(Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    update_type = Column(String(50), nullable=False)
    description = Column(Text)
    image_url = Column(Text)
    updated_by = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    ticket = relationship("Ticket", back_populates="updates")
