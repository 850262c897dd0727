import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from repairdesk.database import Base


class Diagnostic(Base):
    __tablename__ = "diagnostics"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_id = Column(Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    technician_id = Column(Text)
    summary = Column(Text, nullable=False)
    findings = Column(Text)
    recommended_actions = Column(Text)
    estimated_cost = Column(Numeric(10, 2))
    approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(Text)
    approved_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    ticket = relationship("Ticket", back_populates="diagnostics")
