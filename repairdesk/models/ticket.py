import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from repairdesk.database import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ticket_number = Column(String(20), nullable=False, unique=True)
    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    device_type = Column(String(80))
    device_brand = Column(String(100))
    device_model = Column(String(120))
    serial_number = Column(String(60))
    accessories = Column(Text)
    problem_description = Column(Text, nullable=False)
    priority = Column(String(20), nullable=False, default="normal")
    status = Column(String(20), nullable=False, default="intake", index=True)
    estimated_cost = Column(Numeric(10, 2))
    actual_cost = Column(Numeric(10, 2))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    customer = relationship("Customer", back_populates="tickets")
    diagnostics = relationship("Diagnostic", back_populates="ticket")
    updates = relationship("TicketUpdate", back_populates="ticket")
