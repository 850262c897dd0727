import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from repairdesk.database import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    number = Column(String(40), nullable=False, unique=True)
    customer_id = Column(Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    ticket_id = Column(Uuid, ForeignKey("tickets.id", ondelete="SET NULL"), index=True)
    status = Column(String(20), nullable=False, default="draft")  # draft, sent, paid, void
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2))
    notes = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    items = relationship("InvoiceItem", back_populates="invoice", order_by="InvoiceItem.position")
