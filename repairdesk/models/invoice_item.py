import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from repairdesk.database import Base


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)  # quantity * unit_price - discount
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

    invoice = relationship("Invoice", back_populates="items")
