import uuid

from sqlalchemy import TIMESTAMP, Column, String, Text, Uuid
from sqlalchemy.orm import relationship

from repairdesk.database import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False, unique=True, index=True)  # normalized, +<digits>
    email = Column(String(120))
    company = Column(String(120))
    notes = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)

    tickets = relationship("Ticket", back_populates="customer")
