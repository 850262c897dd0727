from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class InvoiceItemIn(BaseModel):
    description: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    unitPrice: float = Field(ge=0)
    discount: float = Field(default=0, ge=0)


class InvoiceCreateRequest(BaseModel):
    customerId: UUID
    ticketId: Optional[UUID] = None
    number: Optional[str] = None
    status: Literal["draft", "sent", "paid", "void"] = "draft"
    taxRate: float = Field(default=0, ge=0)
    paidAmount: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None
    items: list[InvoiceItemIn] = Field(min_length=1)


class InvoiceItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    total: Decimal


class InvoiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    number: str
    customer_id: UUID
    ticket_id: Optional[UUID] = None
    status: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal
    balance: Optional[Decimal] = None
    notes: Optional[str] = None
    created_at: datetime
    items: list[InvoiceItemOut] = []
