from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repairdesk.services.state_machine import TicketStatus


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class IntakeCustomer(BaseModel):
    name: str = Field(min_length=2)
    phone: str = Field(min_length=6)
    email: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email", "company", "notes", mode="before")
    @classmethod
    def _blank_optional(cls, value):
        return _blank_to_none(value)


class IntakeDevice(BaseModel):
    type: str = Field(min_length=1)
    model: str = Field(min_length=1)
    brand: Optional[str] = None
    serialNumber: Optional[str] = None
    accessories: Optional[str] = None

    @field_validator("brand", "serialNumber", "accessories", mode="before")
    @classmethod
    def _blank_optional(cls, value):
        return _blank_to_none(value)


class IntakeRequest(BaseModel):
    customer: IntakeCustomer
    device: IntakeDevice
    problemDescription: str = Field(min_length=10)
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    estimatedCost: Optional[float] = Field(default=None, ge=0)


class DiagnoseRequest(BaseModel):
    summary: str = Field(min_length=5)
    findings: Optional[str] = None
    recommendedActions: Optional[str] = None
    estimatedCost: Optional[float] = Field(default=None, ge=0)
    technicianId: Optional[str] = None
    approved: Optional[bool] = None
    approvedBy: Optional[str] = None
    approvalNotes: Optional[str] = None


class TicketUpdateRequest(BaseModel):
    updateType: str = Field(min_length=2)
    description: str = Field(min_length=4)
    imageUrl: Optional[str] = None
    status: Optional[TicketStatus] = None
    actualCost: Optional[float] = Field(default=None, ge=0)
    updatedBy: Optional[str] = None
    notify: bool = True


class PickupRequest(BaseModel):
    status: Literal["done", "picked_up"] = "done"
    message: Optional[str] = None
    invoiceId: Optional[UUID] = None
    paymentStatus: Optional[Literal["draft", "sent", "paid", "void"]] = None
    notify: bool = True


class CustomerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    phone: str
    email: Optional[str] = None
    company: Optional[str] = None


class DiagnosticOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    summary: str
    findings: Optional[str] = None
    recommended_actions: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    approved: bool
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class TicketUpdateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: UUID
    update_type: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_number: str
    customer_id: UUID
    device_type: Optional[str] = None
    device_brand: Optional[str] = None
    device_model: Optional[str] = None
    serial_number: Optional[str] = None
    problem_description: str
    priority: str
    status: str
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime


class TicketDetail(TicketOut):
    customer: CustomerOut
    latest_diagnostic: Optional[DiagnosticOut] = None
    invoice_id: Optional[UUID] = None


class DiagnoseResponse(BaseModel):
    diagnostic: DiagnosticOut
    status: str


class PickupResponse(BaseModel):
    status: str
    invoice_status: Optional[str] = None
