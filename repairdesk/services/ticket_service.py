import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from repairdesk.config import settings
from repairdesk.logging_config import get_logger
from repairdesk.models import Customer, Diagnostic, Invoice, Ticket, TicketUpdate
from repairdesk.schemas.ticket import DiagnoseRequest, IntakeRequest, PickupRequest, TicketUpdateRequest
from repairdesk.services.delivery_client import normalize_phone_number
from repairdesk.services.result import Result
from repairdesk.services.state_machine import (
    DECISION_STATUSES,
    InvalidTransitionError,
    TicketStatus,
    parse_status,
    path_to,
    transition,
)

logger = get_logger("ticket_service")

_TICKET_NUMBER_DIGITS = 4


@dataclass(frozen=True)
class TicketContext:
    """Read-only view of a ticket as needed by replies and notifications."""

    ticket_id: UUID
    ticket_number: str
    status: TicketStatus
    customer_id: UUID
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    device_label: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    invoice_id: Optional[UUID] = None
    invoice_number: Optional[str] = None
    invoice_total: Optional[Decimal] = None
    invoice_status: Optional[str] = None


@dataclass
class DiagnosisOutcome:
    ticket: Ticket
    diagnostic: Diagnostic
    status_changed: bool


@dataclass
class PickupOutcome:
    ticket: Ticket
    invoice: Optional[Invoice]
    status_changed: bool


def _now() -> datetime:
    return datetime.now(timezone.utc)


def device_label(ticket: Ticket) -> str:
    return " ".join(part for part in (ticket.device_brand, ticket.device_model) if part)


def get_latest_invoice(db: Session, ticket_id: UUID) -> Optional[Invoice]:
    return (
        db.query(Invoice)
        .filter(Invoice.ticket_id == ticket_id)
        .order_by(Invoice.created_at.desc())
        .first()
    )


def build_ticket_context(db: Session, ticket: Ticket) -> TicketContext:
    customer = ticket.customer
    invoice = get_latest_invoice(db, ticket.id)
    return TicketContext(
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        status=parse_status(ticket.status) or TicketStatus.INTAKE,
        customer_id=ticket.customer_id,
        customer_name=customer.name if customer else None,
        customer_phone=customer.phone if customer else None,
        device_label=device_label(ticket) or None,
        estimated_cost=ticket.estimated_cost,
        invoice_id=invoice.id if invoice else None,
        invoice_number=invoice.number if invoice else None,
        invoice_total=invoice.total if invoice else None,
        invoice_status=invoice.status if invoice else None,
    )


def phone_lookup_candidates(raw: Optional[str]) -> list[str]:
    """Stored forms a customer's phone may have: ``+60...``, ``60...`` and local ``0...``."""
    normalized = normalize_phone_number(raw)
    if not normalized:
        return []
    digits = normalized.lstrip("+")
    candidates = [normalized, digits]
    code = settings.wa_default_country_code
    if code and digits.startswith(code):
        candidates.append(f"0{digits[len(code):]}")
    return candidates


def find_customer_by_phone(db: Session, raw_phone: Optional[str]) -> Optional[Customer]:
    candidates = phone_lookup_candidates(raw_phone)
    if not candidates:
        return None
    return db.query(Customer).filter(Customer.phone.in_(candidates)).first()


def get_ticket(db: Session, ticket_id: UUID) -> Optional[Ticket]:
    return db.query(Ticket).filter(Ticket.id == ticket_id).first()


def get_latest_ticket(db: Session, customer_id: UUID, status: Optional[TicketStatus] = None) -> Optional[Ticket]:
    """Most recently updated ticket of a customer; ties go to the newest ticket."""
    query = db.query(Ticket).filter(Ticket.customer_id == customer_id)
    if status is not None:
        query = query.filter(Ticket.status == status.value)
    return query.order_by(Ticket.updated_at.desc(), Ticket.created_at.desc()).first()


def next_ticket_number(db: Session, prefix: Optional[str] = None) -> str:
    prefix = prefix or settings.ticket_number_prefix
    latest = (
        db.query(Ticket.ticket_number)
        .filter(Ticket.ticket_number.like(f"{prefix}-%"))
        .order_by(func.length(Ticket.ticket_number).desc(), Ticket.ticket_number.desc())
        .first()
    )
    sequence = 0
    if latest:
        match = re.search(r"(\d+)$", latest[0])
        if match:
            sequence = int(match.group(1))
    return f"{prefix}-{sequence + 1:0{_TICKET_NUMBER_DIGITS}d}"


def upsert_customer(db: Session, request: IntakeRequest) -> Result[Customer]:
    phone = normalize_phone_number(request.customer.phone)
    if not phone:
        return Result.invalid_input("Customer phone must contain digits")

    now = _now()
    customer = find_customer_by_phone(db, phone)
    if customer is None:
        customer = Customer(phone=phone, name=request.customer.name.strip(), created_at=now, updated_at=now)
        db.add(customer)
    else:
        customer.name = request.customer.name.strip()
        customer.phone = phone
        customer.updated_at = now

    for field in ("email", "company", "notes"):
        value = getattr(request.customer, field)
        if value is not None:
            setattr(customer, field, value)

    db.flush()
    return Result.success(customer)


def create_intake(db: Session, request: IntakeRequest) -> Result[Ticket]:
    """Upsert the customer by phone and open a new ticket in ``intake``."""
    customer_result = upsert_customer(db, request)
    if not customer_result.ok:
        return customer_result.forward()
    customer = customer_result.value

    now = _now()
    ticket = Ticket(
        ticket_number=next_ticket_number(db),
        customer_id=customer.id,
        device_type=request.device.type,
        device_brand=request.device.brand,
        device_model=request.device.model,
        serial_number=request.device.serialNumber,
        accessories=request.device.accessories,
        problem_description=request.problemDescription,
        priority=request.priority,
        status=TicketStatus.INTAKE.value,
        estimated_cost=request.estimatedCost,
        created_at=now,
        updated_at=now,
    )
    db.add(ticket)
    db.flush()

    logger.info(
        "Ticket opened",
        extra={"context": {"ticket_id": str(ticket.id), "ticket_number": ticket.ticket_number}},
    )
    return Result.success(ticket)


def _plan_path(current: TicketStatus, target: TicketStatus) -> Result[list[TicketStatus]]:
    if current == target:
        return Result.success([])
    try:
        return Result.success(path_to(current, target, allow_reapproval=settings.allow_reapproval_after_reject))
    except InvalidTransitionError as e:
        return Result.invalid_state(str(e))


def record_diagnosis(db: Session, ticket_id: UUID, request: DiagnoseRequest) -> Result[DiagnosisOutcome]:
    """
    Store a diagnostic and move the ticket to ``awaiting_approval``.

    When staff already captured the customer's decision (``approved`` set),
    the ticket moves on to ``approved`` or ``rejected`` instead. Intermediate
    statuses are walked through, so an ``intake`` ticket can be diagnosed
    directly.
    """
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        return Result.not_found("Ticket")

    current = parse_status(ticket.status)
    if current is None:
        return Result.invalid_state(f"Ticket has unknown status: {ticket.status}")

    if request.approved is None:
        target = TicketStatus.AWAITING_APPROVAL
    else:
        target = TicketStatus.APPROVED if request.approved else TicketStatus.REJECTED

    plan = _plan_path(current, target)
    if not plan.ok:
        return plan.forward()

    now = _now()
    diagnostic = Diagnostic(
        ticket_id=ticket.id,
        technician_id=request.technicianId,
        summary=request.summary,
        findings=request.findings,
        recommended_actions=request.recommendedActions,
        estimated_cost=request.estimatedCost,
        approved=bool(request.approved),
        approved_by=request.approvedBy if request.approved is not None else None,
        approved_at=now if request.approved is not None else None,
        created_at=now,
    )
    db.add(diagnostic)

    if plan.value:
        ticket.status = target.value
    if request.estimatedCost is not None:
        ticket.estimated_cost = request.estimatedCost
    ticket.updated_at = now
    db.flush()

    logger.info(
        "Diagnosis recorded",
        extra={"context": {"ticket_id": str(ticket.id), "from": current.value, "to": target.value}},
    )
    return Result.success(DiagnosisOutcome(ticket=ticket, diagnostic=diagnostic, status_changed=bool(plan.value)))


def add_ticket_update(db: Session, ticket_id: UUID, request: TicketUpdateRequest) -> Result[TicketUpdate]:
    """Append a progress note; an optional status change must be a single valid step."""
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        return Result.not_found("Ticket")

    now = _now()
    if request.status is not None:
        current = parse_status(ticket.status)
        if current is None:
            return Result.invalid_state(f"Ticket has unknown status: {ticket.status}")
        if request.status != current:
            try:
                ticket.status = transition(
                    current, request.status, allow_reapproval=settings.allow_reapproval_after_reject
                ).value
            except InvalidTransitionError as e:
                return Result.invalid_state(str(e))

    if request.actualCost is not None:
        ticket.actual_cost = request.actualCost
    ticket.updated_at = now

    update = TicketUpdate(
        ticket_id=ticket.id,
        update_type=request.updateType,
        description=request.description,
        image_url=request.imageUrl,
        updated_by=request.updatedBy,
        created_at=now,
    )
    db.add(update)
    db.flush()
    return Result.success(update)


def mark_pickup(db: Session, ticket_id: UUID, request: PickupRequest) -> Result[PickupOutcome]:
    """
    Mark a ticket ready for pickup (``done``) or collected (``picked_up``).

    A linked invoice is nudged along: ``sent`` when ready, ``paid`` when
    collected, unless an explicit payment status is given. Marking a ticket
    with the status it already has is a no-op for the ticket.
    """
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        return Result.not_found("Ticket")

    current = parse_status(ticket.status)
    if current is None:
        return Result.invalid_state(f"Ticket has unknown status: {ticket.status}")

    target = TicketStatus(request.status)
    plan = _plan_path(current, target)
    if not plan.ok:
        return plan.forward()
    # Pickup never records a customer decision on their behalf.
    if any(step in DECISION_STATUSES for step in plan.value):
        return Result.invalid_state(f"Invalid transition: {current.value} -> {target.value}")

    invoice = None
    if request.invoiceId is not None:
        invoice = db.query(Invoice).filter(Invoice.id == request.invoiceId).first()
        if invoice is not None and invoice.ticket_id is not None and invoice.ticket_id != ticket.id:
            return Result.invalid_input("Invoice does not belong to ticket")

    now = _now()
    if plan.value:
        ticket.status = target.value
    ticket.updated_at = now

    if invoice is not None:
        next_status = request.paymentStatus or ("paid" if target == TicketStatus.PICKED_UP else "sent")
        invoice.status = next_status
        if next_status == "paid":
            invoice.paid_amount = invoice.total
            invoice.balance = Decimal("0")
        invoice.updated_at = now

    db.flush()
    return Result.success(PickupOutcome(ticket=ticket, invoice=invoice, status_changed=bool(plan.value)))


def apply_customer_decision(
    db: Session, ticket_id: UUID, decision: TicketStatus, allow_reapproval: Optional[bool] = None
) -> bool:
    """
    Apply an approve/reject sent by the customer.

    A single conditional UPDATE guarded on the current status, so of two
    concurrent decisions only one changes the row. Returns True when this
    call won.
    """
    if decision not in DECISION_STATUSES:
        raise ValueError(f"Not a decision status: {decision}")
    if allow_reapproval is None:
        allow_reapproval = settings.allow_reapproval_after_reject

    sources = [TicketStatus.AWAITING_APPROVAL.value]
    if allow_reapproval and decision == TicketStatus.APPROVED:
        sources.append(TicketStatus.REJECTED.value)

    updated = (
        db.query(Ticket)
        .filter(Ticket.id == ticket_id, Ticket.status.in_(sources))
        .update({Ticket.status: decision.value, Ticket.updated_at: _now()}, synchronize_session=False)
    )
    if updated:
        db.expire_all()
    return updated == 1
