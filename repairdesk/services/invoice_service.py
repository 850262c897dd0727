import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from repairdesk.config import settings
from repairdesk.logging_config import get_logger
from repairdesk.models import Customer, Invoice, InvoiceItem, Ticket
from repairdesk.schemas.invoice import InvoiceCreateRequest, InvoiceItemIn
from repairdesk.services.result import Result

logger = get_logger("invoice_service")

DOCUMENT_NUMBER_PATTERN = re.compile(r"^([A-Z]+)-(\d{4})-(\d{5})$")
_CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def line_total(item: InvoiceItemIn) -> Decimal:
    return _money(Decimal(item.quantity) * Decimal(str(item.unitPrice)) - Decimal(str(item.discount)))


def compute_totals(items: list[InvoiceItemIn], tax_rate) -> dict[str, Decimal]:
    """Subtotal of the line totals, tax at ``tax_rate`` percent, rounded to cents."""
    subtotal = _money(sum((line_total(item) for item in items), Decimal("0")))
    tax_amount = _money(subtotal * Decimal(str(tax_rate)) / Decimal("100"))
    return {"subtotal": subtotal, "tax_amount": tax_amount, "total": subtotal + tax_amount}


def next_invoice_number(db: Session, prefix: Optional[str] = None, year: Optional[int] = None) -> str:
    """``INV-2026-00001`` style; the sequence restarts every year."""
    prefix = prefix or settings.invoice_number_prefix
    year = year or datetime.now(timezone.utc).year
    numbers = db.query(Invoice.number).filter(Invoice.number.like(f"{prefix}-{year}-%")).all()

    latest = 0
    for (number,) in numbers:
        match = DOCUMENT_NUMBER_PATTERN.match(number or "")
        if match:
            latest = max(latest, int(match.group(3)))
    return f"{prefix}-{year}-{latest + 1:05d}"


def create_invoice(db: Session, request: InvoiceCreateRequest) -> Result[Invoice]:
    customer = db.query(Customer).filter(Customer.id == request.customerId).first()
    if customer is None:
        return Result.not_found("Customer")

    if request.ticketId is not None:
        ticket = db.query(Ticket).filter(Ticket.id == request.ticketId).first()
        if ticket is None:
            return Result.not_found("Ticket")
        if ticket.customer_id != customer.id:
            return Result.invalid_input("Ticket belongs to another customer")

    if request.number and db.query(Invoice).filter(Invoice.number == request.number).first():
        return Result.invalid_input(f"Invoice number already used: {request.number}")

    totals = compute_totals(request.items, request.taxRate)
    paid = _money(request.paidAmount or 0)
    if request.status == "paid" and request.paidAmount is None:
        paid = totals["total"]

    now = datetime.now(timezone.utc)
    invoice = Invoice(
        number=request.number or next_invoice_number(db),
        customer_id=customer.id,
        ticket_id=request.ticketId,
        status=request.status,
        subtotal=totals["subtotal"],
        tax_rate=_money(request.taxRate),
        tax_amount=totals["tax_amount"],
        total=totals["total"],
        paid_amount=paid,
        balance=max(Decimal("0"), totals["total"] - paid),
        notes=request.notes,
        created_at=now,
        updated_at=now,
    )
    db.add(invoice)
    db.flush()

    for position, item in enumerate(request.items):
        db.add(
            InvoiceItem(
                invoice_id=invoice.id,
                position=position,
                description=item.description,
                quantity=item.quantity,
                unit_price=_money(item.unitPrice),
                discount=_money(item.discount),
                total=line_total(item),
                created_at=now,
            )
        )
    db.flush()

    logger.info("Invoice created", extra={"context": {"invoice_id": str(invoice.id), "number": invoice.number}})
    return Result.success(invoice)


def get_invoice(db: Session, invoice_id: UUID) -> Optional[Invoice]:
    return db.query(Invoice).filter(Invoice.id == invoice_id).first()
