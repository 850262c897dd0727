from datetime import datetime, timezone
from decimal import Decimal

from repairdesk.models import Invoice, InvoiceItem, Ticket, TicketUpdate
from repairdesk.schemas.invoice import InvoiceCreateRequest
from repairdesk.schemas.ticket import DiagnoseRequest, IntakeRequest, PickupRequest, TicketUpdateRequest
from repairdesk.services.invoice_service import create_invoice, next_invoice_number
from repairdesk.services.result import INVALID_INPUT, INVALID_STATE, NOT_FOUND
from repairdesk.services.state_machine import TicketStatus
from repairdesk.services.ticket_service import (
    add_ticket_update,
    apply_customer_decision,
    create_intake,
    find_customer_by_phone,
    mark_pickup,
    next_ticket_number,
    record_diagnosis,
)


def _intake_request(phone="012-345 6789", name="Aminah"):
    return IntakeRequest(
        customer={"name": name, "phone": phone},
        device={"type": "phone", "brand": "Samsung", "model": "Galaxy S21"},
        problemDescription="Screen cracked after a fall",
    )


def _invoice(session, customer, ticket, status="draft", total="106.53"):
    now = datetime.now(timezone.utc)
    invoice = Invoice(
        number="INV-2026-00001",
        customer_id=customer.id,
        ticket_id=ticket.id if ticket else None,
        status=status,
        subtotal=Decimal(total),
        total=Decimal(total),
        created_at=now,
        updated_at=now,
    )
    session.add(invoice)
    session.commit()
    return invoice


class TestNumbering:
    def test_first_ticket_number(self, session):
        assert next_ticket_number(session) == "T-0001"

    def test_numbers_sort_numerically(self, session, make_customer, make_ticket):
        customer = make_customer()
        make_ticket(customer, "T-0009")
        make_ticket(customer, "T-10000")
        assert next_ticket_number(session) == "T-10001"

    def test_invoice_number_sequence_per_year(self, session, make_customer):
        customer = make_customer()
        _invoice(session, customer, None)
        assert next_invoice_number(session, year=2026) == "INV-2026-00002"
        assert next_invoice_number(session, year=2027) == "INV-2027-00001"


class TestIntake:
    def test_creates_customer_and_ticket(self, session):
        result = create_intake(session, _intake_request())
        session.commit()

        assert result.ok
        ticket = result.value
        assert ticket.ticket_number == "T-0001"
        assert ticket.status == "intake"
        assert ticket.customer.phone == "+60123456789"

    def test_existing_customer_is_reused(self, session, make_customer):
        customer = make_customer(phone="+60123456789", name="Old Name")
        result = create_intake(session, _intake_request(phone="60123456789", name="Aminah Binti Ali"))
        session.commit()

        assert result.value.customer_id == customer.id
        assert find_customer_by_phone(session, "0123456789").name == "Aminah Binti Ali"


class TestDiagnosis:
    def test_intake_moves_to_awaiting_approval(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="intake")
        result = record_diagnosis(session, ticket.id, DiagnoseRequest(summary="Faulty LCD panel", estimatedCost=250))

        assert result.ok
        assert result.value.ticket.status == "awaiting_approval"
        assert result.value.ticket.estimated_cost == 250
        assert result.value.status_changed is True

    def test_decision_given_by_staff(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="diagnosed")
        result = record_diagnosis(session, ticket.id, DiagnoseRequest(summary="Faulty LCD", approved=False))
        assert result.value.ticket.status == "rejected"
        assert result.value.diagnostic.approved is False

    def test_closed_ticket_cannot_be_diagnosed(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="picked_up")
        result = record_diagnosis(session, ticket.id, DiagnoseRequest(summary="Faulty LCD"))
        assert result.error_code == INVALID_STATE


class TestTicketUpdates:
    def test_single_step_status_change(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="approved")
        result = add_ticket_update(
            session,
            ticket.id,
            TicketUpdateRequest(updateType="progress", description="Parts arrived", status="repairing", actualCost=180),
        )
        session.commit()

        assert result.ok
        refreshed = session.get(Ticket, ticket.id)
        assert refreshed.status == "repairing"
        assert refreshed.actual_cost == 180
        assert session.query(TicketUpdate).count() == 1

    def test_skipping_states_is_rejected(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="intake")
        result = add_ticket_update(
            session, ticket.id, TicketUpdateRequest(updateType="progress", description="Done already", status="done")
        )
        assert result.error_code == INVALID_STATE

    def test_unknown_ticket(self, session):
        from uuid import uuid4

        result = add_ticket_update(session, uuid4(), TicketUpdateRequest(updateType="note", description="hello"))
        assert result.error_code == NOT_FOUND


class TestPickup:
    def test_ready_nudges_invoice_to_sent(self, session, make_customer, make_ticket):
        customer = make_customer()
        ticket = make_ticket(customer, status="repairing")
        invoice = _invoice(session, customer, ticket)

        result = mark_pickup(session, ticket.id, PickupRequest(status="done", invoiceId=invoice.id))
        assert result.value.ticket.status == "done"
        assert result.value.invoice.status == "sent"

    def test_picked_up_marks_invoice_paid(self, session, make_customer, make_ticket):
        customer = make_customer()
        ticket = make_ticket(customer, status="done")
        invoice = _invoice(session, customer, ticket, status="sent")

        result = mark_pickup(session, ticket.id, PickupRequest(status="picked_up", invoiceId=invoice.id))
        assert result.value.invoice.status == "paid"
        assert result.value.invoice.balance == 0
        assert result.value.invoice.paid_amount == Decimal("106.53")

    def test_repeat_is_a_no_op(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="done")
        result = mark_pickup(session, ticket.id, PickupRequest(status="done"))
        assert result.ok
        assert result.value.status_changed is False

    def test_invoice_of_other_ticket(self, session, make_customer, make_ticket):
        customer = make_customer()
        ticket = make_ticket(customer, "T-0001", status="done")
        other = make_ticket(customer, "T-0002", status="done")
        invoice = _invoice(session, customer, other)

        result = mark_pickup(session, ticket.id, PickupRequest(status="picked_up", invoiceId=invoice.id))
        assert result.error_code == INVALID_INPUT

    def test_pickup_does_not_approve_on_customers_behalf(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="awaiting_approval")
        result = mark_pickup(session, ticket.id, PickupRequest(status="done"))
        assert result.error_code == INVALID_STATE


class TestCustomerDecision:
    def test_only_first_decision_wins(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="awaiting_approval")

        assert apply_customer_decision(session, ticket.id, TicketStatus.APPROVED) is True
        assert apply_customer_decision(session, ticket.id, TicketStatus.REJECTED) is False
        session.commit()
        assert session.get(Ticket, ticket.id).status == "approved"

    def test_rejected_ticket_needs_reapproval_policy(self, session, make_customer, make_ticket):
        ticket = make_ticket(make_customer(), status="rejected")

        assert apply_customer_decision(session, ticket.id, TicketStatus.APPROVED, allow_reapproval=False) is False
        assert apply_customer_decision(session, ticket.id, TicketStatus.APPROVED, allow_reapproval=True) is True


class TestInvoices:
    def test_totals_and_tax(self, session, make_customer, make_ticket):
        customer = make_customer()
        ticket = make_ticket(customer, status="done")
        request = InvoiceCreateRequest(
            customerId=customer.id,
            ticketId=ticket.id,
            taxRate=6,
            items=[
                {"description": "LCD panel", "quantity": 2, "unitPrice": 50, "discount": 10},
                {"description": "Labour", "quantity": 1, "unitPrice": 10.5},
            ],
        )
        result = create_invoice(session, request)

        assert result.ok
        invoice = result.value
        assert invoice.subtotal == Decimal("100.50")
        assert invoice.tax_amount == Decimal("6.03")
        assert invoice.total == Decimal("106.53")
        assert invoice.balance == Decimal("106.53")
        assert invoice.number.startswith("INV-")

    def test_line_items_are_stored(self, session, make_customer):
        customer = make_customer()
        request = InvoiceCreateRequest(
            customerId=customer.id,
            items=[
                {"description": "LCD panel", "quantity": 2, "unitPrice": 50, "discount": 10},
                {"description": "Labour", "quantity": 1, "unitPrice": 10.5},
            ],
        )
        invoice = create_invoice(session, request).value

        items = (
            session.query(InvoiceItem)
            .filter(InvoiceItem.invoice_id == invoice.id)
            .order_by(InvoiceItem.position)
            .all()
        )
        assert [item.description for item in items] == ["LCD panel", "Labour"]
        assert items[0].unit_price == Decimal("50.00")
        assert items[0].discount == Decimal("10.00")
        assert items[0].total == Decimal("90.00")
        assert items[1].total == Decimal("10.50")
        assert [item.description for item in invoice.items] == ["LCD panel", "Labour"]

    def test_overpayment_leaves_zero_balance(self, session, make_customer):
        customer = make_customer()
        request = InvoiceCreateRequest(
            customerId=customer.id,
            paidAmount=500,
            items=[{"description": "Labour", "quantity": 1, "unitPrice": 300}],
        )
        invoice = create_invoice(session, request).value

        assert invoice.total == Decimal("300.00")
        assert invoice.paid_amount == Decimal("500.00")
        assert invoice.balance == Decimal("0")

    def test_ticket_of_other_customer(self, session, make_customer, make_ticket):
        customer = make_customer()
        stranger = make_customer(phone="+60199999999", name="Other")
        ticket = make_ticket(stranger, status="done")
        request = InvoiceCreateRequest(
            customerId=customer.id,
            ticketId=ticket.id,
            items=[{"description": "Labour", "quantity": 1, "unitPrice": 10}],
        )
        assert create_invoice(session, request).error_code == INVALID_INPUT
