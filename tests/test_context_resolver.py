from repairdesk.schemas.sop import EMPTY_SOP_METADATA, SopMetadata
from repairdesk.services.context_resolver import resolve_ticket_context
from repairdesk.services.intent_service import Command
from repairdesk.services.state_machine import TicketStatus


class TestResolveTicketContext:
    def test_unknown_customer(self, session):
        assert resolve_ticket_context(session, None, EMPTY_SOP_METADATA, Command.STATUS) is None

    def test_customer_without_tickets(self, session, make_customer):
        customer = make_customer()
        assert resolve_ticket_context(session, customer, EMPTY_SOP_METADATA, Command.STATUS) is None

    def test_latest_updated_ticket_wins(self, session, make_customer, make_ticket):
        customer = make_customer()
        make_ticket(customer, "T-0001", "repairing", age_minutes=30)
        newer = make_ticket(customer, "T-0002", "intake", age_minutes=1)

        ctx = resolve_ticket_context(session, customer, EMPTY_SOP_METADATA, Command.STATUS)
        assert ctx.ticket_id == newer.id
        assert ctx.customer_name == "Aminah"
        assert ctx.invoice_number is None

    def test_sticky_ticket_from_session(self, session, make_customer, make_ticket):
        customer = make_customer()
        older = make_ticket(customer, "T-0001", "repairing", age_minutes=30)
        make_ticket(customer, "T-0002", "intake", age_minutes=1)

        previous = SopMetadata(ticketId=older.id)
        ctx = resolve_ticket_context(session, customer, previous, Command.STATUS)
        assert ctx.ticket_number == "T-0001"

    def test_decision_skips_sticky_ticket_not_awaiting_approval(self, session, make_customer, make_ticket):
        customer = make_customer()
        sticky = make_ticket(customer, "T-0001", "repairing", age_minutes=1)
        pending = make_ticket(customer, "T-0002", "awaiting_approval", age_minutes=30)

        previous = SopMetadata(ticketId=sticky.id)
        ctx = resolve_ticket_context(session, customer, previous, Command.APPROVE)
        assert ctx.ticket_id == pending.id
        assert ctx.status == TicketStatus.AWAITING_APPROVAL

    def test_decision_without_pending_ticket_falls_back_to_latest(self, session, make_customer, make_ticket):
        customer = make_customer()
        make_ticket(customer, "T-0001", "done")

        ctx = resolve_ticket_context(session, customer, EMPTY_SOP_METADATA, Command.REJECT)
        assert ctx.ticket_number == "T-0001"
        assert ctx.status == TicketStatus.DONE

    def test_sticky_ticket_of_other_customer_is_ignored(self, session, make_customer, make_ticket):
        customer = make_customer()
        stranger = make_customer(phone="+60199999999", name="Other")
        foreign = make_ticket(stranger, "T-0001", "done")
        own = make_ticket(customer, "T-0002", "intake")

        previous = SopMetadata(ticketId=foreign.id)
        ctx = resolve_ticket_context(session, customer, previous, Command.STATUS)
        assert ctx.ticket_id == own.id

    def test_reapproval_picks_rejected_ticket_when_enabled(self, session, make_customer, make_ticket):
        customer = make_customer()
        make_ticket(customer, "T-0001", "done", age_minutes=1)
        rejected = make_ticket(customer, "T-0002", "rejected", age_minutes=30)

        ctx = resolve_ticket_context(session, customer, EMPTY_SOP_METADATA, Command.APPROVE, allow_reapproval=True)
        assert ctx.ticket_id == rejected.id
