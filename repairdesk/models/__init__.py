from repairdesk.models.customer import Customer
from repairdesk.models.diagnostic import Diagnostic
from repairdesk.models.invoice import Invoice
from repairdesk.models.invoice_item import InvoiceItem
from repairdesk.models.ticket import Ticket
from repairdesk.models.ticket_update import TicketUpdate
from repairdesk.models.wa_message import WaMessage

__all__ = [
    "Customer",
    "Ticket",
    "Diagnostic",
    "TicketUpdate",
    "Invoice",
    "InvoiceItem",
    "WaMessage",
]
