from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from repairdesk.database import get_db
from repairdesk.models import Customer
from repairdesk.routers.dependencies import (
    get_gateway,
    get_workflow_formatter,
    notify_customer,
    notify_customer_without_ticket,
    raise_for_result,
)
from repairdesk.schemas.invoice import InvoiceCreateRequest, InvoiceOut
from repairdesk.services.delivery_client import WhatsAppGatewayClient
from repairdesk.services.invoice_service import create_invoice, get_invoice
from repairdesk.services.ticket_service import get_ticket
from repairdesk.services.workflow_formatter import WorkflowFormatter

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("", response_model=InvoiceOut, status_code=201)
async def post_invoice(
    request: InvoiceCreateRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    result = create_invoice(db, request)
    raise_for_result(result)
    db.commit()

    invoice = result.value
    db.refresh(invoice)
    response = InvoiceOut.model_validate(invoice)

    customer = db.query(Customer).filter(Customer.id == invoice.customer_id).first()
    reply = formatter.invoice_issued(invoice.number, invoice.total, customer.name)
    metadata = {"documentId": str(invoice.id), "documentType": "invoice"}
    ticket = get_ticket(db, invoice.ticket_id) if invoice.ticket_id else None
    if ticket is not None:
        await notify_customer(db, gateway, ticket, reply, extra_metadata=metadata)
    else:
        await notify_customer_without_ticket(db, gateway, customer, reply, extra_metadata=metadata)
    return response


@router.get("/{invoice_id}", response_model=InvoiceOut)
def read_invoice(invoice_id: UUID, db: Session = Depends(get_db)):
    invoice = get_invoice(db, invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice
