"""Staff-side ticket lifecycle endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from repairdesk.database import get_db
from repairdesk.models import Diagnostic
from repairdesk.routers.dependencies import get_gateway, get_workflow_formatter, notify_customer, raise_for_result
from repairdesk.schemas.ticket import (
    DiagnoseRequest,
    DiagnoseResponse,
    DiagnosticOut,
    IntakeRequest,
    PickupRequest,
    PickupResponse,
    TicketDetail,
    TicketOut,
    TicketUpdateOut,
    TicketUpdateRequest,
)
from repairdesk.services.delivery_client import WhatsAppGatewayClient
from repairdesk.services.state_machine import TicketStatus
from repairdesk.services.ticket_service import (
    add_ticket_update,
    create_intake,
    device_label,
    get_latest_invoice,
    get_ticket,
    mark_pickup,
    record_diagnosis,
)
from repairdesk.services.workflow_formatter import WorkflowFormatter

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post("/intake", response_model=TicketOut, status_code=201)
async def intake_ticket(
    request: IntakeRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    result = create_intake(db, request)
    raise_for_result(result)
    db.commit()

    ticket = result.value
    db.refresh(ticket)
    response = TicketOut.model_validate(ticket)

    reply = formatter.intake_acknowledgement(ticket.ticket_number, ticket.customer.name)
    await notify_customer(db, gateway, ticket, reply)
    return response


@router.get("/{ticket_id}", response_model=TicketDetail)
def read_ticket(ticket_id: UUID, db: Session = Depends(get_db)):
    ticket = get_ticket(db, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")

    latest_diagnostic = (
        db.query(Diagnostic)
        .filter(Diagnostic.ticket_id == ticket.id)
        .order_by(Diagnostic.created_at.desc())
        .first()
    )
    invoice = get_latest_invoice(db, ticket.id)

    detail = TicketDetail.model_validate(ticket)
    detail.latest_diagnostic = DiagnosticOut.model_validate(latest_diagnostic) if latest_diagnostic else None
    detail.invoice_id = invoice.id if invoice else None
    return detail


@router.post("/{ticket_id}/diagnose", response_model=DiagnoseResponse)
async def diagnose_ticket(
    ticket_id: UUID,
    request: DiagnoseRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    result = record_diagnosis(db, ticket_id, request)
    raise_for_result(result)
    db.commit()

    outcome = result.value
    db.refresh(outcome.ticket)
    db.refresh(outcome.diagnostic)
    response = DiagnoseResponse(
        diagnostic=DiagnosticOut.model_validate(outcome.diagnostic),
        status=outcome.ticket.status,
    )

    ticket = outcome.ticket
    summary = formatter.diagnosis_summary(
        ticket.ticket_number,
        request.summary,
        estimated_cost=request.estimatedCost if request.estimatedCost is not None else ticket.estimated_cost,
        recommended_actions=request.recommendedActions,
        awaiting_approval=request.approved is None,
    )
    await notify_customer(db, gateway, ticket, summary, {"diagnosticId": str(outcome.diagnostic.id)})

    if request.approved is not None:
        decision = formatter.staff_decision(ticket.ticket_number, request.approved, request.approvalNotes)
        await notify_customer(db, gateway, ticket, decision, {"approvedBy": request.approvedBy})

    return response


@router.post("/{ticket_id}/updates", response_model=TicketUpdateOut, status_code=201)
async def post_ticket_update(
    ticket_id: UUID,
    request: TicketUpdateRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    result = add_ticket_update(db, ticket_id, request)
    raise_for_result(result)
    db.commit()

    update = result.value
    db.refresh(update)
    response = TicketUpdateOut.model_validate(update)

    if request.notify:
        ticket = update.ticket
        reply = formatter.repair_update(ticket.ticket_number, request.description, request.status)
        await notify_customer(db, gateway, ticket, reply, {"updateType": request.updateType})
    return response


@router.post("/{ticket_id}/pickup", response_model=PickupResponse)
async def pickup_ticket(
    ticket_id: UUID,
    request: PickupRequest,
    db: Session = Depends(get_db),
    gateway: WhatsAppGatewayClient = Depends(get_gateway),
    formatter: WorkflowFormatter = Depends(get_workflow_formatter),
):
    result = mark_pickup(db, ticket_id, request)
    raise_for_result(result)
    db.commit()

    outcome = result.value
    ticket = outcome.ticket
    invoice = outcome.invoice
    db.refresh(ticket)
    if invoice is not None:
        db.refresh(invoice)
    response = PickupResponse(status=ticket.status, invoice_status=invoice.status if invoice else None)

    if request.notify:
        reply = formatter.pickup_notice(
            ticket.ticket_number,
            picked_up=ticket.status == TicketStatus.PICKED_UP.value,
            customer_name=ticket.customer.name,
            device_label=device_label(ticket),
            invoice_number=invoice.number if invoice else None,
            invoice_total=invoice.total if invoice else None,
            invoice_status=invoice.status if invoice else None,
            message=request.message,
        )
        await notify_customer(
            db,
            gateway,
            ticket,
            reply,
            {"invoiceId": str(invoice.id) if invoice else None, "invoiceStatus": invoice.status if invoice else None},
        )
    return response
