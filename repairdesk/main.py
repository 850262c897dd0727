from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from repairdesk.config import settings
from repairdesk.database import get_db
from repairdesk.logging_config import get_logger, setup_logging
from repairdesk.models import Customer, Invoice, Ticket, WaMessage
from repairdesk.routers import invoices, tickets, webhook

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="RepairDesk API",
    description="Repair-shop ticketing with WhatsApp SOP automation",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_summary(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(error.get("loc", ())), "msg": error.get("msg")} for error in exc.errors()]


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info(
        "Rejected invalid payload",
        extra={"context": {"path": request.url.path, "errors": len(exc.errors())}},
    )
    return JSONResponse(status_code=400, content={"detail": "Invalid payload", "errors": _error_summary(exc)})


app.include_router(webhook.router)
app.include_router(tickets.router)
app.include_router(invoices.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "customers": db.query(Customer).count(),
        "tickets": db.query(Ticket).count(),
        "invoices": db.query(Invoice).count(),
        "wa_messages": db.query(WaMessage).count(),
    }
