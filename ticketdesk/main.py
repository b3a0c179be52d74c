import logging
import uuid
from fastapi import FastAPI, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from sqlalchemy.orm import Session
from ticketdesk.api.tickets import router as tickets_router
from ticketdesk.api.lifecycle import router as lifecycle_router
from ticketdesk.api.escalate import router as escalate_router
from ticketdesk.api.categories import router as categories_router
from ticketdesk.api.fields import router as fields_router
from ticketdesk.api.audit import router as audit_router
from ticketdesk.core.config import settings
from ticketdesk.core.db import get_db
from ticketdesk.core.errors import TicketDeskError
from ticketdesk.core.logging_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Ticket classification, dynamic form schemas and lifecycle engine.",
    version="1.0.0",
)

@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

@app.exception_handler(TicketDeskError)
async def domain_exception_handler(request: Request, exc: TicketDeskError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.error, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "request_id": getattr(request.state, "request_id", None)},
    )

@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database failure")
    return JSONResponse(
        status_code=503,
        content={"detail": "Service Unavailable: Database connection or operational failure", "request_id": getattr(request.state, "request_id", None)},
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error", "request_id": getattr(request.state, "request_id", None)},
    )

@app.get("/health", tags=["system"])
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError:
        db_status = "error"
    return {"status": "ok", "database": db_status}

app.include_router(categories_router)
app.include_router(fields_router)
app.include_router(tickets_router)
app.include_router(lifecycle_router)
app.include_router(escalate_router)
app.include_router(audit_router)
