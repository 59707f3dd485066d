import json
import logging
import datetime as dt
from typing import Optional

from fastapi import FastAPI, Depends, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

# Database imports
from backend.reapply_app.database import (
    init_databases,
    get_current_session,
    get_database_info,
    DatabaseSession,
    ApplicationRepository,
    Application,
    SubmittedDocument,
)
from backend.reapply_app.database.mongo_service import get_mongo_service
from backend.reapply_app.reapply.catalog import seed_default_requirements
from backend.reapply_app.reapply.config import get_config_dict
from backend.reapply_app.reapply.exceptions import (
    ReApplicationError,
    ApplicationNotFound,
    NotEligible,
    CatalogUnavailable,
    StalePlan,
    CommitConflict,
    PersistenceFailure,
    UnknownRequirement,
    NotificationNotFound,
)
from backend.reapply_app.reapply.service import ReApplicationService
from backend.reapply_app.services.document_service import create_application, register_document
from backend.reapply_app.services.expiry_service import sweep_application_deadlines, sweep_document_expirations
from backend.reapply_app.services.notification_service import (
    delete_notification,
    list_user_notifications,
    mark_all_notifications_read,
    mark_notification_read,
)

logger = logging.getLogger(__name__)

# Initialize databases
init_databases()

# Get session maker shared by all requests
SessionLocal = get_current_session()

with DatabaseSession(SessionLocal) as _session:
    seed_default_requirements(ApplicationRepository(_session))

app = FastAPI(title="Certificate of Confirmation – Re-Application Service")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"],
)

ERROR_STATUS = {
    ApplicationNotFound: 404,
    NotEligible: 422,
    UnknownRequirement: 422,
    NotificationNotFound: 404,
    StalePlan: 409,
    CommitConflict: 409,
    CatalogUnavailable: 503,
    PersistenceFailure: 500,
}


class ApplicationIn(BaseModel):
    service_type: str = "Certificate of Confirmation"
    purpose: Optional[str] = None


class DocumentIn(BaseModel):
    requirement_id: str
    file_reference: str
    original_filename: Optional[str] = None
    issued_at: Optional[dt.datetime] = None


class ConfirmIn(BaseModel):
    plan_fingerprint: str


class ApplicationOut(BaseModel):
    application_id: str
    application_number: str
    service_type: str
    purpose: Optional[str] = None
    status: str
    submitted_at: Optional[dt.datetime] = None
    submission_deadline: Optional[dt.datetime] = None


class DocumentOut(BaseModel):
    document_id: str
    application_id: str
    requirement_id: str
    status: str
    original_filename: Optional[str] = None
    expiration_date: Optional[dt.datetime] = None
    reused_from_document_id: Optional[str] = None


def _application_out(row: Application) -> ApplicationOut:
    return ApplicationOut(
        application_id=row.id,
        application_number=row.application_number,
        service_type=row.service_type,
        purpose=row.purpose,
        status=row.status,
        submitted_at=row.submitted_at,
        submission_deadline=row.submission_deadline,
    )


def _document_out(row: SubmittedDocument) -> DocumentOut:
    return DocumentOut(
        document_id=row.id,
        application_id=row.application_id,
        requirement_id=row.requirement_id,
        status=row.status,
        original_filename=row.original_filename,
        expiration_date=row.expiration_date,
        reused_from_document_id=row.reused_from_document_id,
    )


def get_session_maker() -> sessionmaker:
    return SessionLocal


def get_service(session_maker: sessionmaker = Depends(get_session_maker)) -> ReApplicationService:
    return ReApplicationService(session_maker)


def _audit(session_maker: sessionmaker, app_id: Optional[str], action: str, payload: dict,
           actor: str = "system"):
    """Audit action to both PostgreSQL/SQLite and MongoDB."""
    try:
        with DatabaseSession(session_maker) as session:
            ApplicationRepository(session).add_audit(app_id, action, json.dumps(payload, default=str), actor=actor)
    except SQLAlchemyError as e:
        # The audited action itself already committed; report, do not undo.
        logger.error(f"Audit write failed for {action} on {app_id}: {e}")

    # Store in MongoDB for analytics (if available)
    get_mongo_service().store_analytics_data("audit_log", {
        "application_id": app_id,
        "action": action,
        "actor": actor,
        "payload": payload
    })


@app.exception_handler(ReApplicationError)
async def reapplication_error_handler(request: Request, exc: ReApplicationError):
    status = ERROR_STATUS.get(type(exc), 400)
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.get("/healthz")
def healthz():
    """Health check with database status."""
    return {
        "status": "ok",
        "database": get_database_info(),
        "reapply": get_config_dict()
    }


@app.post("/applications", response_model=ApplicationOut)
def submit_application(
    body: ApplicationIn,
    x_user_id: str = Header(...),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    row = create_application(session_maker, x_user_id, body.service_type, body.purpose)
    _audit(session_maker, row.id, "submit", {"application_number": row.application_number}, actor=x_user_id)
    return _application_out(row)


@app.post("/applications/{application_id}/documents", response_model=DocumentOut)
def upload_document(
    application_id: str,
    body: DocumentIn,
    x_user_id: str = Header(...),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    row = register_document(
        session_maker,
        application_id=application_id,
        user_id=x_user_id,
        requirement_id=body.requirement_id,
        file_reference=body.file_reference,
        original_filename=body.original_filename,
        issued_at=body.issued_at,
    )
    _audit(session_maker, application_id, "register_document",
           {"document_id": row.id, "requirement_id": row.requirement_id}, actor=x_user_id)
    return _document_out(row)


@app.get("/reapply/eligible")
def eligible_applications(
    x_user_id: str = Header(...),
    service: ReApplicationService = Depends(get_service),
):
    eligible = service.eligible_applications(x_user_id)
    return {
        "applications": [
            {**_application_out(item.application).model_dump(mode="json"), "eligibility": item.eligibility}
            for item in eligible
        ]
    }


@app.get("/applications/{application_id}/reapply/preview")
def preview_reapplication(
    application_id: str,
    x_user_id: str = Header(...),
    service: ReApplicationService = Depends(get_service),
):
    plan = service.preview(application_id, x_user_id)
    return {"plan": plan.to_summary()}


@app.post("/applications/{application_id}/reapply")
def confirm_reapplication(
    application_id: str,
    body: ConfirmIn,
    x_user_id: str = Header(...),
    service: ReApplicationService = Depends(get_service),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    result = service.confirm(application_id, x_user_id, body.plan_fingerprint)
    record = result.re_application
    _audit(session_maker, application_id, "reapply", {
        "re_application_id": record.id,
        "new_application_id": result.application.id,
        "reason": record.reason,
        "reused_documents_count": record.reused_documents_count,
        "new_documents_required_count": record.new_documents_required_count,
    }, actor=x_user_id)
    return {
        "application": _application_out(result.application).model_dump(mode="json"),
        "re_application": {
            "re_application_id": record.id,
            "original_application_id": record.original_application_id,
            "new_application_id": record.new_application_id,
            "reason": record.reason,
            "reused_documents_count": record.reused_documents_count,
            "new_documents_required_count": record.new_documents_required_count,
            "status": record.status,
        },
        "documents": [_document_out(doc).model_dump(mode="json") for doc in result.copied_documents],
        "notification": {
            "notification_id": result.notification.id,
            "title": result.notification.title,
            "message": result.notification.message,
        },
    }


def _notification_out(n) -> dict:
    return {
        "notification_id": n.id,
        "application_id": n.application_id,
        "title": n.title,
        "message": n.message,
        "notification_type": n.notification_type,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


@app.get("/notifications")
def list_notifications(
    x_user_id: str = Header(...),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    rows, unread = list_user_notifications(session_maker, x_user_id)
    return {
        "unread_count": unread,
        "notifications": [_notification_out(n) for n in rows],
    }


@app.post("/notifications/read-all")
def read_all_notifications(
    x_user_id: str = Header(...),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    return {"ok": True, "updated": mark_all_notifications_read(session_maker, x_user_id)}


@app.post("/notifications/{notification_id}/read")
def read_notification(
    notification_id: str,
    x_user_id: str = Header(...),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    return _notification_out(mark_notification_read(session_maker, notification_id, x_user_id))


@app.delete("/notifications/{notification_id}")
def remove_notification(
    notification_id: str,
    x_user_id: str = Header(...),
    session_maker: sessionmaker = Depends(get_session_maker),
):
    delete_notification(session_maker, notification_id, x_user_id)
    return {"ok": True}


@app.post("/documents/expiry-sweep")
def expiry_sweep(session_maker: sessionmaker = Depends(get_session_maker)):
    summary = sweep_document_expirations(session_maker)
    _audit(session_maker, None, "expiry_sweep", summary)
    return {"ok": True, "summary": summary}


@app.post("/applications/deadline-sweep")
def deadline_sweep(session_maker: sessionmaker = Depends(get_session_maker)):
    summary = sweep_application_deadlines(session_maker)
    _audit(session_maker, None, "deadline_sweep", summary)
    return {"ok": True, "summary": summary}


@app.get("/reapply/statistics")
def reapplication_statistics(days: int = 30):
    """Re-application counts per reason from the analytics store (empty without MongoDB)."""
    return {"statistics": get_mongo_service().get_re_application_statistics(days)}
