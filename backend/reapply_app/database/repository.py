"""
Repository over one SQLAlchemy session.

Every engine component reads and writes through this class, so classification
and planning never touch SQL directly. The repository also owns the
"one current document per (application, requirement)" invariant.
"""

import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import (
    Application,
    AuditLog,
    DocumentRequirement,
    Notification,
    ReApplication,
    SubmittedDocument,
    utcnow,
)

logger = logging.getLogger(__name__)

# Applications that still owe documents against a submission deadline.
DEADLINE_STATUSES = ("draft", "incomplete")


def new_id() -> str:
    return str(uuid.uuid4())


class ApplicationRepository:
    """Create / read-by-id / read-by-filter operations for the portal records."""

    def __init__(self, session: Session):
        self.session = session

    # Applications

    def get_application(self, application_id: str) -> Optional[Application]:
        return self.session.get(Application, application_id)

    def list_user_applications(self, user_id: str) -> List[Application]:
        stmt = (
            select(Application)
            .where(Application.user_id == user_id)
            .order_by(Application.submitted_at.desc())
        )
        return list(self.session.scalars(stmt))

    def application_number_exists(self, application_number: str) -> bool:
        stmt = select(Application.id).where(Application.application_number == application_number)
        return self.session.scalar(stmt) is not None

    def add_application(self, application: Application) -> Application:
        if not application.id:
            application.id = new_id()
        self.session.add(application)
        return application

    def try_insert_application(self, application: Application) -> bool:
        """Insert under a savepoint; False when the unique application number is taken.

        A failed attempt leaves the enclosing transaction usable.
        """
        try:
            with self.session.begin_nested():
                self.add_application(application)
                self.session.flush()
        except IntegrityError as e:
            logger.warning(f"Application number {application.application_number} rejected by the database: {e.orig}")
            return False
        return True

    def list_open_deadlines(self) -> List[Application]:
        """Applications still awaiting documents whose deadline has not been reported missed."""
        stmt = (
            select(Application)
            .where(Application.status.in_(DEADLINE_STATUSES))
            .where(Application.submission_deadline.is_not(None))
            .where(Application.deadline_missed.is_not(True))
        )
        return list(self.session.scalars(stmt))

    # Requirements

    def active_requirements(self, service_type: str) -> List[DocumentRequirement]:
        stmt = (
            select(DocumentRequirement)
            .where(DocumentRequirement.service_type == service_type)
            .where(DocumentRequirement.is_active.is_(True))
            .order_by(DocumentRequirement.id)
        )
        return list(self.session.scalars(stmt))

    def get_requirement(self, requirement_id: str) -> Optional[DocumentRequirement]:
        return self.session.get(DocumentRequirement, requirement_id)

    def add_requirement(self, requirement: DocumentRequirement) -> DocumentRequirement:
        self.session.add(requirement)
        return requirement

    # Documents

    def list_documents(self, application_id: str) -> List[SubmittedDocument]:
        """All documents ever linked to the application, current or superseded."""
        stmt = select(SubmittedDocument).where(SubmittedDocument.application_id == application_id)
        return list(self.session.scalars(stmt))

    def documents_for_applications(self, application_ids: List[str]) -> Dict[str, List[SubmittedDocument]]:
        """Every linked document, grouped by application id."""
        grouped: Dict[str, List[SubmittedDocument]] = {app_id: [] for app_id in application_ids}
        if not application_ids:
            return grouped
        stmt = select(SubmittedDocument).where(SubmittedDocument.application_id.in_(application_ids))
        for doc in self.session.scalars(stmt):
            grouped[doc.application_id].append(doc)
        return grouped

    def current_documents(self, application_id: str) -> Dict[str, SubmittedDocument]:
        """Current document per requirement id.

        Rows flagged ``is_current`` win; when legacy data holds several for the
        same requirement the most recently uploaded one governs.
        """
        stmt = (
            select(SubmittedDocument)
            .where(SubmittedDocument.application_id == application_id)
            .where(SubmittedDocument.is_current.is_(True))
            .order_by(SubmittedDocument.uploaded_at.asc(), SubmittedDocument.created_at.asc())
        )
        current: Dict[str, SubmittedDocument] = {}
        for doc in self.session.scalars(stmt):
            current[doc.requirement_id] = doc
        return current

    def list_current_approved_with_expiry(self) -> List[SubmittedDocument]:
        stmt = (
            select(SubmittedDocument)
            .where(SubmittedDocument.is_current.is_(True))
            .where(SubmittedDocument.status == "approved")
            .where(SubmittedDocument.expiration_date.is_not(None))
        )
        return list(self.session.scalars(stmt))

    def add_document(self, document: SubmittedDocument) -> SubmittedDocument:
        """Add a document as the current one for its requirement slot."""
        if not document.id:
            document.id = new_id()
        self.session.execute(
            update(SubmittedDocument)
            .where(SubmittedDocument.application_id == document.application_id)
            .where(SubmittedDocument.requirement_id == document.requirement_id)
            .where(SubmittedDocument.is_current.is_(True))
            .values(is_current=False, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        document.is_current = True
        self.session.add(document)
        return document

    # Derived records

    def add_re_application(self, record: ReApplication) -> ReApplication:
        if not record.id:
            record.id = new_id()
        self.session.add(record)
        return record

    def add_notification(self, notification: Notification) -> Notification:
        if not notification.id:
            notification.id = new_id()
        self.session.add(notification)
        return notification

    def list_notifications(self, user_id: str) -> List[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        return list(self.session.scalars(stmt))

    def get_user_notification(self, notification_id: str, user_id: str) -> Optional[Notification]:
        notification = self.session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        return notification

    def count_unread_notifications(self, user_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read.is_(False))
        )
        return self.session.scalar(stmt)

    def mark_all_notifications_read(self, user_id: str) -> int:
        result = self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_notification(self, notification: Notification):
        self.session.delete(notification)

    def add_audit(self, application_id: Optional[str], action: str, payload_json: str,
                  actor: str = "system") -> AuditLog:
        entry = AuditLog(id=new_id(), application_id=application_id, actor=actor,
                         action=action, payload_json=payload_json)
        self.session.add(entry)
        return entry

    def flush(self):
        self.session.flush()
