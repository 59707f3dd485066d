import datetime as dt
import logging
from typing import Dict, Any, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from backend.reapply_app.database.database_config import DatabaseSession
from backend.reapply_app.database.models import utcnow
from backend.reapply_app.database.repository import ApplicationRepository
from backend.reapply_app.reapply.classifier import as_naive_utc, days_until
from backend.reapply_app.reapply.config import get_reapply_config
from backend.reapply_app.reapply.exceptions import PersistenceFailure
from backend.reapply_app.services.notification_service import (
    build_deadline_missed,
    build_deadline_reminder,
    build_expired_notice,
    build_expiry_reminder,
)

logger = logging.getLogger(__name__)


def sweep_document_expirations(session_maker: sessionmaker, now: Optional[dt.datetime] = None,
                               reminder_days: Optional[Sequence[int]] = None) -> Dict[str, Any]:
    """Send expiry reminders and mark lapsed approved documents as expired.

    A reminder goes out once per document per scheduled day. Everything is
    written in one transaction.
    """
    now = as_naive_utc(now) or utcnow()
    schedule = set(reminder_days if reminder_days is not None else get_reapply_config().expiry_reminder_days)
    reminders = 0
    expired = 0

    try:
        with DatabaseSession(session_maker) as session:
            repo = ApplicationRepository(session)
            for doc in repo.list_current_approved_with_expiry():
                application = repo.get_application(doc.application_id)
                if application is None:
                    continue
                remaining = days_until(as_naive_utc(doc.expiration_date), now)
                filename = doc.original_filename or "document"

                if remaining < 0:
                    doc.status = "expired"
                    doc.updated_at = now
                    build_expired_notice(repo, application.user_id, application.id, filename, now)
                    expired += 1
                elif remaining in schedule and doc.expiry_reminder_sent_days != remaining:
                    doc.expiry_reminder_sent_days = remaining
                    build_expiry_reminder(repo, application.user_id, application.id, filename, remaining, now)
                    reminders += 1
    except SQLAlchemyError as e:
        logger.error(f"Document expiry sweep failed: {e}")
        raise PersistenceFailure("Document expiry sweep failed; no changes were kept") from e

    summary = {"reminders_sent": reminders, "documents_expired": expired, "checked_at": now.isoformat()}
    logger.info(f"Document expiry sweep: {summary}")
    return summary


def sweep_application_deadlines(session_maker: sessionmaker, now: Optional[dt.datetime] = None,
                                reminder_days: Optional[Sequence[int]] = None) -> Dict[str, Any]:
    """Remind owners of drafts and incomplete applications about their submission deadline.

    Reminders go out once per scheduled day; a passed deadline is reported once
    and the application is flagged so it is not reported again.
    """
    now = as_naive_utc(now) or utcnow()
    schedule = set(reminder_days if reminder_days is not None else get_reapply_config().deadline_reminder_days)
    reminders = 0
    missed = 0

    try:
        with DatabaseSession(session_maker) as session:
            repo = ApplicationRepository(session)
            for application in repo.list_open_deadlines():
                remaining = days_until(as_naive_utc(application.submission_deadline), now)
                if remaining < 0:
                    application.deadline_missed = True
                    build_deadline_missed(repo, application.user_id, application.id,
                                          application.service_type, now)
                    missed += 1
                elif remaining in schedule and application.deadline_reminder_sent_days != remaining:
                    application.deadline_reminder_sent_days = remaining
                    build_deadline_reminder(repo, application.user_id, application.id,
                                            application.service_type, remaining, now)
                    reminders += 1
    except SQLAlchemyError as e:
        logger.error(f"Application deadline sweep failed: {e}")
        raise PersistenceFailure("Application deadline sweep failed; no changes were kept") from e

    summary = {"reminders_sent": reminders, "deadlines_missed": missed, "checked_at": now.isoformat()}
    logger.info(f"Application deadline sweep: {summary}")
    return summary
