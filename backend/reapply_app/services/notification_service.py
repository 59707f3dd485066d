import datetime as dt
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from backend.reapply_app.database.database_config import DatabaseSession
from backend.reapply_app.database.models import Notification
from backend.reapply_app.database.repository import ApplicationRepository, new_id
from backend.reapply_app.reapply.config import get_reapply_config
from backend.reapply_app.reapply.exceptions import NotificationNotFound, PersistenceFailure

logger = logging.getLogger(__name__)


def create_notification(repository: ApplicationRepository, user_id: str, title: str, message: str,
                        notification_type: str, application_id: Optional[str],
                        now: dt.datetime) -> Notification:
    """Queue a notification in the caller's transaction.

    Delivery is external: the sender sets ``is_sent`` and ``sent_at``.
    """
    config = get_reapply_config()
    notification = Notification(
        id=new_id(),
        user_id=user_id,
        application_id=application_id,
        title=title,
        message=message,
        notification_type=notification_type,
        is_read=False,
        is_sent=False,
        send_via_email=config.notify_via_email,
        send_via_sms=config.notify_via_sms,
        sent_at=None,
        created_at=now,
    )
    return repository.add_notification(notification)


def build_reapplication_notification(repository: ApplicationRepository, user_id: str,
                                     application_id: str, application_number: str,
                                     reused_count: int, required_new_count: int,
                                     now: dt.datetime) -> Notification:
    message = (
        f"Your re-application {application_number} has been created. "
        f"{reused_count} documents were reused and {required_new_count} new documents are required."
    )
    return create_notification(repository, user_id, "Re-Application Created", message,
                               "success", application_id, now)


def _days(count: int) -> str:
    return f"{count} day{'' if count == 1 else 's'}"


def build_expiry_reminder(repository: ApplicationRepository, user_id: str, application_id: str,
                          filename: str, days_until_expiry: int, now: dt.datetime) -> Notification:
    message = (
        f"Your {filename} will expire in {_days(days_until_expiry)}. "
        f"Please renew it to avoid application delays."
    )
    return create_notification(repository, user_id, "Document Expiring Soon", message,
                               "document_expiry", application_id, now)


def build_expired_notice(repository: ApplicationRepository, user_id: str, application_id: str,
                         filename: str, now: dt.datetime) -> Notification:
    message = f"Your {filename} has expired. Please submit a new copy to continue your application."
    return create_notification(repository, user_id, "Document Expired", message,
                               "error", application_id, now)


def build_deadline_reminder(repository: ApplicationRepository, user_id: str, application_id: str,
                            service_type: str, days_left: int, now: dt.datetime) -> Notification:
    message = (
        f"You have {_days(days_left)} left to submit required documents "
        f"for your {service_type} application."
    )
    return create_notification(repository, user_id, "Deadline Reminder", message,
                               "deadline_reminder", application_id, now)


def build_deadline_missed(repository: ApplicationRepository, user_id: str, application_id: str,
                          service_type: str, now: dt.datetime) -> Notification:
    message = (
        f"The deadline for your {service_type} application has passed. "
        f"Your application may be cancelled if requirements are not submitted soon."
    )
    return create_notification(repository, user_id, "Deadline Missed", message,
                               "error", application_id, now)


# Inbox operations, each in its own transaction and scoped to the owner.

def list_user_notifications(session_maker: sessionmaker, user_id: str) -> Tuple[List[Notification], int]:
    """Notifications newest first, with the unread count."""
    try:
        with DatabaseSession(session_maker) as session:
            repo = ApplicationRepository(session)
            return repo.list_notifications(user_id), repo.count_unread_notifications(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Notification lookup failed for {user_id}: {e}")
        raise PersistenceFailure("Notifications could not be loaded") from e


def mark_notification_read(session_maker: sessionmaker, notification_id: str, user_id: str) -> Notification:
    try:
        with DatabaseSession(session_maker) as session:
            notification = ApplicationRepository(session).get_user_notification(notification_id, user_id)
            if notification is None:
                raise NotificationNotFound(f"Notification {notification_id} not found")
            notification.is_read = True
    except SQLAlchemyError as e:
        logger.error(f"Marking notification {notification_id} read failed: {e}")
        raise PersistenceFailure("Notification could not be updated") from e
    return notification


def mark_all_notifications_read(session_maker: sessionmaker, user_id: str) -> int:
    try:
        with DatabaseSession(session_maker) as session:
            updated = ApplicationRepository(session).mark_all_notifications_read(user_id)
    except SQLAlchemyError as e:
        logger.error(f"Marking notifications read failed for {user_id}: {e}")
        raise PersistenceFailure("Notifications could not be updated") from e
    logger.info(f"Marked {updated} notifications read for {user_id}")
    return updated


def delete_notification(session_maker: sessionmaker, notification_id: str, user_id: str):
    try:
        with DatabaseSession(session_maker) as session:
            repo = ApplicationRepository(session)
            notification = repo.get_user_notification(notification_id, user_id)
            if notification is None:
                raise NotificationNotFound(f"Notification {notification_id} not found")
            repo.delete_notification(notification)
    except SQLAlchemyError as e:
        logger.error(f"Deleting notification {notification_id} failed: {e}")
        raise PersistenceFailure("Notification could not be deleted") from e
