import datetime as dt
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from backend.reapply_app.database.database_config import DatabaseSession
from backend.reapply_app.database.models import Application, SubmittedDocument, utcnow
from backend.reapply_app.database.repository import ApplicationRepository, new_id
from backend.reapply_app.reapply.catalog import RequirementCatalog, expiration_for
from backend.reapply_app.reapply.classifier import as_naive_utc
from backend.reapply_app.reapply.config import get_reapply_config
from backend.reapply_app.reapply.committer import (
    ApplicationNumberAllocator,
    get_number_allocator,
    insert_numbered_application,
)
from backend.reapply_app.reapply.exceptions import (
    ApplicationNotFound,
    PersistenceFailure,
    ReApplicationError,
    UnknownRequirement,
)

logger = logging.getLogger(__name__)


def create_application(session_maker: sessionmaker, user_id: str, service_type: str,
                       purpose: Optional[str], now: Optional[dt.datetime] = None,
                       allocator: Optional[ApplicationNumberAllocator] = None) -> Application:
    """First submission of an application; status is set to ``submitted``."""
    now = now or utcnow()
    config = get_reapply_config()
    try:
        with DatabaseSession(session_maker) as session:
            repo = ApplicationRepository(session)
            RequirementCatalog(repo).active_requirements(service_type)
            application = insert_numbered_application(
                repo, allocator or get_number_allocator(), config.number_prefix_for(service_type), now.year,
                config.number_allocation_attempts,
                lambda number: Application(
                    id=new_id(),
                    user_id=user_id,
                    application_number=number,
                    service_type=service_type,
                    purpose=purpose,
                    status="submitted",
                    submitted_at=now,
                    created_at=now,
                    updated_at=now,
                ),
            )
    except ReApplicationError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Application submission failed for user {user_id}: {e}")
        raise PersistenceFailure("Application could not be saved") from e

    logger.info(f"Application submitted: {application.application_number}")
    return application


def register_document(session_maker: sessionmaker, application_id: str, user_id: str,
                      requirement_id: str, file_reference: str,
                      original_filename: Optional[str] = None,
                      issued_at: Optional[dt.datetime] = None,
                      now: Optional[dt.datetime] = None) -> SubmittedDocument:
    """Attach a document to a requirement slot, superseding the previous one.

    The expiration date follows the requirement's validity period, counted
    from ``issued_at`` (defaults to upload time). New documents await review.
    """
    now = now or utcnow()
    try:
        with DatabaseSession(session_maker) as session:
            repo = ApplicationRepository(session)
            application = repo.get_application(application_id)
            if application is None or application.user_id != user_id:
                raise ApplicationNotFound(f"Application {application_id} not found")

            requirement = RequirementCatalog(repo).get_active_requirement(
                application.service_type, requirement_id)
            if requirement is None:
                raise UnknownRequirement(
                    f"Requirement {requirement_id} is not active for {application.service_type}")

            issued = as_naive_utc(issued_at) or now
            document = repo.add_document(SubmittedDocument(
                id=new_id(),
                application_id=application.id,
                requirement_id=requirement.id,
                file_reference=file_reference,
                original_filename=original_filename,
                status="pending",
                expiration_date=expiration_for(requirement, issued),
                uploaded_at=now,
                created_at=now,
                updated_at=now,
            ))
    except ReApplicationError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Document registration failed for {application_id}: {e}")
        raise PersistenceFailure("Document could not be saved") from e

    logger.info(f"Document {document.id} registered for {application_id}/{requirement_id}")
    return document
