"""
Re-application committer.

Executes a confirmed plan as one transaction: a new draft application, the
reusable documents cloned into it, one re-application record and one
notification. Nothing is visible unless every write succeeds.
"""

import datetime as dt
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ..database.database_config import DatabaseSession
from ..database.models import Application, Notification, ReApplication, SubmittedDocument, utcnow
from ..database.mongo_service import get_mongo_service
from ..database.repository import ApplicationRepository, new_id
from ..services.notification_service import build_reapplication_notification
from .catalog import RequirementCatalog
from .classifier import classify_documents
from .config import ReApplyConfig, get_reapply_config
from .eligibility import is_eligible
from .exceptions import (
    ApplicationNotFound,
    CommitConflict,
    NotEligible,
    PersistenceFailure,
    ReApplicationError,
    StalePlan,
)
from .planner import ReApplicationPlan, build_plan

logger = logging.getLogger(__name__)


@dataclass
class CommitResult:
    """Records written by one committed re-application."""
    application: Application
    re_application: ReApplication
    notification: Notification
    copied_documents: List[SubmittedDocument]
    plan: ReApplicationPlan


class ApplicationNumberAllocator:
    """Mints ``<PREFIX>-<YEAR>-<6 digits>`` numbers from a time-ordered sequence.

    The sequence is strictly increasing within the process, so two commits in
    the same millisecond still get distinct numbers. Cross-process collisions
    hit the unique constraint and are re-minted by insert_numbered_application.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._last = 0

    def next_sequence(self) -> int:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate

    def mint(self, prefix: str, year: int) -> str:
        return f"{prefix}-{year}-{self.next_sequence() % 1_000_000:06d}"


_default_allocator = ApplicationNumberAllocator()


def get_number_allocator() -> ApplicationNumberAllocator:
    """Process-wide allocator shared by first submissions and re-applications."""
    return _default_allocator


def insert_numbered_application(repository: ApplicationRepository, allocator: ApplicationNumberAllocator,
                                prefix: str, year: int, attempts: int,
                                build: Callable[[str], Application]) -> Application:
    """Insert the application built by ``build(number)`` under a fresh unique number.

    A number is re-minted when it is already present or when the insert loses
    to a concurrent writer on the unique constraint, up to ``attempts`` mints.
    """
    for _ in range(max(1, attempts)):
        number = allocator.mint(prefix, year)
        if repository.application_number_exists(number):
            logger.debug(f"Application number {number} already taken, retrying")
            continue
        application = build(number)
        if repository.try_insert_application(application):
            return application
    raise PersistenceFailure("Could not allocate a unique application number")


class ReApplicationCommitter:
    """Performs the multi-record write for a confirmed plan."""

    def __init__(self, session_maker: sessionmaker, config: Optional[ReApplyConfig] = None,
                 allocator: Optional[ApplicationNumberAllocator] = None,
                 clock: Callable[[], dt.datetime] = utcnow):
        self.session_maker = session_maker
        self.config = config or get_reapply_config()
        self.allocator = allocator or _default_allocator
        self.clock = clock

    def commit(self, plan: ReApplicationPlan) -> CommitResult:
        """Commit ``plan``; every call mints a new application."""
        try:
            with DatabaseSession(self.session_maker) as session:
                result = self._commit_in_session(ApplicationRepository(session), plan)
        except StaleDataError as e:
            logger.warning(f"Concurrent re-application detected on {plan.original_application_id}: {e}")
            raise CommitConflict(
                f"Application {plan.original_application_id} was re-applied from concurrently; "
                f"reload and confirm again"
            ) from e
        except ReApplicationError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Re-application commit failed for {plan.original_application_id}: {e}")
            raise PersistenceFailure("Re-application could not be saved; nothing was created") from e

        logger.info(
            f"Re-application committed: {plan.original_application_id} -> "
            f"{result.application.application_number} "
            f"(reused={result.re_application.reused_documents_count}, "
            f"new_required={result.re_application.new_documents_required_count})"
        )
        self._mirror_to_analytics(result)
        return result

    def _commit_in_session(self, repository: ApplicationRepository,
                           plan: ReApplicationPlan) -> CommitResult:
        now = self.clock()

        original = repository.get_application(plan.original_application_id)
        if original is None or original.user_id != plan.user_id:
            raise ApplicationNotFound(f"Application {plan.original_application_id} not found")

        # Decide on the state as of confirmation, not as of the preview.
        requirements = RequirementCatalog(repository).active_requirements(original.service_type)
        current = repository.current_documents(original.id)
        items = classify_documents(requirements, current, now)
        if not is_eligible(original, repository.list_documents(original.id), now):
            raise NotEligible(f"Application {original.application_number} is not eligible for re-application")

        fresh = build_plan(original, items, now)
        if fresh.fingerprint != plan.fingerprint:
            logger.warning(f"Stale re-application plan for {original.id}")
            raise StalePlan(
                f"Application {original.application_number} changed since the plan was generated"
            )

        # Version-guarded UPDATE: a racing commit on the same original fails here.
        original.last_reapplied_at = now
        repository.flush()

        application = insert_numbered_application(
            repository, self.allocator, self.config.number_prefix_for(original.service_type), now.year,
            self.config.number_allocation_attempts,
            lambda number: Application(
                id=new_id(),
                user_id=original.user_id,
                application_number=number,
                service_type=original.service_type,
                purpose=original.purpose,
                status="draft",
                submitted_at=now,
                submission_deadline=now + dt.timedelta(days=self.config.submission_deadline_days),
                deadline_missed=False,
                created_at=now,
                updated_at=now,
            ),
        )

        copied = []
        for item in fresh.reusable_items:
            source = item.document
            copied.append(repository.add_document(SubmittedDocument(
                id=new_id(),
                application_id=application.id,
                requirement_id=source.requirement_id,
                file_reference=source.file_reference,
                original_filename=source.original_filename,
                status=source.status,
                expiration_date=source.expiration_date,
                reused_from_document_id=source.id,
                uploaded_at=source.uploaded_at,
                created_at=now,
                updated_at=now,
            )))

        record = repository.add_re_application(ReApplication(
            id=new_id(),
            original_application_id=original.id,
            new_application_id=application.id,
            user_id=original.user_id,
            reason=fresh.reason,
            reused_documents_count=fresh.reusable_count,
            new_documents_required_count=fresh.required_new_count,
            status="draft",
            created_at=now,
            updated_at=now,
        ))

        notification = build_reapplication_notification(
            repository,
            user_id=original.user_id,
            application_id=application.id,
            application_number=application.application_number,
            reused_count=fresh.reusable_count,
            required_new_count=fresh.required_new_count,
            now=now,
        )
        repository.flush()

        return CommitResult(
            application=application,
            re_application=record,
            notification=notification,
            copied_documents=copied,
            plan=fresh,
        )

    def _mirror_to_analytics(self, result: CommitResult):
        if not self.config.analytics_enabled:
            return
        summary = {
            "original_application_id": result.re_application.original_application_id,
            "new_application_id": result.application.id,
            "application_number": result.application.application_number,
            "user_id": result.application.user_id,
            "reason": result.re_application.reason,
            "reusable_count": result.re_application.reused_documents_count,
            "required_new_count": result.re_application.new_documents_required_count,
        }
        get_mongo_service().store_re_application(result.re_application.id, summary)
