"""
Re-application service: select -> preview -> confirm.

Each operation runs in its own session scope. Previews are read-only; only
``commit`` and ``confirm`` write.
"""

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..database.database_config import DatabaseSession
from ..database.models import Application, utcnow
from ..database.repository import ApplicationRepository
from .catalog import RequirementCatalog
from .classifier import DocumentClassification, classify_documents
from .committer import ApplicationNumberAllocator, CommitResult, ReApplicationCommitter
from .config import ReApplyConfig, get_reapply_config
from .eligibility import eligibility_label, filter_eligible_applications, is_eligible
from .exceptions import (
    ApplicationNotFound,
    NotEligible,
    PersistenceFailure,
    ReApplicationError,
    StalePlan,
)
from .planner import ReApplicationPlan, build_plan

logger = logging.getLogger(__name__)


@dataclass
class EligibleApplication:
    application: Application
    eligibility: str  # 'rejected', 'incomplete', 'has_expired_documents'


class ReApplicationService:
    """Entry point used by the HTTP layer and by scripts."""

    def __init__(self, session_maker: sessionmaker, config: Optional[ReApplyConfig] = None,
                 clock: Callable[[], dt.datetime] = utcnow,
                 allocator: Optional[ApplicationNumberAllocator] = None):
        self.session_maker = session_maker
        self.config = config or get_reapply_config()
        self.clock = clock
        self.committer = ReApplicationCommitter(session_maker, config=self.config,
                                                allocator=allocator, clock=clock)

    def _read(self, operation: str, fn):
        try:
            with DatabaseSession(self.session_maker) as session:
                return fn(ApplicationRepository(session))
        except ReApplicationError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"{operation} failed: {e}")
            raise PersistenceFailure(f"{operation} failed") from e

    @staticmethod
    def _owned_application(repository: ApplicationRepository, application_id: str,
                           user_id: str) -> Application:
        application = repository.get_application(application_id)
        if application is None or application.user_id != user_id:
            raise ApplicationNotFound(f"Application {application_id} not found")
        return application

    def eligible_applications(self, user_id: str) -> List[EligibleApplication]:
        now = self.clock()

        def run(repository: ApplicationRepository) -> List[EligibleApplication]:
            applications = repository.list_user_applications(user_id)
            documents = repository.documents_for_applications([app.id for app in applications])
            eligible = filter_eligible_applications(user_id, applications, documents, now)
            return [
                EligibleApplication(app, eligibility_label(app, documents.get(app.id, []), now))
                for app in eligible
            ]

        return self._read("Eligibility lookup", run)

    def classify(self, application_id: str, user_id: str) -> List[DocumentClassification]:
        now = self.clock()

        def run(repository: ApplicationRepository) -> List[DocumentClassification]:
            application = self._owned_application(repository, application_id, user_id)
            requirements = RequirementCatalog(repository).active_requirements(application.service_type)
            return classify_documents(requirements, repository.current_documents(application.id), now)

        return self._read("Document classification", run)

    def preview(self, application_id: str, user_id: str) -> ReApplicationPlan:
        """Build the plan for confirmation. Writes nothing."""
        now = self.clock()

        def run(repository: ApplicationRepository) -> ReApplicationPlan:
            application = self._owned_application(repository, application_id, user_id)
            current = repository.current_documents(application.id)
            if not is_eligible(application, repository.list_documents(application.id), now):
                raise NotEligible(
                    f"Application {application.application_number} is not eligible for re-application"
                )
            requirements = RequirementCatalog(repository).active_requirements(application.service_type)
            items = classify_documents(requirements, current, now)
            return build_plan(application, items, now)

        return self._read("Re-application preview", run)

    def commit(self, plan: ReApplicationPlan) -> CommitResult:
        return self.committer.commit(plan)

    def confirm(self, application_id: str, user_id: str, plan_fingerprint: str) -> CommitResult:
        """Commit on behalf of a client that only holds the previewed fingerprint."""
        plan = self.preview(application_id, user_id)
        if plan.fingerprint != plan_fingerprint:
            logger.warning(f"Confirmation for {application_id} used an outdated plan")
            raise StalePlan("The application changed since the plan was shown; review the new plan")
        return self.commit(plan)
