import datetime as dt
import os
import tempfile
import unittest
import uuid

from sqlalchemy import create_engine, func, select

from backend.reapply_app.database.database_config import DatabaseSession, make_session_maker
from backend.reapply_app.database.models import Application, Base, SubmittedDocument
from backend.reapply_app.database.repository import ApplicationRepository
from backend.reapply_app.reapply.catalog import CERTIFICATE_OF_CONFIRMATION, seed_default_requirements

FIXED_NOW = dt.datetime(2026, 10, 19, 12, 0, 0)


class DatabaseTestCase(unittest.TestCase):
    """Fresh SQLite database with the default catalog for every test."""

    now = FIXED_NOW

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "test.db")
        self.engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
        Base.metadata.create_all(self.engine)
        self.session_maker = make_session_maker(self.engine)
        with DatabaseSession(self.session_maker) as session:
            seed_default_requirements(ApplicationRepository(session))

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def clock(self) -> dt.datetime:
        return self.now

    def add_application(self, user_id="user-1", status="rejected",
                        service_type=CERTIFICATE_OF_CONFIRMATION, purpose="IP Identification") -> Application:
        application = Application(
            id=str(uuid.uuid4()),
            user_id=user_id,
            application_number=f"TEST-{uuid.uuid4().hex[:10]}",
            service_type=service_type,
            purpose=purpose,
            status=status,
            submitted_at=self.now - dt.timedelta(days=15),
        )
        with DatabaseSession(self.session_maker) as session:
            session.add(application)
        return application

    def add_document(self, application: Application, requirement_id: str, status="approved",
                     expires_in_days=None, uploaded_days_ago=15) -> SubmittedDocument:
        expiration = None
        if expires_in_days is not None:
            expiration = self.now + dt.timedelta(days=expires_in_days)
        document = SubmittedDocument(
            id=str(uuid.uuid4()),
            application_id=application.id,
            requirement_id=requirement_id,
            file_reference=f"uploads/{application.id}/{requirement_id}.pdf",
            original_filename=f"{requirement_id}.pdf",
            status=status,
            expiration_date=expiration,
            uploaded_at=self.now - dt.timedelta(days=uploaded_days_ago),
        )
        with DatabaseSession(self.session_maker) as session:
            ApplicationRepository(session).add_document(document)
        return document

    def set_deadline(self, application: Application, days_from_now: float):
        with DatabaseSession(self.session_maker) as session:
            row = session.get(Application, application.id)
            row.submission_deadline = self.now + dt.timedelta(days=days_from_now)

    def add_standard_scenario(self, status="rejected") -> Application:
        """Valid birth certificate, expired ID, no barangay certificate."""
        application = self.add_application(status=status)
        self.add_document(application, "req_1", status="approved", expires_in_days=400)
        self.add_document(application, "req_2", status="approved", expires_in_days=-10)
        return application

    def count(self, model, *criteria) -> int:
        with DatabaseSession(self.session_maker) as session:
            stmt = select(func.count()).select_from(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return session.scalar(stmt)

    def fetch(self, model, *criteria):
        with DatabaseSession(self.session_maker) as session:
            stmt = select(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return list(session.scalars(stmt))
