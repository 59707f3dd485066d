"""
Database models for PostgreSQL/SQLite using SQLAlchemy.
"""

import datetime as dt
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, ForeignKey, Boolean, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class Application(Base):
    __tablename__ = "applications"
    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    application_number = Column(String, nullable=False, unique=True)
    service_type = Column(String, nullable=False)
    purpose = Column(String, nullable=True)
    status = Column(String, default="submitted")
    submitted_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_reapplied_at = Column(DateTime, nullable=True)
    submission_deadline = Column(DateTime, nullable=True)
    deadline_reminder_sent_days = Column(Integer, nullable=True)
    deadline_missed = Column(Boolean, default=False)
    version = Column(Integer, nullable=False)
    documents = relationship("SubmittedDocument", back_populates="application")

    __mapper_args__ = {"version_id_col": version}


class DocumentRequirement(Base):
    __tablename__ = "document_requirements"
    id = Column(String, primary_key=True, index=True)
    service_type = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    validity_period_days = Column(Integer, default=365)
    is_mandatory = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)


class SubmittedDocument(Base):
    __tablename__ = "submitted_documents"
    id = Column(String, primary_key=True, index=True)
    application_id = Column(String, ForeignKey("applications.id"), index=True)
    requirement_id = Column(String, ForeignKey("document_requirements.id"))
    file_reference = Column(Text, nullable=False)
    original_filename = Column(String, nullable=True)
    status = Column(String, default="pending")
    expiration_date = Column(DateTime, nullable=True)
    reused_from_document_id = Column(String, nullable=True)
    is_current = Column(Boolean, default=True)
    expiry_reminder_sent_days = Column(Integer, nullable=True)
    uploaded_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    application = relationship("Application", back_populates="documents")
    requirement = relationship("DocumentRequirement")


class ReApplication(Base):
    __tablename__ = "re_applications"
    id = Column(String, primary_key=True, index=True)
    original_application_id = Column(String, ForeignKey("applications.id"), index=True)
    new_application_id = Column(String, ForeignKey("applications.id"))
    user_id = Column(String, nullable=False, index=True)
    reason = Column(String, nullable=False)
    reused_documents_count = Column(Integer, default=0)
    new_documents_required_count = Column(Integer, default=0)
    status = Column(String, default="draft")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("new_application_id"),)


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    application_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String, default="info")
    is_read = Column(Boolean, default=False)
    is_sent = Column(Boolean, default=False)
    send_via_email = Column(Boolean, default=True)
    send_via_sms = Column(Boolean, default=False)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(String, primary_key=True, index=True)
    application_id = Column(String, index=True)
    actor = Column(String, default="system")
    action = Column(String)
    payload_json = Column(Text)
    at = Column(DateTime, default=utcnow)
