"""
Database configuration and initialization module.
Provides PostgreSQL, MongoDB, and SQLite database connections with fallback support.
"""

from .database_config import (
    get_postgres_engine,
    get_mongo_client,
    get_sqlite_engine,
    get_current_session,
    get_mongo_collection,
    get_database_info,
    init_databases,
    close_databases,
    make_session_maker,
    DatabaseSession
)

from .models import (
    Base,
    Application,
    DocumentRequirement,
    SubmittedDocument,
    ReApplication,
    Notification,
    AuditLog,
    utcnow
)
from .repository import ApplicationRepository

__all__ = [
    'get_postgres_engine',
    'get_mongo_client',
    'get_sqlite_engine',
    'get_current_session',
    'get_mongo_collection',
    'get_database_info',
    'init_databases',
    'close_databases',
    'make_session_maker',
    'DatabaseSession',
    'Base',
    'Application',
    'DocumentRequirement',
    'SubmittedDocument',
    'ReApplication',
    'Notification',
    'AuditLog',
    'utcnow',
    'ApplicationRepository'
]
