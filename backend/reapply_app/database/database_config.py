"""
Database configuration for the re-application portal.

Primary store is PostgreSQL (pg8000 driver) with an automatic SQLite fallback;
MongoDB is an optional analytics mirror. Selection is driven by environment
variables, loaded from ``.env`` when present:

    DATABASE_BACKEND   auto | postgresql | sqlite   (default: auto)
    POSTGRES_URL       full URL, or POSTGRES_HOST/PORT/USER/PASSWORD/DB
    SQLITE_PATH        SQLite file (default: data/reapply.db)
    DATABASE_DEBUG     "true" echoes SQL
    MONGO_ENABLED      "false" disables the analytics mirror
    MONGO_URL, MONGO_DB
"""

import os
import logging
from typing import Optional, Any, Dict
from sqlalchemy import create_engine, Engine, text
from sqlalchemy.orm import sessionmaker, Session
from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from .models import Base

load_dotenv()

logger = logging.getLogger(__name__)

_engines: Dict[str, Engine] = {}
_session_maker: Optional[sessionmaker] = None
_mongo_client: Optional[MongoClient] = None
_mongo_unreachable = False
_current_db_type: str = "unknown"

REPO_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../../../"))
DEFAULT_SQLITE_DB = os.path.join(REPO_DIR, "data", "reapply.db")


def _database_backend() -> str:
    return os.getenv("DATABASE_BACKEND", "auto").lower()


def _echo_sql() -> bool:
    return os.getenv("DATABASE_DEBUG", "").lower() == "true"


def _mongo_enabled() -> bool:
    return os.getenv("MONGO_ENABLED", "true").lower() == "true"


def _postgres_url() -> str:
    url = os.getenv("POSTGRES_URL")
    if url:
        return url
    return "postgresql+pg8000://{user}:{password}@{host}:{port}/{db}".format(
        user=os.getenv("POSTGRES_USER", "postgres"),
        password=os.getenv("POSTGRES_PASSWORD", "password"),
        host=os.getenv("POSTGRES_HOST", "localhost"),
        port=os.getenv("POSTGRES_PORT", "5432"),
        db=os.getenv("POSTGRES_DB", "coc_portal"),
    )


def make_session_maker(engine: Engine) -> sessionmaker:
    """Session factory used by every engine operation.

    Records are handed back to callers after the session closes, so attributes
    must stay loaded past commit.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_postgres_engine() -> Optional[Engine]:
    """PostgreSQL engine, or None when it is disabled or unreachable.

    With ``DATABASE_BACKEND=postgresql`` a failed connection is raised instead
    of falling back.
    """
    if "postgresql" in _engines:
        return _engines["postgresql"]
    if _database_backend() == "sqlite":
        return None

    try:
        engine = create_engine(
            _postgres_url(),
            echo=_echo_sql(),
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800
        )
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"PostgreSQL unavailable: {e}")
        if _database_backend() == "postgresql":
            raise
        return None

    logger.info("PostgreSQL connection established")
    _engines["postgresql"] = engine
    return engine


def get_sqlite_engine() -> Engine:
    if "sqlite" in _engines:
        return _engines["sqlite"]

    sqlite_path = os.getenv("SQLITE_PATH", DEFAULT_SQLITE_DB)
    os.makedirs(os.path.dirname(os.path.abspath(sqlite_path)), exist_ok=True)
    engine = create_engine(
        f"sqlite:///{sqlite_path}",
        connect_args={"check_same_thread": False},
        echo=_echo_sql()
    )
    logger.info(f"Using SQLite database at {sqlite_path}")
    _engines["sqlite"] = engine
    return engine


def get_current_engine() -> Engine:
    """PostgreSQL when reachable, SQLite otherwise."""
    global _current_db_type

    engine = get_postgres_engine()
    if engine is not None:
        _current_db_type = "postgresql"
        return engine

    _current_db_type = "sqlite"
    return get_sqlite_engine()


def get_current_session() -> sessionmaker:
    """Shared session maker for the primary database; creates missing tables."""
    global _session_maker

    if _session_maker is None:
        engine = get_current_engine()
        Base.metadata.create_all(bind=engine)
        _session_maker = make_session_maker(engine)
    return _session_maker


def get_mongo_client() -> Optional[MongoClient]:
    """Analytics client; an unreachable server is not retried until close_databases()."""
    global _mongo_client, _mongo_unreachable

    if not _mongo_enabled() or _mongo_unreachable:
        return None
    if _mongo_client is not None:
        return _mongo_client

    try:
        client = MongoClient(
            os.getenv("MONGO_URL", "mongodb://localhost:27017"),
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=5000
        )
        client.admin.command('ping')
    except Exception as e:
        logger.warning(f"MongoDB unavailable, analytics mirror disabled: {e}")
        _mongo_unreachable = True
        return None

    logger.info("MongoDB connection established")
    _mongo_client = client
    return client


def get_mongo_database() -> Optional[Database]:
    client = get_mongo_client()
    if client is None:
        return None
    return client[os.getenv("MONGO_DB", "coc_portal")]


def get_mongo_collection(collection_name: str) -> Optional[Collection]:
    db = get_mongo_database()
    if db is None:
        return None
    return db[collection_name]


def get_database_info() -> Dict[str, Any]:
    """Which stores are in use; reported by the health check."""
    return {
        "primary_db": _current_db_type,
        "backend_setting": _database_backend(),
        "postgres_available": _current_db_type == "postgresql",
        "mongo_available": get_mongo_client() is not None,
    }


def init_databases():
    """Connect the primary database, create tables and check MongoDB."""
    get_current_session()
    logger.info(f"Primary database initialized: {_current_db_type}")

    if get_mongo_client() is None:
        logger.info("Continuing without MongoDB analytics")
    logger.info(f"Database status: {get_database_info()}")


def close_databases():
    """Dispose engines and close the MongoDB client."""
    global _session_maker, _mongo_client, _mongo_unreachable

    for engine in _engines.values():
        engine.dispose()
    _engines.clear()

    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
    _mongo_unreachable = False

    _session_maker = None
    logger.info("All database connections closed")


class DatabaseSession:
    """One session scope is one transaction.

    Commits on clean exit, rolls back when the block raises, and always closes
    the session.
    """

    def __init__(self, session_maker: Optional[sessionmaker] = None):
        self.session_maker = session_maker
        self.session: Optional[Session] = None

    def __enter__(self) -> Session:
        session_maker = self.session_maker or get_current_session()
        self.session = session_maker()
        return self.session

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            try:
                if exc_type:
                    self.session.rollback()
                else:
                    self.session.commit()
            finally:
                self.session.close()
