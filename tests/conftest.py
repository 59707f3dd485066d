import os
import tempfile

# Keep the app module away from PostgreSQL/MongoDB and the repo data directory.
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="reapply-tests-")
os.environ.setdefault("DATABASE_BACKEND", "sqlite")
os.environ.setdefault("SQLITE_PATH", os.path.join(_TEST_DATA_DIR, "app.db"))
os.environ.setdefault("MONGO_ENABLED", "false")
os.environ.setdefault("REAPPLY_ANALYTICS", "false")
