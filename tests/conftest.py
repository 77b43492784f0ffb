import os
import shutil
import sys
import uuid
from pathlib import Path

# Ensure project root is on sys.path so `import postboard` succeeds when running plain `pytest`.
ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test.db")
os.environ.setdefault("UPLOAD_PATH", "test_uploads")
os.environ.setdefault("SESSION_SECRET", "test-secret")

from postboard.config import get_settings
from postboard.db import Base, get_session
from postboard.main import app
from postboard.services.storage import resolve_upload_root
from postboard.utils.session import get_current_user_id


@pytest.fixture(scope="session", autouse=True)
def setup_environment():
    get_settings.cache_clear()
    settings = get_settings()
    upload_root = resolve_upload_root(settings.upload_path)
    yield
    shutil.rmtree(upload_root, ignore_errors=True)
    if settings.database_url.startswith("sqlite"):
        db_path = settings.database_url.replace("sqlite+pysqlite:///", "")
        if db_path and Path(db_path).exists():
            Path(db_path).unlink()


@pytest.fixture
def upload_root() -> Path:
    root = resolve_upload_root(get_settings().upload_path)
    shutil.rmtree(root, ignore_errors=True)
    yield root
    shutil.rmtree(root, ignore_errors=True)


@pytest.fixture
def engine():
    settings = get_settings()
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(settings.database_url, future=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Session:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, expire_on_commit=False, future=True)
    session = SessionLocal()
    try:
        yield session
        session.commit()
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def anonymous_client(db_session: Session, upload_root: Path):
    def override_get_session():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise
        finally:
            db_session.expunge_all()

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def client(anonymous_client: TestClient, user_id: uuid.UUID):
    app.dependency_overrides[get_current_user_id] = lambda: user_id
    yield anonymous_client


__all__ = ["anonymous_client", "client", "db_session", "upload_root"]
