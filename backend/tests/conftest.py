import os, tempfile

# point the app's own engine at a throwaway file before main is imported
_TMP_DIR = tempfile.mkdtemp(prefix="forms-test-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "app.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from db import Base, get_db, make_engine

@pytest.fixture(scope="session")
def tmp_db_path():
    return os.path.join(_TMP_DIR, "test.db")

@pytest.fixture(scope="session")
def test_engine(tmp_db_path):
    # WAL + foreign keys, same as the app engine
    engine = make_engine(f"sqlite:///{tmp_db_path}")
    Base.metadata.create_all(bind=engine)
    return engine

@pytest.fixture(scope="session")
def TestingSessionLocal(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

@pytest.fixture(scope="session", autouse=True)
def override_di(TestingSessionLocal):
    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()
    app.dependency_overrides[get_db] = _get_db

@pytest.fixture
def db(TestingSessionLocal):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture
def client():
    return TestClient(app)
