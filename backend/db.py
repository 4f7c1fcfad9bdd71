import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from config import DATABASE_URL


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite URL."""
    if not url.startswith("sqlite:///"):
        return
    path = url[len("sqlite:///"):]
    parent = os.path.dirname(path)
    if path and path != ":memory:" and parent:
        os.makedirs(parent, exist_ok=True)


def set_sqlite_pragma(dbapi_conn, connection_record):
    # WAL for concurrent readers, and enforce FK constraints
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str):
    """Build the process-wide engine for a database URL."""
    _ensure_sqlite_dir(url)
    engine = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", set_sqlite_pragma)
    return engine


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
