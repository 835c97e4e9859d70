import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


logger = logging.getLogger(__name__)

# The scheduler thread and request threads write to the same SQLite file.
SQLITE_BUSY_TIMEOUT_MS = 5000


def build_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or get_settings().database_url
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    eng = create_engine(url, connect_args={"check_same_thread": False})
    event.listen(eng, "connect", configure_sqlite_connection)
    event.listen(eng, "begin", begin_sqlite_transaction)
    return eng


def configure_sqlite_connection(dbapi_conn, _record):
    # pysqlite defers BEGIN until the first write; SQLAlchemy emits it instead
    # so SAVEPOINTs opened after a plain SELECT stay inside a transaction.
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")
    cursor.close()


def begin_sqlite_transaction(conn):
    conn.exec_driver_sql("BEGIN")


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for background work: commit on success, roll back on error."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        logger.warning("session_scope: rolling back after error")
        session.rollback()
        raise
    finally:
        session.close()
