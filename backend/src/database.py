"""Engine and session setup for the price store.

SQLite (tests, local runs) gets driver-level savepoint support; PostgreSQL
gets a pool sized for the resolve-many worker threads.
"""

from typing import Generator
from uuid import UUID

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import settings

DATABASE_URL = settings.DATABASE_URL


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Let the pysqlite driver honour SAVEPOINT / nested transactions.

    pysqlite issues its own BEGIN lazily, which breaks ``Session.begin_nested()``.
    Disabling its transaction handling and emitting BEGIN ourselves restores
    per-item savepoints used by the bulk upsert engine.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str) -> Engine:
    """Create an engine with pooling suited to the backend in use."""
    engine_kwargs = {
        "pool_pre_ping": True,
        "echo": False,
    }

    # Pool settings only apply to server databases
    if url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        # Headroom for the resolve_many worker pool
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10

    engine = create_engine(url, **engine_kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(engine)
    return engine


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for FastAPI routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def org_scoped_session(org_id: UUID) -> Session:
    """Create a session with ``org_id`` attached to ``session.info``.

    Used by the sync worker, which processes one organization per task.
    New rows without an explicit org_id get it filled in at flush time.
    """
    session = SessionLocal()
    session.info["org_id"] = org_id
    return session


@event.listens_for(Session, "before_flush")
def auto_populate_org_id(session, flush_context, instances):
    """Populate org_id on INSERT for sessions created by org_scoped_session."""
    org_id = session.info.get("org_id")
    if not org_id:
        return

    for instance in session.new:
        if hasattr(instance, 'org_id') and instance.org_id is None:
            instance.org_id = org_id
