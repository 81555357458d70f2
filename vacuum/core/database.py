import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

logger = logging.getLogger(__name__)

# columns added after the first schema release; created on startup when missing
LATE_COLUMNS = {
    "tracked_accounts": {"operator_id": "INTEGER REFERENCES operators(id)"},
    "reclaim_history": {"operator_id": "INTEGER REFERENCES operators(id)"},
}


def create_db_engine(url: str) -> Engine:
    """Build the SQLite engine backing the registry.

    In-memory URLs share a single connection so every session sees the same
    database.
    """
    kwargs = {
        "future": True,
        "echo": False,
        "connect_args": {"check_same_thread": False, "timeout": 30},
    }
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    with engine.connect() as conn:
        conn.execute(text("PRAGMA journal_mode=WAL"))
    return engine


def init_schema(engine: Engine) -> None:
    import vacuum.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    ensure_late_columns(engine)
    logger.debug("Registry schema ready at %s", engine.url)


def ensure_late_columns(engine: Engine) -> None:
    inspector = inspect(engine)
    with engine.begin() as conn:
        for table, columns in LATE_COLUMNS.items():
            existing = {col["name"] for col in inspector.get_columns(table)}
            for name, ddl in columns.items():
                if name not in existing:
                    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
                    logger.info("Added column %s.%s", table, name)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
