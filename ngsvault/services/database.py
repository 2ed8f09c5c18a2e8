"""
NGS Vault Database Service

Engine and session management plus the small lookups shared by the
ingestion, reconciliation and export services.
"""

from contextlib import contextmanager
from datetime import date
from functools import lru_cache
from typing import Iterator, Optional

import structlog
from sqlalchemy import create_engine, delete, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ngsvault.config import settings
from ngsvault.models import Base, Fastq, Run, Sample

logger = structlog.get_logger()


def create_vault_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """
    Create an engine for the given URL, defaulting to the configured one.

    In-memory SQLite databases share one connection so every session sees
    the same tables. SQLite connections enforce foreign keys.
    """
    url = url or settings.database.url
    echo = settings.database.echo if echo is None else echo

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        echo=echo,
        pool_size=settings.database.pool_size,
        pool_pre_ping=True,
    )


@lru_cache
def get_engine() -> Engine:
    """Get the cached application engine."""
    return create_vault_engine()


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Get the cached session factory bound to the application engine."""
    return sessionmaker(bind=get_engine(), expire_on_commit=False)


def get_sync_session() -> Session:
    """Get a new synchronous database session."""
    return get_session_factory()()


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back and re-raises on any error.
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session per request."""
    session = get_sync_session()
    try:
        yield session
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables and indices that do not yet exist."""
    engine = engine or get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database initialized", url=engine.url.render_as_string(hide_password=True))


# =============================================================================
# LOOKUPS
# =============================================================================

def earliest_run_date(session: Session) -> Optional[date]:
    """Earliest run date in the store, used as the ingestion watermark."""
    return session.scalar(select(Run.date).order_by(Run.date.asc()).limit(1))


def list_runs(session: Session, skip: int = 0, limit: Optional[int] = None) -> list[Run]:
    """List runs, newest first."""
    stmt = select(Run).order_by(Run.date.desc(), Run.name).offset(skip)
    if limit:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt))


def get_run(session: Session, name: str) -> Optional[Run]:
    return session.get(Run, name)


def run_paths(session: Session, names: list[str]) -> dict[str, str]:
    """Map run names to their stored source paths."""
    if not names:
        return {}
    rows = session.execute(select(Run.name, Run.path).where(Run.name.in_(names)))
    return {name: path for name, path in rows}


def samples_of_run(session: Session, run: str) -> list[Sample]:
    """All samples of a run in insertion order."""
    return list(session.scalars(
        select(Sample).where(Sample.run == run).order_by(Sample.id)
    ))


def fastq_filenames(session: Session, sample_id: int) -> list[str]:
    """Stored FASTQ paths of one sample, sorted."""
    return list(session.scalars(
        select(Fastq.filename).where(Fastq.sample_id == sample_id).order_by(Fastq.filename)
    ))


def delete_run(session: Session, name: str) -> None:
    """Delete a run with its samples and their FASTQ rows."""
    sample_ids = select(Sample.id).where(Sample.run == name)
    session.execute(delete(Fastq).where(Fastq.sample_id.in_(sample_ids)))
    session.execute(delete(Sample).where(Sample.run == name))
    session.execute(delete(Run).where(Run.name == name))


def flush_db(session: Session) -> None:
    """Remove every FASTQ, sample and run row. The caller owns the transaction."""
    session.execute(delete(Fastq))
    session.execute(delete(Sample))
    session.execute(delete(Run))
    logger.warning("Database flushed")
