"""
NGS Vault Test Configuration
"""

import os
import tempfile

# Settings are read on import, point them at SQLite before anything loads them
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("INGEST_WORKERS", "2")
os.environ.setdefault("EXPORT_DIR", os.path.join(tempfile.gettempdir(), "ngsvault-test-exports"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from ngsvault.models import Base
from ngsvault.services.database import create_vault_engine

from tests.fixtures import build_cell_sheet, build_run_dir


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_vault_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def run_root(tmp_path):
    """Empty year/month/run tree."""
    root = tmp_path / "runs"
    root.mkdir()
    return root


@pytest.fixture
def cell_root(tmp_path):
    """Empty spikeINBC tree."""
    root = tmp_path / "cells"
    root.mkdir()
    return root


@pytest.fixture
def standard_run(run_root, cell_root):
    """The reference run folder plus its cell sheet."""
    run_dir = build_run_dir(run_root)
    build_cell_sheet(cell_root)
    return run_dir


@pytest.fixture
def ingested(session_factory, run_root, cell_root, standard_run):
    """Database holding the reference run."""
    from ngsvault.services.ingestion import IngestionCoordinator

    coordinator = IngestionCoordinator(session_factory=session_factory, workers=2)
    return coordinator.update(run_root, cell_root)


@pytest.fixture
def temp_output_dir(tmp_path):
    """Temporary output directory for tests."""
    output = tmp_path / "output"
    output.mkdir()
    return output


@pytest.fixture
def client(session_factory):
    """API client bound to the test database."""
    from ngsvault.api.main import app
    from ngsvault.services.database import get_session, get_session_factory

    def override_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()
