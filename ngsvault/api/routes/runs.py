"""
NGS Vault Run Routes

Run listing and ingestion of the run tree.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, sessionmaker

from ngsvault.api.schemas import (
    IngestRequest, IngestResponse, RunListResponse, RunResponse, SampleResponse,
)
from ngsvault.config import get_settings
from ngsvault.errors import IngestionError
from ngsvault.services.database import (
    get_run, get_session, get_session_factory, list_runs, samples_of_run,
)
from ngsvault.services.ingestion import IngestionCoordinator

router = APIRouter()
settings = get_settings()
logger = structlog.get_logger()


@router.get("", response_model=RunListResponse)
def list_all_runs(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    """List runs, newest first."""
    runs = list_runs(session, skip=skip, limit=limit)
    return RunListResponse(
        items=[RunResponse.model_validate(r) for r in runs],
        skip=skip,
        limit=limit,
    )


@router.get("/{name}", response_model=RunResponse)
def get_run_details(name: str, session: Session = Depends(get_session)):
    run = get_run(session, name)
    if run is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Run {name} not found",
        )
    return RunResponse.model_validate(run)


@router.get("/{name}/samples", response_model=list[SampleResponse])
def get_run_samples(name: str, session: Session = Depends(get_session)):
    """Samples of one run in sample sheet order."""
    if get_run(session, name) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Run {name} not found",
        )
    return [SampleResponse.model_validate(s) for s in samples_of_run(session, name)]


@router.post("/ingest", response_model=IngestResponse)
def ingest_runs(
    request: Optional[IngestRequest] = None,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Walk the run tree and store new runs.

    Runs that fail to parse are reported in ``failed``. A failing database
    transaction stores nothing and returns 500.
    """
    request = request or IngestRequest()
    coordinator = IngestionCoordinator(
        session_factory=session_factory,
        workers=request.workers,
        full_rescan=request.full_rescan or None,
    )
    try:
        stats = coordinator.update(
            request.root or settings.storage.run_root,
            request.cell_root or settings.storage.cell_root,
        )
    except IngestionError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.to_dict(),
        )
    return IngestResponse(**stats.to_dict())
