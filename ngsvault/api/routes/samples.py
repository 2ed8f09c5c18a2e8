"""
NGS Vault Sample Routes

FASTQ search and reconciliation of single spreadsheet rows.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ngsvault.api.schemas import (
    MatchKind, MatchResponse, SampleFilesResponse, SampleResponse, SampleSearchResponse,
)
from ngsvault.errors import LimsIdMismatch
from ngsvault.services.database import get_session
from ngsvault.services.query import find_many, parse_filter_args, parse_filter_string
from ngsvault.services.reconcile import MultipleMatches, NoMatch, match_samples

router = APIRouter()


@router.get("", response_model=SampleSearchResponse)
def search_samples(
    q: list[str] = Query(default=[], description="Filename fragments"),
    filters: str = Query("", description="Space separated key=value filters"),
    where: list[str] = Query(default=[], description="Single key=value filters"),
    limit: Optional[int] = Query(None, ge=1, le=10000),
    session: Session = Depends(get_session),
):
    """
    Find samples by FASTQ filename fragments and column filters.

    Each fragment is wrapped in ``%`` unless it holds one already. Results
    of several fragments are merged. ``where`` filters win over the same key
    in ``filters``.
    """
    parsed, warnings = parse_filter_string(filters)
    parsed.update(parse_filter_args(where))
    results = find_many(session, q, parsed, limit)
    items = [
        SampleFilesResponse(**SampleResponse.model_validate(sample).model_dump(), files=files)
        for sample, files in results.items()
    ]
    return SampleSearchResponse(items=items, filters=parsed, warnings=warnings)


@router.get("/match", response_model=MatchResponse)
def match_sample(
    run: str,
    lims_id: Optional[int] = None,
    dna_nr: Optional[str] = None,
    primer_set: Optional[str] = None,
    name: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Match one spreadsheet row against the samples of a run."""
    try:
        outcome = match_samples(session, run, lims_id, dna_nr, primer_set, name)
    except LimsIdMismatch as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_dict())

    if isinstance(outcome, NoMatch):
        return MatchResponse(outcome=MatchKind.NONE, reason=outcome.reason)
    if isinstance(outcome, MultipleMatches):
        return MatchResponse(
            outcome=MatchKind.MULTIPLE,
            samples=[SampleResponse.model_validate(s) for s in outcome.samples],
        )
    return MatchResponse(
        outcome=MatchKind.ONE,
        samples=[SampleResponse.model_validate(outcome.sample)],
    )
