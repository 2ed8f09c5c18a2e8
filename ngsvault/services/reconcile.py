"""
NGS Vault Reconciliation Service

Matches rows of a user spreadsheet back to stored samples. Candidates are
narrowed from the strongest identifier to the weakest: LIMS id, DNA
number, primer set and finally name.
"""

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Union

import structlog
from sqlalchemy.orm import Session

from ngsvault.errors import LimsIdMismatch
from ngsvault.ingest.names import is_dna_nr, normalize_dna_nr
from ngsvault.models import Sample
from ngsvault.services.database import samples_of_run

logger = structlog.get_logger()


class SampleLike(Protocol):
    name: str
    dna_nr: Optional[str]
    primer_set: Optional[str]
    lims_id: Optional[int]


@dataclass(frozen=True)
class NoMatch:
    """No candidate survived, ``reason`` names the stage that emptied the pool."""
    reason: str


@dataclass(frozen=True)
class OneMatch:
    sample: SampleLike


@dataclass(frozen=True)
class MultipleMatches:
    samples: tuple


MatchOutcome = Union[NoMatch, OneMatch, MultipleMatches]


def match_candidates(
    candidates: Sequence[SampleLike],
    run: str,
    lims_id: Optional[int] = None,
    dna_nr: Optional[str] = None,
    primer_set: Optional[str] = None,
    name: Optional[str] = None,
) -> MatchOutcome:
    """
    Narrow the samples of one run down to the one a spreadsheet row means.

    Args:
        candidates: All samples of ``run``
        run: Run name, used in reasons and errors
        lims_id: LIMS id, authoritative when given
        dna_nr: DNA number, ignored unless well formed
        primer_set: Primer set, matches samples whose primer set it contains
        name: Sample name, matches when either name contains the other

    Returns:
        NoMatch, OneMatch or MultipleMatches

    Raises:
        LimsIdMismatch: If ``lims_id`` is given and no candidate carries it
    """
    pool = tuple(candidates)
    if not pool:
        return NoMatch(f"No samples in specified run {run}")

    if lims_id is not None:
        pool = tuple(s for s in pool if s.lims_id == lims_id)
        if not pool:
            raise LimsIdMismatch(f"No sample with LIMS id {lims_id} in run {run}", path=run)

    if dna_nr and is_dna_nr(dna_nr):
        wanted = normalize_dna_nr(dna_nr)
        pool = tuple(
            s for s in pool
            if s.dna_nr is not None and normalize_dna_nr(s.dna_nr) == wanted
        )
        if not pool:
            return NoMatch("Sample has passed LIMS filter but not dna_nr filter")

    if primer_set:
        pool = tuple(s for s in pool if s.primer_set and s.primer_set in primer_set)
        if not pool:
            return NoMatch("Candidates passed LIMS and DNA filter but not primer_set filter")

    if name:
        pool = tuple(s for s in pool if s.name in name or name in s.name)

    if not pool:
        return NoMatch("Candidates passed LIMS, DNA and primer_set filters but not name filter")
    if len(pool) == 1:
        return OneMatch(pool[0])
    return MultipleMatches(pool)


def match_samples(
    session: Session,
    run: str,
    lims_id: Optional[int] = None,
    dna_nr: Optional[str] = None,
    primer_set: Optional[str] = None,
    name: Optional[str] = None,
) -> MatchOutcome:
    """Match against the stored samples of ``run``."""
    candidates: list[Sample] = samples_of_run(session, run)
    outcome = match_candidates(candidates, run, lims_id, dna_nr, primer_set, name)
    logger.debug("Sample matched", run=run, outcome=type(outcome).__name__)
    return outcome
