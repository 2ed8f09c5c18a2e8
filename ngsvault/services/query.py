"""
NGS Vault Query Service

Finds samples by a free text FASTQ filename fragment plus column filters.
Every filter key maps to a typed predicate and values are always bound as
parameters.
"""

import operator
import re
from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ngsvault.models import Fastq, Sample

logger = structlog.get_logger()

LIKE_FILTERS = {
    "run": Sample.run,
    "name": Sample.name,
    "dna_nr": Sample.dna_nr,
    "project": Sample.project,
    "primer_set": Sample.primer_set,
    "filename": Fastq.filename,
}

NUMERIC_FILTERS: dict[str, tuple] = {
    "cells": (Sample.cells, operator.eq),
    "cells<": (Sample.cells, operator.lt),
    "cells>": (Sample.cells, operator.gt),
    "lims_id": (Sample.lims_id, operator.eq),
    "lims_id<": (Sample.lims_id, operator.lt),
    "lims_id>": (Sample.lims_id, operator.gt),
}

FILTER_KEYS = tuple(LIKE_FILTERS) + tuple(NUMERIC_FILTERS)

_KEY_VALUE = re.compile(r"^(?P<key>[A-Za-z_]+[<>]?)=(?P<value>.*)$")
_COMPARISON = re.compile(r"^(?P<key>[A-Za-z_]+)(?P<op>[<>])(?P<value>[^=].*)$")


def wrap_fragment(text: str) -> str:
    """Wrap text in ``%`` wildcards unless it already holds one."""
    if "%" in text:
        return text
    return f"%{text}%"


def build_predicates(filters: dict[str, str]) -> list[ColumnElement]:
    """
    Turn filter key/value pairs into SQL predicates.

    Unknown keys and non-numeric values for numeric keys are dropped with a
    warning.
    """
    predicates: list[ColumnElement] = []
    for key, value in filters.items():
        if key in LIKE_FILTERS:
            predicates.append(LIKE_FILTERS[key].ilike(value))
        elif key in NUMERIC_FILTERS:
            column, compare = NUMERIC_FILTERS[key]
            try:
                number = int(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric filter value", key=key, value=value)
                continue
            predicates.append(compare(column, number))
        else:
            logger.warning("Ignoring unknown filter", key=key, known=list(FILTER_KEYS))
    return predicates


def find(
    session: Session,
    fragment: str,
    filters: Optional[dict[str, str]] = None,
    limit: Optional[int] = None,
) -> dict[Sample, list[str]]:
    """
    Find samples owning a FASTQ file that matches ``fragment``.

    Args:
        session: Database session
        fragment: Case-insensitive LIKE pattern against FASTQ filenames
        filters: Column filters, see ``FILTER_KEYS``
        limit: Maximum number of samples

    Returns:
        Every FASTQ filename of each matching sample, grouped by sample
    """
    predicates = build_predicates(filters or {})

    matching = (
        select(Sample.id)
        .join(Fastq, Fastq.sample_id == Sample.id)
        .where(Fastq.filename.ilike(fragment), *predicates)
        .distinct()
    )
    if limit:
        matching = matching.order_by(Sample.id).limit(limit)

    stmt = (
        select(Sample, Fastq.filename)
        .join(Fastq, Fastq.sample_id == Sample.id)
        .where(Sample.id.in_(matching.scalar_subquery()))
        .order_by(Sample.run, Sample.name, Sample.id, Fastq.filename)
    )

    results: dict[Sample, list[str]] = {}
    for sample, filename in session.execute(stmt):
        results.setdefault(sample, []).append(filename)

    logger.debug("Query finished", fragment=fragment, samples=len(results))
    return results


def find_many(
    session: Session,
    fragments: Iterable[str],
    filters: Optional[dict[str, str]] = None,
    limit: Optional[int] = None,
) -> dict[Sample, list[str]]:
    """Union the results of several fragments."""
    fragments = list(fragments) or ["%"]
    results: dict[Sample, list[str]] = {}
    for fragment in fragments:
        results.update(find(session, wrap_fragment(fragment), filters, limit))
    return results


def _normalize_filter(key: str, value: str) -> str:
    if key == "dna_nr" and value.startswith("D-"):
        return value[2:]
    return value


def parse_filter_string(text: str) -> tuple[dict[str, str], list[str]]:
    """
    Parse the web form filter syntax.

    ``"run=%DCWMD% cells>1000 IGH"`` gives a LIKE filter on run, a cell
    threshold and a filename filter for the bare token.

    Returns:
        Filters and the warnings raised while parsing
    """
    filters: dict[str, str] = {}
    warnings: list[str] = []

    for token in text.split():
        if token.count("=") > 1:
            warnings.append(f"Invalid filter {token!r}, more than one '='")
            continue

        match = _KEY_VALUE.match(token) or _COMPARISON.match(token)
        if match is None:
            if "=" in token:
                warnings.append(f"Invalid filter {token!r}")
                continue
            filters["filename"] = wrap_fragment(token)
            warnings.append(f"No filter key in {token!r}, using filename={filters['filename']}")
            continue

        key = match.group("key") + (match.groupdict().get("op") or "")
        if key not in FILTER_KEYS:
            warnings.append(f"Unknown filter key {key!r}")
            continue
        filters[key] = _normalize_filter(key, match.group("value"))

    for warning in warnings:
        logger.warning("Filter parse warning", detail=warning)
    return filters, warnings


def parse_filter_args(args: Iterable[str]) -> dict[str, str]:
    """Parse separate ``key=value`` filters, logging malformed ones."""
    filters: dict[str, str] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            logger.warning("Ignoring malformed filter", filter=arg)
            continue
        filters[key] = _normalize_filter(key, value)
    return filters
