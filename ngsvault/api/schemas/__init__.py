"""
NGS Vault Pydantic Schemas

Request/response models for the API.
"""

import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class MatchKind(str, Enum):
    NONE = "none"
    ONE = "one"
    MULTIPLE = "multiple"


class SheetFormat(str, Enum):
    TSV = "tsv"
    CSV = "csv"
    XLSX = "xlsx"


# =============================================================================
# RUN SCHEMAS
# =============================================================================

class RunResponse(BaseModel):
    """Run summary."""
    model_config = ConfigDict(from_attributes=True)

    name: str
    date: datetime.date
    assay: str
    chemistry: str
    description: Optional[str] = None
    investigator: str
    path: str


class RunListResponse(BaseModel):
    items: list[RunResponse]
    skip: int
    limit: int


class IngestRequest(BaseModel):
    """Ingestion parameters, unset roots fall back to the configured ones."""
    root: Optional[str] = None
    cell_root: Optional[str] = None
    full_rescan: bool = False
    workers: Optional[int] = Field(default=None, ge=0, le=256)


class IngestResponse(BaseModel):
    runs: int
    samples: int
    fastqs: int
    recovered_samples: int
    failed: list[str] = Field(default_factory=list)


# =============================================================================
# SAMPLE SCHEMAS
# =============================================================================

class SampleResponse(BaseModel):
    """Sample with its stored fields."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    run: str
    name: str
    dna_nr: Optional[str] = None
    project: Optional[str] = None
    lims_id: Optional[int] = None
    primer_set: Optional[str] = None
    cells: Optional[int] = None


class SampleFilesResponse(SampleResponse):
    files: list[str] = Field(default_factory=list)


class SampleSearchResponse(BaseModel):
    items: list[SampleFilesResponse]
    filters: dict[str, str] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


class MatchResponse(BaseModel):
    outcome: MatchKind
    reason: Optional[str] = None
    samples: list[SampleResponse] = Field(default_factory=list)


# =============================================================================
# SAMPLE SHEET SCHEMAS
# =============================================================================

class SkippedRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    row: int
    reason: str


class SampleSheetResponse(BaseModel):
    """Merged sheet of a reconciled spreadsheet."""
    header: list[str]
    rows: list[list[str]]
    skipped: list[SkippedRowResponse] = Field(default_factory=list)
