"""
NGS Vault Errors

Error hierarchy shared by the ingestion, reconciliation and export layers.
Every error carries a stable code so API responses and logs stay comparable.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Standardized error codes."""
    # Run discovery
    MALFORMED_RUN_NAME = "MALFORMED_RUN_NAME"
    UNSUPPORTED_RUN_SOURCE = "UNSUPPORTED_RUN_SOURCE"

    # Sheets
    MALFORMED_SAMPLE_SHEET = "MALFORMED_SAMPLE_SHEET"
    MISSING_SAMPLE_SHEET = "MISSING_SAMPLE_SHEET"
    MALFORMED_CELL_SHEET = "MALFORMED_CELL_SHEET"
    SHEET_FORMAT = "SHEET_FORMAT"

    # Reconciliation
    LIMS_ID_MISMATCH = "LIMS_ID_MISMATCH"

    # Persistence
    INGESTION_FAILED = "INGESTION_FAILED"


class VaultError(Exception):
    """Base class for all NGS Vault errors."""

    code: ErrorCode = ErrorCode.INGESTION_FAILED

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "path": self.path,
        }


class MalformedRunName(VaultError):
    """Run name does not start with a YYMMDD date."""
    code = ErrorCode.MALFORMED_RUN_NAME


class UnsupportedRunSource(VaultError):
    """Run path is neither a directory nor a zip archive."""
    code = ErrorCode.UNSUPPORTED_RUN_SOURCE


class MalformedSampleSheet(VaultError):
    """[Data] row with an unsupported column count."""
    code = ErrorCode.MALFORMED_SAMPLE_SHEET


class MissingSampleSheet(VaultError):
    """Run has no SampleSheet.csv. Logged as a warning, never fatal."""
    code = ErrorCode.MISSING_SAMPLE_SHEET


class MalformedCellSheet(VaultError):
    """Cell sheet line without exactly four columns."""
    code = ErrorCode.MALFORMED_CELL_SHEET


class SheetFormatError(VaultError):
    """User spreadsheet is missing a required column or is unreadable."""
    code = ErrorCode.SHEET_FORMAT


class LimsIdMismatch(VaultError):
    """A LIMS id was given but no sample of the run carries it."""
    code = ErrorCode.LIMS_ID_MISMATCH


class IngestionError(VaultError):
    """The ingestion transaction failed and was rolled back."""
    code = ErrorCode.INGESTION_FAILED
