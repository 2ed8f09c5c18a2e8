"""
NGS Vault Sample Sheet Service

Reconciles user spreadsheets against the catalogue, merges the stored
sample fields with the spreadsheet columns and exports the result as
delimited text or xlsx. Optionally copies the FASTQ files of every entry
into one directory.
"""

import csv
import os
import zipfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import openpyxl
import structlog
from sqlalchemy.orm import Session

from ngsvault.config import settings
from ngsvault.errors import LimsIdMismatch, SheetFormatError, UnsupportedRunSource, VaultError
from ngsvault.ingest.sources import open_run_source
from ngsvault.models import Sample
from ngsvault.services.database import fastq_filenames, run_paths
from ngsvault.services.reconcile import MultipleMatches, NoMatch, OneMatch, match_samples

logger = structlog.get_logger()

BASIC_COLUMNS = ("Sample", "run", "DNA nr", "primer set", "project", "LIMS ID", "cells")

# spreadsheet header -> match_samples keyword
MATCH_COLUMNS = {
    "LIMS ID": "lims_id",
    "DNA nr": "dna_nr",
    "primer set": "primer_set",
    "Sample": "name",
}
RUN_COLUMN = "run"


def unique_run_id(run: str) -> str:
    """``210802_M70821_0114_000000000-DCWMD`` becomes ``210802-DCWMD``."""
    return f"{run.split('_')[0]}-{run.split('-')[-1]}"


def cell_to_str(value: Any) -> str:
    """Render a spreadsheet cell the way it reads in the sheet."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _parse_int(value: str) -> Optional[int]:
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number > 0 else None


@dataclass
class SampleSheetEntry:
    """A stored sample plus the spreadsheet columns it was matched from."""
    sample: Sample
    extra_cols: dict[str, str] = field(default_factory=dict)

    def canonical(self, column: str) -> str:
        s = self.sample
        if column == "Sample":
            return s.name
        if column == "run":
            return s.run
        if column == "DNA nr":
            return s.dna_nr or ""
        if column == "primer set":
            return s.primer_set or ""
        if column == "project":
            return s.project or ""
        if column == "LIMS ID":
            return "" if s.lims_id is None else str(s.lims_id)
        if column == "cells":
            if s.cells is not None:
                return str(s.cells)
            return self.extra_cols.get("cells", "")
        raise KeyError(column)

    def overridden(self, column: str, overrides: Sequence[str] = ()) -> bool:
        return column in overrides and bool(self.extra_cols.get(column))

    def value(self, column: str, overrides: Sequence[str] = ()) -> str:
        """Spreadsheet value for overridden columns when present, else the stored field."""
        if self.overridden(column, overrides):
            return self.extra_cols[column]
        return self.canonical(column)


@dataclass
class SkippedRow:
    row: int
    reason: str


@dataclass
class ExtractionReport:
    """Files copied out and the samples that failed."""
    copied: list[Path] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class SampleSheet:
    """
    An ordered set of entries that can be written out.

    Entries from several runs get a short run id in front of their sample
    name and extracted files, so equal sample names stay apart.
    """

    def __init__(self, entries: Optional[list[SampleSheetEntry]] = None):
        self.entries = entries or []
        self.skipped: list[SkippedRow] = []

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_samples(cls, samples: Iterable[Sample]) -> "SampleSheet":
        return cls([SampleSheetEntry(sample=s) for s in samples])

    @classmethod
    def from_xlsx(cls, path: Path | str, session: Session) -> "SampleSheet":
        """
        Match every row of the first worksheet to a stored sample.

        The ``run`` column is required. ``LIMS ID``, ``DNA nr``, ``primer set``
        and ``Sample`` narrow the match when present. Rows without a unique
        match are skipped with a warning.

        Raises:
            SheetFormatError: If the workbook is empty or has no ``run`` column
        """
        try:
            workbook = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
        except (OSError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise SheetFormatError(f"Cannot read spreadsheet: {e}", path=str(path)) from e

        try:
            if not workbook.worksheets:
                raise SheetFormatError("Spreadsheet has no worksheet", path=str(path))
            rows = workbook.worksheets[0].iter_rows(values_only=True)
            header_row = next(rows, None)
            if header_row is None:
                raise SheetFormatError("Spreadsheet is empty", path=str(path))
            headers = [cell_to_str(v) for v in header_row]
            if RUN_COLUMN not in headers:
                raise SheetFormatError("Spreadsheet has no 'run' column", path=str(path))

            sheet = cls()
            for idx, row in enumerate(rows):
                values = [cell_to_str(v) for v in row]
                values += [""] * (len(headers) - len(values))
                record = {h: v for h, v in zip(headers, values) if h}
                if not any(record.values()):
                    continue
                sheet._add_row(session, record, row_no=idx + 2)
        finally:
            workbook.close()

        logger.info(
            "Spreadsheet reconciled",
            path=str(path),
            entries=len(sheet.entries),
            skipped=len(sheet.skipped),
        )
        return sheet

    def _add_row(self, session: Session, record: dict[str, str], row_no: int) -> None:
        run = record.get(RUN_COLUMN, "")
        criteria: dict[str, Any] = {}
        for column, keyword in MATCH_COLUMNS.items():
            value = record.get(column)
            if value:
                criteria[keyword] = value
        if "lims_id" in criteria:
            criteria["lims_id"] = _parse_int(criteria["lims_id"])

        try:
            outcome = match_samples(session, run, **criteria)
        except LimsIdMismatch as e:
            self._skip(row_no, f"Cannot find match: {e.message}")
            return

        if isinstance(outcome, OneMatch):
            self.entries.append(SampleSheetEntry(sample=outcome.sample, extra_cols=record))
        elif isinstance(outcome, MultipleMatches):
            names = ", ".join(s.name for s in outcome.samples)
            self._skip(row_no, f"Multiple matches: {names}")
        elif isinstance(outcome, NoMatch):
            self._skip(row_no, f"Cannot find match: {outcome.reason}")

    def _skip(self, row_no: int, reason: str) -> None:
        logger.warning("Spreadsheet row skipped", row=row_no, reason=reason)
        self.skipped.append(SkippedRow(row=row_no, reason=reason))

    def runs(self) -> list[str]:
        return list(dict.fromkeys(e.sample.run for e in self.entries))

    @property
    def multi_run(self) -> bool:
        return len(self.runs()) > 1

    def header(self) -> list[str]:
        extra = {key for e in self.entries for key in e.extra_cols if key}
        return list(BASIC_COLUMNS) + sorted(extra - set(BASIC_COLUMNS))

    def rows(self, overrides: Sequence[str] = ()) -> list[list[str]]:
        header = self.header()
        multi_run = self.multi_run
        rows = []
        for entry in self.entries:
            row = []
            for column in header:
                if column in BASIC_COLUMNS:
                    value = entry.value(column, overrides)
                    # a spreadsheet name is written as given
                    if column == "Sample" and multi_run and not entry.overridden(column, overrides):
                        value = f"{unique_run_id(entry.sample.run)}-{value}"
                else:
                    value = entry.extra_cols.get(column, "")
                row.append(value)
            rows.append(row)
        return rows

    def write_csv(
        self,
        path: Path | str,
        separator: str = "\t",
        overrides: Sequence[str] = (),
    ) -> Path:
        """Write a delimited text file with a header line."""
        path = Path(path)
        with open(path, "w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh, delimiter=separator, lineterminator="\n")
            writer.writerow(self.header())
            writer.writerows(self.rows(overrides))
        logger.info("Sample sheet written", path=str(path), entries=len(self.entries))
        return path

    def write_xlsx(self, path: Path | str, overrides: Sequence[str] = ()) -> Path:
        """Write a single worksheet with string cells."""
        path = Path(path)
        workbook = openpyxl.Workbook()
        worksheet = workbook.active
        for col, name in enumerate(self.header(), start=1):
            worksheet.cell(row=1, column=col, value=name)
        for row_idx, row in enumerate(self.rows(overrides), start=2):
            for col, value in enumerate(row, start=1):
                worksheet.cell(row=row_idx, column=col, value=value)
        workbook.save(str(path))
        logger.info("Sample sheet written", path=str(path), entries=len(self.entries))
        return path

    def extract_fastqs(
        self,
        session: Session,
        target_dir: Path | str,
        workers: Optional[int] = None,
    ) -> ExtractionReport:
        """
        Copy the FASTQ files of every entry into ``target_dir``.

        A failing sample is logged and recorded, the others continue.
        """
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        workers = workers or settings.ingest.workers or os.cpu_count() or 1

        paths = run_paths(session, self.runs())
        multi_run = self.multi_run
        jobs = []
        for entry in self.entries:
            sample = entry.sample
            prefix = f"{unique_run_id(sample.run)}-" if multi_run else ""
            jobs.append((
                sample,
                paths.get(sample.run),
                fastq_filenames(session, sample.id),
                prefix,
            ))

        report = ExtractionReport()
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(_extract_sample, run_path, files, target_dir, prefix): sample
                for sample, run_path, files, prefix in jobs
            }
            for future in as_completed(futures):
                sample = futures[future]
                label = f"{sample.run}/{sample.name}"
                try:
                    report.copied.extend(future.result())
                except UnsupportedRunSource as e:
                    logger.warning("Weird extension, skipping sample", sample=label, path=e.path)
                    report.failed.append(label)
                except (VaultError, OSError, KeyError, zipfile.BadZipFile) as e:
                    logger.error("Extraction failed", sample=label, error=str(e))
                    report.failed.append(label)

        logger.info(
            "FASTQ extraction finished",
            target=str(target_dir),
            copied=len(report.copied),
            failed=len(report.failed),
        )
        return report


def _extract_sample(
    run_path: Optional[str],
    files: list[str],
    target_dir: Path,
    prefix: str,
) -> list[Path]:
    if run_path is None:
        raise KeyError("run path not stored")
    source = open_run_source(run_path)
    return source.extract(files, target_dir, prefix)


@dataclass
class ExportResult:
    sheet: SampleSheet
    sheet_path: Optional[Path] = None
    extraction: Optional[ExtractionReport] = None


def write_sheet(
    sheet: SampleSheet,
    target: Path | str,
    overrides: Sequence[str] = (),
    separator: Optional[str] = None,
) -> Path:
    """Write ``.xlsx`` targets as a workbook and anything else as delimited text."""
    target = Path(target)
    if target.suffix.lower() == ".xlsx":
        return sheet.write_xlsx(target, overrides)
    return sheet.write_csv(target, separator or settings.ingest.export_separator, overrides)


def export(
    session: Session,
    spreadsheet: Path | str,
    overrides: Sequence[str] = (),
    target_dir: Optional[Path | str] = None,
    target_sheet: Optional[Path | str] = None,
    separator: Optional[str] = None,
) -> ExportResult:
    """
    Reconcile a spreadsheet, then write the merged sheet and copy FASTQ files.

    Args:
        session: Database session
        spreadsheet: xlsx file with at least a ``run`` column
        overrides: Basic columns whose spreadsheet value wins over the stored one
        target_dir: Directory receiving the FASTQ files, None skips extraction
        target_sheet: Output sheet path, None skips writing
        separator: Field separator for delimited output

    Returns:
        The merged sheet with the written path and extraction report
    """
    sheet = SampleSheet.from_xlsx(spreadsheet, session)
    result = ExportResult(sheet=sheet)
    if target_sheet is not None:
        result.sheet_path = write_sheet(sheet, target_sheet, overrides, separator)
    if target_dir is not None:
        result.extraction = sheet.extract_fastqs(session, target_dir)
    return result
