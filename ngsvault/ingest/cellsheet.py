"""
Cell sheet enrichment.

Marker screening keeps one spikeINBC sheet per run under
``<cell_root>/<year>/<MM_Monat>/<20YYMMDD_INSTR_...>/Start_*/``. Each row
gives the DNA amount of a sample, which is turned into an estimated cell
count.
"""

import math
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

import structlog

from ngsvault.errors import MalformedCellSheet
from ngsvault.ingest.records import ParsedSample

logger = structlog.get_logger()

CELLS_PER_NG = 153.846
CELL_SHEET_SUFFIXES = ("spikeINBC.txt", "spikeINBC.csv")
START_DIR_PREFIX = "Start_"
HEADER_FIRST_COLUMN = "sample_ID"
COLUMNS = 4

MONTH_FOLDERS = {
    1: ("01_Januar",),
    2: ("02_Februar", "02_Feburar"),
    3: ("03_März",),
    4: ("04_April",),
    5: ("05_Mai",),
    6: ("06_Juni",),
    7: ("07_Juli",),
    8: ("08_August",),
    9: ("09_September",),
    10: ("10_Oktober",),
    11: ("11_November",),
    12: ("12_Dezember",),
}


@dataclass
class CellSheetReport:
    """Outcome of enriching one run."""
    path: Optional[Path] = None
    matched: int = 0
    ambiguous: int = 0
    error: Optional[str] = None


def run_prefix(run_name: str) -> str:
    """``210802_M70821_0114_...`` becomes ``20210802_M70821_``."""
    tokens = run_name.split("_")
    head = "_".join(tokens[:2])
    if len(tokens) > 2:
        head += "_"
    return "20" + head


def ng_to_cells(value: float) -> int:
    """Convert a DNA amount in ng to cells, rounding halves away from zero."""
    cells = value * CELLS_PER_NG
    return int(math.copysign(math.floor(abs(cells) + 0.5), cells))


def _subdirs(path: Path, prefix: str) -> list[Path]:
    try:
        with os.scandir(path) as it:
            return sorted(
                Path(e.path) for e in it
                if e.is_dir(follow_symlinks=True) and e.name.startswith(prefix)
            )
    except OSError:
        return []


def _files(path: Path) -> list[Path]:
    try:
        with os.scandir(path) as it:
            return sorted(
                Path(e.path) for e in it
                if e.is_file(follow_symlinks=True) and e.name.endswith(CELL_SHEET_SUFFIXES)
            )
    except OSError:
        return []


def find_cell_sheet(cell_root: Path | str, run_date: date, run_name: str) -> Optional[Path]:
    """
    Locate the spikeINBC sheet of a run.

    A sheet named ``<date>_...`` is preferred and the latest date wins. An
    undated sheet is used only while no dated one has been seen.
    """
    year_dir = Path(cell_root) / str(run_date.year)
    prefix = run_prefix(run_name)

    chosen: Optional[Path] = None
    latest = 0
    for month_folder in MONTH_FOLDERS[run_date.month]:
        month_dir = year_dir / month_folder
        for run_dir in _subdirs(month_dir, prefix):
            for start_dir in _subdirs(run_dir, START_DIR_PREFIX):
                for candidate in _files(start_dir):
                    head, sep, _ = candidate.name.partition("_")
                    if sep and head.isascii() and head.isdigit():
                        stamp = int(head)
                        if stamp >= latest:
                            chosen, latest = candidate, stamp
                    elif latest == 0:
                        chosen = candidate
    return chosen


def apply_cell_sheet(path: Path, samples: list[ParsedSample], run: str = "") -> CellSheetReport:
    """
    Set ``cells`` on samples named in the sheet.

    Only rows naming exactly one sample are used.

    Raises:
        MalformedCellSheet: On a line that does not have four columns.
            No sample is changed in that case.
    """
    report = CellSheetReport(path=path)
    updates: list[tuple[ParsedSample, Optional[int]]] = []

    with open(path, encoding="utf-8", errors="replace") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.rstrip("\r\n")
            if not line.strip():
                continue
            parts = line.split(",")
            if len(parts) != COLUMNS:
                raise MalformedCellSheet(
                    f"Malformed cellsheet, expected {COLUMNS} columns on line {line_no}",
                    path=str(path),
                )
            if parts[0] == HEADER_FIRST_COLUMN:
                continue

            candidates = [s for s in samples if s.name == parts[0]]
            if len(candidates) != 1:
                report.ambiguous += 1
                continue
            try:
                cells: Optional[int] = ng_to_cells(float(parts[1]))
            except (ValueError, OverflowError):
                cells = None
            updates.append((candidates[0], cells))

    for sample, cells in updates:
        sample.cells = cells
    report.matched = len(updates)

    if report.ambiguous:
        logger.warning(
            "Cell sheet rows without a unique sample",
            run=run,
            path=str(path),
            count=report.ambiguous,
        )
    return report


def enrich_cells(
    cell_root: Optional[Path | str],
    run_date: date,
    run_name: str,
    samples: list[ParsedSample],
) -> CellSheetReport:
    """
    Find and apply the run's cell sheet.

    Missing or malformed sheets leave the samples without cell counts.
    """
    if cell_root is None:
        return CellSheetReport()

    path = find_cell_sheet(cell_root, run_date, run_name)
    if path is None:
        logger.debug("No cell sheet found", run=run_name)
        return CellSheetReport()

    try:
        return apply_cell_sheet(path, samples, run=run_name)
    except (MalformedCellSheet, OSError) as e:
        logger.warning("Cell sheet skipped", run=run_name, path=str(path), error=str(e))
        return CellSheetReport(path=path, error=str(e))
