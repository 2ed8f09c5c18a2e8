"""
Run tree walker.

Runs live three levels below the root, as ``<year>/<month>/<run>`` where
the run is a folder or a ``.zip`` archive. Given a watermark date the walk
skips whole year and month subtrees that are older than it.
"""

import os
import re
from datetime import date
from pathlib import Path
from typing import Iterator, Optional

import structlog

from ngsvault.errors import MalformedRunName
from ngsvault.ingest.paths import parse_run_date

logger = structlog.get_logger()

RUN_DEPTH = 3

_LEADING_NUMBER = re.compile(r"^\d+")


def _leading_number(name: str) -> Optional[int]:
    match = _LEADING_NUMBER.match(name)
    return int(match.group()) if match else None


def _is_run_candidate(entry: os.DirEntry) -> bool:
    if entry.is_dir(follow_symlinks=True):
        return True
    return entry.is_file(follow_symlinks=True) and entry.name.lower().endswith(".zip")


class RunWalker:
    """
    Lazily yield run paths below a root directory.

    Args:
        root: Top of the ``<year>/<month>/<run>`` tree
        watermark: Skip everything dated before this day. None walks all.
    """

    def __init__(self, root: Path | str, watermark: Optional[date] = None):
        self.root = Path(root)
        self.watermark = watermark

    def __iter__(self) -> Iterator[Path]:
        return self.walk()

    def walk(self) -> Iterator[Path]:
        for year_entry in self._entries(self.root):
            if not year_entry.is_dir(follow_symlinks=True):
                continue
            year = _leading_number(year_entry.name)
            if not self._keep_year(year):
                logger.debug("Skipping year", path=year_entry.path)
                continue

            for month_entry in self._entries(year_entry.path):
                if not month_entry.is_dir(follow_symlinks=True):
                    continue
                month = _leading_number(month_entry.name)
                if not self._keep_month(year, month):
                    logger.debug("Skipping month", path=month_entry.path)
                    continue

                for run_entry in self._entries(month_entry.path):
                    if not _is_run_candidate(run_entry):
                        continue
                    if self._keep_run(run_entry.name):
                        yield Path(run_entry.path)

    def _entries(self, path) -> list[os.DirEntry]:
        try:
            with os.scandir(path) as it:
                return sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Cannot list directory", path=str(path), error=str(e))
            return []

    def _keep_year(self, year: Optional[int]) -> bool:
        if self.watermark is None:
            return True
        if year is None:
            return False
        return year >= self.watermark.year

    def _keep_month(self, year: Optional[int], month: Optional[int]) -> bool:
        if self.watermark is None:
            return True
        if month is None:
            return False
        # months of later years are all newer than the watermark
        if year is not None and year > self.watermark.year:
            return True
        return month >= self.watermark.month

    def _keep_run(self, name: str) -> bool:
        if self.watermark is None:
            return True
        try:
            run_date = parse_run_date(name)
        except MalformedRunName:
            logger.debug("Skipping undated run entry", name=name)
            return False
        return run_date >= self.watermark


def walk_runs(root: Path | str, watermark: Optional[date] = None) -> Iterator[Path]:
    """Yield run paths under ``root``, see :class:`RunWalker`."""
    return RunWalker(root, watermark).walk()
