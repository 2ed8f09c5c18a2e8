"""
Run sources.

A run is stored either as a folder or as a zip archive. Both expose the
same operations: list FASTQ paths, open the sample sheet and copy FASTQ
files out.
"""

import io
import os
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable

from ngsvault.errors import MissingSampleSheet, UnsupportedRunSource
from ngsvault.ingest.paths import is_fastq

SAMPLE_SHEET_NAME = "SampleSheet.csv"


class DirectoryRunSource:
    """A run folder on disk."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.name = self.path.name

    def fastq_files(self) -> list[str]:
        """FASTQ paths relative to the run folder, sorted."""
        files = []
        for dirpath, _, filenames in os.walk(self.path, followlinks=True):
            for filename in filenames:
                relative = os.path.relpath(os.path.join(dirpath, filename), self.path)
                if is_fastq(relative):
                    files.append(relative)
        return sorted(files)

    def open_samplesheet(self) -> BinaryIO:
        sheet = self.path / SAMPLE_SHEET_NAME
        if not sheet.is_file():
            raise MissingSampleSheet(f"No {SAMPLE_SHEET_NAME} in run", path=str(self.path))
        return open(sheet, "rb")

    def extract(self, members: Iterable[str], target_dir: Path, prefix: str = "") -> list[Path]:
        """Copy the given files into ``target_dir`` as ``prefix + basename``."""
        written = []
        for member in members:
            target = Path(target_dir) / f"{prefix}{os.path.basename(member)}"
            shutil.copyfile(self.path / member, target)
            written.append(target)
        return written


class ZipRunSource:
    """A run packed into ``<run>.zip`` with a top level ``<run>/`` folder."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.name = self.path.stem

    def fastq_files(self) -> list[str]:
        """Archive member names that are FASTQ files, sorted."""
        with zipfile.ZipFile(self.path) as archive:
            return sorted(n for n in archive.namelist() if is_fastq(n))

    def open_samplesheet(self) -> BinaryIO:
        member = str(PurePosixPath(self.name) / SAMPLE_SHEET_NAME)
        with zipfile.ZipFile(self.path) as archive:
            try:
                data = archive.read(member)
            except KeyError as e:
                raise MissingSampleSheet(
                    f"No {member} in archive", path=str(self.path)
                ) from e
        return io.BytesIO(data)

    def extract(self, members: Iterable[str], target_dir: Path, prefix: str = "") -> list[Path]:
        """Stream the given members into ``target_dir`` as ``prefix + basename``."""
        written = []
        with zipfile.ZipFile(self.path) as archive:
            for member in members:
                target = Path(target_dir) / f"{prefix}{PurePosixPath(member).name}"
                with archive.open(member) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                written.append(target)
        return written


RunSource = DirectoryRunSource | ZipRunSource


def open_run_source(path: Path | str) -> RunSource:
    """
    Pick the source type for a run path.

    Raises:
        UnsupportedRunSource: If the path is neither a folder nor a ``.zip``
    """
    path = Path(path)
    if path.is_dir():
        return DirectoryRunSource(path)
    if path.suffix.lower() == ".zip":
        return ZipRunSource(path)
    raise UnsupportedRunSource(f"Unsupported run source extension {path.suffix!r}", path=str(path))

