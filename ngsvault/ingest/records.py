"""
Parsed run and sample records.

Plain in-memory results of parsing one run source, produced by worker
threads and persisted by the ingestion coordinator.
"""

from dataclasses import dataclass, field
import datetime
from typing import Optional


@dataclass
class ParsedSample:
    """A sample with the FASTQ files assigned to it."""
    name: str
    dna_nr: Optional[str] = None
    primer_set: Optional[str] = None
    project: Optional[str] = None
    lims_id: Optional[int] = None
    cells: Optional[int] = None
    files: list[str] = field(default_factory=list)
    recovered: bool = False

    @property
    def merge_key(self) -> tuple:
        """Identity used when folding recovered files into samples."""
        return (self.name, self.dna_nr, self.primer_set, self.project)


@dataclass
class ParsedRun:
    """Run metadata together with its samples."""
    name: str
    date: datetime.date
    path: str
    assay: str = ""
    chemistry: str = ""
    description: str = ""
    investigator: str = ""
    samples: list[ParsedSample] = field(default_factory=list)

    @property
    def fastq_count(self) -> int:
        return sum(len(s.files) for s in self.samples)

    @property
    def recovered_count(self) -> int:
        return sum(1 for s in self.samples if s.recovered)
