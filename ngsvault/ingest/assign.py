"""
FASTQ assignment.

Distributes a run's FASTQ files over the samples declared in its sample
sheet. Files no declared sample claims are folded into samples recovered
from the file names themselves, so every file ends up with exactly one
sample.
"""

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

import structlog

from ngsvault.ingest.names import decompose_name
from ngsvault.ingest.records import ParsedSample

logger = structlog.get_logger()

ORPHAN_NAME_PATTERN = re.compile(r"(?P<name>.*?)_S\d+_.*\.fastq\.gz$")
UNKNOWN_SAMPLE = "Unknown"
PROJECT_DIR_PREFIX = "data_"


@dataclass
class AssignmentReport:
    """Outcome of one assignment pass."""
    matched: int = 0
    orphans: int = 0
    recovered_samples: int = 0
    unassigned: int = 0


def _claims(sample: ParsedSample, path: str) -> bool:
    if sample.dna_nr and sample.primer_set:
        return sample.dna_nr in path and sample.primer_set in path
    if sample.dna_nr:
        return sample.dna_nr in path
    return sample.name in path


def _recover_sample(path: str) -> ParsedSample:
    """Build a sample description from an unclaimed FASTQ path."""
    pure = PurePath(path.replace("\\", "/"))
    parent = pure.parent.name
    project: Optional[str] = parent if parent.startswith(PROJECT_DIR_PREFIX) else None

    match = ORPHAN_NAME_PATTERN.match(pure.name)
    if not match:
        return ParsedSample(name=UNKNOWN_SAMPLE, project=project, recovered=True)

    name = match.group("name")
    dna_nr, primer_set = decompose_name(name)
    return ParsedSample(
        name=name,
        dna_nr=dna_nr,
        primer_set=primer_set,
        project=project,
        recovered=True,
    )


def assign_fastqs(
    samples: list[ParsedSample],
    files: list[str],
    run: str = "",
) -> AssignmentReport:
    """
    Attach every file in ``files`` to a sample.

    Samples are visited longest name first so a short name cannot claim
    the files of a longer one. ``samples`` is extended in place with any
    recovered samples.

    Args:
        samples: Declared samples, their file lists are filled in place
        files: FASTQ paths of the run
        run: Run name, only used for log context

    Returns:
        Counts of claimed, orphaned and unassigned files
    """
    report = AssignmentReport()
    pending: list[Optional[str]] = list(files)

    for sample in sorted(samples, key=lambda s: len(s.name), reverse=True):
        for index, path in enumerate(pending):
            if path is None:
                continue
            if _claims(sample, path):
                sample.files.append(path)
                pending[index] = None
                report.matched += 1

    by_key = {sample.merge_key: sample for sample in samples}
    for index, path in enumerate(pending):
        if path is None:
            continue
        report.orphans += 1
        candidate = _recover_sample(path)
        owner = by_key.get(candidate.merge_key)
        if owner is None:
            owner = candidate
            samples.append(owner)
            by_key[owner.merge_key] = owner
            report.recovered_samples += 1
        owner.files.append(path)
        pending[index] = None

    report.unassigned = sum(1 for path in pending if path is not None)

    if report.orphans:
        logger.warning(
            "Orphan FASTQ files",
            run=run,
            orphans=report.orphans,
            recovered_samples=report.recovered_samples,
        )
    if report.unassigned:
        logger.warning("Unassigned FASTQ files", run=run, count=report.unassigned)

    return report
