"""
Illumina sample sheet parser.

Reads the INI style header for run metadata and the ``[Data]`` table for
the declared samples, then hands the samples to the FASTQ assigner.
"""

import re
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Optional

import structlog

from ngsvault.errors import MalformedSampleSheet
from ngsvault.ingest.assign import AssignmentReport, assign_fastqs
from ngsvault.ingest.names import decompose_name
from ngsvault.ingest.records import ParsedSample

logger = structlog.get_logger()

DATA_SECTION = "[Data]"
MAX_COLUMNS = 10

# first header field -> SampleSheetData attribute
HEADER_KEYS = {
    "Investigator Name": "investigator",
    "Assay": "assay",
    "Description": "description",
    "Chemistry": "chemistry",
}

# column count -> index of the project column
PROJECT_COLUMN = {10: 8, 9: 8, 7: 5, 6: 4}

INTEGER_PATTERN = re.compile(r"^[+-]?[0-9]+$")


@dataclass
class SampleSheetData:
    """Run metadata and samples read from one sample sheet."""
    investigator: str = ""
    assay: str = ""
    description: str = ""
    chemistry: str = ""
    samples: list[ParsedSample] = field(default_factory=list)
    assignment: Optional[AssignmentReport] = None


def _parse_lims_id(value: str) -> Optional[int]:
    if not INTEGER_PATTERN.match(value):
        return None
    lims_id = int(value)
    return lims_id if lims_id > 0 else None


def parse_row(parts: list[str], line_no: int, run: str = "") -> ParsedSample:
    """
    Build a sample from one ``[Data]`` row.

    Raises:
        MalformedSampleSheet: If the row has a column count other than 6, 7, 9 or 10
    """
    count = len(parts)
    if count not in PROJECT_COLUMN:
        raise MalformedSampleSheet(
            f"Expected 10, 9, 7 or 6 columns, found {count} on line {line_no}",
            path=run,
        )

    name = parts[0]
    project = parts[PROJECT_COLUMN[count]] or None
    lims_id = _parse_lims_id(parts[9]) if count == 10 else None
    dna_nr, primer_set = decompose_name(name)

    return ParsedSample(
        name=name,
        dna_nr=dna_nr,
        primer_set=primer_set,
        project=project,
        lims_id=lims_id,
    )


def read_lines(stream: BinaryIO) -> Iterable[str]:
    for raw in stream:
        yield raw.decode("utf-8", errors="replace").rstrip("\r\n")


def parse_samplesheet(
    stream: BinaryIO,
    fastq_files: list[str],
    run: str = "",
) -> SampleSheetData:
    """
    Parse a sample sheet and assign the run's FASTQ files to its samples.

    Args:
        stream: Binary stream of ``SampleSheet.csv``
        fastq_files: FASTQ paths of the run
        run: Run name for log context and errors

    Returns:
        Header metadata plus samples with their files

    Raises:
        MalformedSampleSheet: On a ``[Data]`` row with an unsupported column count
    """
    sheet = SampleSheetData()
    in_table = False
    truncated = 0

    for line_no, line in enumerate(read_lines(stream), start=1):
        parts = line.split(",")

        if not in_table:
            if parts[0] == DATA_SECTION:
                in_table = True
                continue
            if len(parts) >= 2 and parts[0] in HEADER_KEYS:
                setattr(sheet, HEADER_KEYS[parts[0]], parts[1])
            continue

        if parts[0].lower() == "sample_id" or len(parts) < 2:
            continue
        if len(parts) > MAX_COLUMNS:
            parts = parts[:MAX_COLUMNS]
            truncated += 1

        sample = parse_row(parts, line_no, run)
        if sample.name:
            sheet.samples.append(sample)

    if truncated:
        logger.warning(
            "Sample sheet rows exceed column limit, extra columns ignored",
            run=run,
            rows=truncated,
            limit=MAX_COLUMNS,
        )
    if not sheet.samples:
        logger.warning("Sample sheet declares no samples", run=run)

    sheet.assignment = assign_fastqs(sheet.samples, fastq_files, run=run)
    return sheet
