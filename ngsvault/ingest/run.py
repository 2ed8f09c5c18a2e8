"""
Run builder.

Parses one run source into a ParsedRun: sample sheet, FASTQ assignment
and cell counts. Runs in worker threads and never touches the database.
"""

from pathlib import Path
from typing import Optional

import structlog

from ngsvault.errors import MissingSampleSheet
from ngsvault.ingest.assign import assign_fastqs
from ngsvault.ingest.cellsheet import enrich_cells
from ngsvault.ingest.paths import parse_run_date
from ngsvault.ingest.records import ParsedRun
from ngsvault.ingest.samplesheet import parse_samplesheet
from ngsvault.ingest.sources import open_run_source

logger = structlog.get_logger()


def build_run(path: Path | str, cell_root: Optional[Path | str] = None) -> ParsedRun:
    """
    Build a complete run from a run folder or archive.

    Args:
        path: Run folder or ``.zip`` archive
        cell_root: Root of the cell sheet tree, None skips cell counts

    Returns:
        Parsed run with samples, files and cell counts

    Raises:
        MalformedRunName: If the name does not start with a YYMMDD date
        MalformedSampleSheet: If a ``[Data]`` row is malformed
        UnsupportedRunSource: If the path is neither folder nor zip
    """
    source = open_run_source(path)
    run_date = parse_run_date(source.name)
    fastq_files = source.fastq_files()

    run = ParsedRun(name=source.name, date=run_date, path=str(path))

    try:
        with source.open_samplesheet() as stream:
            sheet = parse_samplesheet(stream, fastq_files, run=source.name)
    except MissingSampleSheet:
        logger.warning("Run has no sample sheet", run=source.name, path=str(path))
        assign_fastqs(run.samples, fastq_files, run=source.name)
    else:
        run.investigator = sheet.investigator
        run.assay = sheet.assay
        run.description = sheet.description
        run.chemistry = sheet.chemistry
        run.samples = sheet.samples

    enrich_cells(cell_root, run_date, source.name, run.samples)

    logger.debug(
        "Run parsed",
        run=run.name,
        samples=len(run.samples),
        fastqs=run.fastq_count,
        recovered=run.recovered_count,
    )
    return run
