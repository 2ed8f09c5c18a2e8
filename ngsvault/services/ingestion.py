"""
NGS Vault Ingestion Service

Walks the run tree, parses new runs in a worker pool and stores them in a
single transaction.
"""

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ngsvault.config import settings
from ngsvault.errors import IngestionError
from ngsvault.ingest.records import ParsedRun
from ngsvault.ingest.run import build_run
from ngsvault.ingest.walker import walk_runs
from ngsvault.models import Fastq, Run, Sample
from ngsvault.services.database import delete_run, earliest_run_date, get_session_factory

logger = structlog.get_logger()


@dataclass
class IngestStats:
    """Aggregate counts of one ingestion."""
    runs: int = 0
    samples: int = 0
    fastqs: int = 0
    recovered_samples: int = 0
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "runs": self.runs,
            "samples": self.samples,
            "fastqs": self.fastqs,
            "recovered_samples": self.recovered_samples,
            "failed": list(self.failed),
        }


def to_model(parsed: ParsedRun) -> Run:
    """Build the ORM rows of a parsed run."""
    return Run(
        name=parsed.name,
        date=parsed.date,
        assay=parsed.assay,
        chemistry=parsed.chemistry,
        description=parsed.description or None,
        investigator=parsed.investigator,
        path=parsed.path,
        samples=[
            Sample(
                run=parsed.name,
                name=s.name,
                dna_nr=s.dna_nr,
                project=s.project,
                lims_id=s.lims_id,
                primer_set=s.primer_set,
                cells=s.cells,
                fastqs=[Fastq(filename=f) for f in dict.fromkeys(s.files)],
            )
            for s in parsed.samples
        ],
    )


def store_runs(session: Session, runs: list[ParsedRun]) -> None:
    """
    Replace each run by name. The caller owns the transaction.

    Args:
        session: Database session
        runs: Parsed runs, a later duplicate name replaces an earlier one
    """
    for parsed in runs:
        delete_run(session, parsed.name)
        session.add(to_model(parsed))
        session.flush()
        logger.debug("Run stored", run=parsed.name, samples=len(parsed.samples))


class IngestionCoordinator:
    """
    Drives run discovery, parsing and storage.

    Args:
        session_factory: Factory for the session holding the batch transaction
        workers: Size of the parse worker pool, 0 uses all cores
        full_rescan: Ignore the stored watermark
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        workers: Optional[int] = None,
        full_rescan: Optional[bool] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        workers = settings.ingest.workers if workers is None else workers
        self.workers = workers or os.cpu_count() or 1
        self.full_rescan = settings.ingest.full_rescan if full_rescan is None else full_rescan

    def watermark(self) -> Optional[date]:
        if self.full_rescan:
            return None
        with self.session_factory() as session:
            return earliest_run_date(session)

    def parse_runs(
        self,
        paths: list[Path],
        cell_root: Optional[Path | str],
        stats: IngestStats,
    ) -> list[ParsedRun]:
        """Parse runs in parallel. Failing paths are logged and recorded in ``stats``."""
        parsed: dict[Path, ParsedRun] = {}
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {executor.submit(build_run, path, cell_root): path for path in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    parsed[path] = future.result()
                except Exception as e:
                    logger.error("Run parse failed", path=str(path), error=str(e), exc_info=True)
                    stats.failed.append(str(path))
        # walk order keeps the batch deterministic
        return [parsed[p] for p in paths if p in parsed]

    def update(self, root: Path | str, cell_root: Optional[Path | str] = None) -> IngestStats:
        """
        Ingest new and changed runs under ``root``.

        Args:
            root: Top of the ``<year>/<month>/<run>`` tree
            cell_root: Root of the cell sheet tree

        Returns:
            Counts of stored runs, samples and FASTQ files

        Raises:
            IngestionError: If the batch transaction fails. Nothing is stored.
        """
        stats = IngestStats()
        watermark = self.watermark()
        logger.info("Ingestion started", root=str(root), watermark=str(watermark), workers=self.workers)

        paths = list(walk_runs(root, watermark))
        runs = self.parse_runs(paths, cell_root, stats)

        session = self.session_factory()
        try:
            store_runs(session, runs)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Ingestion rolled back", error=str(e), runs=len(runs))
            raise IngestionError(f"Ingestion transaction failed: {e}", path=str(root)) from e
        finally:
            session.close()

        stored = {run.name: run for run in runs}
        stats.runs = len(stored)
        stats.samples = sum(len(r.samples) for r in stored.values())
        stats.fastqs = sum(r.fastq_count for r in stored.values())
        stats.recovered_samples = sum(r.recovered_count for r in stored.values())

        logger.info(
            "Ingestion finished",
            runs=stats.runs,
            samples=stats.samples,
            fastqs=stats.fastqs,
            recovered_samples=stats.recovered_samples,
            failed=len(stats.failed),
        )
        return stats
