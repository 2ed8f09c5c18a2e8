"""
End-to-end ingestion tests against an in-memory database.
"""

import struct
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ngsvault.errors import IngestionError
from ngsvault.ingest.run import build_run
from ngsvault.models import Fastq, Run, Sample
from ngsvault.services import ingestion
from ngsvault.services.ingestion import IngestionCoordinator

from tests.fixtures import (
    FASTQ_FILES,
    IGNORED_FILES,
    RUN_NAME,
    SECOND_RUN_NAME,
    build_run_dir,
    build_run_zip,
    make_sample_sheet,
)

CENTRAL_HEADER = b"PK\x01\x02"
END_OF_DIRECTORY = b"PK\x05\x06"


def count(session, model):
    return session.scalar(select(func.count()).select_from(model))


def set_compression_method(archive, method):
    """Rewrite the method of every central directory entry, e.g. 9 for Deflate64."""
    data = bytearray(archive.read_bytes())
    (directory,) = struct.unpack_from("<I", data, data.rfind(END_OF_DIRECTORY) + 16)
    start = data.find(CENTRAL_HEADER, directory)
    while start != -1:
        struct.pack_into("<H", data, start + 10, method)
        start = data.find(CENTRAL_HEADER, start + 4)
    archive.write_bytes(bytes(data))


class TestBuildRun:
    """Tests for parsing a single run source."""

    def test_directory_run(self, run_root):
        run_dir = build_run_dir(run_root, extra_files=IGNORED_FILES)
        parsed = build_run(run_dir)
        assert parsed.name == RUN_NAME
        assert parsed.date == date(2021, 8, 2)
        assert parsed.investigator == "Kathrin Berger"
        assert sorted(f for s in parsed.samples for f in s.files) == sorted(FASTQ_FILES)

    def test_zip_run(self, run_root):
        archive = build_run_zip(run_root)
        parsed = build_run(archive)
        assert parsed.name == RUN_NAME
        assert len(parsed.samples) == 3
        assert parsed.fastq_count == len(FASTQ_FILES)
        assert all(f.startswith(f"{RUN_NAME}/") for s in parsed.samples for f in s.files)

    def test_missing_sample_sheet_recovers_samples(self, run_root):
        run_dir = build_run_dir(run_root, sheet=False)
        parsed = build_run(run_dir)
        assert parsed.assay == ""
        assert {s.name for s in parsed.samples} == {
            "21-12345_FR1_Mueller", "21-12346_IGHV_Schmidt", "Kontrolle_NTC",
        }
        assert all(s.recovered for s in parsed.samples)
        assert all(s.project == "data_Leukaemie" for s in parsed.samples)


class TestIngestionCoordinator:
    """Tests for the batch ingestion."""

    def test_reference_run(self, ingested, session):
        assert ingested.runs == 1
        assert ingested.samples == 3
        assert ingested.fastqs == len(FASTQ_FILES)
        assert ingested.recovered_samples == 0
        assert ingested.failed == []

        run = session.get(Run, RUN_NAME)
        assert run.date == date(2021, 8, 2)
        assert run.assay == "Nextera XT"
        assert run.description == "IG clonality screening"
        assert count(session, Sample) == 3
        assert count(session, Fastq) == len(FASTQ_FILES)

    def test_cells_stored(self, ingested, session):
        cells = dict(session.execute(select(Sample.name, Sample.cells)).all())
        assert cells == {
            "D-21-12345_FR1_Mueller": 1538,
            "21-12346_IGHV_Schmidt": 308,
            "Kontrolle_NTC": None,
        }

    def test_reingest_replaces_run(self, ingested, session_factory, run_root, cell_root, session):
        stats = IngestionCoordinator(session_factory, workers=1).update(run_root, cell_root)
        assert stats.runs == 1

        session.expire_all()
        assert count(session, Run) == 1
        assert count(session, Sample) == 3
        assert count(session, Fastq) == len(FASTQ_FILES)

    def test_changed_sample_sheet_replaces_samples(self, ingested, session_factory, run_root, session):
        build_run_dir(run_root, sheet=make_sample_sheet(["Kontrolle_NTC,a,b,c,Neu,f"]))
        IngestionCoordinator(session_factory, workers=1).update(run_root)

        session.expire_all()
        names = sorted(session.scalars(select(Sample.name)))
        assert "Kontrolle_NTC" in names
        assert count(session, Fastq) == len(FASTQ_FILES)
        assert session.scalar(select(Sample.project).where(Sample.name == "Kontrolle_NTC")) == "Neu"

    def test_malformed_run_skipped(self, session_factory, run_root, session):
        build_run_dir(run_root)
        bad = build_run_dir(
            run_root,
            name=SECOND_RUN_NAME,
            sheet=make_sample_sheet(["S1,a,b,c,d,e,f,g"]),
            fastqs=[],
        )
        stats = IngestionCoordinator(session_factory, workers=2).update(run_root)
        assert stats.runs == 1
        assert stats.failed == [str(bad)]
        assert session.get(Run, SECOND_RUN_NAME) is None
        assert session.get(Run, RUN_NAME) is not None

    def test_unreadable_zip_method_skipped(self, session_factory, run_root, session):
        build_run_dir(run_root)
        bad = build_run_zip(run_root, name=SECOND_RUN_NAME)
        set_compression_method(bad, 9)
        stats = IngestionCoordinator(session_factory, workers=2).update(run_root)
        assert stats.runs == 1
        assert stats.failed == [str(bad)]
        assert session.get(Run, SECOND_RUN_NAME) is None
        assert count(session, Fastq) == len(FASTQ_FILES)

    def test_zip_and_folder_runs(self, session_factory, run_root, session):
        build_run_dir(run_root)
        build_run_zip(run_root, name=SECOND_RUN_NAME)
        stats = IngestionCoordinator(session_factory, workers=2).update(run_root)
        assert stats.runs == 2
        assert session.get(Run, SECOND_RUN_NAME).path.endswith(".zip")

    def test_watermark_skips_older_runs(self, ingested, session_factory, run_root, session):
        build_run_dir(run_root, name="200105_M70821_0001_000000000-OLD01", fastqs=[])
        stats = IngestionCoordinator(session_factory, workers=1).update(run_root)
        assert stats.runs == 1
        assert session.get(Run, "200105_M70821_0001_000000000-OLD01") is None

    def test_full_rescan_ignores_watermark(self, ingested, session_factory, run_root, session):
        build_run_dir(run_root, name="200105_M70821_0001_000000000-OLD01", fastqs=[])
        coordinator = IngestionCoordinator(session_factory, workers=1, full_rescan=True)
        assert coordinator.update(run_root).runs == 2
        assert session.get(Run, "200105_M70821_0001_000000000-OLD01") is not None

    def test_failed_transaction_rolls_back(self, session_factory, run_root, session, monkeypatch):
        build_run_dir(run_root)
        build_run_dir(run_root, name=SECOND_RUN_NAME)

        original = ingestion.store_runs

        def failing_store(db, runs):
            original(db, runs[:1])
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(ingestion, "store_runs", failing_store)
        with pytest.raises(IngestionError):
            IngestionCoordinator(session_factory, workers=1).update(run_root)

        assert count(session, Run) == 0
        assert count(session, Sample) == 0

    def test_worker_default(self, session_factory):
        assert IngestionCoordinator(session_factory, workers=0).workers >= 1
