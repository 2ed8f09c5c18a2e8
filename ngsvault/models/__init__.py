"""
NGS Vault Database Models

SQLAlchemy models for the sequencing run catalogue.
"""

import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# RUNS
# =============================================================================

class Run(Base):
    """
    A sequencer run, either a folder or a zip archive.

    Identified by its name, which begins with the YYMMDD run date.
    """

    __tablename__ = "run"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    assay: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    chemistry: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    investigator: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)

    samples: Mapped[list["Sample"]] = relationship(
        back_populates="run_ref",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_run_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Run {self.name}>"


# =============================================================================
# SAMPLES
# =============================================================================

class Sample(Base):
    """A sample declared in a run's sample sheet or recovered from its files."""

    __tablename__ = "sample"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run: Mapped[str] = mapped_column(
        ForeignKey("run.name", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dna_nr: Mapped[Optional[str]] = mapped_column(String(32))
    project: Mapped[Optional[str]] = mapped_column(String(255))
    lims_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    primer_set: Mapped[Optional[str]] = mapped_column(String(255))
    cells: Mapped[Optional[int]] = mapped_column(Integer)

    run_ref: Mapped["Run"] = relationship(back_populates="samples")
    fastqs: Mapped[list["Fastq"]] = relationship(
        back_populates="sample",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_sample_run", "run"),
        Index("ix_sample_name", "name"),
        Index("ix_sample_dna_nr", "dna_nr"),
        Index("ix_sample_project", "project"),
        Index("ix_sample_primer_set", "primer_set"),
        Index("ix_sample_lims_id", "lims_id"),
    )

    def __repr__(self) -> str:
        return f"<Sample {self.run}/{self.name}>"


# =============================================================================
# FASTQ FILES
# =============================================================================

class Fastq(Base):
    """A FASTQ file path, relative to the run source, owned by one sample."""

    __tablename__ = "fastq"

    sample_id: Mapped[int] = mapped_column(
        ForeignKey("sample.id", ondelete="CASCADE"),
        primary_key=True,
    )
    filename: Mapped[str] = mapped_column(String(1024), primary_key=True)

    sample: Mapped["Sample"] = relationship(back_populates="fastqs")

    __table_args__ = (
        Index("ix_fastq_sample_id", "sample_id"),
        Index("ix_fastq_filename", "filename"),
    )

    def __repr__(self) -> str:
        return f"<Fastq {self.filename}>"
