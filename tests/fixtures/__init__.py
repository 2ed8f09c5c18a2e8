"""
NGS Vault Test Fixtures - Synthetic run trees, sample sheets and cell sheets
"""

import gzip
import zipfile
from pathlib import Path

RUN_NAME = "210802_M70821_0114_000000000-DCWMD"
SECOND_RUN_NAME = "210809_M70821_0115_000000000-DCX2K"

SAMPLE_SHEET_HEADER = """\
[Header]
IEMFileVersion,4
Investigator Name,Kathrin Berger
Experiment Name,Markerscreening
Date,02.08.2021
Workflow,GenerateFASTQ
Assay,Nextera XT
Description,IG clonality screening
Chemistry,Amplicon
,
[Reads]
151
151
,
[Settings]
ReverseComplement,0
,
"""

DATA_HEADER = (
    "Sample_ID,Sample_Name,Sample_Plate,Sample_Well,I7_Index_ID,index,"
    "I5_Index_ID,index2,Sample_Project,Description"
)

# 10 column [Data] rows, LIMS id in the last column
DATA_ROWS = [
    "D-21-12345_FR1_Mueller,D-21-12345_FR1_Mueller,,A01,N701,TAAGGCGA,S502,CTCTCTAT,Leukaemie,555",
    "21-12346_IGHV_Schmidt,21-12346_IGHV_Schmidt,,B01,N702,CGTACTAG,S502,CTCTCTAT,Leukaemie,556",
    "Kontrolle_NTC,Kontrolle_NTC,,C01,N703,AGGCAGAA,S502,CTCTCTAT,,",
]

FASTQ_FILES = [
    "data_Leukaemie/21-12345_FR1_Mueller_S1_L001_R1_001.fastq.gz",
    "data_Leukaemie/21-12345_FR1_Mueller_S1_L001_R2_001.fastq.gz",
    "data_Leukaemie/21-12346_IGHV_Schmidt_S2_L001_R1_001.fastq.gz",
    "data_Leukaemie/21-12346_IGHV_Schmidt_S2_L001_R2_001.fastq.gz",
    "data_Leukaemie/Kontrolle_NTC_S3_L001_R1_001.fastq.gz",
    "data_Leukaemie/Kontrolle_NTC_S3_L001_R2_001.fastq.gz",
]

# Files a run folder also holds that must not be catalogued
IGNORED_FILES = [
    "Data/Intensities/BaseCalls/21-12345_FR1_Mueller_S1_L001_R1_001.fastq.gz",
    "Undetermined_S0_L001_R1_001.fastq.gz",
    "Archiv_2021/Kontrolle_NTC_S3_L001_R1_001.fastq.gz",
    "RunInfo.xml",
]

CELL_SHEET_ROWS = [
    "sample_ID,ng_DNA,spike,comment",
    "D-21-12345_FR1_Mueller,10.0,BC1,ok",
    "21-12346_IGHV_Schmidt,2.0,BC2,ok",
]

SYNTHETIC_READ = """\
@M70821:114:000000000-DCWMD:1:1101:15589:1331 1:N:0:1
CTGTCTCTTATACACATCTCCGAGCCCACGAGACTAAGGCGAATCTCGTATGCCGTCTTCTGCTTG
+
CCCCCGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGGG
"""


def make_sample_sheet(rows=None, header: str = SAMPLE_SHEET_HEADER) -> str:
    """Sample sheet text with a [Data] table of the given rows."""
    rows = DATA_ROWS if rows is None else rows
    return header + "[Data]\n" + DATA_HEADER + "\n" + "\n".join(rows) + "\n"


def _fastq_bytes() -> bytes:
    return gzip.compress(SYNTHETIC_READ.encode())


def run_parent(root: Path, name: str) -> Path:
    """``<root>/<20YY>/<MM>`` for a run name."""
    parent = Path(root) / f"20{name[0:2]}" / name[2:4]
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def build_run_dir(
    root: Path,
    name: str = RUN_NAME,
    sheet: str | None = None,
    fastqs=None,
    extra_files=None,
) -> Path:
    """Create a run folder in the year/month tree below ``root``."""
    run_dir = run_parent(root, name) / name
    run_dir.mkdir(parents=True, exist_ok=True)
    if sheet is not False:
        (run_dir / "SampleSheet.csv").write_text(sheet if sheet is not None else make_sample_sheet())
    for rel in (FASTQ_FILES if fastqs is None else fastqs):
        path = run_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_fastq_bytes())
    for rel in extra_files or []:
        path = run_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")
    return run_dir


def build_run_zip(
    root: Path,
    name: str = RUN_NAME,
    sheet: str | None = None,
    fastqs=None,
) -> Path:
    """Create ``<name>.zip`` with a top level ``<name>/`` folder."""
    archive = run_parent(root, name) / f"{name}.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        if sheet is not False:
            zf.writestr(f"{name}/SampleSheet.csv", sheet if sheet is not None else make_sample_sheet())
        for rel in (FASTQ_FILES if fastqs is None else fastqs):
            zf.writestr(f"{name}/{rel}", _fastq_bytes())
    return archive


def build_cell_sheet(
    cell_root: Path,
    run_name: str = RUN_NAME,
    rows=None,
    filename: str = "spikeINBC.csv",
    month_folder: str = "08_August",
    start_dir: str = "Start_01",
) -> Path:
    """Create a spikeINBC sheet where the enricher looks for it."""
    year = f"20{run_name[0:2]}"
    run_dir = f"20{run_name[0:6]}_{run_name.split('_')[1]}_Markerscreening"
    folder = Path(cell_root) / year / month_folder / run_dir / start_dir
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / filename
    path.write_text("\n".join(CELL_SHEET_ROWS if rows is None else rows) + "\n")
    return path
