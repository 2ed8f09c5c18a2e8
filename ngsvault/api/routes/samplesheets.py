"""
NGS Vault Sample Sheet Routes

Upload a spreadsheet, reconcile it against the catalogue and get the
merged sheet back as JSON, TSV, CSV or xlsx.
"""

import shutil
import tempfile
from pathlib import Path

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ngsvault.api.schemas import SampleSheetResponse, SheetFormat, SkippedRowResponse
from ngsvault.config import get_settings
from ngsvault.errors import SheetFormatError
from ngsvault.services.database import get_session
from ngsvault.services.samplesheet import SampleSheet

router = APIRouter()
settings = get_settings()
logger = structlog.get_logger()

SEPARATORS = {SheetFormat.TSV: "\t", SheetFormat.CSV: ","}
MEDIA_TYPES = {
    SheetFormat.TSV: "text/tab-separated-values",
    SheetFormat.CSV: "text/csv",
    SheetFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def _parse_overrides(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _reconcile_upload(upload: UploadFile, session: Session, workdir: Path) -> SampleSheet:
    source = workdir / "upload.xlsx"
    with open(source, "wb") as fh:
        shutil.copyfileobj(upload.file, fh)
    try:
        return SampleSheet.from_xlsx(source, session)
    except SheetFormatError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.to_dict())


@router.post("/reconcile", response_model=SampleSheetResponse)
def reconcile_sheet(
    file: UploadFile = File(...),
    overrides: str = Form(""),
    session: Session = Depends(get_session),
):
    """Reconcile an uploaded xlsx and return the merged rows."""
    with tempfile.TemporaryDirectory() as tmp:
        sheet = _reconcile_upload(file, session, Path(tmp))
    return SampleSheetResponse(
        header=sheet.header(),
        rows=sheet.rows(_parse_overrides(overrides)),
        skipped=[SkippedRowResponse.model_validate(s) for s in sheet.skipped],
    )


@router.post("/export")
def export_sheet(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    overrides: str = Form(""),
    format: SheetFormat = Form(SheetFormat.TSV),
    session: Session = Depends(get_session),
):
    """Reconcile an uploaded xlsx and download the merged sheet."""
    settings.storage.ensure_directories()
    tmp = Path(tempfile.mkdtemp(prefix="ngsvault-export-", dir=settings.storage.export_dir))
    try:
        sheet = _reconcile_upload(file, session, tmp)
    except HTTPException:
        shutil.rmtree(tmp, ignore_errors=True)
        raise
    background_tasks.add_task(shutil.rmtree, tmp, ignore_errors=True)

    target = tmp / f"samplesheet.{format.value}"
    if format == SheetFormat.XLSX:
        sheet.write_xlsx(target, _parse_overrides(overrides))
    else:
        sheet.write_csv(target, SEPARATORS[format], _parse_overrides(overrides))

    logger.info("Sample sheet exported", entries=len(sheet), skipped=len(sheet.skipped))
    return FileResponse(target, media_type=MEDIA_TYPES[format], filename=target.name)
