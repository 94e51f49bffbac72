from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from invoicer.application import InvoicingService
from invoicer.core.recipients import RecipientImportError, read_recipients
from invoicer.core.schema import SingleInvoiceRequest
from invoicer.routes.deps import get_invoicing_service

router = APIRouter(tags=["invoices"])


@router.post("/invoices/single")
async def send_single_invoice(
    payload: SingleInvoiceRequest,
    service: InvoicingService = Depends(get_invoicing_service),
) -> dict:
    return await service.send_single_invoice(payload)


@router.post("/recipients/parse")
async def parse_recipients(file: UploadFile = File(...)) -> dict:
    """Extract the recipient emails from an uploaded CSV, XLSX or text file."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file must have a filename")

    suffix = Path(file.filename).suffix.lower()
    with tempfile.TemporaryDirectory() as tmp_dir:
        target = Path(tmp_dir) / f"recipients{suffix}"
        try:
            with target.open("wb") as buffer:
                shutil.copyfileobj(file.file, buffer)
        finally:
            await file.close()
        try:
            emails = read_recipients(target)
        except RecipientImportError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {"filename": Path(file.filename).name, "count": len(emails), "items": emails}
