"""
Receipt upload routes, under the `upload` quota policy (10 requests per
hour per user).

POST /api/upload/receipt    one image, optionally attached to an expense
POST /api/upload/receipts   up to 5 images in one request
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import require_user
from expense_tracker.auth.identity import Identity
from expense_tracker.database import get_db_session
from expense_tracker.routes.dependencies import get_file_service
from expense_tracker.schemas.common import DataResponse, ErrorEnvelope
from expense_tracker.schemas.upload import (
    StoredReceipt,
    StoredReceiptData,
    StoredReceiptListData,
)
from expense_tracker.services.expense_service import expense_service
from expense_tracker.services.file_service import FileService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/upload",
    tags=["Upload"],
    responses={
        400: {"model": ErrorEnvelope},
        401: {"model": ErrorEnvelope},
        413: {"model": ErrorEnvelope},
        429: {"model": ErrorEnvelope},
    },
)


async def _store(file_service: FileService, file: UploadFile) -> StoredReceipt:
    content = await file.read()
    _, relative_path = await file_service.validate_and_store(
        filename=file.filename or "receipt.jpg",
        content=content,
        content_length=file.size,
    )
    return StoredReceipt(receipt_url=relative_path, filename=file.filename, size=len(content))


@router.post("/receipt", status_code=201, response_model=DataResponse[StoredReceiptData])
async def upload_receipt(
    file: UploadFile = File(..., description="Receipt image (PNG, JPEG or WebP, max 5MB)"),
    expense_id: Optional[int] = Form(default=None),
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    file_service: FileService = Depends(get_file_service),
) -> DataResponse[StoredReceiptData]:
    if expense_id is not None:
        # Ownership check before anything is written to disk
        await expense_service.get_expense(db, user.id, expense_id)

    receipt = await _store(file_service, file)
    if expense_id is not None:
        try:
            await expense_service.attach_receipt(db, user.id, expense_id, receipt.receipt_url)
        except Exception:
            await file_service.cleanup_file(str(file_service.storage_root / receipt.receipt_url))
            raise
        receipt.expense_id = expense_id

    return DataResponse(
        message="Receipt uploaded successfully",
        data=StoredReceiptData(receipt=receipt),
    )


@router.post("/receipts", status_code=201, response_model=DataResponse[StoredReceiptListData])
async def upload_receipts(
    files: List[UploadFile] = File(..., description="Up to 5 receipt images"),
    user: Identity = Depends(require_user),
    file_service: FileService = Depends(get_file_service),
) -> DataResponse[StoredReceiptListData]:
    file_service.validate_count(len(files))

    stored: List[StoredReceipt] = []
    try:
        for file in files:
            stored.append(await _store(file_service, file))
    except Exception:
        for receipt in stored:
            await file_service.cleanup_file(str(file_service.storage_root / receipt.receipt_url))
        raise

    logger.info("User %s uploaded %d receipts", user.id, len(stored))
    return DataResponse(
        message=f"{len(stored)} receipts uploaded successfully",
        data=StoredReceiptListData(receipts=stored),
    )
