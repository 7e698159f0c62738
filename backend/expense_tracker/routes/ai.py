"""
Expense Tracker Backend — AI Routes
====================================

All routes require an identity and fall under the `ai` quota policy
(20 requests per hour per user).

Degradation when the provider is disabled or failing:
    /categorize        → suggestion: null
    /analyze-receipt   → rule-based extraction ("source": "rules")
    /analyze-expense   → 503 "AI service is not available"
    /scan-receipt      → 503; the stored image is removed
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import require_user
from expense_tracker.auth.identity import Identity
from expense_tracker.database import get_db_session
from expense_tracker.exceptions import AppError
from expense_tracker.routes.dependencies import get_ai_service, get_file_service
from expense_tracker.schemas.ai import (
    AnalysisData,
    AnalyzeExpenseRequest,
    AnalyzeReceiptRequest,
    CategorizeData,
    CategorizeRequest,
    CategorySuggestion,
    ReceiptData,
    ScanReceiptData,
)
from expense_tracker.schemas.common import DataResponse, ErrorEnvelope
from expense_tracker.services.ai_base import AIService
from expense_tracker.services.category_service import category_service
from expense_tracker.services.expense_service import expense_service
from expense_tracker.services.file_service import FileService
from expense_tracker.services.receipt_parser import parse_receipt_text

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/ai",
    tags=["AI"],
    responses={
        401: {"model": ErrorEnvelope},
        429: {"model": ErrorEnvelope},
        503: {"model": ErrorEnvelope},
    },
)

SUGGESTION_CONFIDENCE = 0.8


@router.post("/categorize", response_model=DataResponse[CategorizeData])
async def categorize(
    body: CategorizeRequest,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    ai_service: AIService = Depends(get_ai_service),
) -> DataResponse[CategorizeData]:
    categories = await category_service.list_categories(db, user.id)
    name = await ai_service.categorize_expense(
        body.description, body.amount, [c.name for c in categories]
    )
    match = next((c for c in categories if c.name == name), None) if name else None

    suggestion = None
    if match is not None:
        suggestion = CategorySuggestion(
            category_id=match.id,
            category_name=match.name,
            confidence=SUGGESTION_CONFIDENCE,
        )
    return DataResponse(data=CategorizeData(suggestion=suggestion))


@router.post("/analyze-receipt", response_model=DataResponse[ReceiptData])
async def analyze_receipt(
    body: AnalyzeReceiptRequest,
    user: Identity = Depends(require_user),
    ai_service: AIService = Depends(get_ai_service),
) -> DataResponse[ReceiptData]:
    extracted = await ai_service.extract_receipt(body.receipt_text)
    return DataResponse(data=ReceiptData(extracted_data=extracted))


@router.post("/analyze-expense", response_model=DataResponse[AnalysisData])
async def analyze_expense(
    body: AnalyzeExpenseRequest,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    ai_service: AIService = Depends(get_ai_service),
) -> DataResponse[AnalysisData]:
    history = await expense_service.recent_history(db, user.id)
    analysis = await ai_service.analyze_expense(body.expense.model_dump(), history)
    return DataResponse(data=AnalysisData(analysis=analysis))


@router.post("/scan-receipt", response_model=DataResponse[ScanReceiptData])
async def scan_receipt(
    file: UploadFile = File(..., description="Receipt photo (PNG, JPEG or WebP)"),
    user: Identity = Depends(require_user),
    ai_service: AIService = Depends(get_ai_service),
    file_service: FileService = Depends(get_file_service),
) -> DataResponse[ScanReceiptData]:
    """Store the photo, transcribe it with the vision model, then structure the text."""
    content = await file.read()
    absolute_path, relative_path = await file_service.validate_and_store(
        filename=file.filename or "receipt.jpg",
        content=content,
        content_length=file.size,
    )

    try:
        text = await ai_service.read_receipt_image(absolute_path)
        if not text.strip():
            raise AppError("No text could be extracted from the image")
    except Exception:
        await file_service.cleanup_file(absolute_path)
        raise

    logger.info("User %s scanned receipt %s (%d chars)", user.id, relative_path, len(text))
    return DataResponse(
        data=ScanReceiptData(
            text=text,
            receipt=parse_receipt_text(text),
            receipt_url=relative_path,
        )
    )
