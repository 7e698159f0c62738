"""Request/response contracts for /api/ai."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CategorizeRequest(BaseModel):
    description: str = Field(min_length=1, max_length=1000)
    amount: float = Field(default=0, ge=0)


class CategorySuggestion(BaseModel):
    category_id: int
    category_name: str
    confidence: float


class CategorizeData(BaseModel):
    suggestion: Optional[CategorySuggestion]


class AnalyzeReceiptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    receipt_text: str = Field(alias="receiptText", min_length=1, max_length=20_000)


class ReceiptData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    extracted_data: Dict[str, Any] = Field(serialization_alias="extractedData")


class ExpenseInput(BaseModel):
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=1000)
    category: Optional[str] = None
    date: Optional[str] = None


class AnalyzeExpenseRequest(BaseModel):
    expense: ExpenseInput


class AnalysisData(BaseModel):
    analysis: Dict[str, Any]


class ScanReceiptData(BaseModel):
    text: str
    receipt: Dict[str, Any]
    receipt_url: str
