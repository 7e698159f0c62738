"""Response contracts for /api/upload."""

from typing import List, Optional

from pydantic import BaseModel


class StoredReceipt(BaseModel):
    receipt_url: str
    filename: Optional[str] = None
    size: int
    expense_id: Optional[int] = None


class StoredReceiptData(BaseModel):
    receipt: StoredReceipt


class StoredReceiptListData(BaseModel):
    receipts: List[StoredReceipt]
