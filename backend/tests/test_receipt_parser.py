"""Rule-based receipt parser tests."""

from datetime import date

import pytest

from expense_tracker.services.receipt_parser import (
    extract_item,
    normalize_date,
    parse_receipt_text,
)

TODAY = date(2024, 3, 1)

GROCERY_RECEIPT = """
FRESH MART GROCERY
123 Main St
01/15/2024 14:32
MILK 3.49
BREAD $2.99
SUBTOTAL 6.48
TAX 0.52
TOTAL 7.00
VISA CREDIT CARD
"""


class TestParseReceiptText:

    def test_full_receipt(self):
        receipt = parse_receipt_text(GROCERY_RECEIPT, today=TODAY)

        assert receipt["store"] == {"name": "FRESH MART GROCERY", "address": "123 Main St"}
        assert receipt["date"] == "2024-01-15"
        assert receipt["time"] == "14:32"
        assert receipt["totals"] == {"subtotal": 6.48, "tax": 0.52, "total": 7.00}
        assert receipt["payment_method"] == "VISA CREDIT CARD"

    def test_items_exclude_totals_and_tax(self):
        receipt = parse_receipt_text(GROCERY_RECEIPT, today=TODAY)

        assert receipt["items"] == [
            {"description": "MILK", "amount": 3.49, "category_id": None, "date": "2024-03-01"},
            {"description": "BREAD", "amount": 2.99, "category_id": None, "date": "2024-03-01"},
        ]

    def test_store_skips_numeric_and_short_lines(self):
        receipt = parse_receipt_text("12.50\nABC\nCORNER CAFE", today=TODAY)
        assert receipt["store"] == {"name": "CORNER CAFE", "address": None}

    def test_first_date_wins(self):
        receipt = parse_receipt_text("SHOP NAME\n2024-02-10\n02/11/2024", today=TODAY)
        assert receipt["date"] == "2024-02-10"

    def test_empty_text(self):
        receipt = parse_receipt_text("   \n\n", today=TODAY)

        assert receipt["store"] is None
        assert receipt["items"] == []
        assert receipt["totals"] == {"subtotal": None, "tax": None, "total": None}
        assert receipt["payment_method"] is None


class TestHelpers:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-01-15", "2024-01-15"),
            ("01/15/2024", "2024-01-15"),
            ("01/15/24", "2024-01-15"),
            ("13/45/2024", "2024-03-01"),
        ],
    )
    def test_normalize_date(self, raw, expected):
        assert normalize_date(raw, today=TODAY) == expected

    def test_extract_item_rejects_expensive_lines(self):
        assert extract_item("TELEVISION 1299.99", today=TODAY) is None

    def test_extract_item_requires_price(self):
        assert extract_item("THANK YOU FOR SHOPPING", today=TODAY) is None
