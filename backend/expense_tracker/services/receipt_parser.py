"""
Rule-based receipt text parser.

Used when the AI provider is disabled or returns something unusable, and to
structure text transcribed from receipt photos. Works line by line:

    store            first non-numeric line (longer than 3 chars) in the top 3
    date / time      first MM/DD/YY(YY) or YYYY-MM-DD date, first HH:MM[:SS] [AM|PM]
    items            "<description> [$]<price>" lines, excluding totals and tax
    totals           SUBTOTAL / TAX / TOTAL lines
    payment_method   first line mentioning cash, credit, debit or card
"""

import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional

_DATE_RE = re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4}|\d{4}-\d{2}-\d{2})")
_TIME_RE = re.compile(r"(\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AP]M)?)", re.IGNORECASE)
_ITEM_RE = re.compile(r"^(.+?)\s+\$?(\d+\.\d{2})\s*$")
_AMOUNT_RE = re.compile(r"\$?(\d+\.\d{2})")
_NUMERIC_LINE_RE = re.compile(r"^\s*[\d.$\s]+\s*$")

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y")
_PAYMENT_WORDS = ("CASH", "CREDIT", "DEBIT", "CARD")
_NON_ITEM_WORDS = ("TOTAL", "TAX")

MAX_ITEM_PRICE = 1000


def normalize_date(raw: str, today: Optional[date] = None) -> str:
    """ISO date for a receipt date string; today's date when unparseable."""
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date().isoformat()
        except ValueError:
            continue
    return (today or date.today()).isoformat()


def extract_amount(line: str) -> Optional[float]:
    match = _AMOUNT_RE.search(line)
    return float(match.group(1)) if match else None


def is_numeric_line(line: str) -> bool:
    return bool(_NUMERIC_LINE_RE.match(line))


def extract_item(line: str, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
    match = _ITEM_RE.match(line)
    if not match:
        return None
    description = match.group(1).strip()
    amount = float(match.group(2))
    upper = description.upper()
    if len(description) <= 1 or any(word in upper for word in _NON_ITEM_WORDS):
        return None
    if not 0 < amount < MAX_ITEM_PRICE:
        return None
    return {
        "description": description,
        "amount": amount,
        "category_id": None,
        "date": (today or date.today()).isoformat(),
    }


def parse_receipt_text(text: str, today: Optional[date] = None) -> Dict[str, Any]:
    lines: List[str] = [line.strip() for line in text.splitlines() if line.strip()]

    receipt: Dict[str, Any] = {
        "store": None,
        "date": None,
        "time": None,
        "items": [],
        "totals": {"subtotal": None, "tax": None, "total": None},
        "payment_method": None,
    }

    for i, line in enumerate(lines[:3]):
        if len(line) > 3 and not is_numeric_line(line):
            receipt["store"] = {
                "name": line,
                "address": lines[i + 1] if i + 1 < len(lines) else None,
            }
            break

    for line in lines:
        if receipt["date"] is None:
            date_match = _DATE_RE.search(line)
            if date_match:
                receipt["date"] = normalize_date(date_match.group(1), today)
        if receipt["time"] is None:
            time_match = _TIME_RE.search(line)
            if time_match:
                receipt["time"] = time_match.group(1)

    for line in lines:
        item = extract_item(line, today)
        if item:
            receipt["items"].append(item)

    totals = receipt["totals"]
    for line in lines:
        upper = line.upper()
        amount = extract_amount(line)
        if amount is None:
            continue
        if "SUBTOTAL" in upper or "SUB TOTAL" in upper:
            totals["subtotal"] = amount
        elif "TAX" in upper:
            totals["tax"] = amount
        elif "TOTAL" in upper:
            totals["total"] = amount

    for line in lines:
        upper = line.upper()
        if any(word in upper for word in _PAYMENT_WORDS):
            receipt["payment_method"] = line
            break

    return receipt
