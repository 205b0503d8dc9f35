"""Line-item extraction from invoice OCR text.

Invoice text is dense with numeric noise (dates, totals, page numbers), so
every structural match must pass a strict gate before it becomes a LineItem.
The arithmetic check (total == quantity x unit price within two cents) is the
strongest true-positive signal and is applied without rounding.
"""

import logging
import math
import re

from invoice_engine.extraction.schema import LINE_ITEM_TOLERANCE, LineItem
from invoice_engine.parsing.amounts import parse_amount
from invoice_engine.parsing.candidates import CURRENCY_SYMBOLS

logger = logging.getLogger(__name__)

MAX_QUANTITY = 1000
MAX_UNIT_PRICE = 10000
MAX_LINE_TOTAL = 50000
MIN_DESCRIPTION_LENGTH = 2
MAX_DESCRIPTION_LENGTH = 30

_AMOUNT = r"\d{1,3}(?:[.,]\d{3})*(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?"

# description, quantity, unit price, total
LINE_ITEM_PATTERN = re.compile(
    r"\b([A-Za-z][\w &'/.\-]{0,29}?)\s+"
    r"(\d{1,4}(?:\.\d+)?)\s+"
    rf"[{CURRENCY_SYMBOLS}]?\s?({_AMOUNT})\s+"
    rf"[{CURRENCY_SYMBOLS}]?\s?({_AMOUNT})(?!\d)"
)

STOP_WORDS = frozenset(
    {
        "quantity", "rate", "amount", "total", "subtotal", "tax", "vat",
        "discount", "shipping", "balance", "due", "sum", "grand", "net",
        "description", "item", "product", "service", "unit", "price",
        "invoice", "bill", "date", "number", "payment", "terms", "company",
        "jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec",
        "january", "february", "march", "april", "june", "july", "august",
        "september", "october", "november", "december",
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    }
)  # fmt: skip


def is_valid_line_item(
    description: str,
    quantity: float | None,
    unit_price: float | None,
    total: float | None,
) -> bool:
    """Apply the strict line-item gate.

    Args:
        description: Row description as matched
        quantity: Parsed quantity
        unit_price: Parsed unit price
        total: Parsed line total

    Returns:
        True if the row is a plausible product line
    """
    desc = description.strip().lower()

    if not MIN_DESCRIPTION_LENGTH <= len(desc) <= MAX_DESCRIPTION_LENGTH:
        logger.debug(f"Rejected {desc!r}: description length {len(desc)}")
        return False

    if desc in STOP_WORDS:
        logger.debug(f"Rejected {desc!r}: reserved word")
        return False

    if quantity is None or unit_price is None or total is None:
        logger.debug(f"Rejected {desc!r}: non-numeric value")
        return False

    if any(math.isnan(value) for value in (quantity, unit_price, total)):
        logger.debug(f"Rejected {desc!r}: NaN value")
        return False

    if not 0 < quantity <= MAX_QUANTITY:
        logger.debug(f"Rejected {desc!r}: quantity {quantity} out of range")
        return False

    if not 0 < unit_price <= MAX_UNIT_PRICE:
        logger.debug(f"Rejected {desc!r}: unit price {unit_price} out of range")
        return False

    if not 0 < total <= MAX_LINE_TOTAL:
        logger.debug(f"Rejected {desc!r}: total {total} out of range")
        return False

    if abs(total - quantity * unit_price) > LINE_ITEM_TOLERANCE:
        logger.debug(f"Rejected {desc!r}: {quantity} x {unit_price} != {total}")
        return False

    letters = sum(1 for char in desc if char.isascii() and char.isalpha())
    digits = sum(1 for char in desc if char.isdigit())
    if letters == 0:
        logger.debug(f"Rejected {desc!r}: no letters")
        return False
    if digits > letters:
        logger.debug(f"Rejected {desc!r}: mostly digits")
        return False

    return True


def _parse_quantity(raw: str) -> float | None:
    try:
        return float(raw)
    except ValueError:
        return None


def _lines(text: str) -> list[str]:
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    return [re.sub(r"\s+", " ", line).strip() for line in normalized.split("\n")]


def extract_line_items(text: str) -> list[LineItem]:
    """Extract validated line items in order of first appearance.

    Args:
        text: OCR text; line breaks are used as record boundaries

    Returns:
        Validated line items, de-duplicated case-insensitively by description
    """
    items: list[LineItem] = []
    seen: set[str] = set()

    for line in _lines(text):
        if not line:
            continue
        for match in LINE_ITEM_PATTERN.finditer(line):
            description = match.group(1).strip()
            quantity = _parse_quantity(match.group(2))
            unit_price = parse_amount(match.group(3))
            total = parse_amount(match.group(4))

            if not is_valid_line_item(description, quantity, unit_price, total):
                continue

            key = description.lower()
            if key in seen:
                logger.debug(f"Skipped duplicate line item {description!r}")
                continue
            seen.add(key)

            items.append(
                LineItem(
                    description=description,
                    quantity=quantity,
                    unit_price=unit_price,
                    total=total,
                )
            )

    logger.debug(f"Extracted {len(items)} line items")
    return items
