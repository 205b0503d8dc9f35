"""Monetary helpers: amount parsing, currency detection and summary fields."""

import math
import re

from invoice_engine.parsing.candidates import CURRENCY_SYMBOLS

_SUBTOTAL_PATTERN = re.compile(
    rf"(?:subtotal|sub\s*total)\s*:?\s*[{CURRENCY_SYMBOLS}]?\s*(\d+(?:[.,]\d+)*)",
    re.IGNORECASE,
)
# Amount must not be the rate itself ("Tax: 10%")
_TAX_PATTERN = re.compile(
    r"(?:sales\s*tax|tax|vat)(?:\s*\(\s*\d+(?:[.,]\d+)?\s*%\s*\))?\s*:?\s*"
    rf"[{CURRENCY_SYMBOLS}]?\s*(\d+(?:[.,]\d+)*)(?![\d.,]*\s*%)",
    re.IGNORECASE,
)
_TAX_RATE_PATTERN = re.compile(
    r"(?:tax|vat)\s*(?:rate)?\s*:?\s*\(?\s*(\d+(?:[.,]\d+)?)\s*%",
    re.IGNORECASE,
)

# Checked in order; the first hit wins
_CURRENCY_MARKERS: tuple[tuple[str, str, str], ...] = (
    ("EUR", "€", r"\bEUR\b"),
    ("GBP", "£", r"\bGBP\b"),
    ("JPY", "¥", r"\bJPY\b"),
    ("USD", "$", r"\bUSD\b"),
)


def normalize_amount_text(raw: str) -> str | None:
    """Normalize a printed amount to a dot-decimal string without separators.

    Thousands separators are dropped and a comma decimal separator
    ("211,77") becomes a dot.

    Args:
        raw: Amount as printed, possibly with currency symbols or spaces

    Returns:
        Normalized numeric string, or None if nothing numeric remains
    """
    cleaned = re.sub(r"[^\d,.\-]", "", raw)
    if not re.search(r"\d", cleaned):
        return None

    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            # 1.234,56
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            # 1,234.56
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        if cleaned.count(",") == 1 and re.search(r",\d{1,2}$", cleaned):
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")

    return cleaned


def parse_amount(raw: str) -> float | None:
    """Parse a printed amount into a float.

    Args:
        raw: Amount as printed

    Returns:
        Parsed value, or None for non-numeric input
    """
    normalized = normalize_amount_text(raw)
    if normalized is None:
        return None
    try:
        value = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def detect_currency(text: str) -> str:
    """Detect the invoice currency from symbols or ISO codes, defaulting to USD."""
    for code, symbol, pattern in _CURRENCY_MARKERS:
        if symbol in text or re.search(pattern, text, re.IGNORECASE):
            return code
    return "USD"


def _first_amount(pattern: re.Pattern[str], text: str) -> float | None:
    match = pattern.search(text)
    if not match:
        return None
    value = parse_amount(match.group(1))
    return value or None


def extract_subtotal(text: str) -> float | None:
    """Extract the labelled subtotal amount."""
    return _first_amount(_SUBTOTAL_PATTERN, text)


def extract_tax(text: str) -> float | None:
    """Extract the labelled tax/VAT amount."""
    return _first_amount(_TAX_PATTERN, text)


def extract_tax_rate(text: str) -> str | None:
    """Extract the tax rate as printed, e.g. '10%' or '7.5%'."""
    match = _TAX_RATE_PATTERN.search(text)
    if not match:
        return None
    return f"{match.group(1)}%"
