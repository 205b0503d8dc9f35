"""Candidate generation for invoice fields.

Runs an ordered table of regex patterns per field over cleaned OCR text and
turns every non-empty capture into an ExtractionCandidate. Selection happens
later in the field selectors, so patterns here are deliberately permissive.
"""

import logging
import re
from dataclasses import dataclass

from invoice_engine.extraction.schema import ExtractionCandidate, FieldType

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = "$€£¥¢"

_MONTH_ABBREVIATIONS = "Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec"
_MONTH_NAMES = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)


@dataclass(frozen=True)
class CandidatePattern:
    """A single entry of the candidate pattern table."""

    field_type: FieldType
    regex: re.Pattern[str]


def _entry(field_type: FieldType, pattern: str, flags: int = 0) -> CandidatePattern:
    return CandidatePattern(field_type=field_type, regex=re.compile(pattern, flags))


_I = re.IGNORECASE
_M = re.MULTILINE

PATTERN_TABLE: tuple[CandidatePattern, ...] = (
    # Invoice number: labelled forms
    _entry(
        FieldType.INVOICE_NUMBER,
        r"(?:invoice\s*(?:number|no|num|#)?)\s*:?\s*([A-Za-z0-9\-_.]+)",
        _I,
    ),
    _entry(
        FieldType.INVOICE_NUMBER,
        r"(?:inv\s*(?:number|no|num|#)?)\s*:?\s*([A-Za-z0-9\-_.]+)",
        _I,
    ),
    _entry(
        FieldType.INVOICE_NUMBER,
        r"(?:bill\s*(?:number|no|num|#)?)\s*:?\s*([A-Za-z0-9\-_.]+)",
        _I,
    ),
    _entry(
        FieldType.INVOICE_NUMBER,
        r"(?:reference\s*(?:number|no|num|#)?)\s*:?\s*([A-Za-z0-9\-_.]+)",
        _I,
    ),
    _entry(
        FieldType.INVOICE_NUMBER,
        r"(?:document\s*(?:number|no|num|#)?)\s*:?\s*([A-Za-z0-9\-_.]+)",
        _I,
    ),
    # Invoice number: hash and standalone forms
    _entry(FieldType.INVOICE_NUMBER, r"#\s*([A-Za-z0-9\-_.]{3,20})"),
    _entry(FieldType.INVOICE_NUMBER, r"\b(?:INV|INVOICE)\s*([A-Za-z0-9\-_.]{3,20})", _I),
    _entry(FieldType.INVOICE_NUMBER, r"\b([A-Z]{2,4}-?\d{3,10})\b"),
    _entry(FieldType.INVOICE_NUMBER, r"\b(\d{4,10}[A-Z]*)\b"),
    _entry(FieldType.INVOICE_NUMBER, r"^([A-Z0-9\-_.]{5,20})\s", _M),
    # Date: labelled forms
    _entry(
        FieldType.DATE,
        r"(?:date|dated|invoice\s*date|bill\s*date|created)\s*:?\s*"
        r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})",
        _I,
    ),
    _entry(
        FieldType.DATE,
        r"(?:date|dated|invoice\s*date|bill\s*date|created)\s*:?\s*"
        r"(\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2})",
        _I,
    ),
    # Date: standalone numeric and written forms
    _entry(FieldType.DATE, r"\b(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})\b"),
    _entry(FieldType.DATE, r"\b(\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2})\b"),
    _entry(FieldType.DATE, rf"\b(\d{{1,2}}\s+(?:{_MONTH_ABBREVIATIONS})[a-z]*\s+\d{{4}})\b", _I),
    _entry(FieldType.DATE, rf"\b((?:{_MONTH_NAMES})\s+\d{{1,2}},?\s+\d{{4}})\b", _I),
    # Vendor: labelled forms
    _entry(
        FieldType.VENDOR,
        r"(?:from|vendor|company|supplier|billed?\s*by|invoice[dr]?\s*by)\s*:?\s*([^\n\r]{3,80})",
        _I,
    ),
    _entry(FieldType.VENDOR, r"(?:sold\s*by|issued\s*by|bill\s*to)\s*:?\s*([^\n\r]{3,80})", _I),
    # Vendor: company-shaped names, first lines, names followed by an address
    _entry(
        FieldType.VENDOR,
        r"\b([A-Z][A-Za-z\s&,.\-']{5,60}"
        r"(?:Inc|LLC|Corp|Ltd|Co|Company|Corporation|Limited)\.?)\b",
    ),
    _entry(FieldType.VENDOR, r"^([A-Z][A-Za-z\s&,.\-']{5,60})\s*$", _M),
    _entry(FieldType.VENDOR, r"([A-Z][A-Za-z\s&,.\-']{10,})\s+\d+\s+[A-Za-z\s]+"),
    # Total: labelled, currency-prefixed, end-of-line and standalone amounts
    _entry(
        FieldType.TOTAL,
        r"\b(?:total|amount\s*due|grand\s*total|balance\s*due|final\s*amount|total\s*amount)"
        rf"\s*:?\s*[{CURRENCY_SYMBOLS}]?\s*(\d+[,.]?\d*\.?\d*)",
        _I,
    ),
    _entry(FieldType.TOTAL, rf"[{CURRENCY_SYMBOLS}]\s*(\d+[,.]\d{{2}})\b"),
    _entry(FieldType.TOTAL, r"(\d+[,.]\d{2})\s*$", _M),
    _entry(FieldType.TOTAL, r"\b(\d{2,6}[,.]\d{2})\b"),
)


def clean_text(text: str) -> str:
    """Normalize line endings, collapse whitespace runs and trim.

    Args:
        text: Raw OCR text

    Returns:
        Single-spaced text suitable for candidate scanning
    """
    normalized = text.replace("\r\n", "\n")
    return re.sub(r"\s+", " ", normalized).strip()


def patterns_for(field_type: FieldType) -> list[re.Pattern[str]]:
    """Get the ordered pattern list for a field.

    Args:
        field_type: Field to look up

    Returns:
        Compiled patterns in table order
    """
    return [entry.regex for entry in PATTERN_TABLE if entry.field_type == field_type]


def extract_candidates(
    text: str,
    patterns: list[re.Pattern[str]],
    field_type: FieldType,
) -> list[ExtractionCandidate]:
    """Collect every non-empty capture of every pattern as a candidate.

    Args:
        text: Cleaned text to scan
        patterns: Ordered patterns; group 1 holds the value
        field_type: Field the candidates are generated for

    Returns:
        Candidates in pattern order, then match order
    """
    candidates: list[ExtractionCandidate] = []

    for pattern in patterns:
        for match in pattern.finditer(text):
            captured = match.group(1)
            value = captured.strip() if captured else ""
            if not value:
                continue
            candidates.append(
                ExtractionCandidate(
                    value=value,
                    full_match=match.group(0),
                    position=match.start(),
                    field_type=field_type,
                )
            )

    logger.debug(f"Found {len(candidates)} {field_type.value} candidates")
    return candidates
