"""Field selectors: score extraction candidates and pick the best value per field.

The scoring policy is declarative. Each field has a table of ScoringRule
entries; a candidate's score is the sum of the weights of the rules it
satisfies. Selection keeps the highest score and breaks ties in favour of the
first-encountered candidate, so every selector is a pure function of its input.
"""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime

from dateutil import parser as date_parser

from invoice_engine.extraction.schema import ExtractionCandidate
from invoice_engine.parsing.amounts import normalize_amount_text, parse_amount
from invoice_engine.parsing.candidates import CURRENCY_SYMBOLS

logger = logging.getLogger(__name__)

MIN_YEAR = 2000
MAX_YEAR = 2030

# Candidates at or beyond this fraction of the text get the trailing-total bonus
TRAILING_POSITION = 0.7


@dataclass(frozen=True)
class CandidateView:
    """A candidate prepared for rule evaluation.

    Attributes:
        candidate: Original candidate
        value: Field-specific normalized value
        context: Lower-cased full match
        number: Numeric value (amount fields only)
        parsed: Normalized output value (date fields only)
        relative_position: Match offset as a fraction of the scanned text
    """

    candidate: ExtractionCandidate
    value: str
    context: str
    number: float | None = None
    parsed: str | None = None
    relative_position: float = 0.0


@dataclass(frozen=True)
class ScoringRule:
    """Adds ``weight`` to a candidate's score when ``applies`` holds."""

    name: str
    weight: int
    applies: Callable[[CandidateView], bool]


def _value_matches(pattern: str, flags: int = 0) -> Callable[[CandidateView], bool]:
    compiled = re.compile(pattern, flags)
    return lambda view: compiled.search(view.value) is not None


def _context_has(word: str) -> Callable[[CandidateView], bool]:
    return lambda view: word in view.context


def _length_between(low: int, high: int) -> Callable[[CandidateView], bool]:
    return lambda view: low <= len(view.value) <= high


def _number_between(low: float, high: float) -> Callable[[CandidateView], bool]:
    return lambda view: view.number is not None and low <= view.number <= high


INVOICE_NUMBER_RULES: tuple[ScoringRule, ...] = (
    ScoringRule("length_3_20", 10, _length_between(3, 20)),
    ScoringRule("length_5_12", 5, _length_between(5, 12)),
    ScoringRule("letters_dash_digits", 20, _value_matches(r"^[A-Z]{2,4}-?\d{3,}$")),
    ScoringRule("digits_letters", 15, _value_matches(r"^\d{4,}[A-Z]*$")),
    ScoringRule("letters_digits", 15, _value_matches(r"^[A-Z]+\d+$")),
    ScoringRule("context_invoice", 25, _context_has("invoice")),
    ScoringRule("context_inv", 20, _context_has("inv")),
    ScoringRule("context_reference", 15, _context_has("reference")),
    ScoringRule("context_bill", 10, _context_has("bill")),
    ScoringRule("context_hash", 10, _context_has("#")),
    ScoringRule("reserved_word", -50, _value_matches(r"^(TOTAL|DATE|AMOUNT|USD|EUR|TAX)$")),
    ScoringRule("filler_word", -30, _value_matches(r"^(THE|AND|FOR|WITH)$")),
)

DATE_RULES: tuple[ScoringRule, ...] = (
    ScoringRule("context_date", 20, _context_has("date")),
    ScoringRule("context_invoice", 15, _context_has("invoice")),
    ScoringRule("context_bill", 10, _context_has("bill")),
    ScoringRule("day_month_year", 15, _value_matches(r"\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4}")),
    ScoringRule("year_month_day", 10, _value_matches(r"\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}")),
)

VENDOR_RULES: tuple[ScoringRule, ...] = (
    ScoringRule("length_5_80", 10, _length_between(5, 80)),
    ScoringRule("length_10_50", 5, _length_between(10, 50)),
    ScoringRule(
        "legal_entity_suffix",
        20,
        _value_matches(r"(?:Inc|LLC|Corp|Ltd|Co|Company|Corporation|Limited)\.?$", re.IGNORECASE),
    ),
    ScoringRule("context_from", 15, _context_has("from")),
    ScoringRule("context_vendor", 20, _context_has("vendor")),
    ScoringRule("context_company", 15, _context_has("company")),
    ScoringRule("context_billed_by", 20, _context_has("billed by")),
    ScoringRule("capitalized", 5, _value_matches(r"^[A-Z]")),
    ScoringRule(
        "field_label",
        -30,
        _value_matches(r"^(invoice|total|date|amount|description|quantity|price)", re.IGNORECASE),
    ),
)

TOTAL_RULES: tuple[ScoringRule, ...] = (
    ScoringRule("context_total", 25, _context_has("total")),
    ScoringRule("context_amount_due", 30, _context_has("amount due")),
    ScoringRule("context_grand_total", 30, _context_has("grand total")),
    ScoringRule("context_balance", 20, _context_has("balance")),
    ScoringRule(
        "currency_symbol",
        15,
        lambda view: any(symbol in view.context for symbol in CURRENCY_SYMBOLS),
    ),
    ScoringRule("range_10_100000", 10, _number_between(10, 100000)),
    ScoringRule("range_50_10000", 5, _number_between(50, 10000)),
    ScoringRule("two_decimals", 10, _value_matches(r"\.\d{2}$")),
    ScoringRule("trailing_position", 5, lambda view: view.relative_position >= TRAILING_POSITION),
)


def score_candidate(rules: Sequence[ScoringRule], view: CandidateView) -> int:
    """Sum the weights of every rule the candidate satisfies."""
    return sum(rule.weight for rule in rules if rule.applies(view))


def _pick_best(
    views: Sequence[CandidateView], rules: Sequence[ScoringRule]
) -> tuple[CandidateView, int] | None:
    best: tuple[CandidateView, int] | None = None
    for view in views:
        score = score_candidate(rules, view)
        # Strict comparison keeps the first-encountered candidate on ties
        if best is None or score > best[1]:
            best = (view, score)
    if best is not None:
        logger.debug(
            f"Best {best[0].candidate.field_type.value} candidate: "
            f"{best[0].candidate.value!r} (score {best[1]})"
        )
    return best


def select_best_invoice_number(candidates: Sequence[ExtractionCandidate]) -> str | None:
    """Select the most plausible invoice number.

    Args:
        candidates: Invoice-number candidates

    Returns:
        Winning value, or None when no candidate scores above zero
    """
    views = [
        CandidateView(candidate=c, value=c.value.upper(), context=c.full_match.lower())
        for c in candidates
    ]
    best = _pick_best(views, INVOICE_NUMBER_RULES)
    if best is None or best[1] <= 0:
        return None
    return best[0].candidate.value


def _valid_year(value: date) -> bool:
    return MIN_YEAR <= value.year <= MAX_YEAR


def _parse_native(raw: str) -> date | None:
    try:
        parsed = date_parser.parse(raw, dayfirst=False, fuzzy=False, default=datetime(2000, 1, 1))
    except (ValueError, OverflowError):
        return None
    return parsed.date()


def _parse_numeric(raw: str) -> date | None:
    parts = re.fullmatch(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})", raw)
    if not parts:
        return None
    first, second, year_text = parts.groups()
    year = int(f"20{year_text}" if len(year_text) == 2 else year_text)
    # Month-first is tried before day-first; "03/04/2024" is always March 4th
    for month, day in ((int(first), int(second)), (int(second), int(first))):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def parse_date(raw: str) -> str | None:
    """Parse a printed date into ISO format.

    Tries a native parse first, then explicit M/D/Y and D/M/Y with two-digit
    years expanded into the 2000s. Dates outside 2000-2030 are rejected.

    Args:
        raw: Date as printed

    Returns:
        ``YYYY-MM-DD`` string, or None if the value is not a plausible date
    """
    text = raw.strip()
    if not text:
        return None

    parsed = _parse_native(text)
    if parsed is None or not _valid_year(parsed):
        parsed = _parse_numeric(text)

    if parsed is None or not _valid_year(parsed):
        return None
    return parsed.isoformat()


def select_best_date(candidates: Sequence[ExtractionCandidate]) -> str | None:
    """Select the most plausible invoice date.

    Candidates that do not parse to a calendar date are dropped before scoring.

    Args:
        candidates: Date candidates

    Returns:
        Winning date as ``YYYY-MM-DD``, or None if nothing parses
    """
    views: list[CandidateView] = []
    for candidate in candidates:
        iso = parse_date(candidate.value)
        if iso is None:
            continue
        views.append(
            CandidateView(
                candidate=candidate,
                value=candidate.value,
                context=candidate.full_match.lower(),
                parsed=iso,
            )
        )

    best = _pick_best(views, DATE_RULES)
    if best is None:
        return None
    return best[0].parsed


def select_best_vendor(candidates: Sequence[ExtractionCandidate]) -> str | None:
    """Select the most plausible vendor name.

    Args:
        candidates: Vendor candidates

    Returns:
        Trimmed vendor name, or None when no candidate scores above zero
    """
    views = [
        CandidateView(candidate=c, value=c.value, context=c.full_match.lower())
        for c in candidates
    ]
    best = _pick_best(views, VENDOR_RULES)
    if best is None or best[1] <= 0:
        return None
    return best[0].candidate.value.strip()


def select_best_total(
    candidates: Sequence[ExtractionCandidate],
    text_length: int | None = None,
) -> float | None:
    """Select the most plausible invoice total.

    Args:
        candidates: Total-amount candidates
        text_length: Length of the scanned text; defaults to the furthest
            candidate end

    Returns:
        Winning amount, or None if no candidate is a positive number
    """
    if not candidates:
        return None

    if not text_length:
        text_length = max(c.position + len(c.full_match) for c in candidates)

    views: list[CandidateView] = []
    for candidate in candidates:
        normalized = normalize_amount_text(candidate.value)
        number = parse_amount(candidate.value)
        if normalized is None or number is None or number <= 0:
            continue
        views.append(
            CandidateView(
                candidate=candidate,
                value=normalized,
                context=candidate.full_match.lower(),
                number=number,
                relative_position=candidate.position / text_length,
            )
        )

    best = _pick_best(views, TOTAL_RULES)
    if best is None:
        return None
    return best[0].number
