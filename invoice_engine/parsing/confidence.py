"""Confidence scoring for extracted invoice fields.

Two modes:
- heuristic: additive completeness weights, capped below certainty
- trusted: an upstream extraction confidence (>= 70) is reported as-is
"""

from invoice_engine.extraction.schema import Confidence, ExtractedFields

# Heuristics alone never claim certainty
HEURISTIC_CAP = 95
TRUSTED_THRESHOLD = 70
TRUSTED_FIELD_CONFIDENCE = 90

OVERALL_WEIGHTS: dict[str, int] = {
    "invoice_number": 25,
    "date": 20,
    "vendor": 20,
    "total_amount": 20,
    "line_items": 15,
}

FIELD_WEIGHTS: dict[str, int] = {
    "invoice_number": 85,
    "date": 80,
    "vendor": 75,
    "total_amount": 85,
    "line_items": 70,
}


def present_fields(fields: ExtractedFields) -> dict[str, bool]:
    """Report which scored fields carry a value."""
    return {
        "invoice_number": bool(fields.invoice_number),
        "date": bool(fields.date),
        "vendor": bool(fields.vendor),
        "total_amount": bool(fields.total_amount),
        "line_items": len(fields.line_items) > 0,
    }


def heuristic_score(fields: ExtractedFields) -> int:
    """Additive completeness score, capped at 95."""
    presence = present_fields(fields)
    score = sum(weight for name, weight in OVERALL_WEIGHTS.items() if presence[name])
    return min(score, HEURISTIC_CAP)


def is_trusted(upstream_confidence: int | float | None) -> bool:
    """Whether an upstream confidence is high enough to be reported directly."""
    return upstream_confidence is not None and upstream_confidence >= TRUSTED_THRESHOLD


def score_confidence(
    fields: ExtractedFields,
    upstream_confidence: int | float | None = None,
) -> Confidence:
    """Compute overall and per-field confidence for a set of fields.

    Args:
        fields: Extracted fields to score
        upstream_confidence: Confidence reported by the text-acquisition step;
            used verbatim when it is at least 70

    Returns:
        Confidence with overall score and per-field scores
    """
    presence = present_fields(fields)

    if upstream_confidence is not None and is_trusted(upstream_confidence):
        overall = min(round(upstream_confidence), 100)
        field_scores = {
            name: TRUSTED_FIELD_CONFIDENCE if present else 0 for name, present in presence.items()
        }
        return Confidence(overall=overall, fields=field_scores)

    field_scores = {
        name: FIELD_WEIGHTS[name] if present else 0 for name, present in presence.items()
    }
    return Confidence(overall=heuristic_score(fields), fields=field_scores)
