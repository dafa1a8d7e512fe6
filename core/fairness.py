"""
Deal Fairness - Advisory Value Comparison

A deal is flagged fair when the two sides differ by no more than a flat
relative tolerance (10% of the combined declared value). The suggested
top-up only ever compensates the side offering less, and accepting an
unfair deal is always allowed.

Callers recompute summaries from live draft values; nothing here is stored.
"""

from __future__ import annotations

import math
from typing import Final, Iterable, Optional

from core.errors import ValidationError
from core.models import Deal, DealItem, DealValueSummary
from utils.formatting import format_currency


FAIRNESS_TOLERANCE: Final[float] = 0.1


def _check_amount(name: str, value: float) -> float:
    if value is None or not math.isfinite(value) or value < 0:
        raise ValidationError(f"{name} must be a non-negative number", field=name)
    return float(value)


def value_summary(
    offer_total: float,
    request_total: float,
    tolerance: float = FAIRNESS_TOLERANCE,
) -> DealValueSummary:
    """
    Compare the declared totals of both sides.

    Args:
        offer_total: Value offered by the proposer
        request_total: Value requested from the counterparty
        tolerance: Allowed difference relative to the combined total

    Returns:
        DealValueSummary with difference = offer - request and
        suggested_top_up = max(0, request - offer)
    """
    offer = _check_amount("offerTotal", offer_total)
    request = _check_amount("requestTotal", request_total)
    difference = offer - request
    return DealValueSummary(
        offer_total=offer,
        request_total=request,
        difference=difference,
        suggested_top_up=max(0.0, -difference),
        is_fair=abs(difference) <= tolerance * (offer + request),
    )


def side_total(items: Iterable[DealItem]) -> float:
    """Sum of declared item values; items without a value count as 0."""
    return sum(item.estimated_value or 0.0 for item in items)


def summarize_deal(deal: Deal, tolerance: float = FAIRNESS_TOLERANCE) -> DealValueSummary:
    """Summary of a stored deal. The cash top-up counts towards the offer side."""
    return value_summary(
        side_total(deal.offer) + deal.cash_top_up,
        side_total(deal.request),
        tolerance,
    )


def describe_summary(summary: DealValueSummary, currency: str = "MDL") -> str:
    """Short human-readable verdict for a summary."""
    if summary.is_fair:
        return "Balanced exchange"
    if summary.suggested_top_up > 0:
        return f"Offer is lower. Suggested top-up: {format_currency(summary.suggested_top_up, currency)}"
    return f"Offer exceeds request by {format_currency(summary.difference, currency)}"


def tolerance_band(summary: DealValueSummary, tolerance: Optional[float] = None) -> float:
    """Largest difference still considered fair for these totals."""
    return (tolerance if tolerance is not None else FAIRNESS_TOLERANCE) * (
        summary.offer_total + summary.request_total
    )
