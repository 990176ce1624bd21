"""
Aggregate stream requirements against one link's payload capacity.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

MAX_STREAMS = 4

# Tolerance for floating point equality at the fit boundary (Gbps)
FIT_EPSILON = 1e-9
# Fitting configurations with less spare capacity than this are flagged (%)
LOW_MARGIN_PCT = 10.0
# Floor for the utilization denominator (Gbps)
MIN_CAPACITY = 1e-6

STATUS_OVER_CAPACITY = 'over-capacity'
STATUS_LOW_MARGIN = 'low-margin'
STATUS_HEALTHY = 'healthy'


@dataclass(frozen=True)
class AggregateReport:
    """Fit decision for the currently selected streams."""
    total_required: float    # Sum of selected stream rates (Gbps)
    payload_capacity: float  # Link payload capacity (Gbps)
    margin: float            # capacity - total, negative when over (Gbps)
    margin_pct: float        # margin as percentage of capacity
    utilization_pct: float   # total as percentage of capacity, clamped to [0, 100]
    fits: bool
    status: str
    stream_count: int


def classify_status(fits: bool, margin_pct: float,
                    low_margin_pct: float = LOW_MARGIN_PCT) -> str:
    """Severity bucket for a fit decision."""
    if not fits:
        return STATUS_OVER_CAPACITY
    if margin_pct < low_margin_pct:
        return STATUS_LOW_MARGIN
    return STATUS_HEALTHY


def aggregate(selected_rates: Sequence[float], payload_capacity: float,
              epsilon: float = FIT_EPSILON,
              low_margin_pct: float = LOW_MARGIN_PCT) -> AggregateReport:
    """
    Sum the selected stream rates and compare them to the payload capacity.

    Only the first MAX_STREAMS rates are considered; any extra entries are
    ignored rather than rejected.

    Args:
        selected_rates: Per-stream rate (raw or compressed), in Gbps
        payload_capacity: Usable link capacity in Gbps
        epsilon: Slack added to the capacity for the fit comparison
        low_margin_pct: Margin percentage below which a fit is 'low-margin'

    Returns:
        AggregateReport
    """
    rates = np.asarray(list(selected_rates)[:MAX_STREAMS], dtype=float)
    total = float(rates.sum()) if len(rates) > 0 else 0.0

    fits = total <= payload_capacity + epsilon
    margin = payload_capacity - total
    margin_pct = (margin / payload_capacity) * 100 if payload_capacity > 0 else 0.0
    utilization = (total / max(payload_capacity, MIN_CAPACITY)) * 100
    utilization = float(np.clip(utilization, 0, 100))

    return AggregateReport(
        total_required=total,
        payload_capacity=payload_capacity,
        margin=margin,
        margin_pct=margin_pct,
        utilization_pct=utilization,
        fits=fits,
        status=classify_status(fits, margin_pct, low_margin_pct),
        stream_count=len(rates),
    )
