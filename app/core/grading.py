"""
Grade aggregation: sub-period, period and general averages.

Every level truncates toward zero at 2 decimals; nothing is ever rounded, so a
borderline 6.999 stays 6.99 and never turns into a pass. The same helpers are
used by supplementary eligibility, promotion status and report previews so the
numbers match bit for bit.
"""

from decimal import ROUND_DOWN, Decimal
from typing import Iterable, Optional, Tuple, Union

Number = Union[int, float, str, Decimal]

DECIMALS = 2
HUNDRED = Decimal("100")
ZERO = Decimal("0")
# Sub-period weights of a period may exceed 100 by this much (float residue from the UI)
SUB_PERIOD_WEIGHT_TOLERANCE = Decimal("0.01")


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() first so 6.996 is 6.996 and not 6.99599999...
    return Decimal(str(value))


def truncate(value: Number, decimals: int = DECIMALS) -> Decimal:
    """Cut digits beyond `decimals` without rounding (toward zero)."""
    quantum = Decimal(1).scaleb(-decimals)
    return to_decimal(value).quantize(quantum, rounding=ROUND_DOWN)


def sub_period_average(scores: Iterable[Number]) -> Decimal:
    """Arithmetic mean of raw scores, truncated. No scores -> 0."""
    values = [to_decimal(s) for s in scores]
    if not values:
        return truncate(ZERO)
    return truncate(sum(values, ZERO) / len(values))


def period_average(
    sub_period_averages: Iterable[Tuple[Number, Number]],
    period_weight_percent: Number = HUNDRED,
) -> Tuple[Decimal, Decimal]:
    """
    Weighted period average from (average, weight_percent) pairs.

    Returns (period_average, weighted_contribution):
    - period_average = truncate(sum(average * weight / 100)); on the 0-10 scale
      when the sub-period weights add up to 100. Sub-periods without grades must
      be passed with average 0: they are not skipped and pull the average down.
    - weighted_contribution = truncate(period_average * period_weight / 100),
      the share this period adds to the general average.
    """
    weighted_sum = ZERO
    for average, weight in sub_period_averages:
        weighted_sum += to_decimal(average) * (to_decimal(weight) / HUNDRED)
    average_value = truncate(weighted_sum)
    contribution = truncate(average_value * (to_decimal(period_weight_percent) / HUNDRED))
    return average_value, contribution


def general_average(weighted_contributions: Iterable[Number]) -> Decimal:
    """Sum of the (already truncated) weighted period contributions, truncated again.

    Not a re-normalized mean: period weights are expected to add up to 100.
    """
    return truncate(sum((to_decimal(c) for c in weighted_contributions), ZERO))


def mean(values: Iterable[Number]) -> Decimal:
    """Truncated arithmetic mean (used for averages of subject averages)."""
    return sub_period_average(values)


def sub_period_weights_within_limit(weights: Iterable[Number]) -> bool:
    total = sum((to_decimal(w) for w in weights), ZERO)
    return total <= HUNDRED + SUB_PERIOD_WEIGHT_TOLERANCE
