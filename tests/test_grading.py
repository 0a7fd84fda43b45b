"""Unit tests for the grade aggregation helpers."""

from decimal import Decimal

from app.core import grading


def test_truncate_never_rounds_up() -> None:
    assert grading.truncate(Decimal("6.999")) == Decimal("6.99")
    assert grading.truncate(6.996) == Decimal("6.99")
    assert grading.truncate("7") == Decimal("7.00")


def test_truncate_float_uses_decimal_representation() -> None:
    # 0.1 + 0.2 is 0.30000000000000004 as a float
    assert grading.truncate(0.1 + 0.2) == Decimal("0.30")
    assert grading.truncate(2.675) == Decimal("2.67")


def test_sub_period_average_truncates_mean() -> None:
    assert grading.sub_period_average([6.996, 6.996]) == Decimal("6.99")
    assert grading.sub_period_average([Decimal("6.999")]) == Decimal("6.99")
    # 20 / 3 = 6.666...
    assert grading.sub_period_average([7, 7, 6]) == Decimal("6.66")


def test_sub_period_average_without_scores_is_zero() -> None:
    assert grading.sub_period_average([]) == Decimal("0.00")


def test_period_average_weights_sub_periods_and_truncates() -> None:
    average, contribution = grading.period_average([(Decimal("8.55"), 60), (Decimal("7.33"), 40)])
    # 8.55 * 0.6 + 7.33 * 0.4 = 5.13 + 2.932 = 8.062
    assert average == Decimal("8.06")
    assert contribution == Decimal("8.06")


def test_period_average_contribution_scaled_by_period_weight() -> None:
    average, contribution = grading.period_average([(Decimal("9.99"), 100)], period_weight_percent=33)
    assert average == Decimal("9.99")
    # 9.99 * 0.33 = 3.2967
    assert contribution == Decimal("3.29")


def test_empty_sub_period_drags_period_average_down() -> None:
    """A sub-period with no grades counts as 0; it is not skipped."""
    empty = grading.sub_period_average([])
    average, _ = grading.period_average([(Decimal("9"), 50), (empty, 50)])
    assert average == Decimal("4.50")


def test_general_average_is_sum_of_contributions() -> None:
    contributions = [Decimal("3.29"), Decimal("3.29"), Decimal("3.29")]
    assert grading.general_average(contributions) == Decimal("9.87")


def test_general_average_not_renormalized_when_a_period_is_empty() -> None:
    _, first = grading.period_average([(Decimal("8"), 100)], period_weight_percent=50)
    _, second = grading.period_average([(grading.sub_period_average([]), 100)], period_weight_percent=50)
    assert grading.general_average([first, second]) == Decimal("4.00")


def test_general_average_of_nothing_is_zero() -> None:
    assert grading.general_average([]) == Decimal("0.00")


def test_mean_truncates() -> None:
    assert grading.mean([Decimal("7.99"), Decimal("8.00")]) == Decimal("7.99")


def test_sub_period_weights_within_limit_allows_tolerance() -> None:
    assert grading.sub_period_weights_within_limit([33.34, 33.33, 33.34])
    assert grading.sub_period_weights_within_limit([50, 50])
    assert not grading.sub_period_weights_within_limit([60, 50])


def test_to_decimal_treats_missing_score_as_zero() -> None:
    assert grading.to_decimal(None) == Decimal("0")
    assert grading.sub_period_average([None, 8]) == Decimal("4.00")
