"""
Statistics Helpers
==================

Small numeric helpers shared by the payment, earnings and review
analytics. Inputs are plain sequences of numbers; empty inputs yield 0
instead of raising so dashboards render for users with no data.
"""

import math
from collections import Counter
from typing import Sequence


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def median(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


def mode(values: Sequence[float]) -> float:
    """Most frequent value; ties go to the value that reached the count first."""
    if not values:
        return 0.0
    counts = Counter(values)
    top = max(counts.values())
    for value in values:
        if counts[value] == top:
            return value
    return 0.0


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


def linear_regression(values: Sequence[float]) -> tuple[float, float]:
    """
    Least-squares fit of ``values`` against x = 0..n-1.

    Returns:
        (slope, intercept); a flat line through the single point (or 0)
        when fewer than two values are given
    """
    n = len(values)
    if n == 0:
        return 0.0, 0.0
    if n == 1:
        return 0.0, float(values[0])

    sum_x = n * (n - 1) / 2
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    sum_xx = sum(i * i for i in range(n))

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0, sum_y / n

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson r of two equal-length sequences; 0 when undefined."""
    n = min(len(xs), len(ys))
    if n == 0:
        return 0.0

    xs, ys = xs[:n], ys[:n]
    sum_x, sum_y = sum(xs), sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_xx = sum(x * x for x in xs)
    sum_yy = sum(y * y for y in ys)

    numerator = n * sum_xy - sum_x * sum_y
    denominator = math.sqrt((n * sum_xx - sum_x ** 2) * (n * sum_yy - sum_y ** 2))
    if denominator == 0:
        return 0.0
    return numerator / denominator


def percent_growth(current: float, previous: float) -> float:
    """Percentage change from ``previous`` to ``current``."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def round2(value: float) -> float:
    return round(value, 2)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
