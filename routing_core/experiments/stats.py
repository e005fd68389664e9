"""Statistics helpers for routing experiments."""

import math
import statistics
from dataclasses import dataclass

Z_95 = 1.96

_STANDARD_NORMAL = statistics.NormalDist()


def wilson_interval(successes: int, n: int, z: float = Z_95) -> tuple[float, float]:
    """Wilson score confidence interval for a success rate.

    Args:
        successes: Number of successful trials
        n: Number of trials
        z: Critical value (1.96 for 95%)

    Returns:
        (lower, upper), both within [0, 1]; (0.0, 0.0) when n is 0
    """
    if n <= 0:
        return 0.0, 0.0

    p = successes / n
    denominator = 1 + z * z / n
    center = p + z * z / (2 * n)
    spread = z * math.sqrt((p * (1 - p) + z * z / (4 * n)) / n)
    return max(0.0, (center - spread) / denominator), min(1.0, (center + spread) / denominator)


def percentile(sorted_values: list[float], q: float) -> float:
    """Order statistic at index floor(n * q) of an ascending list."""
    if not sorted_values:
        return 0.0
    index = min(int(math.floor(len(sorted_values) * q)), len(sorted_values) - 1)
    return sorted_values[index]


def normal_cdf(z: float) -> float:
    return _STANDARD_NORMAL.cdf(z)


def two_proportion_z_test(p1: float, n1: int, p2: float, n2: int) -> float:
    """Two-sided p-value for the difference between two success rates.

    Returns 1.0 when either sample is empty or the pooled standard error is 0.
    """
    if n1 <= 0 or n2 <= 0:
        return 1.0

    pooled = (p1 * n1 + p2 * n2) / (n1 + n2)
    se = math.sqrt(pooled * (1 - pooled) * (1 / n1 + 1 / n2))
    if se == 0:
        return 1.0

    z = abs(p2 - p1) / se
    return 2 * (1 - normal_cdf(z))


@dataclass
class RunningStats:
    """Count, sum and sum of squares of a metric, updated one value at a time."""

    count: int = 0
    total: float = 0.0
    total_sq: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.total_sq += value * value

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    @property
    def variance(self) -> float:
        """Sample variance (n - 1 denominator)."""
        if self.count < 2:
            return 0.0
        return max(0.0, (self.total_sq - self.total * self.total / self.count) / (self.count - 1))

    @property
    def stdev(self) -> float:
        return math.sqrt(self.variance)
