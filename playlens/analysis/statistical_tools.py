"""
Statistical primitives for in-session decisioning

The significance tests here are deliberately coarse: both compare the test
statistic against a single critical value and report a fixed stand-in
p-value instead of integrating the true distribution. That precision is
enough to decide whether a difference is worth acting on mid-session.
A drop-in replacement only has to implement ``SignificanceTest``.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
import logging
import math

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class SignificanceResult:
    """Outcome of a significance test"""
    statistic: float
    p_value: float
    significant: bool
    degrees_of_freedom: Optional[int] = None
    effect_size: Optional[float] = None
    details: Dict = field(default_factory=dict)


class SignificanceTest(ABC):
    """Interface every significance test implements"""

    name: str = "significance_test"

    @abstractmethod
    def run(self, first: Sequence[float], second: Sequence[float]) -> Optional[SignificanceResult]:
        """
        Compare two samples.

        Returns None when the samples cannot support the test (too small,
        mismatched, or degenerate).
        """


class ChiSquareTest(SignificanceTest):
    """
    Goodness of fit: ``Σ(O-E)²/E`` over cells with E > 0, df = cells - 1.
    """

    name = "chi_square"

    def __init__(
        self,
        critical_value: float = 3.841,
        significant_p: float = 0.05,
        insignificant_p: float = 0.1,
    ):
        self.critical_value = critical_value
        self.significant_p = significant_p
        self.insignificant_p = insignificant_p

    def run(self, observed: Sequence[float], expected: Sequence[float]) -> Optional[SignificanceResult]:
        if len(observed) == 0 or len(observed) != len(expected):
            return None

        obs = np.asarray(observed, dtype=float)
        exp = np.asarray(expected, dtype=float)
        mask = exp > 0
        if not mask.any():
            return None

        chi_square = float(np.sum((obs[mask] - exp[mask]) ** 2 / exp[mask]))
        significant = chi_square > self.critical_value

        return SignificanceResult(
            statistic=chi_square,
            p_value=self.significant_p if significant else self.insignificant_p,
            significant=significant,
            degrees_of_freedom=len(obs) - 1,
        )


class PooledTTest(SignificanceTest):
    """
    Two-sample t-test with pooled variance; |t| above the critical value
    counts as significant.
    """

    name = "pooled_t_test"

    def __init__(
        self,
        critical_value: float = 2.0,
        significant_p: float = 0.04,
        insignificant_p: float = 0.2,
        max_effect_size: float = 10.0,
    ):
        self.critical_value = critical_value
        self.significant_p = significant_p
        self.insignificant_p = insignificant_p
        self.max_effect_size = max_effect_size

    def run(self, first: Sequence[float], second: Sequence[float]) -> Optional[SignificanceResult]:
        n1, n2 = len(first), len(second)
        if n1 < 2 or n2 < 2:
            return None

        a = np.asarray(first, dtype=float)
        b = np.asarray(second, dtype=float)
        mean1, mean2 = float(a.mean()), float(b.mean())
        var1, var2 = float(a.var(ddof=1)), float(b.var(ddof=1))

        pooled_var = ((n1 - 1) * var1 + (n2 - 1) * var2) / (n1 + n2 - 2)
        if pooled_var <= 0:
            # Identical constant samples: no evidence of a difference
            if mean1 == mean2:
                return SignificanceResult(
                    statistic=0.0,
                    p_value=self.insignificant_p,
                    significant=False,
                    degrees_of_freedom=n1 + n2 - 2,
                    effect_size=0.0,
                )
            # Constant samples with different means: t is infinite
            return SignificanceResult(
                statistic=math.copysign(math.inf, mean1 - mean2),
                p_value=self.significant_p,
                significant=True,
                degrees_of_freedom=n1 + n2 - 2,
                effect_size=self.max_effect_size,
                details={"mean_first": mean1, "mean_second": mean2},
            )

        standard_error = math.sqrt(pooled_var * (1 / n1 + 1 / n2))
        t_statistic = (mean1 - mean2) / standard_error
        significant = abs(t_statistic) > self.critical_value

        return SignificanceResult(
            statistic=t_statistic,
            p_value=self.significant_p if significant else self.insignificant_p,
            significant=significant,
            degrees_of_freedom=n1 + n2 - 2,
            effect_size=min(abs(mean1 - mean2) / math.sqrt(pooled_var), self.max_effect_size),
            details={"mean_first": mean1, "mean_second": mean2},
        )


# ==================== Descriptive helpers ====================

def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def variance(values: Sequence[float]) -> float:
    """Sample variance (n - 1)"""
    if len(values) < 2:
        return 0.0
    return float(np.var(values, ddof=1))


def std_dev(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.median(values))


def percentile(values: Sequence[float], q: float) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.percentile(values, min(100.0, max(0.0, q))))


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation; 0 when undefined"""
    if len(x) != len(y) or len(x) < 2:
        return 0.0
    a = np.asarray(x, dtype=float)
    b = np.asarray(y, dtype=float)
    if a.std() == 0 or b.std() == 0:
        return 0.0
    return float(np.corrcoef(a, b)[0, 1])


def cohens_d(first: Sequence[float], second: Sequence[float]) -> float:
    if len(first) < 2 or len(second) < 2:
        return 0.0
    n1, n2 = len(first), len(second)
    pooled = ((n1 - 1) * variance(first) + (n2 - 1) * variance(second)) / (n1 + n2 - 2)
    if pooled <= 0:
        return 0.0
    return (mean(first) - mean(second)) / math.sqrt(pooled)


def confidence_interval(values: Sequence[float], z: float = 1.96) -> Tuple[float, float]:
    """Normal-approximation interval around the mean"""
    if len(values) == 0:
        return (0.0, 0.0)
    center = mean(values)
    margin = z * std_dev(values) / math.sqrt(len(values))
    return (center - margin, center + margin)


def detect_outliers(values: Sequence[float], k: float = 1.5) -> List[float]:
    """Values outside the Tukey fences ``[Q1 - k·IQR, Q3 + k·IQR]``"""
    if len(values) < 4:
        return []
    q1, q3 = np.percentile(values, [25, 75])
    iqr = q3 - q1
    low, high = q1 - k * iqr, q3 + k * iqr
    return [float(v) for v in values if v < low or v > high]


def linear_trend(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index"""
    if len(values) < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(len(y), dtype=float)
    slope, _ = np.polyfit(x, y, 1)
    return float(slope)
