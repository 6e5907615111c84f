"""Anderson-Darling goodness-of-fit test against a fully specified CDF."""

from typing import Tuple
import numpy as np

from errors import GoodnessOfFitError

_EPS = 1e-12


def _adinf(z: float) -> float:
    """Asymptotic P(A^2 < z), Marsaglia & Marsaglia (2004)"""
    if z < 2.0:
        return (np.exp(-1.2337141 / z) / np.sqrt(z)
                * (2.00012 + (0.247105 - (0.0649821 - (0.0347962 - (0.011672 - 0.00168691 * z)
                                                       * z) * z) * z) * z))
    return np.exp(-np.exp(1.0776 - (2.30695 - (0.43424 - (0.082433 - (0.008056 - 0.0003146 * z)
                                                          * z) * z) * z) * z))


def _errfix(n: int, x: float) -> float:
    """Finite sample correction to the asymptotic distribution"""
    if x > 0.8:
        return (-130.2137 + (745.2337 - (1705.091 - (1950.646 - (1116.360 - 255.7844 * x)
                                                     * x) * x) * x) * x) / n
    c = 0.01265 + 0.1757 / n
    if x < c:
        v = x / c
        v = np.sqrt(v) * (1.0 - v) * (49.0 * v - 102.0)
        return v * (0.0037 / (n * n) + 0.00078 / n + 0.00006) / n
    v = (x - c) / (0.8 - c)
    v = -0.00022633 + (6.54034 - (14.6538 - (14.458 - (8.259 - 1.91864 * v) * v) * v) * v) * v
    return v * (0.04213 / n + 0.01365 / (n * n)) / n


def ad_statistic(uniforms: np.ndarray) -> float:
    """A^2 statistic for values already transformed by the hypothesised CDF"""
    u = np.sort(np.clip(np.asarray(uniforms, dtype=float), _EPS, 1.0 - _EPS))
    n = len(u)
    i = np.arange(1, n + 1)
    return float(-n - np.sum((2 * i - 1) * (np.log(u) + np.log1p(-u[::-1]))) / n)


def ad_pvalue(statistic: float, n: int) -> float:
    """Upper-tail p-value of A^2 for a sample of size n"""
    if statistic <= 0:
        return 1.0
    cdf = _adinf(statistic)
    cdf = cdf + _errfix(n, cdf)
    return float(np.clip(1.0 - cdf, 0.0, 1.0))


def anderson_darling(uniforms: np.ndarray) -> Tuple[float, float]:
    """
    One-sample Anderson-Darling test.

    Args:
        uniforms: Fitted CDF evaluated at each observation

    Returns:
        Tuple of (statistic, p_value)

    Raises:
        GoodnessOfFitError: if the statistic or p-value is not finite
    """
    uniforms = np.asarray(uniforms, dtype=float)
    if uniforms.size == 0 or not np.all(np.isfinite(uniforms)):
        raise GoodnessOfFitError("CDF values are empty or contain non-finite entries")

    statistic = ad_statistic(uniforms)
    if not np.isfinite(statistic):
        raise GoodnessOfFitError(f"Anderson-Darling statistic is not finite: {statistic}")

    p_value = ad_pvalue(statistic, len(uniforms))
    if not np.isfinite(p_value):
        raise GoodnessOfFitError(f"Anderson-Darling p-value is not finite for A2={statistic:.4f}")

    return statistic, p_value
