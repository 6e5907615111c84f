"""Empirical fallback marginal for assets whose parametric fit failed."""

import numpy as np


class EmpiricalMarginal:
    """
    Rank-based CDF and linearly interpolated quantile function of one sample.

    The CDF uses the n/(n+1) convention so every observation maps strictly
    inside (0, 1). The quantile function never extrapolates beyond the
    observed minimum and maximum.
    """

    def __init__(self, data: np.ndarray):
        self.sorted_data = np.sort(np.asarray(data, dtype=float))
        self.n = len(self.sorted_data)
        if self.n == 0:
            raise ValueError("Empirical marginal needs at least one observation")

    def cdf(self, x) -> np.ndarray:
        ranks = np.searchsorted(self.sorted_data, x, side='right')
        return np.clip(ranks, 1, self.n) / (self.n + 1.0)

    def ppf(self, u) -> np.ndarray:
        return np.quantile(self.sorted_data, np.clip(u, 0.0, 1.0))
