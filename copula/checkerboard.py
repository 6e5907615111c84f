"""
Empirical checkerboard copula.

The unit hypercube is divided into an n x ... x n grid, n being the number
of observations. Observation i puts mass 1/n uniformly on the cell whose
corner is given by its per-column ranks, which gives a piecewise-constant
copula density with exactly uniform margins.
"""

from typing import Optional
import logging
import numpy as np
from scipy import stats

logger = logging.getLogger(__name__)

_EPS = np.finfo(float).eps


class CheckerboardCopula:
    """Nonparametric copula fitted to a matrix of uniform pseudo-observations"""

    def __init__(self, pseudo_obs: np.ndarray):
        """
        Build the copula

        Args:
            pseudo_obs: Array of shape (n, d) with every entry in (0, 1)
        """
        u = np.asarray(pseudo_obs, dtype=float)
        if u.ndim != 2 or u.shape[0] < 1 or u.shape[1] < 1:
            raise ValueError(f"Pseudo-observations must be a non-empty 2-D array, got shape {u.shape}")
        if not np.all(np.isfinite(u)):
            raise ValueError("Pseudo-observations contain non-finite values")
        if np.any(u <= 0) or np.any(u >= 1):
            raise ValueError("Pseudo-observations must lie strictly inside (0, 1)")

        self.n_obs, self.dim = u.shape
        # Ties broken by order of appearance so each column is a permutation of 1..n
        self.ranks = stats.rankdata(u, method='ordinal', axis=0).astype(np.int64)

        logger.debug(f"Checkerboard copula on {self.n_obs} observations in {self.dim} dimensions")

    def sample(self, n: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """
        Draw n i.i.d. points from the copula.

        Returns:
            Array of shape (n, d) strictly inside (0, 1)^d
        """
        if n < 1:
            raise ValueError(f"Sample size must be positive, got {n}")
        rng = np.random.default_rng() if rng is None else rng

        rows = rng.integers(0, self.n_obs, size=n)
        u = (self.ranks[rows] - rng.random((n, self.dim))) / self.n_obs
        return np.clip(u, _EPS, 1.0 - _EPS)

    def cdf(self, u: np.ndarray) -> np.ndarray:
        """Copula distribution function at one point (d,) or many points (m, d)"""
        single = np.ndim(u) == 1
        u = np.atleast_2d(np.asarray(u, dtype=float))
        if u.shape[1] != self.dim:
            raise ValueError(f"Expected points with {self.dim} coordinates, got {u.shape[1]}")

        # Fraction of each observation's cell lying below u, per coordinate
        cover = np.clip(self.n_obs * u[:, None, :] - (self.ranks[None, :, :] - 1), 0.0, 1.0)
        values = np.prod(cover, axis=2).mean(axis=1)
        return float(values[0]) if single else values
