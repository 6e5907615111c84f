"""Common data models used across the project."""

from dataclasses import dataclass, field
from typing import Any, Hashable, Optional, Tuple
import numpy as np


def _read_only(values) -> np.ndarray:
    """Float copy that cannot be modified in place"""
    array = np.array(values, dtype=float, copy=True)
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class MarginalParams:
    """Skewed generalized-t parameters for one asset"""
    mu: float      # location (mean)
    sigma: float   # scale (standard deviation)
    lam: float     # skewness, in (-1, 1)
    p: float       # tail shape
    q: float       # tail shape

    def as_tuple(self) -> Tuple[float, float, float, float, float]:
        return (self.mu, self.sigma, self.lam, self.p, self.q)


@dataclass(frozen=True)
class MarginalFit:
    """Successful marginal fit for one asset in one window"""
    asset: int
    params: MarginalParams
    uniforms: np.ndarray  # Shape: (window_size,) fitted CDF of each observation
    p_value: float  # Anderson-Darling p-value, NaN when degenerate
    warning: Optional[str] = None

    ok = True


@dataclass(frozen=True)
class MarginalFitFailure:
    """Typed failure of a marginal fit, carrying the reason"""
    asset: int
    message: str

    ok = False


@dataclass
class WindowSimulation:
    """Output of one window's fit-and-simulate step"""
    simulated: np.ndarray  # Shape: (n_simulations, d)
    marginals: list  # Per-asset distribution objects exposing ppf/cdf
    p_values: np.ndarray  # Shape: (d,)
    warnings: list = field(default_factory=list)
    copula: Any = None


@dataclass(frozen=True)
class PortfolioOutcome:
    """Optimized weights and their realized next-window performance"""
    weights: np.ndarray  # Shape: (d,), all NaN when the QP failed
    expected_return: float
    variance: float
    sharpe: float
    warnings: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'weights', _read_only(self.weights))

    @property
    def solved(self) -> bool:
        return bool(np.all(np.isfinite(self.weights)))


@dataclass(frozen=True)
class WindowResult:
    """One row of the rolling result table"""
    start: int
    label: Hashable
    weights: np.ndarray
    optimized_return: float
    optimized_sharpe: float
    benchmark_return: float
    benchmark_sharpe: float
    max_eigenvalue: float
    p_values: np.ndarray
    warnings: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'weights', _read_only(self.weights))
        object.__setattr__(self, 'p_values', _read_only(self.p_values))

    @classmethod
    def missing(cls, start: int, label: Hashable, n_assets: int,
                warnings: Tuple[str, ...]) -> 'WindowResult':
        """Row with every numeric field missing"""
        nan_vec = np.full(n_assets, np.nan)
        return cls(
            start=start,
            label=label,
            weights=nan_vec,
            optimized_return=np.nan,
            optimized_sharpe=np.nan,
            benchmark_return=np.nan,
            benchmark_sharpe=np.nan,
            max_eigenvalue=np.nan,
            p_values=nan_vec.copy(),
            warnings=tuple(warnings)
        )
