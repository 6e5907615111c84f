from typing import Optional, Tuple
import logging
import numpy as np
import cvxpy as cp

from errors import OptimizationError
from models import PortfolioOutcome

# Solver statuses accepted as a clean optimum
_ACCEPTED_STATUSES = (cp.OPTIMAL,)


def portfolio_performance(weights: np.ndarray, returns: np.ndarray) -> Tuple[float, float, float]:
    """
    Realized return, variance and Sharpe ratio of fixed weights over a window.

    Sharpe assumes a zero risk-free rate and is NaN when the variance is not
    positive.
    """
    expected = float(weights @ returns.mean(axis=0))
    covariance = np.atleast_2d(np.cov(returns, rowvar=False))
    variance = float(weights @ covariance @ weights)
    sharpe = expected / np.sqrt(variance) if variance > 0 else np.nan
    return expected, variance, sharpe


class PortfolioOptimizer:
    """Minimum-variance long-only portfolio with a return floor, solved as a QP"""

    def __init__(self, solver: str = 'CLARABEL'):
        self.solver = solver
        self.logger = logging.getLogger('portfolio.optimizer')

    def solve(self, covariance: np.ndarray, mean_returns: np.ndarray,
              min_return: Optional[float] = None) -> np.ndarray:
        """
        minimize w' S w  s.t.  sum(w) = 1, w' r >= floor, w >= 0

        Args:
            covariance: Objective matrix S, shape (d, d)
            mean_returns: Expected returns r, shape (d,)
            min_return: Return floor, defaults to the cross-asset average of r

        Raises:
            OptimizationError: infeasible problem, solver error or any status
                other than a clean optimum
        """
        n_assets = len(mean_returns)
        floor = float(np.mean(mean_returns)) if min_return is None else float(min_return)

        w = cp.Variable(n_assets)
        objective = cp.Minimize(cp.quad_form(w, cp.psd_wrap(covariance)))
        constraints = [cp.sum(w) == 1,
                       mean_returns @ w >= floor,
                       w >= 0]

        try:
            problem = cp.Problem(objective, constraints)
            problem.solve(solver=self.solver, verbose=False)
        except (cp.SolverError, ValueError, ArithmeticError) as e:
            raise OptimizationError(f"QP solver error: {str(e)}") from e

        if problem.status not in _ACCEPTED_STATUSES or w.value is None:
            raise OptimizationError(f"QP not solved, status: {problem.status}")

        weights = np.clip(np.asarray(w.value, dtype=float), 0.0, None)
        total = weights.sum()
        if not np.isfinite(total) or total <= 0:
            raise OptimizationError(f"QP returned unusable weights: {w.value}")
        return weights / total

    def optimize(self, simulated: np.ndarray, window: np.ndarray, next_window: np.ndarray,
                 min_return: Optional[float] = None) -> PortfolioOutcome:
        """
        Optimize on simulated returns and evaluate on the next window.

        The covariance comes from the simulated sample, the expected returns
        in the return constraint from the actual window. Failures are
        returned as missing weights with a warning, never raised.
        """
        n_assets = window.shape[1]
        mean_returns = window.mean(axis=0)

        try:
            covariance = np.atleast_2d(np.cov(simulated, rowvar=False))
            weights = self.solve(covariance, mean_returns, min_return=min_return)
        except OptimizationError as e:
            self.logger.warning(f"Optimization failed: {str(e)}")
            return PortfolioOutcome(
                weights=np.full(n_assets, np.nan),
                expected_return=np.nan,
                variance=np.nan,
                sharpe=np.nan,
                warnings=(f"optimization failed: {str(e)}",)
            )

        expected, variance, sharpe = portfolio_performance(weights, next_window)
        warnings = ()
        if not np.isfinite(sharpe):
            warnings = (f"optimized portfolio Sharpe undefined: next-window variance {variance:.3g}",)

        return PortfolioOutcome(
            weights=weights,
            expected_return=expected,
            variance=variance,
            sharpe=sharpe,
            warnings=warnings
        )
