from typing import Optional, Union
import logging
import numpy as np
from scipy import optimize

from errors import MarginalFitError, GoodnessOfFitError
from models import MarginalParams, MarginalFit, MarginalFitFailure
from .sgt import sgt_loglik, frozen_sgt
from .goodness_of_fit import anderson_darling

# Uniform marginals are kept strictly inside (0, 1)
UNIFORM_EPS = 1e-10


class MarginalFitter:
    """Fits a skewed generalized-t marginal to one asset's returns by maximum likelihood"""

    def __init__(self, start_mu: Optional[float] = None,
                 start_sigma: Optional[float] = None,
                 start_lam: float = 0.0,
                 start_p: float = 2.0,
                 start_q: float = 2.0,
                 method: str = 'Nelder-Mead',
                 maxiter: int = 5000):
        """
        Initialize fitter

        Args:
            start_mu: Starting location, None for the sample mean
            start_sigma: Starting scale, None for the sample standard deviation
            start_lam: Starting skewness
            start_p: Starting first tail-shape parameter
            start_q: Starting second tail-shape parameter
            method: scipy.optimize.minimize method
            maxiter: Maximum optimizer iterations
        """
        self.start_mu = start_mu
        self.start_sigma = start_sigma
        self.start_lam = start_lam
        self.start_p = start_p
        self.start_q = start_q
        self.method = method
        self.maxiter = maxiter

        self.logger = logging.getLogger('marginals.estimator')

    @classmethod
    def from_config(cls, config) -> 'MarginalFitter':
        return cls(
            start_mu=config.start_mu,
            start_sigma=config.start_sigma,
            start_lam=config.start_lam,
            start_p=config.start_p,
            start_q=config.start_q,
            method=config.fit_method,
            maxiter=config.fit_maxiter
        )

    def starting_values(self, returns: np.ndarray) -> MarginalParams:
        """Deterministic starting point for the likelihood search"""
        return MarginalParams(
            mu=float(np.mean(returns)) if self.start_mu is None else self.start_mu,
            sigma=float(np.std(returns, ddof=1)) if self.start_sigma is None else self.start_sigma,
            lam=self.start_lam,
            p=self.start_p,
            q=self.start_q
        )

    def _validate_returns(self, returns: np.ndarray) -> None:
        if returns.ndim != 1:
            raise MarginalFitError(f"Expected a single return column, got shape {returns.shape}")
        if len(returns) < 3:
            raise MarginalFitError(f"Insufficient observations: {len(returns)} < 3")
        if not np.all(np.isfinite(returns)):
            raise MarginalFitError("Return column contains non-finite values")
        if np.std(returns) <= 0:
            raise MarginalFitError("Return column has zero variance")

    def maximize_likelihood(self, returns: np.ndarray) -> MarginalParams:
        """
        Maximum likelihood estimates of (mu, sigma, lam, p, q).

        The search runs over (mu, log sigma, atanh lam, log p, log q) so that
        positivity and |lam| < 1 hold everywhere; p * q > 2 is enforced by
        an infinite objective.

        Raises:
            MarginalFitError: on degenerate input, non-convergence or a
                non-finite optimum
        """
        returns = np.asarray(returns, dtype=float)
        self._validate_returns(returns)

        start = self.starting_values(returns)
        if start.sigma <= 0 or not np.isfinite(start.sigma):
            raise MarginalFitError(f"Invalid starting scale: {start.sigma}")

        def negative_loglik(theta: np.ndarray) -> float:
            mu, log_sigma, atanh_lam, log_p, log_q = theta
            p, q = np.exp(log_p), np.exp(log_q)
            if p * q <= 2.0:
                return np.inf
            with np.errstate(all='ignore'):
                value = -sgt_loglik(returns, mu, np.exp(log_sigma), np.tanh(atanh_lam), p, q)
            return value if np.isfinite(value) else np.inf

        x0 = np.array([
            start.mu,
            np.log(start.sigma),
            np.arctanh(start.lam),
            np.log(start.p),
            np.log(start.q)
        ])

        try:
            result = optimize.minimize(
                negative_loglik,
                x0,
                method=self.method,
                options={'maxiter': self.maxiter, 'maxfev': 2 * self.maxiter}
            )
        except (ValueError, FloatingPointError, ArithmeticError) as e:
            raise MarginalFitError(f"Numerical error during likelihood maximisation: {str(e)}") from e

        if not result.success:
            raise MarginalFitError(f"Likelihood maximisation did not converge: {result.message}")
        if not np.isfinite(result.fun):
            raise MarginalFitError("Likelihood maximisation ended at a non-finite log-likelihood")

        mu, log_sigma, atanh_lam, log_p, log_q = result.x
        params = MarginalParams(
            mu=float(mu),
            sigma=float(np.exp(log_sigma)),
            lam=float(np.tanh(atanh_lam)),
            p=float(np.exp(log_p)),
            q=float(np.exp(log_q))
        )
        if not all(np.isfinite(v) for v in params.as_tuple()):
            raise MarginalFitError(f"Non-finite parameter estimates: {params}")

        self.logger.debug(
            f"SGT fit: mu={params.mu:.4f} sigma={params.sigma:.4f} lam={params.lam:.4f} "
            f"p={params.p:.4f} q={params.q:.4f} loglik={-result.fun:.2f} nit={result.nit}"
        )
        return params

    def fit(self, returns: np.ndarray, asset: int = 0) -> Union[MarginalFit, MarginalFitFailure]:
        """
        Fit one asset column.

        Returns:
            MarginalFit with parameters, CDF-transformed observations and the
            Anderson-Darling p-value, or MarginalFitFailure with the reason.
        """
        returns = np.asarray(returns, dtype=float)
        try:
            params = self.maximize_likelihood(returns)
            uniforms = frozen_sgt(params).cdf(returns)
            if not np.all(np.isfinite(uniforms)):
                raise MarginalFitError("Fitted CDF produced non-finite values")
            uniforms = np.clip(uniforms, UNIFORM_EPS, 1.0 - UNIFORM_EPS)
        except MarginalFitError as e:
            self.logger.warning(f"Marginal fit failed for asset {asset}: {str(e)}")
            return MarginalFitFailure(asset=asset, message=str(e))
        except Exception as e:
            self.logger.error(f"Unexpected error fitting asset {asset}: {str(e)}")
            return MarginalFitFailure(asset=asset, message=f"unexpected error: {str(e)}")

        warning = None
        try:
            _, p_value = anderson_darling(uniforms)
        except GoodnessOfFitError as e:
            p_value = np.nan
            warning = f"asset {asset}: goodness-of-fit p-value unavailable ({str(e)})"
            self.logger.warning(warning)

        return MarginalFit(
            asset=asset,
            params=params,
            uniforms=uniforms,
            p_value=p_value,
            warning=warning
        )
