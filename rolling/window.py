from typing import List, Optional, Union
from concurrent.futures import ThreadPoolExecutor
import logging
import numpy as np

from models import MarginalFit, MarginalFitFailure, WindowSimulation
from marginals.estimator import MarginalFitter
from marginals.empirical import EmpiricalMarginal
from marginals.sgt import frozen_sgt
from copula.checkerboard import CheckerboardCopula


class WindowPipeline:
    """Fits marginals and a checkerboard copula for one window and simulates joint returns"""

    def __init__(self, fitter: Optional[MarginalFitter] = None,
                 n_simulations: int = 500_000,
                 marginal_workers: int = 1):
        """
        Initialize pipeline

        Args:
            fitter: Marginal fitter, defaults to SGT with standard starting values
            n_simulations: Number of Monte Carlo draws per window
            marginal_workers: Threads used to fit the asset marginals
        """
        self.fitter = fitter or MarginalFitter()
        self.n_simulations = n_simulations
        self.marginal_workers = marginal_workers
        self.logger = logging.getLogger('rolling.window')

    @classmethod
    def from_config(cls, config) -> 'WindowPipeline':
        return cls(
            fitter=MarginalFitter.from_config(config),
            n_simulations=config.n_simulations,
            marginal_workers=config.marginal_workers
        )

    def fit_marginals(self, window: np.ndarray) -> List[Union[MarginalFit, MarginalFitFailure]]:
        """Fit every asset column; results are ordered by asset index"""
        n_assets = window.shape[1]
        if self.marginal_workers > 1 and n_assets > 1:
            with ThreadPoolExecutor(max_workers=min(self.marginal_workers, n_assets)) as executor:
                futures = [executor.submit(self.fitter.fit, window[:, j], j) for j in range(n_assets)]
                return [future.result() for future in futures]
        return [self.fitter.fit(window[:, j], j) for j in range(n_assets)]

    def run(self, window: np.ndarray, rng: Optional[np.random.Generator] = None) -> WindowSimulation:
        """
        Fit the joint model on one window and draw simulated returns.

        Assets whose SGT fit fails are carried by an empirical marginal
        (rank CDF, interpolated quantiles); their p-value is NaN and a
        warning naming the asset is recorded.
        """
        rng = np.random.default_rng() if rng is None else rng
        window = np.asarray(window, dtype=float)
        n_assets = window.shape[1]

        fits = self.fit_marginals(window)

        warnings = []
        marginals = []
        p_values = np.full(n_assets, np.nan)
        uniforms = np.empty_like(window)

        for j, fit in enumerate(fits):
            if fit.ok:
                marginals.append(frozen_sgt(fit.params))
                uniforms[:, j] = fit.uniforms
                p_values[j] = fit.p_value
                if fit.warning:
                    warnings.append(fit.warning)
            else:
                fallback = EmpiricalMarginal(window[:, j])
                marginals.append(fallback)
                uniforms[:, j] = fallback.cdf(window[:, j])
                warnings.append(
                    f"asset {j}: marginal fit failed ({fit.message}); "
                    f"empirical marginal used for simulation"
                )

        copula = CheckerboardCopula(uniforms)
        simulated = copula.sample(self.n_simulations, rng)
        for j, marginal in enumerate(marginals):
            simulated[:, j] = marginal.ppf(simulated[:, j])

        if not np.all(np.isfinite(simulated)):
            bad = sorted({int(j) for j in np.where(~np.isfinite(simulated))[1]})
            raise FloatingPointError(f"Non-finite simulated returns for assets {bad}")

        return WindowSimulation(
            simulated=simulated,
            marginals=marginals,
            p_values=p_values,
            warnings=warnings,
            copula=copula
        )
