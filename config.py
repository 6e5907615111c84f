"""Named configuration values for the rolling copula analysis."""

from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional
import logging

from errors import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_FIT_METHODS = ('Nelder-Mead', 'Powell')


@dataclass
class PipelineConfig:
    """Configuration for window size, simulation, marginal fits, QP and workers"""
    window_size: int = 470
    n_simulations: int = 500_000
    n_assets: Optional[int] = None  # None: take from the return matrix

    # Starting values for the SGT likelihood; None means sample mean / sample std
    start_mu: Optional[float] = None
    start_sigma: Optional[float] = None
    start_lam: float = 0.0
    start_p: float = 2.0
    start_q: float = 2.0
    fit_method: str = 'Nelder-Mead'
    fit_maxiter: int = 5000

    solver: str = 'CLARABEL'

    n_workers: int = 1
    use_processes: bool = True
    marginal_workers: int = 1

    random_seed: int = 42
    timeout: Optional[float] = None
    show_progress: bool = True

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'PipelineConfig':
        """Build a config from a plain mapping, rejecting unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        config = cls(**values)
        config.validate()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        """Check value ranges that do not depend on the data"""
        issues = []
        if self.window_size < 3:
            issues.append(f"window_size must be at least 3, got {self.window_size}")
        if self.n_simulations < 2:
            issues.append(f"n_simulations must be at least 2, got {self.n_simulations}")
        if self.n_assets is not None and self.n_assets < 1:
            issues.append(f"n_assets must be positive, got {self.n_assets}")
        if self.start_sigma is not None and self.start_sigma <= 0:
            issues.append(f"start_sigma must be positive, got {self.start_sigma}")
        if not -1 < self.start_lam < 1:
            issues.append(f"start_lam must lie in (-1, 1), got {self.start_lam}")
        if self.start_p <= 0 or self.start_q <= 0 or self.start_p * self.start_q <= 2:
            issues.append(
                f"start_p and start_q must be positive with p*q > 2, "
                f"got p={self.start_p}, q={self.start_q}"
            )
        if self.fit_method not in SUPPORTED_FIT_METHODS:
            issues.append(f"fit_method must be one of {SUPPORTED_FIT_METHODS}, got {self.fit_method}")
        if self.fit_maxiter < 1:
            issues.append(f"fit_maxiter must be positive, got {self.fit_maxiter}")
        if self.n_workers < 1 or self.marginal_workers < 1:
            issues.append("n_workers and marginal_workers must be at least 1")
        if self.timeout is not None and self.timeout <= 0:
            issues.append(f"timeout must be positive, got {self.timeout}")

        if issues:
            raise ConfigurationError("Invalid configuration: " + "; ".join(issues))

    def check_data(self, n_rows: int, n_assets: int) -> None:
        """Check the data-dependent constraints before any window is dispatched"""
        self.validate()
        if n_assets < 1:
            raise ConfigurationError("Return matrix has zero assets")
        if self.n_assets is not None and self.n_assets != n_assets:
            raise ConfigurationError(
                f"Configured for {self.n_assets} assets but the return matrix has {n_assets}"
            )
        if self.window_size >= n_rows:
            raise ConfigurationError(
                f"Insufficient data: window_size {self.window_size} >= series length {n_rows}"
            )

        logger.info(
            f"Configuration accepted: {n_rows} rows, {n_assets} assets, "
            f"window {self.window_size}, {n_rows - self.window_size} windows"
        )
