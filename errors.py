"""Exception types raised across the rolling copula pipeline."""


class ConfigurationError(ValueError):
    """Unrecoverable set-up problem detected before any window is dispatched"""


class MarginalFitError(RuntimeError):
    """Maximum likelihood fit of a marginal distribution failed"""


class GoodnessOfFitError(RuntimeError):
    """Goodness-of-fit statistic or p-value could not be computed"""


class OptimizationError(RuntimeError):
    """Quadratic program was infeasible or the solver did not return a clean optimum"""
