"""
Marginal distribution package.
Skewed generalized-t maximum likelihood fits and goodness-of-fit testing.
"""

from .estimator import MarginalFitter
from .sgt import sgt, frozen_sgt
from .empirical import EmpiricalMarginal
from models import MarginalParams, MarginalFit, MarginalFitFailure

__all__ = ['MarginalFitter', 'sgt', 'frozen_sgt', 'EmpiricalMarginal',
           'MarginalParams', 'MarginalFit', 'MarginalFitFailure']
