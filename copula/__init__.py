"""Nonparametric copula models"""

from .checkerboard import CheckerboardCopula

__all__ = ['CheckerboardCopula']
