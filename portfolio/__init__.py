"""Portfolio construction and out-of-sample evaluation"""

from .optimizer import PortfolioOptimizer, portfolio_performance

__all__ = ['PortfolioOptimizer', 'portfolio_performance']
