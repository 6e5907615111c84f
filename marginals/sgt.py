"""
Skewed generalized-t distribution.

Mean-centred and variance-adjusted parametrisation (Theodossiou 1998,
Davis' ``sgt``): with ``loc=mu`` and ``scale=sigma`` the distribution has
mean ``mu`` and standard deviation ``sigma``. ``lam`` in (-1, 1) controls
skewness, ``p`` and ``q`` the peak and tails; ``p * q > 2`` is required for
a finite variance.
"""

import numpy as np
from scipy import special, stats

from models import MarginalParams


def _moment_constants(lam, p, q):
    """Return (v, m, log B(1/p, q)) for the standardized distribution"""
    log_b1 = special.betaln(1.0 / p, q)
    ratio2 = np.exp(special.betaln(2.0 / p, q - 1.0 / p) - log_b1)
    ratio3 = np.exp(special.betaln(3.0 / p, q - 2.0 / p) - log_b1)
    v = q ** (-1.0 / p) / np.sqrt((3.0 * lam ** 2 + 1.0) * ratio3 - 4.0 * lam ** 2 * ratio2 ** 2)
    m = 2.0 * v * lam * q ** (1.0 / p) * ratio2
    return v, m, log_b1


def _standard_logpdf(x, lam, p, q):
    v, m, log_b1 = _moment_constants(lam, p, q)
    z = x + m
    s = v * (1.0 + lam * np.sign(z))
    return (np.log(p) - np.log(2.0) - np.log(v) - np.log(q) / p - log_b1
            - (1.0 / p + q) * np.log1p(np.abs(z) ** p / (q * s ** p)))


class sgt_gen(stats.rv_continuous):
    """Skewed generalized-t continuous random variable"""

    def _argcheck(self, lam, p, q):
        return (np.abs(lam) < 1) & (p > 0) & (q > 0) & (p * q > 2)

    def _logpdf(self, x, lam, p, q):
        return _standard_logpdf(x, lam, p, q)

    def _pdf(self, x, lam, p, q):
        return np.exp(_standard_logpdf(x, lam, p, q))

    def _cdf(self, x, lam, p, q):
        v, m, _ = _moment_constants(lam, p, q)
        z = x + m
        sgn = np.sign(z)
        s = v * (1.0 + lam * sgn)
        t = np.abs(z) ** p / (q * s ** p)
        with np.errstate(invalid='ignore'):
            y = np.where(np.isinf(t), 1.0, t / (1.0 + t))
        return (1.0 - lam) / 2.0 + (lam + sgn) / 2.0 * special.betainc(1.0 / p, q, y)

    def _ppf(self, u, lam, p, q):
        v, m, _ = _moment_constants(lam, p, q)
        u0 = (1.0 - lam) / 2.0
        lower = u < u0
        prob = np.where(lower, (u0 - u) * 2.0 / (1.0 - lam), (u - u0) * 2.0 / (1.0 + lam))
        prob = np.clip(prob, 0.0, 1.0)
        sgn = np.where(lower, -1.0, 1.0)
        s = v * (1.0 + lam * sgn)
        y = special.betaincinv(1.0 / p, q, prob)
        with np.errstate(divide='ignore'):
            t = y / (1.0 - y)
        return sgn * s * (q * t) ** (1.0 / p) - m

    def _stats(self, lam, p, q):
        return np.zeros_like(lam), np.ones_like(lam), None, None


sgt = sgt_gen(name='sgt')


def sgt_loglik(x: np.ndarray, mu: float, sigma: float, lam: float, p: float, q: float) -> float:
    """Log-likelihood of a sample without scipy's argument checking overhead"""
    z = (x - mu) / sigma
    return float(np.sum(_standard_logpdf(z, lam, p, q)) - len(x) * np.log(sigma))


def frozen_sgt(params: MarginalParams):
    """Frozen scipy distribution for fitted parameters"""
    return sgt(params.lam, params.p, params.q, loc=params.mu, scale=params.sigma)
