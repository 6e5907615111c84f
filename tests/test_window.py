import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from rolling.window import WindowPipeline
from marginals.estimator import MarginalFitter
from marginals.empirical import EmpiricalMarginal
from copula.checkerboard import CheckerboardCopula
from config import PipelineConfig


@pytest.fixture
def window():
    """Window of 3 correlated, heavy-tailed asset returns"""
    rng = np.random.default_rng(42)
    cov = np.array([[1.0, 0.5, 0.2],
                    [0.5, 1.5, 0.3],
                    [0.2, 0.3, 0.8]])
    z = rng.multivariate_normal(np.zeros(3), cov, size=200)
    scale = np.sqrt(5.0 / rng.chisquare(5.0, size=(200, 1)))
    return 0.05 + z * scale


def test_simulation_shape_and_outputs(window):
    """Pipeline returns a full simulated sample plus diagnostics"""
    pipeline = WindowPipeline(n_simulations=5000)
    result = pipeline.run(window, np.random.default_rng(0))

    assert result.simulated.shape == (5000, 3)
    assert np.all(np.isfinite(result.simulated))
    assert isinstance(result.copula, CheckerboardCopula)
    assert len(result.marginals) == 3
    assert result.p_values.shape == (3,)
    assert np.all((result.p_values >= 0) & (result.p_values <= 1))


def test_simulated_moments_track_window(window):
    """Simulated means and correlations are close to the window's"""
    pipeline = WindowPipeline(n_simulations=50_000)
    simulated = pipeline.run(window, np.random.default_rng(1)).simulated

    np.testing.assert_allclose(simulated.mean(axis=0), window.mean(axis=0), atol=0.1)
    sim_corr = np.corrcoef(simulated, rowvar=False)
    win_corr = np.corrcoef(window, rowvar=False)
    np.testing.assert_allclose(sim_corr, win_corr, atol=0.1)


def test_same_rng_seed_is_deterministic(window):
    pipeline = WindowPipeline(n_simulations=1000)
    a = pipeline.run(window, np.random.default_rng(5)).simulated
    b = pipeline.run(window, np.random.default_rng(5)).simulated
    np.testing.assert_array_equal(a, b)


def test_threaded_marginal_fits_match_serial(window):
    """Fan-out over assets joins results by asset index"""
    serial = WindowPipeline(n_simulations=10).fit_marginals(window)
    threaded = WindowPipeline(n_simulations=10, marginal_workers=3).fit_marginals(window)
    assert [f.asset for f in threaded] == [0, 1, 2]
    for a, b in zip(serial, threaded):
        assert a.params == b.params


def test_failed_marginal_uses_empirical_fallback(window):
    """A failed asset is simulated from its empirical marginal with a warning"""
    window = window.copy()
    window[:, 1] = 0.4
    pipeline = WindowPipeline(n_simulations=2000)
    result = pipeline.run(window, np.random.default_rng(0))

    assert isinstance(result.marginals[1], EmpiricalMarginal)
    assert np.isnan(result.p_values[1])
    assert np.isfinite(result.p_values[0]) and np.isfinite(result.p_values[2])
    assert any("asset 1: marginal fit failed" in w for w in result.warnings)
    np.testing.assert_allclose(result.simulated[:, 1], 0.4)


def test_from_config():
    config = PipelineConfig(n_simulations=1234, marginal_workers=2, start_q=3.0)
    pipeline = WindowPipeline.from_config(config)
    assert pipeline.n_simulations == 1234
    assert pipeline.marginal_workers == 2
    assert isinstance(pipeline.fitter, MarginalFitter)
    assert pipeline.fitter.start_q == 3.0


if __name__ == '__main__':
    pytest.main([__file__])
