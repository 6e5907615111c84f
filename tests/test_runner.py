import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import threading
import time
import pytest
import numpy as np
import pandas as pd
from rolling.runner import RollingRunner, WindowTask
from rolling.window import WindowPipeline
from rolling.executor import SerialTaskRunner, PoolTaskRunner
from marginals.estimator import MarginalFitter
from portfolio.optimizer import PortfolioOptimizer
from config import PipelineConfig
from errors import ConfigurationError
from models import MarginalFitFailure, WindowSimulation


class StubPipeline:
    """Skips fitting and hands back the window itself as the simulated sample"""
    n_simulations = 0

    def run(self, window, rng=None):
        return WindowSimulation(
            simulated=window.copy(),
            marginals=[],
            p_values=np.full(window.shape[1], 0.5),
            warnings=[]
        )


class FlakyFitter(MarginalFitter):
    """Fails on one chosen call, counted across the whole run"""

    def __init__(self, fail_on: int, **kwargs):
        super().__init__(**kwargs)
        self.fail_on = fail_on
        self.calls = 0

    def fit(self, returns, asset=0):
        self.calls += 1
        if self.calls == self.fail_on:
            return MarginalFitFailure(asset=asset, message="injected failure")
        return super().fit(returns, asset)


class InfeasibleOptimizer(PortfolioOptimizer):
    """Return floor no portfolio can reach"""

    def optimize(self, simulated, window, next_window, min_return=None):
        return super().optimize(simulated, window, next_window, min_return=1e6)


@pytest.fixture
def returns_matrix():
    """500 x 3 multivariate-normal percent returns"""
    rng = np.random.default_rng(42)
    cov = np.array([[1.0, 0.3, 0.1],
                    [0.3, 0.8, 0.2],
                    [0.1, 0.2, 1.5]])
    return rng.multivariate_normal([0.05, 0.02, 0.03], cov, size=500)


@pytest.fixture
def returns_frame():
    """Small dated, heavy-tailed return history for real end-to-end runs"""
    rng = np.random.default_rng(7)
    cov = np.array([[1.0, 0.4], [0.4, 1.2]])
    scale = np.sqrt(4.0 / rng.chisquare(4.0, size=(70, 1)))
    values = 0.03 + rng.multivariate_normal([0.0, 0.0], cov, size=70) * scale
    index = pd.bdate_range('2020-01-01', periods=70)
    return pd.DataFrame(values, index=index, columns=['SPX', 'TLT'])


def quiet_config(**kwargs):
    kwargs.setdefault('show_progress', False)
    return PipelineConfig(**kwargs)


def test_row_count_and_order(returns_matrix):
    """One row per window start, unique and in time order"""
    runner = RollingRunner(quiet_config(window_size=100), pipeline=StubPipeline())
    table = runner.run(returns_matrix)

    assert len(table) == 500 - 100
    assert table.is_complete()
    frame = table.to_frame()
    assert list(frame.index) == list(range(400))
    assert frame.index.is_unique
    assert [row.start for row in table] == list(range(400))


def test_equal_weight_benchmark(returns_matrix):
    """Benchmark Sharpe matches a direct computation on each next window"""
    window_size = 100
    runner = RollingRunner(quiet_config(window_size=window_size), pipeline=StubPipeline())
    table = runner.run(returns_matrix)

    w = np.full(3, 1 / 3)
    expected_sharpe = []
    expected_return = []
    for i in range(500 - window_size):
        nxt = returns_matrix[i + 1:i + window_size + 1]
        ret = w @ nxt.mean(axis=0)
        expected_return.append(ret)
        expected_sharpe.append(ret / np.sqrt(w @ np.cov(nxt, rowvar=False) @ w))

    returns = table.select('returns')['returns']
    np.testing.assert_allclose(returns['benchmark_return'], expected_return, atol=1e-9)
    np.testing.assert_allclose(returns['benchmark_sharpe'], expected_sharpe, atol=1e-9)


def test_max_eigenvalue_diagnostic(returns_matrix):
    """Largest eigenvalue of the window sample covariance"""
    runner = RollingRunner(quiet_config(window_size=100), pipeline=StubPipeline())
    table = runner.run(returns_matrix)
    expected = np.linalg.eigvalsh(np.cov(returns_matrix[5:105], rowvar=False))[-1]
    assert table[5].max_eigenvalue == pytest.approx(expected)


def test_optimized_weights_satisfy_constraints(returns_matrix):
    """Every solved row is long-only, fully invested and meets the floor"""
    runner = RollingRunner(quiet_config(window_size=100), pipeline=StubPipeline())
    table = runner.run(returns_matrix)
    for row in table:
        assert np.all(row.weights >= 0)
        assert row.weights.sum() == pytest.approx(1.0, abs=1e-8)
        means = returns_matrix[row.start:row.start + 100].mean(axis=0)
        assert row.weights @ means >= means.mean() - 1e-6


def test_datetime_labels(returns_frame):
    """Rows are labelled by the date each window starts"""
    runner = RollingRunner(quiet_config(window_size=60), pipeline=StubPipeline())
    frame = runner.run(returns_frame).to_frame()
    assert list(frame.index) == list(returns_frame.index[:10])
    assert frame.index.name == 'window_start'
    assert list(frame['weights'].columns) == ['SPX', 'TLT']


def test_asset_names_override(returns_matrix):
    runner = RollingRunner(quiet_config(window_size=490), pipeline=StubPipeline())
    frame = runner.run(returns_matrix, asset_names=['a', 'b', 'c']).to_frame()
    assert list(frame['pvalues'].columns) == ['a', 'b', 'c']


def test_injected_marginal_failure_is_isolated(returns_frame):
    """One failed marginal fit only adds a warning to its own window"""
    config = quiet_config(window_size=60, n_simulations=2000)
    # Window 0 makes calls 1-2, window 1 calls 3-4; call 4 is asset 1 of window 1
    fitter = FlakyFitter(fail_on=4)
    pipeline = WindowPipeline(fitter=fitter, n_simulations=2000)
    runner = RollingRunner(config, pipeline=pipeline, task_runner=SerialTaskRunner())
    table = runner.run(returns_frame)

    assert len(table) == 10
    failed = table[1]
    assert any("asset 1: marginal fit failed" in w for w in failed.warnings)
    assert np.isnan(failed.p_values[1])
    assert np.all(np.isfinite(failed.weights))
    for row in table:
        assert row.weights.sum() == pytest.approx(1.0, abs=1e-8)
        if row.start != 1:
            assert not any("injected failure" in w for w in row.warnings)
        assert np.all((row.p_values[np.isfinite(row.p_values)] >= 0)
                      & (row.p_values[np.isfinite(row.p_values)] <= 1))


def test_failed_optimization_keeps_benchmark(returns_matrix):
    """An infeasible QP gives missing weights and a warning, benchmark still filled"""
    runner = RollingRunner(quiet_config(window_size=490), pipeline=StubPipeline(),
                           optimizer=InfeasibleOptimizer())
    table = runner.run(returns_matrix)
    for row in table:
        assert np.all(np.isnan(row.weights))
        assert np.isnan(row.optimized_return)
        assert np.isfinite(row.benchmark_return)
        assert np.isfinite(row.benchmark_sharpe)
        assert any(w.startswith("optimization failed") for w in row.warnings)
    assert table.summary()['n_solved'] == 0


def test_task_exception_becomes_missing_row(returns_matrix):
    """An exception inside one window is recorded as that window's warning"""

    class BrokenPipeline(StubPipeline):
        def run(self, window, rng=None):
            raise FloatingPointError("boom")

    runner = RollingRunner(quiet_config(window_size=495), pipeline=BrokenPipeline())
    table = runner.run(returns_matrix)
    assert len(table) == 5
    for row in table:
        assert np.all(np.isnan(row.weights))
        assert row.warnings == ("window computation failed: FloatingPointError: boom",)


@pytest.mark.parametrize("window_size", [500, 600])
def test_window_not_smaller_than_series(returns_matrix, window_size):
    runner = RollingRunner(quiet_config(window_size=window_size), pipeline=StubPipeline())
    with pytest.raises(ConfigurationError, match="Insufficient data"):
        runner.run(returns_matrix)


def test_zero_assets_rejected():
    runner = RollingRunner(quiet_config(window_size=10), pipeline=StubPipeline())
    with pytest.raises(ConfigurationError):
        runner.run(np.empty((50, 0)))


def test_missing_values_rejected(returns_matrix):
    data = returns_matrix.copy()
    data[10, 1] = np.nan
    runner = RollingRunner(quiet_config(window_size=100), pipeline=StubPipeline())
    with pytest.raises(ConfigurationError, match="missing values"):
        runner.run(data)


def test_asset_count_mismatch_rejected(returns_matrix):
    runner = RollingRunner(quiet_config(window_size=100, n_assets=4), pipeline=StubPipeline())
    with pytest.raises(ConfigurationError):
        runner.run(returns_matrix)


def test_asset_names_length_rejected(returns_matrix):
    runner = RollingRunner(quiet_config(window_size=100), pipeline=StubPipeline())
    with pytest.raises(ConfigurationError):
        runner.run(returns_matrix, asset_names=['a', 'b'])


def test_cancelled_run_fills_rows(returns_matrix):
    """Cancelling before the first window still yields a full table"""
    cancel = threading.Event()
    cancel.set()
    runner = RollingRunner(quiet_config(window_size=480), pipeline=StubPipeline())
    table = runner.run(returns_matrix, cancel_event=cancel)

    assert len(table) == 20
    assert table.is_complete()
    for row in table:
        assert row.warnings == ("window not computed: run cancelled or timed out",)
        assert np.all(np.isnan(row.weights))


class SlowPipeline(StubPipeline):
    """Stub pipeline that takes a fixed time per window"""

    def __init__(self, delay: float):
        self.delay = delay

    def run(self, window, rng=None):
        time.sleep(self.delay)
        return super().run(window, rng)


@pytest.mark.parametrize("task_runner", [
    PoolTaskRunner(max_workers=2, use_processes=False),
    SerialTaskRunner(),
])
def test_timeout_mid_run_keeps_finished_rows(returns_matrix, task_runner):
    """Windows finished before the deadline keep their results, the rest are marked"""
    runner = RollingRunner(quiet_config(window_size=480, timeout=1.0),
                           pipeline=SlowPipeline(delay=0.3), task_runner=task_runner)
    started = time.monotonic()
    table = runner.run(returns_matrix)
    elapsed = time.monotonic() - started

    assert elapsed < 20 * 0.3
    assert len(table) == 20
    assert table.is_complete()
    computed = [row for row in table if np.all(np.isfinite(row.weights))]
    skipped = [row for row in table if not np.all(np.isfinite(row.weights))]
    assert computed
    assert skipped
    for row in computed:
        assert row.weights.sum() == pytest.approx(1.0, abs=1e-8)
        assert "window not computed: run cancelled or timed out" not in row.warnings
    for row in skipped:
        assert row.warnings == ("window not computed: run cancelled or timed out",)


def test_window_rng_independent_of_order():
    """Each window's stream depends only on the seed and its start"""
    task = WindowTask(StubPipeline(), PortfolioOptimizer(), window_size=10, random_seed=3)
    a = task.rng_for(4).random(5)
    task.rng_for(9).random(5)
    b = task.rng_for(4).random(5)
    np.testing.assert_array_equal(a, b)
    assert not np.array_equal(a, task.rng_for(5).random(5))


def test_thread_pool_matches_serial(returns_frame):
    """Deterministic per-window seeds make results independent of scheduling"""
    config = quiet_config(window_size=60, n_simulations=2000)
    serial = RollingRunner(config, task_runner=SerialTaskRunner()).run(returns_frame)
    pooled = RollingRunner(
        config, task_runner=PoolTaskRunner(max_workers=3, use_processes=False)
    ).run(returns_frame)

    for a, b in zip(serial, pooled):
        assert a.label == b.label
        np.testing.assert_allclose(a.weights, b.weights, atol=1e-8)
        np.testing.assert_allclose(a.p_values, b.p_values)


def test_process_pool_run(returns_frame):
    """Windows run in worker processes and land in their own slots"""
    config = quiet_config(window_size=66, n_simulations=500, n_workers=2, use_processes=True)
    runner = RollingRunner(config)
    assert isinstance(runner.task_runner, PoolTaskRunner)
    table = runner.run(returns_frame)

    assert len(table) == 4
    assert [row.start for row in table] == [0, 1, 2, 3]
    for row in table:
        assert row.weights.sum() == pytest.approx(1.0, abs=1e-8)


def test_end_to_end_summary(returns_frame):
    """Full pipeline on real fits produces a usable summary"""
    runner = RollingRunner(quiet_config(window_size=60, n_simulations=2000))
    table = runner.run(returns_frame)
    summary = table.summary()

    assert summary['n_windows'] == 10
    assert summary['n_solved'] == 10
    assert np.isfinite(summary['mean_optimized_sharpe'])
    assert np.isfinite(summary['mean_benchmark_sharpe'])
    p_values = table.select('pvalues')['pvalues'].to_numpy()
    finite = p_values[np.isfinite(p_values)]
    assert np.all((finite >= 0) & (finite <= 1))


if __name__ == '__main__':
    pytest.main([__file__])
