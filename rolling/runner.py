from typing import List, Optional, Sequence, Union
from dataclasses import replace
import logging
import threading
import time
import numpy as np
import pandas as pd

from config import PipelineConfig
from errors import ConfigurationError
from models import WindowResult
from data_manager.data_validator import ReturnValidator
from portfolio.optimizer import PortfolioOptimizer, portfolio_performance
from utils.progress import ProgressMonitor
from .window import WindowPipeline
from .executor import SerialTaskRunner, PoolTaskRunner
from .results import ResultTable

logger = logging.getLogger(__name__)


class WindowTask:
    """Computes one result row from a read-only return matrix and a window start"""

    def __init__(self, pipeline: WindowPipeline, optimizer: PortfolioOptimizer,
                 window_size: int, random_seed: int):
        self.pipeline = pipeline
        self.optimizer = optimizer
        self.window_size = window_size
        self.random_seed = random_seed

    def rng_for(self, start: int) -> np.random.Generator:
        """Independent stream per window, identical whatever order windows run in"""
        return np.random.default_rng(np.random.SeedSequence(self.random_seed, spawn_key=(start,)))

    def __call__(self, returns: np.ndarray, start: int) -> WindowResult:
        window = returns[start:start + self.window_size]
        next_window = returns[start + 1:start + self.window_size + 1]
        n_assets = returns.shape[1]
        warnings: List[str] = []

        try:
            benchmark = np.full(n_assets, 1.0 / n_assets)
            benchmark_return, benchmark_variance, benchmark_sharpe = portfolio_performance(
                benchmark, next_window
            )
            if not np.isfinite(benchmark_sharpe):
                warnings.append(
                    f"equal-weight Sharpe undefined: next-window variance {benchmark_variance:.3g}"
                )

            covariance = np.atleast_2d(np.cov(window, rowvar=False))
            max_eigenvalue = float(np.linalg.eigvalsh(covariance)[-1])

            simulation = self.pipeline.run(window, self.rng_for(start))
            warnings.extend(simulation.warnings)
            p_values = simulation.p_values

            outcome = self.optimizer.optimize(simulation.simulated, window, next_window)
            # Release the Monte Carlo sample before the row is handed back
            del simulation
            warnings.extend(outcome.warnings)
            if outcome.solved:
                logger.debug(f"Window {start} weights: {np.round(outcome.weights, 4).tolist()}")

        except Exception as e:
            logger.error(f"Window starting at row {start} failed: {str(e)}")
            warnings.append(f"window computation failed: {type(e).__name__}: {str(e)}")
            return WindowResult.missing(start, start, n_assets, tuple(warnings))

        return WindowResult(
            start=start,
            label=start,
            weights=outcome.weights,
            optimized_return=outcome.expected_return,
            optimized_sharpe=outcome.sharpe,
            benchmark_return=benchmark_return,
            benchmark_sharpe=benchmark_sharpe,
            max_eigenvalue=max_eigenvalue,
            p_values=p_values,
            warnings=tuple(warnings)
        )


class RollingRunner:
    """Slides a fixed window over the return history and collects one result row per window"""

    def __init__(self, config: Optional[PipelineConfig] = None,
                 pipeline: Optional[WindowPipeline] = None,
                 optimizer: Optional[PortfolioOptimizer] = None,
                 task_runner=None):
        """
        Initialize runner

        Args:
            config: Pipeline configuration, defaults to PipelineConfig()
            pipeline: Window fit-and-simulate step, built from config if None
            optimizer: QP step, built from config if None
            task_runner: Execution strategy; serial for one worker, a pool otherwise
        """
        self.config = config or PipelineConfig()
        self.config.validate()
        self.pipeline = pipeline or WindowPipeline.from_config(self.config)
        self.optimizer = optimizer or PortfolioOptimizer(solver=self.config.solver)
        if task_runner is None:
            if self.config.n_workers > 1:
                task_runner = PoolTaskRunner(
                    max_workers=self.config.n_workers,
                    use_processes=self.config.use_processes
                )
            else:
                task_runner = SerialTaskRunner()
        self.task_runner = task_runner
        self.validator = ReturnValidator()
        self.logger = logging.getLogger('rolling.runner')

    def window_starts(self, n_rows: int) -> range:
        """Window i covers rows [i, i + W) and is evaluated on [i + 1, i + W + 1)"""
        return range(0, n_rows - self.config.window_size)

    def _prepare(self, returns: Union[pd.DataFrame, np.ndarray],
                 asset_names: Optional[Sequence[str]]):
        if isinstance(returns, pd.DataFrame):
            frame = returns
        else:
            values = np.asarray(returns, dtype=float)
            if values.ndim != 2:
                raise ConfigurationError(f"Return matrix must be 2-D, got shape {values.shape}")
            frame = pd.DataFrame(values)

        if asset_names is not None:
            if len(asset_names) != frame.shape[1]:
                raise ConfigurationError(
                    f"{len(asset_names)} asset names given for {frame.shape[1]} columns"
                )
            frame = frame.set_axis(list(asset_names), axis=1)

        self.config.check_data(frame.shape[0], frame.shape[1])

        is_valid, issues = self.validator.validate_data(frame)
        if not is_valid:
            raise ConfigurationError("Invalid return matrix: " + "; ".join(issues))

        # Allocated once and shared read-only by every window task
        matrix = np.array(frame.to_numpy(dtype=float), dtype=np.float64, copy=True)
        matrix.setflags(write=False)
        return matrix, list(frame.index), [str(c) for c in frame.columns]

    def run(self, returns: Union[pd.DataFrame, np.ndarray],
            asset_names: Optional[Sequence[str]] = None,
            cancel_event: Optional[threading.Event] = None) -> ResultTable:
        """
        Run every rolling window.

        Args:
            returns: Percent log-returns, rows in time order, one column per asset
            asset_names: Optional column names overriding the frame's columns
            cancel_event: Setting this event stops dispatching new windows

        Returns:
            ResultTable with exactly n_rows - window_size rows in time order

        Raises:
            ConfigurationError: before any window runs, if the data or
                configuration cannot support a rolling run
        """
        matrix, index_labels, names = self._prepare(returns, asset_names)
        n_rows, n_assets = matrix.shape
        starts = self.window_starts(n_rows)

        table = ResultTable(labels=[index_labels[s] for s in starts], asset_names=names)
        task = WindowTask(
            pipeline=self.pipeline,
            optimizer=self.optimizer,
            window_size=self.config.window_size,
            random_seed=self.config.random_seed
        )

        self.logger.info(
            f"\nRolling run setup:"
            f"\n  Observations: {n_rows}"
            f"\n  Assets: {n_assets} ({', '.join(names)})"
            f"\n  Window size: {self.config.window_size}"
            f"\n  Number of windows: {len(starts)}"
            f"\n  Simulations per window: {self.pipeline.n_simulations}"
            f"\n  Runner: {type(self.task_runner).__name__}"
        )

        deadline = None
        if self.config.timeout is not None:
            deadline = time.monotonic() + self.config.timeout

        with ProgressMonitor(total=len(starts), desc="Rolling windows", logger=self.logger,
                             disable=not self.config.show_progress) as monitor:
            for start, result in self.task_runner.run(task, matrix, starts, deadline, cancel_event):
                if isinstance(result, Exception):
                    self.logger.error(f"Window task {start} raised: {str(result)}")
                    result = WindowResult.missing(
                        start, start, n_assets,
                        (f"window computation failed: {type(result).__name__}: {str(result)}",)
                    )
                table.write(start, replace(result, label=index_labels[start]))
                monitor.update(1, flagged=bool(result.warnings))

        if table.n_written < len(table):
            missing = table.missing_positions()
            self.logger.warning(f"{len(missing)} windows not computed before stop")
            for position in missing:
                table.write(position, WindowResult.missing(
                    position, index_labels[position], n_assets,
                    ("window not computed: run cancelled or timed out",)
                ))

        n_warned = sum(1 for row in table if row.warnings)
        self.logger.info(f"Rolling run finished: {len(table)} windows, {n_warned} with warnings")
        return table
