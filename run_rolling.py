#!/usr/bin/env python
"""
Rolling copula-simulated portfolio analysis.
Loads a percent log-return matrix, runs every rolling window and reports
optimized versus equal-weight out-of-sample performance.
"""
import sys
import argparse
from pathlib import Path
import logging
from datetime import datetime
import pandas as pd
from typing import Optional, Sequence
import time
import psutil
import traceback

# Add project root to path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from config import PipelineConfig
from rolling.runner import RollingRunner
from rolling.results import ResultTable


class PerformanceMonitor:
    """Stage timings plus resident and peak memory of this process and its workers"""
    def __init__(self):
        self.process = psutil.Process()
        self.start_time = time.time()
        self.last_checkpoint = self.start_time
        self.peak_memory = 0.0
        self.checkpoints = {}

    def _memory_mb(self) -> float:
        rss = self.process.memory_info().rss
        for child in self.process.children(recursive=True):
            try:
                rss += child.memory_info().rss
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return rss / 1024 / 1024

    def checkpoint(self, name: str, items: Optional[int] = None):
        """Record a stage; items gives a throughput figure for the stage"""
        now = time.time()
        memory = self._memory_mb()
        self.peak_memory = max(self.peak_memory, memory)
        self.checkpoints[name] = {
            'duration': now - self.last_checkpoint,
            'memory': memory,
            'items': items
        }
        self.last_checkpoint = now

    def report(self) -> str:
        total_time = time.time() - self.start_time
        report = ["Performance Report:", "-----------------"]

        for name, stage in self.checkpoints.items():
            report.append(f"{name}:")
            report.append(f"  Duration: {stage['duration']:.2f} seconds")
            if stage['items'] and stage['duration'] > 0:
                report.append(f"  Throughput: {stage['items'] / stage['duration']:.2f} windows/second")
            report.append(f"  Memory: {stage['memory']:.1f} MB")

        report.append("-----------------")
        report.append(f"Peak Memory: {self.peak_memory:.1f} MB")
        report.append(f"Total Time: {total_time:.2f} seconds")
        return "\n".join(report)


def setup_logging(output_dir: Path) -> logging.Logger:
    """
    Configure logging with both file and console handlers

    Parameters:
    -----------
    output_dir : Path
        Directory for log file

    Returns:
    --------
    logging.Logger
        Configured logger
    """
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"rolling_analysis_{timestamp}.log"

    # Handlers go on the root logger so package loggers are captured too
    root = logging.getLogger()
    root.setLevel(logging.INFO)

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        logging.Formatter('%(message)s')
    )

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    return logging.getLogger("rolling_analysis")


def load_returns(data_file: Path, logger: logging.Logger) -> pd.DataFrame:
    """Load a CSV of percent log-returns, first column holding the dates"""
    logger.info(f"Reading returns from: {data_file}")
    try:
        df = pd.read_csv(data_file, index_col=0, parse_dates=True)
        df = df.sort_index()

        n_before = len(df)
        df = df.dropna(how='any')
        if len(df) < n_before:
            logger.warning(f"Dropped {n_before - len(df)} rows with missing asset returns")

        logger.info(f"Loaded {len(df)} rows for assets {df.columns.tolist()}")
        logger.info(f"Date range: {df.index[0]} to {df.index[-1]}")
        return df

    except Exception as e:
        logger.error(f"Error loading data: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    defaults = PipelineConfig()
    parser = argparse.ArgumentParser(description="Rolling copula portfolio optimization")
    parser.add_argument('returns_csv', type=Path, help="CSV of percent log-returns, dates in first column")
    parser.add_argument('--output-dir', type=Path, default=Path('results'))
    parser.add_argument('--window-size', type=int, default=defaults.window_size)
    parser.add_argument('--n-simulations', type=int, default=defaults.n_simulations)
    parser.add_argument('--workers', type=int, default=defaults.n_workers)
    parser.add_argument('--marginal-workers', type=int, default=defaults.marginal_workers)
    parser.add_argument('--threads', action='store_true', help="Use a thread pool instead of processes")
    parser.add_argument('--solver', default=defaults.solver)
    parser.add_argument('--seed', type=int, default=defaults.random_seed)
    parser.add_argument('--timeout', type=float, default=None, help="Global timeout in seconds")
    parser.add_argument('--no-progress', action='store_true')
    return parser.parse_args(argv)


def log_summary(table: ResultTable, logger: logging.Logger) -> None:
    summary = table.summary()
    logger.info(
        f"\nRolling analysis summary:"
        f"\n  Windows: {summary['n_windows']} ({summary['n_solved']} solved, "
        f"{summary['n_with_warnings']} with warnings)"
        f"\n  Optimized   mean return {summary['mean_optimized_return']:.4f}, "
        f"mean Sharpe {summary['mean_optimized_sharpe']:.4f}"
        f"\n  Equal-weight mean return {summary['mean_benchmark_return']:.4f}, "
        f"mean Sharpe {summary['mean_benchmark_sharpe']:.4f}"
        f"\n  Mean largest covariance eigenvalue: {summary['mean_max_eigenvalue']:.4f}"
    )


def main(argv: Optional[Sequence[str]] = None) -> ResultTable:
    """Main entry point with configuration and setup"""
    args = parse_args(argv)
    args.output_dir.mkdir(parents=True, exist_ok=True)
    logger = setup_logging(args.output_dir)
    monitor = PerformanceMonitor()

    try:
        logger.info("Starting rolling analysis...")
        returns = load_returns(args.returns_csv, logger)
        monitor.checkpoint('load')

        config = PipelineConfig(
            window_size=args.window_size,
            n_simulations=args.n_simulations,
            n_workers=args.workers,
            use_processes=not args.threads,
            marginal_workers=args.marginal_workers,
            solver=args.solver,
            random_seed=args.seed,
            timeout=args.timeout,
            show_progress=not args.no_progress
        )
        logger.info(f"Configuration: {config.to_dict()}")
        runner = RollingRunner(config=config)
        table = runner.run(returns)
        monitor.checkpoint('rolling windows', items=len(table))

        log_summary(table, logger)
        logger.info(monitor.report())
        return table

    except Exception as e:
        logger.error(f"Rolling analysis failed: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


if __name__ == '__main__':
    main()
