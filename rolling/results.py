"""Ordered, write-once table of per-window results."""

from typing import Dict, Hashable, List, Optional, Sequence
import threading
import pandas as pd

from models import WindowResult

COLUMN_GROUPS = ('weights', 'returns', 'diagnostics', 'pvalues', 'warnings')


class ResultTable:
    """Pre-sized table with one slot per rolling window, each written exactly once"""

    def __init__(self, labels: Sequence[Hashable], asset_names: Sequence[str]):
        self.labels = list(labels)
        self.asset_names = [str(name) for name in asset_names]
        self._slots: List[Optional[WindowResult]] = [None] * len(self.labels)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, position: int) -> Optional[WindowResult]:
        return self._slots[position]

    def __iter__(self):
        return iter(self._slots)

    @property
    def n_written(self) -> int:
        return sum(slot is not None for slot in self._slots)

    def is_complete(self) -> bool:
        return all(slot is not None for slot in self._slots)

    def write(self, position: int, result: WindowResult) -> None:
        """Store a row; a slot may only be written once"""
        with self._lock:
            if self._slots[position] is not None:
                raise ValueError(f"Result slot {position} has already been written")
            if len(result.weights) != len(self.asset_names):
                raise ValueError(
                    f"Result has {len(result.weights)} weights, table has {len(self.asset_names)} assets"
                )
            self._slots[position] = result

    def missing_positions(self) -> List[int]:
        return [i for i, slot in enumerate(self._slots) if slot is None]

    def to_frame(self) -> pd.DataFrame:
        """
        Results as a DataFrame indexed by window start, with two-level columns.

        Top-level groups: 'weights' and 'pvalues' (one column per asset),
        'returns' (optimized and equal-weight return and Sharpe),
        'diagnostics' (largest covariance eigenvalue, warning count) and
        'warnings' (the warning messages of each window).
        """
        if not self.is_complete():
            raise ValueError(f"Result table incomplete: slots {self.missing_positions()} not written")

        records = []
        for row in self._slots:
            record: Dict[tuple, object] = {}
            for name, weight in zip(self.asset_names, row.weights):
                record[('weights', name)] = weight
            record[('returns', 'optimized_return')] = row.optimized_return
            record[('returns', 'optimized_sharpe')] = row.optimized_sharpe
            record[('returns', 'benchmark_return')] = row.benchmark_return
            record[('returns', 'benchmark_sharpe')] = row.benchmark_sharpe
            record[('diagnostics', 'max_eigenvalue')] = row.max_eigenvalue
            record[('diagnostics', 'n_warnings')] = len(row.warnings)
            for name, p_value in zip(self.asset_names, row.p_values):
                record[('pvalues', name)] = p_value
            record[('warnings', 'messages')] = list(row.warnings)
            records.append(record)

        frame = pd.DataFrame.from_records(records, index=pd.Index(self.labels, name='window_start'))
        frame.columns = pd.MultiIndex.from_tuples(frame.columns, names=['group', 'field'])
        return frame

    def select(self, *groups: str) -> pd.DataFrame:
        """Column groups of the result frame, e.g. select('weights', 'returns')"""
        unknown = [g for g in groups if g not in COLUMN_GROUPS]
        if unknown:
            raise KeyError(f"Unknown column groups {unknown}; expected any of {COLUMN_GROUPS}")
        frame = self.to_frame()
        return frame.loc[:, list(groups)]

    def summary(self) -> Dict[str, float]:
        """Average out-of-sample performance of optimized vs equal-weight portfolios"""
        returns = self.select('returns')['returns']
        diagnostics = self.select('diagnostics')['diagnostics']
        return {
            'n_windows': len(self),
            'n_solved': int(returns['optimized_return'].notna().sum()),
            'n_with_warnings': int((diagnostics['n_warnings'] > 0).sum()),
            'mean_optimized_return': float(returns['optimized_return'].mean()),
            'mean_optimized_sharpe': float(returns['optimized_sharpe'].mean()),
            'mean_benchmark_return': float(returns['benchmark_return'].mean()),
            'mean_benchmark_sharpe': float(returns['benchmark_sharpe'].mean()),
            'mean_max_eigenvalue': float(diagnostics['max_eigenvalue'].mean())
        }
