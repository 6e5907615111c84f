"""
Validation of return matrices handed over by the data ingestion step.
"""

import logging
import pandas as pd
import numpy as np
from typing import List, Tuple

logger = logging.getLogger(__name__)


class ReturnValidator:
    """Validates a dense matrix of percent log-returns before rolling estimation."""

    def __init__(self, max_abs_return: float = 50.0):
        """
        Args:
            max_abs_return: Daily percent log-return magnitude above which a
                value is reported as implausible
        """
        # Define reasonable bounds for data validation
        self.validation_bounds = {
            'returns': {'min': -max_abs_return, 'max': max_abs_return}
        }

    def validate_data(self, df: pd.DataFrame) -> Tuple[bool, List[str]]:
        """
        Validates the return matrix.

        Args:
            df: DataFrame with one column per asset, rows in time order

        Returns:
            Tuple of (is_valid, list_of_issues). Implausible magnitudes are
            logged but do not make the data invalid.
        """
        issues = []

        if df.shape[1] == 0:
            issues.append("Return matrix has no asset columns")
            return False, issues

        # Check asset naming
        duplicated = df.columns[df.columns.duplicated()].tolist()
        if duplicated:
            issues.append(f"Duplicate asset columns: {duplicated}")
            return False, issues

        # Check column types
        non_numeric = [col for col in df.columns if not pd.api.types.is_numeric_dtype(df[col])]
        if non_numeric:
            issues.append(f"Non-numeric asset columns: {non_numeric}")
            return False, issues

        # Check for data completeness
        for col in df.columns:
            missing_count = int(df[col].isna().sum())
            if missing_count > 0:
                issues.append(f"Column {col} has {missing_count} missing values")
            infinite_count = int(np.isinf(df[col].to_numpy(dtype=float)).sum())
            if infinite_count > 0:
                issues.append(f"Column {col} has {infinite_count} infinite values")

        # Check time ordering
        if not df.index.is_monotonic_increasing:
            issues.append("Index is not sorted in increasing time order")
        if df.index.has_duplicates:
            label = "dates" if isinstance(df.index, pd.DatetimeIndex) else "labels"
            issues.append(f"Index contains duplicate {label}")

        for col in df.columns:
            for issue in self._validate_bounds(
                df[col],
                self.validation_bounds['returns']['min'],
                self.validation_bounds['returns']['max'],
                f"{col} returns"
            ):
                logger.warning(issue)

        return len(issues) == 0, issues

    def _validate_bounds(self, series: pd.Series, min_val: float, max_val: float, name: str) -> List[str]:
        """Validates that values fall within expected bounds."""
        issues = []

        # Check for values below minimum
        below_min = series[series < min_val]
        if not below_min.empty:
            issues.append(
                f"{name}: {len(below_min)} values below minimum of {min_val} "
                f"(first occurrence at index {below_min.index[0]})"
            )

        # Check for values above maximum
        above_max = series[series > max_val]
        if not above_max.empty:
            issues.append(
                f"{name}: {len(above_max)} values above maximum of {max_val} "
                f"(first occurrence at index {above_max.index[0]})"
            )

        return issues
