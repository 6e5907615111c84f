"""
Data management package for the rolling portfolio analysis.
Handles validation of the return matrix supplied by ingestion.
"""

from .data_validator import ReturnValidator

__all__ = ['ReturnValidator']
