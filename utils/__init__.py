"""Utility functions and classes for the rolling analysis"""

from .progress import ProgressMonitor

__all__ = ['ProgressMonitor']
