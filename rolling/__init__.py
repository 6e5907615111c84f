"""
Rolling-window estimation package.
Per-window copula simulation, task execution and result assembly.
"""

from .window import WindowPipeline
from .runner import RollingRunner, WindowTask
from .executor import SerialTaskRunner, PoolTaskRunner
from .results import ResultTable

__all__ = ['WindowPipeline', 'RollingRunner', 'WindowTask',
           'SerialTaskRunner', 'PoolTaskRunner', 'ResultTable']
