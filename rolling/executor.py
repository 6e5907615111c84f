"""
Execution strategies for independent window tasks.

A task is a callable ``task(returns, start)``. Runners yield
``(start, result)`` pairs in completion order; ``result`` is the task's
return value or the exception it raised. Starts not reached before the
deadline or a cancellation request are simply not yielded.
"""

from typing import Callable, Iterable, Iterator, Optional, Tuple
from concurrent.futures import (ProcessPoolExecutor, ThreadPoolExecutor,
                                FIRST_COMPLETED, wait)
import logging
import threading
import time
import numpy as np

logger = logging.getLogger(__name__)

# Poll interval used to notice cancellation while waiting on workers
_POLL_SECONDS = 0.25

# Per-process copy of the return matrix and task, set by the pool initializer
_WORKER_STATE = {}


def _init_worker(returns: np.ndarray, task: Callable) -> None:
    _WORKER_STATE['returns'] = returns
    _WORKER_STATE['task'] = task


def _run_in_worker(start: int):
    return _WORKER_STATE['task'](_WORKER_STATE['returns'], start)


def _stop_requested(deadline: Optional[float], cancel_event: Optional[threading.Event]) -> bool:
    if cancel_event is not None and cancel_event.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline


class SerialTaskRunner:
    """Runs window tasks one after another in the calling process"""

    def run(self, task: Callable, returns: np.ndarray, starts: Iterable[int],
            deadline: Optional[float] = None,
            cancel_event: Optional[threading.Event] = None) -> Iterator[Tuple[int, object]]:
        for start in starts:
            if _stop_requested(deadline, cancel_event):
                logger.warning(f"Stopping before window {start}: deadline reached or run cancelled")
                return
            try:
                result = task(returns, start)
            except Exception as e:
                result = e
            yield start, result


class PoolTaskRunner:
    """Runs window tasks on a bounded pool of worker processes or threads"""

    def __init__(self, max_workers: Optional[int] = None, use_processes: bool = True):
        """
        Args:
            max_workers: Pool size; every task holds one Monte Carlo sample,
                so this bounds peak memory as well as CPU use
            use_processes: Process pool when True, thread pool otherwise
        """
        self.max_workers = max_workers
        self.use_processes = use_processes

    def _submit_all(self, executor, task, returns, starts):
        if self.use_processes:
            return {executor.submit(_run_in_worker, start): start for start in starts}
        return {executor.submit(task, returns, start): start for start in starts}

    def run(self, task: Callable, returns: np.ndarray, starts: Iterable[int],
            deadline: Optional[float] = None,
            cancel_event: Optional[threading.Event] = None) -> Iterator[Tuple[int, object]]:
        if self.use_processes:
            executor = ProcessPoolExecutor(
                max_workers=self.max_workers,
                initializer=_init_worker,
                initargs=(returns, task)
            )
        else:
            executor = ThreadPoolExecutor(max_workers=self.max_workers)

        stopped = False
        try:
            futures = self._submit_all(executor, task, returns, starts)
            pending = set(futures)
            while pending:
                if _stop_requested(deadline, cancel_event):
                    stopped = True
                    logger.warning(
                        f"Stopping with {len(pending)} windows outstanding: deadline reached or run cancelled"
                    )
                    break

                timeout = _POLL_SECONDS
                if deadline is not None:
                    timeout = max(0.0, min(timeout, deadline - time.monotonic()))
                done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)

                for future in done:
                    try:
                        result = future.result()
                    except Exception as e:
                        result = e
                    yield futures[future], result
        finally:
            # In-flight tasks are abandoned on stop; their rows are never written
            executor.shutdown(wait=not stopped, cancel_futures=True)
