from typing import Optional
import logging
from tqdm import tqdm
import time


class ProgressMonitor:
    """Progress bar over completed windows with periodic ETA log lines"""

    def __init__(self, total: int, desc: str = "Processing",
                 logger: Optional[logging.Logger] = None,
                 disable: bool = False,
                 log_every: int = 100):
        self.logger = logger or logging.getLogger('progress')
        self.pbar = tqdm(total=total, desc=desc, disable=disable, unit="window")
        self.total = total
        self.current = 0
        self.flagged = 0
        self.log_every = log_every
        self.start_time = time.time()
        self.description = desc

    def __enter__(self) -> 'ProgressMonitor':
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close()
        return False

    def update(self, n: int = 1, flagged: bool = False):
        """Advance by n completed items; flagged items carry warnings"""
        self.current += n
        if flagged:
            self.flagged += n
            self.pbar.set_postfix(warned=self.flagged, refresh=False)
        self.pbar.update(n)

        if self.log_every and self.current % self.log_every == 0:
            elapsed = time.time() - self.start_time
            progress = self.current / self.total if self.total else 1.0
            eta = (elapsed / progress) * (1 - progress) if progress > 0 else 0

            self.logger.info(
                f"Progress: {self.current}/{self.total} "
                f"({progress*100:.1f}%), {self.flagged} with warnings - "
                f"Elapsed: {elapsed/60:.1f}m - "
                f"ETA: {eta/60:.1f}m"
            )

    def close(self):
        self.pbar.close()
        total_time = time.time() - self.start_time
        self.logger.info(
            f"Completed {self.description} ({self.current}/{self.total}) in {total_time:.1f} seconds"
        )
