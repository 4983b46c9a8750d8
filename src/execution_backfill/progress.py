"""Lazily started progress bar for a backfill run."""

import logging
from typing import Optional

from tqdm import tqdm

logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Progress bar that only appears once the first page needs downloading.

    Pages already on disk before that point are not counted, so the total is
    estimated from the first missing page's ID.
    """

    def __init__(self, page_size: int, enabled: bool = True):
        self.page_size = page_size
        self.enabled = enabled
        self.bar: Optional[tqdm] = None
        self.total: Optional[int] = None
        self.count = 0

    @property
    def started(self) -> bool:
        return self.total is not None

    def start(self, page_id: int) -> None:
        """Start the bar for a walk beginning at ``page_id``; later calls are no-ops."""
        if self.started:
            return
        self.total = max(1, page_id // self.page_size)
        logger.info(f"First missing page {page_id}, about {self.total} pages to go")
        if self.enabled:
            self.bar = tqdm(total=self.total, unit="page", dynamic_ncols=True)

    def advance(self, n: int = 1) -> None:
        if not self.started:
            return
        self.count += n
        if self.bar is not None:
            self.bar.update(n)

    def finish(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None
        if self.started:
            logger.info("Done!")
