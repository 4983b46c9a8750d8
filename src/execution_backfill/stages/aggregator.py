"""Result aggregator: error log, progress and the run summary."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from ..progress import ProgressReporter
from ..sequencer import PageDescriptor
from ..storage import ErrorLog

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Outcome counts for one run."""
    processed: int = 0
    skipped: int = 0
    saved: int = 0
    fetch_failures: int = 0
    save_failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ResultAggregator:
    """
    Final consumer of the pipeline.

    Page IDs arrive in any order. Fetch failures go to the error log, save
    failures to the application log; neither stops the run.
    """

    def __init__(self, error_log: ErrorLog, progress: Optional[ProgressReporter] = None):
        self.error_log = error_log
        self.progress = progress
        self.summary = RunSummary()

    def handle(self, page: PageDescriptor) -> None:
        self.summary.processed += 1

        if page.skipped:
            self.summary.skipped += 1
        elif page.fetch_error is not None:
            self.summary.fetch_failures += 1
            self.error_log.record(page.page_id, page.fetch_error)
        elif page.save_error is not None:
            self.summary.save_failures += 1
            logger.error(f"Page {page.page_id} was fetched but not saved: {page.save_error}")
        else:
            self.summary.saved += 1

        if self.progress is not None:
            self.progress.advance()

    async def run(self, inbox: asyncio.Queue) -> RunSummary:
        """Consume ``inbox`` until its sentinel and return the summary."""
        try:
            while True:
                page = await inbox.get()
                if page is None:
                    break
                self.handle(page)
        finally:
            if self.progress is not None:
                self.progress.finish()

        logger.info(f"Run summary: {self.summary.to_dict()}")
        return self.summary
