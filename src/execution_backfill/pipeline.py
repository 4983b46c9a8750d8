"""Extraction pipeline: sequencer -> download -> persistence -> aggregator."""

import asyncio
import logging
from typing import Optional

from .clients.client_pool import ClientPool
from .progress import ProgressReporter
from .sequencer import DEFAULT_BASE_URL, DEFAULT_PAGE_SIZE, produce_pages
from .stages import DownloadStage, PersistenceStage, ResultAggregator, RunSummary
from .storage import ErrorLog, PageStore

logger = logging.getLogger(__name__)


class ExtractionPipeline:
    """
    Runs one backfill pass over the page sequence.

    Stages are connected by bounded queues so a slow stage stalls the one
    upstream of it. Each stage ends its output with a ``None`` sentinel once
    every task it spawned has finished.
    """

    def __init__(
        self,
        pool: ClientPool,
        store: PageStore,
        error_log: ErrorLog,
        product: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        base_url: str = DEFAULT_BASE_URL,
        request_timeout: float = 30.0,
        save_concurrency: int = 100,
        queue_size: int = 5,
        progress: Optional[ProgressReporter] = None
    ):
        self.pool = pool
        self.store = store
        self.error_log = error_log
        self.product = product
        self.page_size = page_size
        self.base_url = base_url
        self.queue_size = queue_size
        self.progress = progress

        self.download_stage = DownloadStage(pool, store, progress, request_timeout)
        self.persistence_stage = PersistenceStage(store, save_concurrency)
        self.aggregator = ResultAggregator(error_log, progress)

    async def run(self, start_id: int) -> RunSummary:
        """Backfill every page from ``start_id`` down to 1 that is not saved yet."""
        self.store.ensure_directory()

        pages: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        downloaded: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        results: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)

        logger.info(
            f"Starting backfill of {self.product} from execution {start_id} "
            f"({self.page_size} per page, {self.pool.size} clients)"
        )

        tasks = [
            asyncio.create_task(
                produce_pages(pages, start_id, self.product, self.page_size, self.base_url),
                name="sequencer"
            ),
            asyncio.create_task(self.download_stage.run(pages, downloaded), name="download"),
            asyncio.create_task(self.persistence_stage.run(downloaded, results), name="persistence"),
            asyncio.create_task(self.aggregator.run(results), name="aggregator"),
        ]

        try:
            outcomes = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return outcomes[-1]
