"""Download stage: skip saved pages, fetch the rest through the client pool."""

import asyncio
import logging
from typing import Optional, Set

from ..clients.client_pool import ClientPool, PooledClient
from ..errors import FetchError, RateLimitError
from ..progress import ProgressReporter
from ..sequencer import PageDescriptor
from ..storage import PageStore

logger = logging.getLogger(__name__)


class DownloadStage:
    """
    Turns page descriptors into downloaded descriptors.

    A worker holds its client for the whole fetch, so the number of
    concurrent fetches never exceeds the pool size. Completion order is
    whatever the network gives.
    """

    def __init__(
        self,
        pool: ClientPool,
        store: PageStore,
        progress: Optional[ProgressReporter] = None,
        request_timeout: float = 30.0
    ):
        self.pool = pool
        self.store = store
        self.progress = progress
        self.request_timeout = request_timeout

        self.skipped = 0
        self.fetched = 0
        self.failed = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, inbox: asyncio.Queue, outbox: asyncio.Queue) -> None:
        """Consume ``inbox`` until its sentinel, then put the sentinel on ``outbox``."""
        tasks: Set[asyncio.Task] = set()
        logger.info(f"Download stage started with {self.pool.size} clients")

        try:
            while True:
                page = await inbox.get()
                if page is None:
                    break

                if self.store.exists(page.page_id):
                    page.skipped = True
                    self.skipped += 1
                    await outbox.put(page)
                    continue

                if self.progress is not None:
                    self.progress.start(page.page_id)

                client = await self.pool.acquire()
                task = asyncio.create_task(self._download(client, page, outbox))
                tasks.add(task)
                task.add_done_callback(tasks.discard)

            if tasks:
                await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()

        logger.info(
            f"Download stage finished: {self.fetched} fetched, "
            f"{self.failed} failed, {self.skipped} already saved"
        )
        await outbox.put(None)

    async def _download(self, client: PooledClient, page: PageDescriptor, outbox: asyncio.Queue) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.request_timeout
            try:
                await client.wait(self.request_timeout)
                page.body = await client.get(page.source_url, deadline - loop.time())
                self.fetched += 1
            except (RateLimitError, FetchError) as e:
                page.fetch_error = e
                self.failed += 1
                logger.debug(f"Page {page.page_id} via {client.name} failed: {e}")
        finally:
            self.in_flight -= 1
            self.pool.release(client)

        await outbox.put(page)
