"""Persistence stage: gzip downloaded bodies to disk."""

import asyncio
import logging
from typing import Set

from ..errors import PersistenceError
from ..sequencer import PageDescriptor
from ..storage import PageStore

logger = logging.getLogger(__name__)

DEFAULT_SAVE_CONCURRENCY = 100


class PersistenceStage:
    """
    Writes each successfully downloaded page under a concurrency ceiling.

    Pages that failed to download or were already on disk pass through
    untouched.
    """

    def __init__(self, store: PageStore, max_concurrency: int = DEFAULT_SAVE_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be positive")
        self.store = store
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)

        self.saved = 0
        self.failed = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, inbox: asyncio.Queue, outbox: asyncio.Queue) -> None:
        """Consume ``inbox`` until its sentinel, then put the sentinel on ``outbox``."""
        tasks: Set[asyncio.Task] = set()

        try:
            while True:
                page = await inbox.get()
                if page is None:
                    break

                if page.fetch_error is not None or page.skipped:
                    await outbox.put(page)
                    continue

                await self._semaphore.acquire()
                task = asyncio.create_task(self._save(page, outbox))
                tasks.add(task)
                task.add_done_callback(tasks.discard)

            if tasks:
                await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()

        logger.info(f"Persistence stage finished: {self.saved} saved, {self.failed} failed")
        await outbox.put(None)

    async def _save(self, page: PageDescriptor, outbox: asyncio.Queue) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.store.save, page.page_id, page.body)
            self.saved += 1
        except PersistenceError as e:
            page.save_error = e
            self.failed += 1
        finally:
            page.body = None
            self.in_flight -= 1
            self._semaphore.release()

        await outbox.put(page)
