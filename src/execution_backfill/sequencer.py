"""Page descriptors and the backward-walking page sequencer."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
DEFAULT_BASE_URL = "https://api.bitflyer.com"


@dataclass
class PageDescriptor:
    """One page of executions, enriched as it moves through the pipeline."""
    source_url: str
    page_id: int
    lower_bound: int
    body: Optional[bytes] = None
    fetch_error: Optional[Exception] = None
    save_error: Optional[Exception] = None
    skipped: bool = False

    @property
    def upper_bound(self) -> int:
        """Exclusive ``before`` value of the request."""
        return self.page_id + 1


def page_bounds(min_require_id: int, page_size: int) -> Tuple[int, int]:
    """Return ``(before, after)`` for the page ending at ``min_require_id``."""
    return min_require_id + 1, max(1, min_require_id - page_size)


def build_page_url(base_url: str, product: str, page_size: int, min_require_id: int) -> str:
    before, after = page_bounds(min_require_id, page_size)
    return (
        f"{base_url}/v1/executions?product_code={product}"
        f"&count={page_size}&before={before}&after={after}"
    )


def iter_pages(
    start_id: int,
    product: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    base_url: str = DEFAULT_BASE_URL
) -> Iterator[PageDescriptor]:
    """
    Yield pages from ``start_id`` down to execution ID 1.

    Each page's lower bound becomes the next page's ID; the page whose lower
    bound reaches 1 is the last one.
    """
    if start_id < 1:
        raise ValueError(f"start_id must be positive, got {start_id}")
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")

    page_id = start_id
    while True:
        _, lower = page_bounds(page_id, page_size)
        yield PageDescriptor(
            source_url=build_page_url(base_url, product, page_size, page_id),
            page_id=page_id,
            lower_bound=lower
        )
        if lower <= 1:
            return
        page_id = lower


async def produce_pages(
    queue: asyncio.Queue,
    start_id: int,
    product: str,
    page_size: int = DEFAULT_PAGE_SIZE,
    base_url: str = DEFAULT_BASE_URL
) -> int:
    """
    Feed the page sequence into ``queue``, then put the ``None`` sentinel.

    Suspends whenever the queue is full. Returns the number of pages produced.
    """
    produced = 0
    for page in iter_pages(start_id, product, page_size, base_url):
        await queue.put(page)
        produced += 1

    logger.debug(f"Sequencer produced {produced} pages")
    await queue.put(None)
    return produced
