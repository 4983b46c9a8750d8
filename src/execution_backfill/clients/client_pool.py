"""Pool of rate-limited HTTP clients, one per upstream proxy."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence

import aiohttp

from ..balancer import RoundRobinBalancer
from ..errors import FetchError
from ..utils.rate_limiter import TokenBucketLimiter
from .proxy_provider import ProxyEndpoint

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "curl/7.63.0"


class PooledClient:
    """
    HTTP session bound to one proxy (or none) and one dedicated limiter.

    Only the task that checked the client out uses its limiter, so the
    limiter sees no cross-task contention.
    """

    def __init__(
        self,
        endpoint: Optional[ProxyEndpoint],
        limiter: TokenBucketLimiter,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.endpoint = endpoint
        self.limiter = limiter
        self.user_agent = user_agent
        self.session = session or aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=10)
        )
        self.requests_made = 0

    @property
    def name(self) -> str:
        return str(self.endpoint) if self.endpoint else "direct"

    async def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the limiter admits one request; raises RateLimitError on timeout."""
        await self.limiter.wait(timeout)

    async def get(self, url: str, timeout: float) -> bytes:
        """
        GET ``url`` through this client's proxy and return the body.

        Raises:
            FetchError: On transport failure, timeout or a non-2xx status
        """
        if timeout <= 0:
            raise FetchError(f"deadline exceeded before requesting {url}")

        kwargs = {"timeout": aiohttp.ClientTimeout(total=timeout)}
        if self.endpoint is not None:
            kwargs["proxy"] = self.endpoint.proxy_url
            kwargs["proxy_auth"] = self.endpoint.auth

        self.requests_made += 1
        try:
            async with self.session.get(url, headers={"User-Agent": self.user_agent}, **kwargs) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(
                        f"invalid status: {response.status} {response.reason}",
                        status=response.status
                    )
                return await response.read()
        except asyncio.TimeoutError as e:
            raise FetchError(f"request timed out after {timeout:.2f}s") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"{type(e).__name__}: {e}") from e

    async def close(self) -> None:
        if not self.session.closed:
            await self.session.close()


class ClientPool:
    """
    Bounded pool of :class:`PooledClient` objects.

    At most ``size`` clients are checked out at once; ``acquire`` blocks
    until one is returned. Use :meth:`checkout` to guarantee the release.
    """

    def __init__(self, clients: Sequence[PooledClient]):
        if not clients:
            raise ValueError("ClientPool needs at least one client")
        self._clients: List[PooledClient] = list(clients)
        self._idle: asyncio.Queue = asyncio.Queue(maxsize=len(self._clients))
        for client in self._clients:
            self._idle.put_nowait(client)

    @classmethod
    def build(
        cls,
        endpoints: Sequence[ProxyEndpoint],
        requests_per_minute: int,
        burst: int = 5,
        user_agent: str = DEFAULT_USER_AGENT
    ) -> "ClientPool":
        """
        Create one client and one limiter per proxy endpoint.

        With no endpoints the pool degrades to a single direct client.
        """
        balancer: RoundRobinBalancer[ProxyEndpoint] = RoundRobinBalancer(endpoints)

        clients = []
        for _ in range(max(1, balancer.size())):
            clients.append(PooledClient(
                endpoint=balancer.next(),
                limiter=TokenBucketLimiter(requests_per_minute, burst),
                user_agent=user_agent
            ))

        if balancer.size() == 0:
            logger.warning("No proxy endpoints given, using direct connection")
        logger.info(
            f"Client pool built: {len(clients)} clients, "
            f"{requests_per_minute} req/min each, burst {burst}"
        )
        return cls(clients)

    @property
    def size(self) -> int:
        return len(self._clients)

    @property
    def in_flight(self) -> int:
        """Number of clients currently checked out."""
        return self.size - self._idle.qsize()

    @property
    def clients(self) -> List[PooledClient]:
        return list(self._clients)

    async def acquire(self) -> PooledClient:
        """Wait for an idle client and check it out."""
        return await self._idle.get()

    def release(self, client: PooledClient) -> None:
        """Return a checked-out client to the pool."""
        self._idle.put_nowait(client)

    @asynccontextmanager
    async def checkout(self) -> AsyncIterator[PooledClient]:
        """Check out a client for the duration of the block."""
        client = await self.acquire()
        try:
            yield client
        finally:
            self.release(client)

    async def close(self) -> None:
        """Close every client session."""
        for client in self._clients:
            logger.info(f"Client {client.name} made {client.requests_made} requests")
        await asyncio.gather(*(client.close() for client in self._clients))

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
