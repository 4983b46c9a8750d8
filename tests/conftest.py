"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from execution_backfill.clients.client_pool import ClientPool
from execution_backfill.progress import ProgressReporter
from execution_backfill.sequencer import PageDescriptor, build_page_url
from execution_backfill.storage import ErrorLog, PageStore


PRODUCT = "BTC_JPY"


class FakeExecutionsAPI:
    """Local stand-in for the ``/v1/executions`` endpoint."""

    def __init__(self):
        self.base_url: Optional[str] = None
        self.hits: List[int] = []
        self.user_agents: List[str] = []
        self.fail_ids: Dict[int, int] = {}
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/v1/executions', self.executions)
        return app

    async def executions(self, request: web.Request) -> web.Response:
        before = int(request.query['before'])
        after = int(request.query['after'])
        page_id = before - 1
        self.hits.append(page_id)
        self.user_agents.append(request.headers.get('User-Agent', ''))

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if page_id in self.fail_ids:
            return web.json_response({'error': 'boom'}, status=self.fail_ids[page_id])

        executions = [
            {'id': execution_id, 'side': 'BUY', 'price': 1000.0, 'size': 0.01}
            for execution_id in range(page_id, max(after, page_id - 3), -1)
        ]
        return web.json_response(executions)


class FakeClient:
    """Pooled client double that never touches the network."""

    def __init__(self, name: str = "fake", body: bytes = b"[]", wait_error: Exception = None,
                 get_error: Exception = None, delay: float = 0.0):
        self.name = name
        self.body = body
        self.wait_error = wait_error
        self.get_error = get_error
        self.delay = delay
        self.waits = 0
        self.requests_made = 0
        self.requested: List[str] = []
        self.closed = False

    async def wait(self, timeout=None):
        self.waits += 1
        if self.wait_error is not None:
            raise self.wait_error

    async def get(self, url: str, timeout: float) -> bytes:
        self.requested.append(url)
        self.requests_made += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.get_error is not None:
            raise self.get_error
        return self.body

    async def close(self):
        self.closed = True


@pytest.fixture
def store(tmp_path) -> PageStore:
    page_store = PageStore(tmp_path / "results", PRODUCT)
    page_store.ensure_directory()
    return page_store


@pytest.fixture
def error_log(tmp_path):
    log = ErrorLog.for_product(tmp_path, PRODUCT)
    log.open()
    yield log
    log.close()


@pytest.fixture
def quiet_progress() -> ProgressReporter:
    return ProgressReporter(page_size=500, enabled=False)


@pytest.fixture
def fake_client_factory():
    """Factory for :class:`FakeClient` objects."""
    def _create(**kwargs) -> FakeClient:
        return FakeClient(**kwargs)
    return _create


@pytest.fixture
def fake_pool(fake_client_factory):
    """Factory building a :class:`ClientPool` of fake clients."""
    def _create(count: int = 1, **kwargs) -> ClientPool:
        return ClientPool([fake_client_factory(name=f"fake-{i}", **kwargs) for i in range(count)])
    return _create


@pytest.fixture
def make_page():
    """Factory for page descriptors with a realistic URL."""
    def _create(page_id: int, page_size: int = 500, **kwargs) -> PageDescriptor:
        return PageDescriptor(
            source_url=build_page_url("http://upstream.test", PRODUCT, page_size, page_id),
            page_id=page_id,
            lower_bound=max(1, page_id - page_size),
            **kwargs
        )
    return _create


@pytest.fixture
async def executions_api():
    """Running local executions API."""
    api = FakeExecutionsAPI()
    server = TestServer(api.app())
    await server.start_server()
    api.base_url = str(server.make_url('/')).rstrip('/')
    yield api
    await server.close()


@pytest.fixture
def proxy_list_payload() -> Dict[str, Any]:
    """Proxy vendor ``getproxy`` response with one inactive proxy."""
    return {
        'status': 'yes',
        'user_id': '1',
        'balance': '10.00',
        'currency': 'USD',
        'list_count': 3,
        'list': {
            '11': {'id': '11', 'ip': '10.0.0.1', 'host': '10.0.0.1', 'port': '8000',
                   'user': 'alice', 'pass': 'secret', 'type': 'http', 'active': '1'},
            '12': {'id': '12', 'ip': '10.0.0.2', 'host': '10.0.0.2', 'port': '8001',
                   'user': 'bob', 'pass': 'hunter2', 'type': 'http', 'active': '0'},
            '13': {'id': '13', 'ip': '10.0.0.3', 'host': '10.0.0.3', 'port': '8002',
                   'user': 'carol', 'pass': 'pw', 'type': 'http', 'active': '1'},
        }
    }


@pytest.fixture
def collect():
    """Drain a stage output queue up to its ``None`` sentinel."""
    async def _collect(queue: asyncio.Queue) -> List[PageDescriptor]:
        items = []
        while True:
            item = await queue.get()
            if item is None:
                return items
            items.append(item)
    return _collect


@pytest.fixture
def feed():
    """Unbounded queue holding the given pages followed by the sentinel."""
    def _feed(pages) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        for page in pages:
            queue.put_nowait(page)
        queue.put_nowait(None)
        return queue
    return _feed
