"""Backfill service and command-line entry point."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ValidationError

from .clients.client_pool import ClientPool
from .clients.proxy_provider import ProxyEndpoint, ProxyProvider
from .config.settings import BackfillSettings, load_settings
from .errors import ProvisioningError
from .pipeline import ExtractionPipeline
from .progress import ProgressReporter
from .stages import RunSummary
from .storage import ErrorLog, PageStore
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROVISIONING_FAILED = 1
EXIT_INTERRUPTED = 130


class BackfillService:
    """Provisions proxies, builds the client pool and runs one pipeline pass."""

    def __init__(self, settings: BackfillSettings, provider: Optional[ProxyProvider] = None):
        self.settings = settings
        self.provider = provider or ProxyProvider(settings.proxy, settings.retry)
        self._run_task: Optional[asyncio.Task] = None

    async def provision_endpoints(self) -> List[ProxyEndpoint]:
        """Fetch proxy endpoints, or none when proxies are disabled."""
        if not self.settings.proxy.enabled:
            logger.warning("Proxies disabled, all requests go out directly")
            return []
        return await self.provider.fetch_endpoints()

    async def run(self) -> RunSummary:
        """
        Run the backfill once.

        Raises:
            ProvisioningError: If proxies are enabled and none can be obtained
        """
        exchange = self.settings.exchange
        storage = self.settings.storage

        endpoints = await self.provision_endpoints()

        store = PageStore(storage.results_dir, exchange.product_code)
        store.ensure_directory()
        progress = ProgressReporter(exchange.page_size, enabled=self.settings.pipeline.show_progress)

        pool = ClientPool.build(
            endpoints,
            self.settings.rate_limit.requests_per_minute,
            burst=self.settings.rate_limit.burst,
            user_agent=exchange.user_agent
        )
        async with pool:
            with ErrorLog.for_product(storage.error_log_dir, exchange.product_code,
                                      storage.error_log_suffix) as error_log:
                pipeline = ExtractionPipeline(
                    pool=pool,
                    store=store,
                    error_log=error_log,
                    product=exchange.product_code,
                    page_size=exchange.page_size,
                    base_url=exchange.api_base_url,
                    request_timeout=exchange.request_timeout_seconds,
                    save_concurrency=storage.save_concurrency,
                    queue_size=self.settings.pipeline.queue_size,
                    progress=progress
                )
                return await pipeline.run(exchange.start_id)

    async def start(self) -> RunSummary:
        """Run with SIGINT/SIGTERM wired to a clean cancellation of the run."""
        self._run_task = asyncio.create_task(self.run())
        self._setup_signal_handlers()
        try:
            return await self._run_task
        finally:
            self._remove_signal_handlers()

    def stop(self) -> None:
        if self._run_task is not None and not self._run_task.done():
            logger.info("Cancelling backfill run")
            self._run_task.cancel()

    def _setup_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                pass

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError):
                pass

    def _on_signal(self, signum):
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backfill historical executions page by page through rotating proxies."
    )
    parser.add_argument("--config", type=str, help="Path to YAML configuration file.")
    parser.add_argument("--product", type=str, help="Product code (default: BTC_JPY).")
    parser.add_argument("--start", type=int, help="Execution ID to walk down from.")
    parser.add_argument("--proxy-key", type=str, dest="proxy_key", help="Proxy vendor API key.")
    parser.add_argument("--reqpm", type=int, help="Requests per minute per proxy (default: 500).")
    parser.add_argument("--no-proxy", action="store_true", dest="no_proxy",
                        help="Connect directly instead of provisioning proxies.")
    parser.add_argument("--log-level", type=str, dest="log_level", help="Log level (default: INFO).")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _validated(section: BaseModel, updates: Dict[str, Any]) -> BaseModel:
    if not updates:
        return section
    return type(section).model_validate({**section.model_dump(), **updates})


def apply_overrides(settings: BackfillSettings, args: argparse.Namespace) -> BackfillSettings:
    """
    Copy command-line values over the loaded settings.

    Every touched section is validated again, so flags obey the same rules
    as the config file.

    Raises:
        pydantic.ValidationError: If a flag value is out of range
    """
    exchange: Dict[str, Any] = {}
    proxy: Dict[str, Any] = {}
    rate_limit: Dict[str, Any] = {}
    log: Dict[str, Any] = {}

    if args.product:
        exchange['product_code'] = args.product
    if args.start is not None:
        exchange['start_id'] = args.start
    if args.proxy_key:
        proxy['api_key'] = args.proxy_key
    if args.no_proxy:
        proxy['enabled'] = False
    if args.reqpm is not None:
        rate_limit['requests_per_minute'] = args.reqpm
    if args.log_level:
        log['level'] = args.log_level

    settings.exchange = _validated(settings.exchange, exchange)
    settings.proxy = _validated(settings.proxy, proxy)
    settings.rate_limit = _validated(settings.rate_limit, rate_limit)
    settings.logging = _validated(settings.logging, log)
    return settings


async def run_service(settings: BackfillSettings) -> int:
    service = BackfillService(settings)
    try:
        await service.start()
    except ProvisioningError as e:
        logger.error(f"Proxy provisioning failed: {e}")
        return EXIT_PROVISIONING_FAILED
    except asyncio.CancelledError:
        logger.warning("Backfill interrupted; rerun to resume from saved pages")
        return EXIT_INTERRUPTED
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = apply_overrides(load_settings(args.config), args)
    except (ValidationError, ValueError, FileNotFoundError) as e:
        parser.error(str(e))
    setup_logging(settings.logging, settings.service_name)
    return asyncio.run(run_service(settings))


if __name__ == "__main__":
    sys.exit(main())
