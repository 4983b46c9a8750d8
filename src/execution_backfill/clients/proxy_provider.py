"""Proxy vendor client that provisions the proxy endpoints for a run."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from ..config.settings import ProxyConfig, RetryConfig
from ..errors import ProvisioningError
from ..utils.retry import retry_with_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyEndpoint:
    """HTTP proxy credentials. Immutable once loaded for a run."""
    host: str
    port: int
    user: str = ""
    password: str = ""

    @property
    def proxy_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def auth(self) -> Optional[aiohttp.BasicAuth]:
        if not self.user:
            return None
        return aiohttp.BasicAuth(self.user, self.password)

    def __str__(self) -> str:
        # Credentials stay out of logs
        return f"{self.host}:{self.port}"


class ProxyRecord(BaseModel):
    """One entry of the vendor's proxy list."""
    id: Optional[str] = None
    host: str
    port: Union[str, int]
    user: str = ""
    password: str = Field(default="", alias="pass")
    type: Optional[str] = None
    country: Optional[str] = None
    active: str = "0"


class ProxyListResponse(BaseModel):
    """Vendor ``getproxy`` response body."""
    status: str
    list_count: Optional[int] = None
    list: Union[Dict[str, ProxyRecord], List[ProxyRecord]] = Field(default_factory=dict)

    def records(self) -> List[ProxyRecord]:
        if isinstance(self.list, dict):
            return list(self.list.values())
        return list(self.list)


def parse_proxy_response(payload: Any, max_endpoints: int = 0) -> List[ProxyEndpoint]:
    """
    Turn a vendor response into the active proxy endpoints.

    Args:
        payload: Decoded JSON body
        max_endpoints: Keep at most this many endpoints, 0 keeps all

    Raises:
        ProvisioningError: If the body is malformed or reports a failure
    """
    try:
        response = ProxyListResponse.model_validate(payload)
    except ValidationError as e:
        raise ProvisioningError(f"malformed proxy list response: {e}") from e

    if response.status != "yes":
        raise ProvisioningError(f"proxy vendor returned status {response.status!r}")

    endpoints = []
    for record in response.records():
        if record.active != "1":
            continue
        try:
            port = int(record.port)
        except ValueError:
            logger.warning(f"Skipping proxy {record.host} with invalid port {record.port!r}")
            continue

        endpoints.append(ProxyEndpoint(
            host=record.host,
            port=port,
            user=record.user,
            password=record.password
        ))
        if max_endpoints > 0 and len(endpoints) >= max_endpoints:
            break

    return endpoints


class ProxyProvider:
    """Fetches the account's proxy list from the vendor API."""

    def __init__(self, config: ProxyConfig, retry_config: RetryConfig):
        self.config = config
        self.retry_config = retry_config

    def _list_url(self) -> str:
        return f"{self.config.provider_url.rstrip('/')}/{self.config.api_key}/getproxy"

    async def _request(self) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(self._list_url()) as response:
                if response.status != 200:
                    raise ProvisioningError(f"invalid status: {response.status} {response.reason}")
                return await response.json(content_type=None)

    async def fetch_endpoints(self) -> List[ProxyEndpoint]:
        """
        Provision the active proxy endpoints.

        Raises:
            ProvisioningError: If the vendor cannot be reached, answers with an
                error, or no active endpoint is left
        """
        if not self.config.api_key:
            raise ProvisioningError("proxy API key is not configured")

        try:
            payload = await retry_with_config(
                self._request,
                self.retry_config,
                exceptions=(aiohttp.ClientError, asyncio.TimeoutError, ProvisioningError, ValueError)
            )
        except ProvisioningError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProvisioningError(f"proxy list request failed: {e}") from e

        endpoints = parse_proxy_response(payload, self.config.max_endpoints)
        if not endpoints:
            raise ProvisioningError("No proxy available")

        logger.info(f"{len(endpoints)} proxies available")
        return endpoints
