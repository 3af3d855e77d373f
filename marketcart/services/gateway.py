"""
Cart Persistence Gateway

Outbound contract to the marketplace backend that stores carts durably:
fetch the server copy, and persist a batch of operations. Both calls are
safe to retry because every operation carries its idempotency key.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..errors import GatewayRejectedError, GatewayTransientError
from ..models.operations import MutationOp
from ..models.remote import PersistResult, RemoteCart

logger = logging.getLogger(__name__)


class CartGateway(ABC):
    """Durable storage for one buyer's cart"""

    @abstractmethod
    async def fetch_cart(self) -> RemoteCart:
        """Get the authoritative server copy"""

    @abstractmethod
    async def persist(self, operations: list[MutationOp]) -> PersistResult:
        """Apply operations server-side and return the resulting cart"""

    async def close(self) -> None:
        pass


class HttpCartGateway(CartGateway):
    """
    Gateway backed by the marketplace REST API.

    Timeouts, connection failures and 5xx answers raise
    GatewayTransientError; other 4xx answers raise GatewayRejectedError.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Base URL of the marketplace API
            access_token: Bearer token for the buyer, if any
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used in tests)
        """
        self.base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._http_client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        """Close HTTP client"""
        await self._http_client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Make an HTTP request and translate failures into gateway errors"""
        url = f"{self.base_url}{path}"

        try:
            response = await self._http_client.request(
                method=method,
                url=url,
                headers=self._headers(),
                content=json.dumps(body) if body is not None else None,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Request timed out: {method} {url}")
            raise GatewayTransientError(f"Timed out: {method} {path}") from e
        except httpx.TransportError as e:
            logger.warning(f"Transport error on {method} {url}: {e}")
            raise GatewayTransientError(f"Transport error: {e}") from e

        if response.status_code >= 500:
            logger.error(f"Request failed: {response.status_code} - {response.text}")
            raise GatewayTransientError(f"Server error {response.status_code}")
        if response.status_code >= 400:
            logger.error(f"Request rejected: {response.status_code} - {response.text}")
            raise GatewayRejectedError(response.status_code, _error_detail(response))

        return response.json()

    async def fetch_cart(self) -> RemoteCart:
        data = await self._request("GET", "/buyers/cart")
        try:
            return RemoteCart.model_validate(data)
        except ValidationError as e:
            raise GatewayTransientError(f"Malformed cart payload: {e}") from e

    async def persist(self, operations: list[MutationOp]) -> PersistResult:
        body = {"operations": [op.to_wire() for op in operations]}
        data = await self._request("POST", "/buyers/cart/operations", body=body)
        logger.debug(f"Persisted {len(operations)} cart operation(s)")
        try:
            return PersistResult.model_validate(data)
        except ValidationError as e:
            raise GatewayTransientError(f"Malformed persist payload: {e}") from e


def _error_detail(response: httpx.Response) -> str:
    """Pull the backend's message out of an error response"""
    try:
        data = response.json()
    except ValueError:
        return response.text

    message = (data.get("message") or data.get("detail")) if isinstance(data, dict) else None
    if isinstance(message, list):
        return ", ".join(str(m) for m in message)
    if isinstance(message, str):
        return message
    return response.text
