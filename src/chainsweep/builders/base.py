"""Base interface for per-chain sweep transaction builders.

Build flow (driven by the external sweep orchestrator):
1. build_unsigned_tx - configuration, address validation, balance/fee checks, payload
2. external signer signs the payload offline
3. broadcast_tx - submit the signed payload, return the transaction hash

Builders hold no request-scoped state, so one instance per chain can be
shared by every caller. No call is retried here: re-broadcasting is not
idempotent on every chain, so retries belong to the orchestrator.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from chainsweep.chains import ChainKind
from chainsweep.config import Settings, get_settings
from chainsweep.errors import InvalidAddressError, RpcError
from chainsweep.types import BroadcastParams, BroadcastResult, BuildTxParams, UnsignedTx

logger = logging.getLogger(__name__)


class ProtocolError(Exception):
    """Node answered, but with an error or an unusable body."""

    pass


class ChainTxBuilder(ABC):
    """Abstract base class for chain builders.

    Each chain has its own implementation.
    """

    chain: ChainKind

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize builder.

        Args:
            settings: Explicit configuration (defaults to the cached settings)
            transport: Optional httpx transport, used to stub the network in tests
        """
        self.settings = settings or get_settings()
        self._transport = transport

    @abstractmethod
    def validate_address(self, address: str) -> bool:
        """Validate address format.

        Pure and total: returns False for anything that is not a string in
        the chain's format, never raises, never touches the network.
        """
        pass

    @abstractmethod
    async def estimate_fee(self, params: BuildTxParams) -> int:
        """Estimate the network fee in the chain's smallest unit."""
        pass

    @abstractmethod
    async def build_unsigned_tx(self, params: BuildTxParams) -> UnsignedTx:
        """Build an unsigned sweep transaction for the whole balance.

        Raises:
            ConfigurationError: Endpoint or credentials missing
            InvalidAddressError: Source or destination fails validation
            InsufficientBalanceError: Balance below fee/reserve/dust threshold
            RpcError: Node or indexer failure
        """
        pass

    @abstractmethod
    async def broadcast_tx(self, params: BroadcastParams) -> BroadcastResult:
        """Submit a signed transaction.

        Raises:
            RpcError: Transport failure or rejection, with the endpoint used
        """
        pass

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _check_addresses(self, params: BuildTxParams) -> None:
        """Validate both ends before any network call."""
        if not self.validate_address(params.from_address):
            raise InvalidAddressError(self.chain, params.from_address)
        if not self.validate_address(params.to_address):
            raise InvalidAddressError(self.chain, params.to_address)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self._transport)

    def _rpc_error(self, endpoint: str, error: Exception) -> RpcError:
        logger.error(f"{self.chain.value} RPC failure at {endpoint}: {error}")
        return RpcError(self.chain, endpoint, error)

    async def _request(
        self,
        method: str,
        url: str,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send an HTTP request; any transport failure or non-2xx becomes RpcError.

        Args:
            method: HTTP method
            url: Full request URL
            endpoint: Base endpoint reported in RpcError
        """
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
                if response.is_error:
                    raise ProtocolError(f"HTTP {response.status_code}: {response.text.strip()}")
                return response
        except (httpx.HTTPError, ProtocolError) as e:
            raise self._rpc_error(endpoint, e) from e

    def _json(self, response: httpx.Response, endpoint: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise self._rpc_error(endpoint, ProtocolError(f"Invalid JSON response: {e}")) from e

    async def _json_rpc(self, url: str, method: str, params: list) -> Any:
        """Call a JSON-RPC 2.0 method and return its ``result``."""
        response = await self._request(
            "POST",
            url,
            url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
        )
        data = self._json(response, url)

        if not isinstance(data, dict):
            raise self._rpc_error(url, ProtocolError(f"{method}: unexpected response {data!r}"))
        if data.get("error"):
            error = data["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise self._rpc_error(url, ProtocolError(f"{method}: {message}"))
        if "result" not in data:
            raise self._rpc_error(url, ProtocolError(f"{method}: missing result"))

        return data["result"]
