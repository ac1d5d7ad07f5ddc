"""
Consensus layer client for CometBFT (Tendermint) RPC endpoints.

Uses the plain HTTP GET interface of the CometBFT RPC server:

- `/health` answers with an empty result when the node is up
- `/status` carries the latest height and the network name
- `/tx?hash=0x...` looks up a committed transaction

The Cosmos SDK REST gateway is a separate server on its own port. Only its
node-info route is used, as a last-resort liveness probe.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from typing_extensions import Final

from bft_resilience.types.exceptions import RpcError

from .jsonrpc import DEFAULT_TIMEOUT, parse_quantity
from .protocols import NetworkInfo, TxResult

logger = logging.getLogger(__name__)

NODE_INFO_ENDPOINT: Final = "/cosmos/base/tendermint/v1beta1/node_info"
"""Cosmos SDK REST route returning node information."""


class CometBftClient:
    """HTTP client for one CometBFT RPC endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def url(self) -> str:
        """Endpoint the client talks to."""
        return self._url

    async def _get(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        url = f"{self._url}{path}"
        try:
            response = await self._http.get(url, params=params)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            raise RpcError(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise RpcError(url, f"network error: {exc}") from exc
        except ValueError as exc:
            raise RpcError(url, f"invalid JSON response: {exc}") from exc

        if not isinstance(body, dict):
            raise RpcError(url, "unexpected response shape")
        if body.get("error"):
            raise RpcError(url, str(body["error"]))
        return body

    async def is_connected(self) -> bool:
        """True if `/health` answers."""
        try:
            await self._get("/health")
            return True
        except RpcError as e:
            logger.debug("CometBFT endpoint %s not reachable: %s", self._url, e)
            return False

    async def _status(self) -> dict[str, Any]:
        result = (await self._get("/status")).get("result")
        if not isinstance(result, dict):
            raise RpcError(f"{self._url}/status", "missing result")
        return result

    async def get_block_height(self) -> int:
        """Latest committed block height."""
        status = await self._status()
        try:
            return parse_quantity(status["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as e:
            raise RpcError(f"{self._url}/status", f"no latest_block_height: {e}") from e

    async def get_transaction(self, tx_hash: str) -> TxResult | None:
        """Look up a committed transaction. Returns None if the node does not know it."""
        query_hash = tx_hash if tx_hash.startswith("0x") else f"0x{tx_hash}"
        try:
            body = await self._get("/tx", params={"hash": query_hash})
        except RpcError as e:
            logger.debug("Transaction %s not found on %s: %s", tx_hash, self._url, e)
            return None

        result = body.get("result") or {}
        code = (result.get("tx_result") or {}).get("code", 0)
        height = result.get("height")
        return TxResult(
            hash=tx_hash,
            success=code == 0,
            block_height=parse_quantity(height) if height is not None else None,
            raw=result,
        )

    async def get_network_info(self) -> NetworkInfo:
        """Network name (chain id), latest height, and node moniker."""
        status = await self._status()
        node_info = status.get("node_info") or {}
        return NetworkInfo(
            chain_id=str(node_info.get("network", "")),
            block_height=parse_quantity(status["sync_info"]["latest_block_height"]),
            name=str(node_info.get("moniker", "")),
        )

    async def disconnect(self) -> None:
        """Close the connection pool."""
        await self._http.aclose()


async def probe_rest_node_info(
    rest_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """
    Probe the Cosmos REST gateway.

    Returns:
        True if the node-info route answers with a 2xx status.
    """
    url = f"{rest_url.rstrip('/')}{NODE_INFO_ENDPOINT}"
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url)
            return response.is_success
    except httpx.RequestError as e:
        logger.debug("REST probe of %s failed: %s", url, e)
        return False
