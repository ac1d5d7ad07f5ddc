"""
Execution layer client for EVM JSON-RPC endpoints.

Only the handful of calls the harness needs are implemented:

- liveness (`net_version`)
- block height (`eth_blockNumber`)
- transaction lookup and submission
- raw payload pass-through for cross-node comparisons

Transactions are signed locally with eth-account and submitted with
`eth_sendRawTransaction`, so the node never sees the private key.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from eth_account import Account
from eth_utils import to_checksum_address
from typing_extensions import Final

from bft_resilience.types.exceptions import RpcError

from .jsonrpc import DEFAULT_TIMEOUT, build_request, parse_quantity, post_json_rpc
from .protocols import NetworkInfo, TransactionRequest, TxResult

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE: Final = 1_000_000_000
"""Priority fee (1 gwei) used when the node does not suggest one."""


class EvmClient:
    """JSON-RPC client for one execution layer endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Create a client.

        Args:
            url: JSON-RPC endpoint, e.g. `http://10.0.0.2:8545`.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport, used by tests.
        """
        self._url = url
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def url(self) -> str:
        """Endpoint the client talks to."""
        return self._url

    async def _call(self, method: str, params: list[Any] | None = None) -> Any:
        body = await post_json_rpc(self._http, self._url, build_request(method, params))
        return body.get("result")

    async def make_rpc_call(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Send a raw JSON-RPC payload and return the response envelope."""
        return await post_json_rpc(self._http, self._url, payload)

    async def is_connected(self) -> bool:
        """True if the node answers `net_version`."""
        try:
            await self._call("net_version")
            return True
        except RpcError as e:
            logger.debug("EVM endpoint %s not reachable: %s", self._url, e)
            return False

    async def get_block_height(self) -> int:
        """Latest block number."""
        result = await self._call("eth_blockNumber")
        try:
            return parse_quantity(result)
        except ValueError as e:
            raise RpcError(self._url, f"invalid block number {result!r}") from e

    async def get_chain_id(self) -> int:
        """Chain id from `eth_chainId`."""
        return parse_quantity(await self._call("eth_chainId"))

    async def get_transaction(self, tx_hash: str) -> TxResult | None:
        """
        Look up a transaction receipt.

        Returns None while the transaction is unknown or still pending.
        """
        receipt = await self._call("eth_getTransactionReceipt", [tx_hash])
        if not receipt:
            return None
        block = receipt.get("blockNumber")
        return TxResult(
            hash=tx_hash,
            success=parse_quantity(receipt.get("status", "0x0")) == 1,
            block_height=parse_quantity(block) if block is not None else None,
            raw=receipt,
        )

    async def send_transaction(self, request: TransactionRequest, private_key: str) -> TxResult:
        """
        Sign a transfer locally and submit it.

        Uses EIP-1559 fees when the latest block carries a base fee, and a
        legacy gas price otherwise. The nonce counts pending transactions so
        back-to-back calls do not collide.
        """
        account = Account.from_key(private_key)
        chain_id = await self.get_chain_id()
        nonce = parse_quantity(
            await self._call("eth_getTransactionCount", [account.address, "pending"])
        )

        tx: dict[str, Any] = {
            "chainId": chain_id,
            "nonce": nonce,
            "to": to_checksum_address(request.to),
            "value": request.value,
            "gas": request.gas_limit,
            "data": request.data,
        }
        tx.update(await self._fee_fields())

        signed = Account.sign_transaction(tx, private_key)
        raw_hex = "0x" + bytes(signed.raw_transaction).hex()
        tx_hash = await self._call("eth_sendRawTransaction", [raw_hex])

        logger.info(
            "Sent %d wei from %s to %s: %s", request.value, account.address, request.to, tx_hash
        )
        return TxResult(hash=str(tx_hash), success=True)

    async def _fee_fields(self) -> dict[str, int]:
        latest = await self._call("eth_getBlockByNumber", ["latest", False])
        base_fee = (latest or {}).get("baseFeePerGas")
        if base_fee is None:
            return {"gasPrice": parse_quantity(await self._call("eth_gasPrice"))}

        try:
            priority = parse_quantity(await self._call("eth_maxPriorityFeePerGas"))
        except RpcError:
            # Older nodes do not implement the suggestion endpoint.
            priority = DEFAULT_PRIORITY_FEE
        return {
            "type": 2,
            "maxPriorityFeePerGas": priority,
            "maxFeePerGas": 2 * parse_quantity(base_fee) + priority,
        }

    async def get_network_info(self) -> NetworkInfo:
        """Chain id, latest height and a derived name."""
        chain_id = await self.get_chain_id()
        height = await self.get_block_height()
        return NetworkInfo(chain_id=str(chain_id), block_height=height, name=f"evm-{chain_id}")

    async def disconnect(self) -> None:
        """Close the connection pool."""
        await self._http.aclose()
