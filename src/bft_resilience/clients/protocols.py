"""
Interfaces of the layer clients a node wraps.

The harness talks to each node through at most two clients: one for the
execution layer (balances and transactions) and one for the consensus layer
(block production). The protocols keep the harness independent of the
concrete chain flavour and let tests substitute in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class NetworkInfo:
    """Summary of the network a client is connected to."""

    chain_id: str
    """Chain identifier reported by the node."""

    block_height: int
    """Latest block height seen by the node."""

    name: str
    """Network or node name."""


@dataclass(frozen=True, slots=True)
class TransactionRequest:
    """A value transfer to submit through the execution layer."""

    to: str
    """Recipient address."""

    value: int
    """Amount in wei."""

    gas_limit: int = 21_000
    """Gas limit. Plain transfers need exactly 21000."""

    data: bytes = b""
    """Call data."""


@dataclass(frozen=True, slots=True)
class TxResult:
    """Outcome of a submitted or looked-up transaction."""

    hash: str
    """Transaction hash, 0x-prefixed."""

    success: bool
    """Whether the node accepted (or executed) the transaction."""

    block_height: int | None = None
    """Block the transaction landed in, once known."""

    raw: dict[str, Any] | None = None
    """Node response the result was built from."""


@runtime_checkable
class LayerClient(Protocol):
    """Operations every layer client supports."""

    @property
    def url(self) -> str:
        """Endpoint the client talks to."""
        ...

    async def is_connected(self) -> bool:
        """
        Probe the endpoint.

        Returns:
            True if the node answered. Never raises for network failures.
        """
        ...

    async def get_block_height(self) -> int:
        """
        Latest block height.

        Raises:
            TransientNetworkFailure: If the node cannot be queried.
        """
        ...

    async def get_transaction(self, tx_hash: str) -> TxResult | None:
        """Look up a transaction. Returns None if the node does not know it."""
        ...

    async def get_network_info(self) -> NetworkInfo:
        """Chain id, latest height and name."""
        ...

    async def disconnect(self) -> None:
        """Release the underlying connection pool."""
        ...


@runtime_checkable
class ExecuteLayerClient(LayerClient, Protocol):
    """Execution layer client. Also accepts raw JSON-RPC payloads and transactions."""

    async def send_transaction(self, request: TransactionRequest, private_key: str) -> TxResult:
        """
        Sign and submit a transaction.

        Raises:
            TransientNetworkFailure: If the node rejects or cannot receive it.
        """
        ...

    async def make_rpc_call(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Send a raw JSON-RPC payload and return the decoded response envelope.

        Raises:
            TransientNetworkFailure: On HTTP failure or a JSON-RPC error object.
        """
        ...


@runtime_checkable
class ConsensusLayerClient(LayerClient, Protocol):
    """Consensus layer client."""
