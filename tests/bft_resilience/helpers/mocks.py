"""
In-memory stand-ins for cluster endpoints, layer clients and backends.

A `FakeChain` plays the cluster. Each node URL maps to a `FakeEndpoint`
whose `up` flag the `ScriptedBackend` flips on stop/start, so probes and
height samples see the effect of the backend like they would on a real
cluster.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from bft_resilience.clients.protocols import NetworkInfo, TransactionRequest, TxResult
from bft_resilience.node.node import ClusterNode
from bft_resilience.types.exceptions import CredentialError, RpcError


@dataclass
class FakeChain:
    """Chain-wide behaviour shared by every endpoint."""

    start_height: int = 10
    """Height every endpoint reports on its first read (plus its offset)."""

    step: int = 1
    """Blocks added between two reads of the same endpoint."""

    halted: bool = False
    """Stop adding blocks."""

    reject_transactions: bool = False
    """Make every transaction submission fail."""

    transactions: list[tuple[str, int]] = field(default_factory=list)
    """(recipient, value) of every accepted transaction."""


@dataclass
class FakeEndpoint:
    """One dialable port of one node."""

    url: str
    chain: FakeChain
    up: bool = True
    hang: bool = False
    offset: int = 0
    height: int | None = None
    script: list[int | None] | None = None
    """Heights to return on successive reads. None entries fail the read."""

    def read_height(self) -> int:
        if not self.up:
            raise RpcError(self.url, "connection refused")
        if self.script is not None:
            value = self.script.pop(0) if len(self.script) > 1 else self.script[0]
            if value is None:
                raise RpcError(self.url, "scripted failure")
            return value
        if self.height is None:
            self.height = self.chain.start_height + self.offset
        current = self.height
        if not self.chain.halted:
            self.height += self.chain.step
        return current


class FakeLayerClient:
    """Layer client backed by a `FakeEndpoint`. Serves both layers."""

    def __init__(self, endpoint: FakeEndpoint) -> None:
        self.endpoint = endpoint
        self.disconnected = False
        self.calls: list[str] = []

    @property
    def url(self) -> str:
        return self.endpoint.url

    async def _maybe_hang(self) -> None:
        if self.endpoint.hang:
            await asyncio.sleep(3600)

    async def is_connected(self) -> bool:
        self.calls.append("is_connected")
        await self._maybe_hang()
        return self.endpoint.up

    async def get_block_height(self) -> int:
        self.calls.append("get_block_height")
        await self._maybe_hang()
        return self.endpoint.read_height()

    async def get_transaction(self, tx_hash: str) -> TxResult | None:
        return None

    async def get_network_info(self) -> NetworkInfo:
        return NetworkInfo(chain_id="9000", block_height=self.endpoint.read_height(), name="fake")

    async def make_rpc_call(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(payload["method"])
        await self._maybe_hang()
        if payload["method"] == "eth_blockNumber":
            result: Any = hex(self.endpoint.read_height())
        elif not self.endpoint.up:
            raise RpcError(self.url, "connection refused")
        else:
            result = "0x2328"
        return {"jsonrpc": "2.0", "id": payload.get("id"), "result": result}

    async def send_transaction(self, request: TransactionRequest, private_key: str) -> TxResult:
        self.calls.append("send_transaction")
        chain = self.endpoint.chain
        if not self.endpoint.up or chain.reject_transactions:
            raise RpcError(self.url, "transaction rejected")
        chain.transactions.append((request.to, request.value))
        return TxResult(hash=f"0x{len(chain.transactions):064x}", success=True)

    async def disconnect(self) -> None:
        self.disconnected = True


class FakeClientFactory:
    """Drop-in for `ClientFactory` handing out fake clients over shared endpoints."""

    def __init__(self, chain: FakeChain | None = None) -> None:
        self.chain = chain or FakeChain()
        self.endpoints: dict[str, FakeEndpoint] = {}
        self.created: list[FakeLayerClient] = []
        self.rest_up: dict[str, bool] = {}

    def endpoint(self, url: str) -> FakeEndpoint:
        if url not in self.endpoints:
            self.endpoints[url] = FakeEndpoint(url=url, chain=self.chain)
        return self.endpoints[url]

    def _client(self, url: str) -> FakeLayerClient:
        client = FakeLayerClient(self.endpoint(url))
        self.created.append(client)
        return client

    def execute_client(self, url: str) -> FakeLayerClient:
        return self._client(url)

    def consensus_client(self, url: str) -> FakeLayerClient:
        return self._client(url)

    async def probe_rest(self, url: str, timeout: float) -> bool:
        return self.rest_up.get(url, False)

    def set_node_up(self, node: ClusterNode, up: bool) -> None:
        """Flip every exposed endpoint of a node."""
        if node.has_execute_layer:
            self.endpoint(node.execute_rpc_url()).up = up
        if node.has_consensus_layer:
            self.endpoint(node.consensus_rpc_url()).up = up


class ScriptedBackend:
    """Execution backend that flips fake endpoints and records its calls."""

    name = "scripted"

    def __init__(
        self,
        factory: FakeClientFactory,
        *,
        fail_stop: set[int] | None = None,
        fail_start: set[int] | None = None,
        ineffective_stop: set[int] | None = None,
        halts_chain: bool = False,
        misconfigured: set[int] | None = None,
    ) -> None:
        self.factory = factory
        self.fail_stop = fail_stop or set()
        self.fail_start = fail_start or set()
        self.ineffective_stop = ineffective_stop or set()
        self.halts_chain = halts_chain
        self.misconfigured = misconfigured or set()
        self.stopped: list[int] = []
        self.started: list[int] = []
        self.closed = False

    def check_node(self, node: ClusterNode) -> None:
        if node.index in self.misconfigured:
            raise CredentialError(f"No credentials for {node.name}")

    async def stop_node(self, node: ClusterNode) -> bool:
        self.check_node(node)
        self.stopped.append(node.index)
        if node.index in self.fail_stop:
            return False
        if node.index not in self.ineffective_stop:
            self.factory.set_node_up(node, False)
        if self.halts_chain:
            self.factory.chain.halted = True
        return True

    async def start_node(self, node: ClusterNode) -> bool:
        self.check_node(node)
        self.started.append(node.index)
        if node.index in self.fail_start:
            return False
        self.factory.set_node_up(node, True)
        self.factory.chain.halted = False
        return True

    async def close(self) -> None:
        self.closed = True
