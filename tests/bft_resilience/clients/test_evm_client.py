"""Tests for the EVM JSON-RPC client."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from eth_account import Account

from bft_resilience.clients.evm import DEFAULT_PRIORITY_FEE, EvmClient
from bft_resilience.clients.protocols import ExecuteLayerClient, TransactionRequest
from bft_resilience.types.exceptions import RpcError
from tests.bft_resilience.helpers import TEST_PRIVATE_KEY

URL = "http://node:8545"
RECIPIENT = "0x" + "ab" * 20
TX_HASH = "0x" + "cd" * 32


class FakeEvmNode:
    """Answers JSON-RPC methods from a table and records every call."""

    def __init__(self, answers: dict[str, Any | Callable[[list[Any]], Any]]) -> None:
        self.answers = answers
        self.calls: list[tuple[str, list[Any]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        method, params = payload["method"], payload.get("params", [])
        self.calls.append((method, params))
        if method not in self.answers:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": payload["id"], "error": {"code": -32601}},
            )
        answer = self.answers[method]
        result = answer(params) if callable(answer) else answer
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    def params_of(self, method: str) -> list[Any]:
        return next(params for name, params in self.calls if name == method)


def make_client(node: FakeEvmNode) -> EvmClient:
    return EvmClient(URL, transport=httpx.MockTransport(node))


SIGNING_ANSWERS: dict[str, Any] = {
    "eth_chainId": "0x2328",
    "eth_getTransactionCount": "0x7",
    "eth_sendRawTransaction": TX_HASH,
}


class TestEvmClientQueries:
    """Tests for read-only calls."""

    def test_satisfies_protocol(self) -> None:
        """The client is a full execution layer client."""
        assert isinstance(EvmClient(URL), ExecuteLayerClient)

    @pytest.mark.asyncio
    async def test_block_height(self) -> None:
        """Heights are decoded from hex."""
        client = make_client(FakeEvmNode({"eth_blockNumber": "0x2a"}))
        assert await client.get_block_height() == 42
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_block_height(self) -> None:
        """A non-quantity height is an RPC error."""
        client = make_client(FakeEvmNode({"eth_blockNumber": "soon"}))
        with pytest.raises(RpcError, match="invalid block number"):
            await client.get_block_height()

    @pytest.mark.asyncio
    async def test_is_connected(self) -> None:
        """`net_version` answering means connected."""
        client = make_client(FakeEvmNode({"net_version": "9000"}))
        assert await client.is_connected()

    @pytest.mark.asyncio
    async def test_is_not_connected(self) -> None:
        """Any RPC failure means not connected."""
        client = make_client(FakeEvmNode({}))
        assert await client.is_connected() is False

    @pytest.mark.asyncio
    async def test_raw_call_returns_envelope(self) -> None:
        """Raw payloads come back as the full envelope."""
        client = make_client(FakeEvmNode({"eth_blockNumber": "0x1"}))
        body = await client.make_rpc_call(
            {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 9}
        )
        assert body == {"jsonrpc": "2.0", "id": 9, "result": "0x1"}

    @pytest.mark.asyncio
    async def test_pending_transaction(self) -> None:
        """An unknown receipt means pending."""
        client = make_client(FakeEvmNode({"eth_getTransactionReceipt": None}))
        assert await client.get_transaction(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_mined_transaction(self) -> None:
        """Receipts carry status and block."""
        receipt = {"status": "0x1", "blockNumber": "0x10"}
        client = make_client(FakeEvmNode({"eth_getTransactionReceipt": receipt}))
        result = await client.get_transaction(TX_HASH)
        assert result is not None
        assert result.success
        assert result.block_height == 16

    @pytest.mark.asyncio
    async def test_network_info(self) -> None:
        """Network info combines chain id and height."""
        client = make_client(FakeEvmNode({"eth_chainId": "0x2328", "eth_blockNumber": "0x3"}))
        info = await client.get_network_info()
        assert (info.chain_id, info.block_height, info.name) == ("9000", 3, "evm-9000")


class TestEvmClientTransactions:
    """Tests for local signing and submission."""

    @pytest.mark.asyncio
    async def test_legacy_fees_without_base_fee(self) -> None:
        """Chains without a base fee get a legacy gas price."""
        node = FakeEvmNode(
            {
                **SIGNING_ANSWERS,
                "eth_getBlockByNumber": {"number": "0x1"},
                "eth_gasPrice": "0x3b9aca00",
            }
        )
        client = make_client(node)

        result = await client.send_transaction(
            TransactionRequest(to=RECIPIENT, value=10**16), TEST_PRIVATE_KEY
        )

        assert result.hash == TX_HASH
        assert result.success
        [raw] = node.params_of("eth_sendRawTransaction")
        assert Account.recover_transaction(raw) == Account.from_key(TEST_PRIVATE_KEY).address
        assert node.params_of("eth_getTransactionCount")[1] == "pending"

    @pytest.mark.asyncio
    async def test_dynamic_fees_with_base_fee(self) -> None:
        """Chains with a base fee get an EIP-1559 transaction."""
        node = FakeEvmNode(
            {
                **SIGNING_ANSWERS,
                "eth_getBlockByNumber": {"number": "0x1", "baseFeePerGas": "0x7"},
                "eth_maxPriorityFeePerGas": "0x1",
            }
        )
        client = make_client(node)

        await client.send_transaction(TransactionRequest(to=RECIPIENT, value=1), TEST_PRIVATE_KEY)

        [raw] = node.params_of("eth_sendRawTransaction")
        assert raw.startswith("0x02")
        assert Account.recover_transaction(raw) == Account.from_key(TEST_PRIVATE_KEY).address

    @pytest.mark.asyncio
    async def test_priority_fee_fallback(self) -> None:
        """Nodes without a fee suggestion endpoint get the default priority fee."""
        node = FakeEvmNode({"eth_getBlockByNumber": {"baseFeePerGas": "0x10"}})
        client = make_client(node)

        fees = await client._fee_fields()

        assert fees == {
            "type": 2,
            "maxPriorityFeePerGas": DEFAULT_PRIORITY_FEE,
            "maxFeePerGas": 2 * 16 + DEFAULT_PRIORITY_FEE,
        }

    @pytest.mark.asyncio
    async def test_rejected_submission(self) -> None:
        """A node rejecting the raw transaction raises."""
        answers = {
            **SIGNING_ANSWERS,
            "eth_getBlockByNumber": {"number": "0x1"},
            "eth_gasPrice": "0x1",
        }
        del answers["eth_sendRawTransaction"]
        client = make_client(FakeEvmNode(answers))
        with pytest.raises(RpcError):
            await client.send_transaction(
                TransactionRequest(to=RECIPIENT, value=1), TEST_PRIVATE_KEY
            )
