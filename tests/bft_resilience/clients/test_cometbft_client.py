"""Tests for the CometBFT RPC client and the REST node-info probe."""

from __future__ import annotations

import httpx
import pytest

from bft_resilience.clients.cometbft import (
    NODE_INFO_ENDPOINT,
    CometBftClient,
    probe_rest_node_info,
)
from bft_resilience.clients.factory import ClientFactory
from bft_resilience.clients.evm import EvmClient
from bft_resilience.clients.protocols import ConsensusLayerClient
from bft_resilience.types.exceptions import RpcError, UnsupportedLayerError

URL = "http://node:26657"

STATUS = {
    "jsonrpc": "2.0",
    "id": -1,
    "result": {
        "node_info": {"network": "cosmos-9000", "moniker": "validator-0"},
        "sync_info": {"latest_block_height": "1234"},
    },
}


def route(responses: dict[str, httpx.Response]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return responses.get(request.url.path, httpx.Response(404))

    return httpx.MockTransport(handler)


class TestCometBftClient:
    """Tests for the consensus layer client."""

    def test_satisfies_protocol(self) -> None:
        """The client is a consensus layer client."""
        assert isinstance(CometBftClient(URL), ConsensusLayerClient)

    @pytest.mark.asyncio
    async def test_health(self) -> None:
        """`/health` answering means connected."""
        transport = route({"/health": httpx.Response(200, json={"result": {}})})
        assert await CometBftClient(URL, transport=transport).is_connected()

    @pytest.mark.asyncio
    async def test_unhealthy(self) -> None:
        """A failing `/health` means not connected."""
        transport = route({"/health": httpx.Response(500)})
        assert await CometBftClient(URL, transport=transport).is_connected() is False

    @pytest.mark.asyncio
    async def test_block_height(self) -> None:
        """Heights come from `sync_info` as decimal strings."""
        transport = route({"/status": httpx.Response(200, json=STATUS)})
        assert await CometBftClient(URL, transport=transport).get_block_height() == 1234

    @pytest.mark.asyncio
    async def test_status_without_height(self) -> None:
        """A status without a height is an RPC error."""
        transport = route({"/status": httpx.Response(200, json={"result": {"sync_info": {}}})})
        with pytest.raises(RpcError, match="no latest_block_height"):
            await CometBftClient(URL, transport=transport).get_block_height()

    @pytest.mark.asyncio
    async def test_error_body(self) -> None:
        """An error in the body is an RPC error."""
        transport = route({"/status": httpx.Response(200, json={"error": "not ready"})})
        with pytest.raises(RpcError, match="not ready"):
            await CometBftClient(URL, transport=transport).get_block_height()

    @pytest.mark.asyncio
    async def test_network_info(self) -> None:
        """Network info carries the network name and moniker."""
        transport = route({"/status": httpx.Response(200, json=STATUS)})
        info = await CometBftClient(URL, transport=transport).get_network_info()
        assert (info.chain_id, info.block_height, info.name) == ("cosmos-9000", 1234, "validator-0")

    @pytest.mark.asyncio
    async def test_transaction_lookup(self) -> None:
        """Committed transactions are found by 0x-prefixed hash."""
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params["hash"])
            return httpx.Response(
                200, json={"result": {"height": "77", "tx_result": {"code": 0}}}
            )

        client = CometBftClient(URL, transport=httpx.MockTransport(handler))
        result = await client.get_transaction("ABCD")

        assert seen == ["0xABCD"]
        assert result is not None
        assert result.success
        assert result.block_height == 77

    @pytest.mark.asyncio
    async def test_unknown_transaction(self) -> None:
        """Unknown transactions are None, not an error."""
        client = CometBftClient(URL, transport=route({}))
        assert await client.get_transaction("0xABCD") is None


class TestRestProbe:
    """Tests for the REST node-info probe."""

    @pytest.mark.asyncio
    async def test_answers(self) -> None:
        """A 2xx from node-info means reachable."""
        transport = route({NODE_INFO_ENDPOINT: httpx.Response(200, json={})})
        assert await probe_rest_node_info("http://node:1317/", transport=transport)

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """A non-2xx status means unreachable."""
        assert await probe_rest_node_info("http://node:1317", transport=route({})) is False

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        """Transport errors mean unreachable."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        transport = httpx.MockTransport(refuse)
        assert await probe_rest_node_info("http://node:1317", transport=transport) is False


class TestClientFactory:
    """Tests for layer kind validation."""

    def test_builds_clients(self) -> None:
        """Supported kinds produce the matching clients."""
        factory = ClientFactory("evm", "tendermint")
        assert isinstance(factory.execute_client("http://n:8545"), EvmClient)
        assert isinstance(factory.consensus_client("http://n:26657"), CometBftClient)

    def test_unsupported_execute_layer(self) -> None:
        """Unknown execution layers are rejected up front."""
        with pytest.raises(UnsupportedLayerError, match="Unsupported execute layer: svm"):
            ClientFactory("svm", "cosmos")

    def test_unsupported_consensus_layer(self) -> None:
        """Unknown consensus layers are rejected up front."""
        with pytest.raises(UnsupportedLayerError, match="Unsupported consensus layer: narwhal"):
            ClientFactory("evm", "narwhal")
