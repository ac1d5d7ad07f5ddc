"""Tests for the node registry."""

from __future__ import annotations

import pytest

from bft_resilience.chain.config import NodeType
from bft_resilience.clients.jsonrpc import BLOCK_NUMBER_REQUEST
from bft_resilience.node.node import Connectivity
from bft_resilience.node.states import NodeState
from bft_resilience.registry.registry import NodeRegistry
from bft_resilience.registry.selection import SelectionScenario
from bft_resilience.types.exceptions import (
    ConfigurationError,
    CredentialError,
    NodeNotFoundError,
    UnsupportedLayerError,
)
from tests.bft_resilience.helpers import (
    PUBLIC_RPC_URL,
    TEST_FOUNDER_ADDRESS,
    FakeClientFactory,
    make_chain_config,
    make_node,
    make_registry,
)


@pytest.fixture
def mixed(factory: FakeClientFactory) -> NodeRegistry:
    """Three validators, one inactive validator, a full node and a bootnode."""
    nodes = [
        make_node(0),
        make_node(1),
        make_node(2, votingPower=30),
        make_node(3, active=False),
        make_node(4, "non-validator"),
        make_node(5, "bootnode", consensusLayerRpcPort=None),
    ]
    return make_registry(make_chain_config(nodes=nodes), factory)


class TestConstruction:
    """Tests for building nodes from the config."""

    def test_spec_active_nodes_are_activated(self, mixed: NodeRegistry) -> None:
        """Nodes marked active start connected with clients."""
        node = mixed.get_node(0)
        assert node.state is NodeState.ACTIVE_CONNECTED
        assert node.execute_client is not None
        assert node.consensus_client is not None

    def test_spec_inactive_nodes_stay_inactive(self, mixed: NodeRegistry) -> None:
        """Nodes marked inactive have no clients."""
        node = mixed.get_node(3)
        assert node.state is NodeState.INACTIVE
        assert node.execute_client is None

    def test_nodes_sorted_by_index(self, factory: FakeClientFactory) -> None:
        """Nodes are kept in index order whatever the config order."""
        config = make_chain_config(nodes=[make_node(2), make_node(0), make_node(1)])
        assert [n.index for n in make_registry(config, factory).nodes] == [0, 1, 2]

    def test_unsupported_layer(self) -> None:
        """Without an injected factory, unknown layer kinds are rejected."""
        with pytest.raises(UnsupportedLayerError):
            NodeRegistry(make_chain_config(consensusLayer="hotstuff"))

    def test_unknown_node(self, mixed: NodeRegistry) -> None:
        """Looking up a missing index raises."""
        with pytest.raises(NodeNotFoundError, match="Node with index 42 not found"):
            mixed.get_node(42)


class TestLookups:
    """Tests for live-set filters."""

    def test_active_nodes(self, mixed: NodeRegistry) -> None:
        """Inactive nodes are excluded."""
        assert [n.index for n in mixed.get_active_nodes()] == [0, 1, 2, 4, 5]

    def test_active_not_boot_nodes(self, mixed: NodeRegistry) -> None:
        """Bootnodes are excluded from sampling targets."""
        assert [n.index for n in mixed.get_active_not_boot_nodes()] == [0, 1, 2, 4]

    def test_active_validators(self, mixed: NodeRegistry) -> None:
        """Only active validators hold selectable power."""
        assert [n.index for n in mixed.get_active_validators()] == [0, 1, 2]

    def test_nodes_by_type(self, mixed: NodeRegistry) -> None:
        """Type filters include inactive nodes."""
        assert [n.index for n in mixed.get_nodes_by_type("validator")] == [0, 1, 2, 3]
        assert [n.index for n in mixed.get_nodes_by_type(NodeType.BOOTNODE)] == [5]

    def test_has_active_bootnodes(self, mixed: NodeRegistry) -> None:
        """The bootnode is active."""
        assert mixed.has_active_bootnodes()

    def test_find_by_host(self, mixed: NodeRegistry) -> None:
        """Nodes are found by bare host or URL, scheme ignored."""
        node = mixed.find_by_host("10.0.0.3")
        assert node is not None and node.index == 2
        node = mixed.find_by_host("https://10.0.0.3/")
        assert node is not None and node.index == 2
        assert mixed.find_by_host("10.9.9.9") is None


class TestSetNodeActive:
    """Tests for live/stopped bookkeeping."""

    @pytest.mark.asyncio
    async def test_deactivate_closes_clients(
        self, mixed: NodeRegistry, factory: FakeClientFactory
    ) -> None:
        """Deactivation tears the clients down."""
        created = list(factory.created)
        await mixed.deactivate_node(0)
        node = mixed.get_node(0)
        assert node.state is NodeState.INACTIVE
        assert node.execute_client is None
        assert node.consensus_client is None
        closed = [c.url for c in created if c.disconnected]
        assert closed == [node.execute_rpc_url(), node.consensus_rpc_url()]

    @pytest.mark.asyncio
    async def test_activate_opens_clients(self, mixed: NodeRegistry) -> None:
        """Activation opens fresh clients."""
        await mixed.activate_node(3)
        node = mixed.get_node(3)
        assert node.state is NodeState.ACTIVE_CONNECTED
        assert node.execute_client is not None

    @pytest.mark.asyncio
    async def test_idempotent(self, mixed: NodeRegistry, factory: FakeClientFactory) -> None:
        """Setting the current value again changes nothing."""
        created = len(factory.created)
        await mixed.set_node_active(0, True)
        await mixed.set_node_active(3, False)
        assert len(factory.created) == created

    @pytest.mark.asyncio
    async def test_selection_follows_live_set(self, mixed: NodeRegistry) -> None:
        """Deactivated validators are not selectable."""
        await mixed.deactivate_node(2)
        selection = mixed.select_validators_by_voting_power(SelectionScenario.MORE_THAN_ONE_THIRD)
        assert selection.total_voting_power == 20
        assert selection.selected_indices == (0,)


class TestFanOut:
    """Tests for concurrent requests."""

    @pytest.mark.asyncio
    async def test_responses_in_target_order(
        self, mixed: NodeRegistry, factory: FakeClientFactory
    ) -> None:
        """One outcome per node, in the order asked."""
        factory.endpoint(mixed.get_node(1).execute_rpc_url()).offset = 5
        outcomes = await mixed.get_multiple_node_responses(BLOCK_NUMBER_REQUEST, [1, 0])
        assert [o.node_index for o in outcomes] == [1, 0]
        assert [(o.response or {}).get("result") for o in outcomes] == ["0xf", "0xa"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(
        self, mixed: NodeRegistry, factory: FakeClientFactory
    ) -> None:
        """A failing node becomes an error outcome."""
        factory.set_node_up(mixed.get_node(0), False)
        outcomes = await mixed.get_multiple_node_responses(BLOCK_NUMBER_REQUEST, [0, 1])
        assert not outcomes[0].ok
        assert outcomes[1].ok

    @pytest.mark.asyncio
    async def test_defaults_to_active_nodes(self, mixed: NodeRegistry) -> None:
        """Without indices every active node is asked, bootnode included."""
        outcomes = await mixed.get_multiple_node_responses(BLOCK_NUMBER_REQUEST)
        assert [o.node_index for o in outcomes] == [0, 1, 2, 4, 5]


class TestConnectivity:
    """Tests for connectivity probes."""

    @pytest.mark.asyncio
    async def test_active_node_probed_through_clients(
        self, mixed: NodeRegistry, factory: FakeClientFactory
    ) -> None:
        """A failed probe marks an active node disconnected."""
        factory.set_node_up(mixed.get_node(1), False)
        report = await mixed.check_connectivity_by_index([0, 1])
        assert report[0] == Connectivity(evm_connected=True, consensus_connected=True)
        assert not report[1].any_connected
        assert mixed.get_node(1).state is NodeState.ACTIVE_DISCONNECTED
        assert mixed.get_node(1).last_error == "no layer answered"

    @pytest.mark.asyncio
    async def test_inactive_node_not_dialed_by_default(
        self, mixed: NodeRegistry, factory: FakeClientFactory
    ) -> None:
        """Inactive nodes report disconnected without any dial."""
        created = len(factory.created)
        report = await mixed.check_connectivity_by_index([3])
        assert not report[3].any_connected
        assert len(factory.created) == created

    @pytest.mark.asyncio
    async def test_inactive_node_dialed_on_request(self, mixed: NodeRegistry) -> None:
        """With dial_inactive an inactive node that still answers is reported."""
        report = await mixed.check_connectivity_by_index([3], dial_inactive=True, timeout=1.0)
        assert report[3].any_connected
        assert mixed.get_node(3).state is NodeState.INACTIVE

    @pytest.mark.asyncio
    async def test_by_host(self, mixed: NodeRegistry) -> None:
        """Unknown hosts are reported disconnected."""
        report = await mixed.check_nodes_connectivity(["10.0.0.1", "10.9.9.9"])
        assert report["10.0.0.1"].any_connected
        assert report["10.9.9.9"] == Connectivity(evm_connected=False, consensus_connected=False)

    @pytest.mark.asyncio
    async def test_connection_tests(self, mixed: NodeRegistry, factory: FakeClientFactory) -> None:
        """Each active node is tested; a recovered node becomes connected again."""
        node = mixed.get_node(1)
        node.transition(NodeState.ACTIVE_DISCONNECTED, "earlier failure")
        factory.set_node_up(mixed.get_node(4), False)

        results = await mixed.test_connectivity()

        assert results == {0: True, 1: True, 2: True, 4: False, 5: True}
        assert node.state is NodeState.ACTIVE_CONNECTED
        assert mixed.get_node(4).state is NodeState.ACTIVE_DISCONNECTED
        assert not await mixed.health_check()

    @pytest.mark.asyncio
    async def test_untestable_node(self, factory: FakeClientFactory) -> None:
        """Nodes without a testable endpoint are reported as None."""
        closed = {
            "executeLayerHttpRpcPort": None,
            "consensusLayerRpcPort": None,
            "consensusLayerHttpRestApiPort": None,
        }
        config = make_chain_config(nodes=[make_node(0), make_node(1, "bootnode", **closed)])
        registry = make_registry(config, factory)
        assert await registry.test_connectivity() == {0: True, 1: None}
        assert await registry.health_check()


class TestTransactions:
    """Tests for transaction helpers."""

    @pytest.mark.asyncio
    async def test_simple_transaction_via_first_node(
        self, mixed: NodeRegistry, factory: FakeClientFactory
    ) -> None:
        """The first active non-boot node submits by default."""
        result = await mixed.send_simple_transaction(TEST_FOUNDER_ADDRESS, 5)
        assert result.success
        assert factory.chain.transactions == [(TEST_FOUNDER_ADDRESS, 5)]
        sender = factory.endpoint(mixed.get_node(0).execute_rpc_url())
        assert sender.chain.transactions[-1] == (TEST_FOUNDER_ADDRESS, 5)

    @pytest.mark.asyncio
    async def test_simple_transaction_without_key(self, factory: FakeClientFactory) -> None:
        """A wallet without a key cannot sign."""
        config = make_chain_config(founderWallet={"address": TEST_FOUNDER_ADDRESS})
        registry = make_registry(config, factory)
        with pytest.raises(CredentialError):
            await registry.send_simple_transaction(TEST_FOUNDER_ADDRESS, 5)

    @pytest.mark.asyncio
    async def test_public_endpoint(self, mixed: NodeRegistry, factory: FakeClientFactory) -> None:
        """Public endpoint transactions use a transient client."""
        await mixed.send_transaction_via_public_endpoint(TEST_FOUNDER_ADDRESS, 1)
        [client] = [c for c in factory.created if c.url == PUBLIC_RPC_URL]
        assert client.disconnected
        assert factory.chain.transactions == [(TEST_FOUNDER_ADDRESS, 1)]

    @pytest.mark.asyncio
    async def test_no_sender(self, factory: FakeClientFactory) -> None:
        """A cluster of bootnodes has nobody to submit through."""
        registry = make_registry(make_chain_config(nodes=[make_node(0, "bootnode")]), factory)
        with pytest.raises(ConfigurationError, match="No active non-boot node"):
            await registry.send_simple_transaction(TEST_FOUNDER_ADDRESS, 1)

    @pytest.mark.asyncio
    async def test_block_height(self, mixed: NodeRegistry, factory: FakeClientFactory) -> None:
        """Heights come from the first sampling node unless one is named."""
        factory.endpoint(mixed.get_node(2).consensus_rpc_url()).offset = 3
        assert await mixed.get_block_height() == 10
        assert await mixed.get_block_height(2) == 13

    @pytest.mark.asyncio
    async def test_cleanup(self, mixed: NodeRegistry, factory: FakeClientFactory) -> None:
        """Cleanup disconnects every client and leaves states alone."""
        await mixed.cleanup()
        assert all(client.disconnected for client in factory.created)
        assert mixed.get_node(0).state is NodeState.ACTIVE_CONNECTED
