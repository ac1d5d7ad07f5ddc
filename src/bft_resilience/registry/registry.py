"""
Node registry.

The registry owns every `ClusterNode` of one chain and is the only place
node state changes. It answers three kinds of questions:

- **Who is live?** Filters over the current node states, never cached.
- **Whom to stop?** Voting-power selection over the active validators.
- **What do they say?** Concurrent fan-out of probes and RPC payloads
  where one node failing never affects another's outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from bft_resilience.chain.config import ChainConfig, NodeType
from bft_resilience.clients.factory import ClientFactory
from bft_resilience.clients.protocols import TransactionRequest, TxResult
from bft_resilience.node.node import ClusterNode, Connectivity, RpcOutcome
from bft_resilience.node.states import NodeState
from bft_resilience.types.exceptions import (
    ConfigurationError,
    NodeNotFoundError,
    NoTestableEndpointError,
)

from .selection import SelectionScenario, VotingPowerSelection, select_by_voting_power

logger = logging.getLogger(__name__)

_DISCONNECTED = Connectivity(evm_connected=False, consensus_connected=False)


def _strip_scheme(url: str) -> str:
    return url.split("://", 1)[-1].rstrip("/")


class NodeRegistry:
    """All nodes of the chain under test and their live/stopped bookkeeping."""

    def __init__(self, config: ChainConfig, *, factory: ClientFactory | None = None) -> None:
        """
        Build nodes from the chain config and activate the ones marked active.

        Raises:
            UnsupportedLayerError: If the config names a layer kind without an adapter.
        """
        self.config = config
        self._factory = factory or ClientFactory(config.execute_layer, config.consensus_layer)
        self._nodes: dict[int, ClusterNode] = {}

        for spec in sorted(config.nodes, key=lambda s: s.index):
            node = ClusterNode(
                spec,
                self._factory,
                default_ports=config.default_ports,
                connection_timeout=config.timeout,
            )
            self._nodes[spec.index] = node
            if spec.active:
                self._activate(node)

        logger.info(
            "Registry for %s: %d nodes, %d active",
            config.name,
            len(self._nodes),
            len(self.get_active_nodes()),
        )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @property
    def nodes(self) -> list[ClusterNode]:
        """Every node, ascending by index."""
        return list(self._nodes.values())

    def get_node(self, index: int) -> ClusterNode:
        """
        Look up a node.

        Raises:
            NodeNotFoundError: If no node has this index.
        """
        try:
            return self._nodes[index]
        except KeyError:
            raise NodeNotFoundError(index) from None

    def get_active_nodes(self) -> list[ClusterNode]:
        return [node for node in self._nodes.values() if node.active]

    def get_active_not_boot_nodes(self) -> list[ClusterNode]:
        return [node for node in self._nodes.values() if node.active and not node.is_bootnode]

    def get_nodes_by_type(self, node_type: NodeType | str) -> list[ClusterNode]:
        node_type = NodeType(node_type)
        return [node for node in self._nodes.values() if node.type is node_type]

    def get_active_validators(self) -> list[ClusterNode]:
        return [node for node in self._nodes.values() if node.active and node.is_validator]

    def has_active_bootnodes(self) -> bool:
        return any(node.active and node.is_bootnode for node in self._nodes.values())

    def find_by_host(self, host_or_url: str) -> ClusterNode | None:
        """First node whose URL (or bare host) matches, scheme ignored."""
        wanted = _strip_scheme(host_or_url)
        for node in self._nodes.values():
            if wanted in (_strip_scheme(node.spec.url), node.host):
                return node
        return None

    # -------------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------------

    def _activate(self, node: ClusterNode) -> None:
        try:
            node.open_clients()
        except Exception as e:
            logger.warning("%s: cannot create clients: %s", node.name, e)
            node.transition(NodeState.ACTIVE_DISCONNECTED, str(e))
            return
        node.transition(NodeState.ACTIVE_CONNECTED)

    async def _deactivate(self, node: ClusterNode) -> None:
        await node.cleanup()
        node.transition(NodeState.INACTIVE)

    def _record_probe(self, node: ClusterNode, connected: bool, error: str | None = None) -> None:
        if not node.active:
            return
        if connected:
            node.transition(NodeState.ACTIVE_CONNECTED)
        else:
            node.transition(NodeState.ACTIVE_DISCONNECTED, error or "probe failed")

    async def set_node_active(self, index: int, active: bool) -> None:
        """
        Mark a node live or stopped.

        Bookkeeping only: remote services are not touched. Activation opens
        the node's layer clients and deactivation closes them. Setting the
        current value again does nothing.

        Raises:
            NodeNotFoundError: If no node has this index.
        """
        node = self.get_node(index)
        if node.active == active:
            return
        if active:
            self._activate(node)
        else:
            await self._deactivate(node)
        logger.info("%s marked %s", node.name, "active" if active else "inactive")

    async def activate_node(self, index: int) -> None:
        await self.set_node_active(index, True)

    async def deactivate_node(self, index: int) -> None:
        await self.set_node_active(index, False)

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_validators_by_voting_power(
        self,
        scenario: SelectionScenario | str,
    ) -> VotingPowerSelection:
        """
        Select active validators for a scenario.

        Raises:
            NoActiveValidatorsError: If no validator is active.
            InsufficientVotingPowerError: If the scenario cannot be satisfied.
        """
        snapshot = [(node.index, node.voting_power) for node in self.get_active_validators()]
        selection = select_by_voting_power(snapshot, scenario)
        logger.info(
            "Selected validators %s for %s: power %d of %d (target %d)",
            list(selection.selected_indices),
            selection.scenario.value,
            selection.achieved_voting_power,
            selection.total_voting_power,
            selection.target_voting_power,
        )
        return selection

    # -------------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------------

    async def get_multiple_node_responses(
        self,
        request: dict[str, Any],
        indices: Sequence[int] | None = None,
    ) -> list[RpcOutcome]:
        """
        Send one payload to many nodes concurrently.

        Args:
            request: JSON-RPC payload.
            indices: Target nodes. Defaults to every active node.

        Returns:
            One outcome per target, in target order. Per-node failures are
            outcomes, not exceptions.
        """
        if indices is None:
            targets = self.get_active_nodes()
        else:
            targets = [self.get_node(i) for i in indices]
        results = await asyncio.gather(
            *(node.make_rpc_request(request) for node in targets),
            return_exceptions=True,
        )
        return [
            result if isinstance(result, RpcOutcome) else RpcOutcome(node.index, error=str(result))
            for node, result in zip(targets, results, strict=True)
        ]

    async def _probe(
        self,
        node: ClusterNode,
        dial_inactive: bool,
        timeout: float | None,
    ) -> Connectivity:
        if node.active:
            connectivity = await node.check_connectivity(timeout)
            self._record_probe(node, connectivity.any_connected, "no layer answered")
            return connectivity
        if dial_inactive:
            return await node.check_remote_connectivity(timeout)
        return _DISCONNECTED

    async def check_connectivity_by_index(
        self,
        indices: Iterable[int],
        *,
        dial_inactive: bool = False,
        timeout: float | None = None,
    ) -> dict[int, Connectivity]:
        """
        Probe both layers of the given nodes.

        Active nodes are probed through their live clients. Inactive nodes
        report disconnected unless `dial_inactive` is set, in which case
        short-lived clients dial their exposed ports.
        """
        nodes = [self.get_node(i) for i in indices]
        results = await asyncio.gather(
            *(self._probe(node, dial_inactive, timeout) for node in nodes),
            return_exceptions=True,
        )
        report: dict[int, Connectivity] = {}
        for node, result in zip(nodes, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("%s: connectivity probe failed: %s", node.name, result)
                result = _DISCONNECTED
            report[node.index] = result
        return report

    async def check_nodes_connectivity(
        self,
        hosts: Iterable[str],
        *,
        dial_inactive: bool = False,
        timeout: float | None = None,
    ) -> dict[str, Connectivity]:
        """
        Probe both layers of the nodes named by host or URL.

        Names that match no node report both layers disconnected.
        """
        hosts = list(hosts)
        matched = {host: self.find_by_host(host) for host in hosts}
        by_index = await self.check_connectivity_by_index(
            {node.index for node in matched.values() if node is not None},
            dial_inactive=dial_inactive,
            timeout=timeout,
        )
        return {
            host: by_index[node.index] if node is not None else _DISCONNECTED
            for host, node in matched.items()
        }

    async def test_connectivity(self, timeout: float | None = None) -> dict[int, bool | None]:
        """
        Run each active node's layered connection test.

        Returns:
            Node index to result. None marks a node with no testable endpoint.
        """
        nodes = self.get_active_nodes()

        async def test(node: ClusterNode) -> bool | None:
            try:
                connected = await node.test_connection(timeout)
            except NoTestableEndpointError as e:
                logger.info("%s: %s", node.name, e)
                return None
            self._record_probe(node, connected)
            return connected

        results = await asyncio.gather(*(test(node) for node in nodes))
        return dict(zip((node.index for node in nodes), results, strict=True))

    async def health_check(self, timeout: float | None = None) -> bool:
        """True if every testable active node passes its connection test."""
        results = await self.test_connectivity(timeout)
        return all(result is not False for result in results.values())

    # -------------------------------------------------------------------------
    # Transactions and queries
    # -------------------------------------------------------------------------

    def default_sender(self) -> ClusterNode:
        """
        First active non-boot node with an execution client.

        Raises:
            ConfigurationError: If there is none.
        """
        for node in self.get_active_not_boot_nodes():
            if node.execute_client is not None:
                return node
        raise ConfigurationError("No active non-boot node with an execution client")

    async def send_simple_transaction(
        self,
        to: str,
        value: int,
        *,
        private_key: str | None = None,
        node_index: int | None = None,
    ) -> TxResult:
        """
        Send a plain transfer through one node.

        Args:
            to: Recipient address.
            value: Amount in wei.
            private_key: Signing key. Defaults to the founder wallet.
            node_index: Node to submit through. Defaults to the first
                active non-boot node.
        """
        node = self.get_node(node_index) if node_index is not None else self.default_sender()
        key = private_key or self.config.founder_wallet.resolve_private_key()
        return await node.send_transaction(TransactionRequest(to=to, value=value), key)

    async def send_transaction_via_public_endpoint(
        self,
        to: str,
        value: int,
        *,
        private_key: str | None = None,
    ) -> TxResult:
        """Send a plain transfer through the chain's public execution endpoint."""
        url = self.config.require_public_endpoint()
        key = private_key or self.config.founder_wallet.resolve_private_key()
        client = self._factory.execute_client(url)
        try:
            return await client.send_transaction(TransactionRequest(to=to, value=value), key)
        finally:
            await client.disconnect()

    async def get_block_height(self, node_index: int | None = None) -> int:
        """Latest height from one node (default: first active non-boot node)."""
        if node_index is not None:
            return await self.get_node(node_index).get_block_height()
        candidates = self.get_active_not_boot_nodes()
        if not candidates:
            raise ConfigurationError("No active non-boot node to query")
        return await candidates[0].get_block_height()

    async def cleanup(self) -> None:
        """Disconnect every node's clients. Node states are left as they are."""
        await asyncio.gather(*(node.cleanup() for node in self._nodes.values()))
