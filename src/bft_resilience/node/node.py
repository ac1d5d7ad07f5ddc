"""
Per-node client facade.

A `ClusterNode` gives the harness one uniform surface over whichever layer
clients a node actually has:

- The execution client exists iff the node is active and its execute RPC
  port is not closed.
- The consensus client exists iff the node is active and its consensus RPC
  port is not closed.

Client handles are never set independently. They are opened and closed by
the registry as part of moving the node between states.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from bft_resilience.chain.config import NodeSpec, NodeType
from bft_resilience.clients.factory import ClientFactory
from bft_resilience.clients.protocols import (
    ConsensusLayerClient,
    ExecuteLayerClient,
    LayerClient,
    NetworkInfo,
    TransactionRequest,
    TxResult,
)
from bft_resilience.types.exceptions import (
    ClientNotInitializedError,
    ConfigurationError,
    NoTestableEndpointError,
)

from .ports import DEFAULT_PORTS, NotExposed, PortName, resolve_port
from .states import NodeState

logger = logging.getLogger(__name__)

_URL_PATTERN = re.compile(r"^(https?://[^:/]+)(:\d+)?(.*)$")
"""Splits a node URL into scheme+host, optional port, and the rest."""

EXECUTE = "execute"
CONSENSUS = "consensus"


@dataclass(frozen=True, slots=True)
class Connectivity:
    """Per-layer probe outcome for one node."""

    evm_connected: bool
    """Execution layer answered."""

    consensus_connected: bool
    """Consensus layer answered."""

    @property
    def any_connected(self) -> bool:
        """True if either layer answered."""
        return self.evm_connected or self.consensus_connected


@dataclass(frozen=True, slots=True)
class RpcOutcome:
    """Result of sending one RPC payload to one node. Exactly one of response/error is set."""

    node_index: int
    """Node the payload was sent to."""

    response: dict[str, Any] | None = None
    """Decoded JSON-RPC envelope on success."""

    error: str | None = None
    """Failure description otherwise."""

    @property
    def ok(self) -> bool:
        """True if the node answered without error."""
        return self.error is None and self.response is not None


class ClusterNode:
    """One node of the cluster under test."""

    def __init__(
        self,
        spec: NodeSpec,
        factory: ClientFactory,
        *,
        default_ports: dict[PortName, int] | None = None,
        connection_timeout: float = 30.0,
    ) -> None:
        """
        Wrap a node description. The node starts INACTIVE without clients.

        Raises:
            ConfigurationError: If the node URL cannot be parsed.
        """
        match = _URL_PATTERN.match(spec.url)
        if match is None:
            raise ConfigurationError(f"Cannot parse URL of {spec.name}: {spec.url!r}")

        self.spec = spec
        self.voting_power = spec.voting_power
        self.connection_timeout = connection_timeout
        self._factory = factory
        self._default_ports = default_ports or DEFAULT_PORTS
        self._base_url = match.group(1)

        self.state = NodeState.INACTIVE
        self.last_error: str | None = None
        self.execute_client: ExecuteLayerClient | None = None
        self.consensus_client: ConsensusLayerClient | None = None

    def __repr__(self) -> str:
        return f"ClusterNode({self.name}, {self.state.name})"

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def index(self) -> int:
        return self.spec.index

    @property
    def type(self) -> NodeType:
        return self.spec.type

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def active(self) -> bool:
        return self.state.is_active

    @property
    def is_validator(self) -> bool:
        return self.spec.type is NodeType.VALIDATOR

    @property
    def is_bootnode(self) -> bool:
        return self.spec.type is NodeType.BOOTNODE

    @property
    def base_url(self) -> str:
        """Scheme and host, e.g. `http://10.0.0.2`."""
        return self._base_url

    @property
    def host(self) -> str:
        """Bare host name or IP address."""
        return self._base_url.split("://", 1)[1]

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    def exposes(self, port: PortName) -> bool:
        """False only when the port is explicitly closed."""
        return not isinstance(self.spec.port_state(port), NotExposed)

    @property
    def has_execute_layer(self) -> bool:
        return self.exposes(PortName.EXECUTE_LAYER_HTTP_RPC)

    @property
    def has_consensus_layer(self) -> bool:
        return self.exposes(PortName.CONSENSUS_LAYER_RPC)

    def port(self, port: PortName) -> int:
        """
        Resolve a port.

        Raises:
            PortNotExposedError: If the port is closed on this node.
        """
        return resolve_port(
            self.spec.port_state(port),
            port,
            node_name=self.name,
            defaults=self._default_ports,
        )

    def url_for(self, port: PortName) -> str:
        """Endpoint URL for a port. Raises `PortNotExposedError` for a closed port."""
        return f"{self._base_url}:{self.port(port)}"

    def execute_rpc_url(self) -> str:
        return self.url_for(PortName.EXECUTE_LAYER_HTTP_RPC)

    def consensus_rpc_url(self) -> str:
        return self.url_for(PortName.CONSENSUS_LAYER_RPC)

    def rest_api_url(self) -> str:
        return self.url_for(PortName.CONSENSUS_LAYER_HTTP_REST_API)

    def p2p_address(self) -> str:
        """`host:port` of the consensus P2P listener."""
        return f"{self.host}:{self.port(PortName.CONSENSUS_LAYER_P2P_COMM)}"

    def network_config(self) -> dict[str, Any]:
        """Resolved endpoints of the node for reports. Closed ports map to None."""
        ports = {name.value: self.port(name) if self.exposes(name) else None for name in PortName}
        return {
            "index": self.index,
            "type": self.type.value,
            "host": self.host,
            "voting_power": self.voting_power,
            "ports": ports,
        }

    # -------------------------------------------------------------------------
    # Client lifecycle (driven by the registry)
    # -------------------------------------------------------------------------

    def transition(self, target: NodeState, error: str | None = None) -> None:
        """
        Move to another state. Called only by the registry.

        Raises:
            ValueError: If the state machine forbids the transition.
        """
        if target is not self.state and not self.state.can_transition_to(target):
            raise ValueError(f"{self.name}: illegal transition {self.state.name} -> {target.name}")
        if target is not self.state:
            logger.debug("%s: %s -> %s", self.name, self.state.name, target.name)
        self.state = target
        self.last_error = error if target is NodeState.ACTIVE_DISCONNECTED else None

    def open_clients(self) -> None:
        """Create a client for every layer whose port is not closed."""
        if self.has_execute_layer and self.execute_client is None:
            self.execute_client = self._factory.execute_client(self.execute_rpc_url())
        if self.has_consensus_layer and self.consensus_client is None:
            self.consensus_client = self._factory.consensus_client(self.consensus_rpc_url())

    async def cleanup(self) -> None:
        """
        Disconnect both clients.

        Each client is closed independently. A failure closing one is logged
        and does not keep the other open.
        """
        execute, self.execute_client = self.execute_client, None
        consensus, self.consensus_client = self.consensus_client, None
        for layer, client in ((EXECUTE, execute), (CONSENSUS, consensus)):
            if client is None:
                continue
            try:
                await client.disconnect()
            except Exception as e:
                logger.warning("%s: error disconnecting %s client: %s", self.name, layer, e)

    async def _discard(self, layer: str) -> None:
        """Replace a layer client after a timeout so a late answer is never reused."""
        if layer == EXECUTE:
            old: LayerClient | None = self.execute_client
            self.execute_client = self._factory.execute_client(self.execute_rpc_url())
        else:
            old = self.consensus_client
            self.consensus_client = self._factory.consensus_client(self.consensus_rpc_url())
        if old is not None:
            try:
                await old.disconnect()
            except Exception as e:
                logger.debug("%s: error discarding %s client: %s", self.name, layer, e)

    async def _race(
        self,
        probe: Callable[[], Awaitable[bool]],
        timeout: float,
        *,
        layer: str | None = None,
    ) -> bool:
        """Run a probe against a timer. Timeouts and errors count as failure."""
        try:
            return bool(await asyncio.wait_for(probe(), timeout=timeout))
        except TimeoutError:
            logger.warning("%s: %s probe timed out after %ss", self.name, layer or "rest", timeout)
            if layer is not None:
                await self._discard(layer)
            return False
        except Exception as e:
            logger.warning("%s: %s probe failed: %s", self.name, layer or "rest", e)
            return False

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def test_connection(self, timeout: float | None = None) -> bool:
        """
        Test whether the node answers on its most capable endpoint.

        Tries the execution client, then the consensus client, then the
        REST node-info route. Only the first available endpoint is probed.

        Returns:
            True if the probe succeeded within the timeout.

        Raises:
            NoTestableEndpointError: If the node has no usable endpoint.
        """
        timeout = timeout if timeout is not None else self.connection_timeout
        if self.execute_client is not None:
            return await self._race(self.execute_client.is_connected, timeout, layer=EXECUTE)
        if self.consensus_client is not None:
            return await self._race(self.consensus_client.is_connected, timeout, layer=CONSENSUS)
        if self.exposes(PortName.CONSENSUS_LAYER_HTTP_REST_API):
            rest_url = self.rest_api_url()
            return await self._race(lambda: self._factory.probe_rest(rest_url, timeout), timeout)
        raise NoTestableEndpointError(self.name)

    async def check_connectivity(self, timeout: float | None = None) -> Connectivity:
        """
        Probe both layers through the live clients.

        A layer without a client reports disconnected.
        """
        timeout = timeout if timeout is not None else self.connection_timeout

        async def probe(client: LayerClient | None, layer: str) -> bool:
            if client is None:
                return False
            return await self._race(client.is_connected, timeout, layer=layer)

        evm, consensus = await asyncio.gather(
            probe(self.execute_client, EXECUTE),
            probe(self.consensus_client, CONSENSUS),
        )
        return Connectivity(evm_connected=evm, consensus_connected=consensus)

    async def check_remote_connectivity(self, timeout: float | None = None) -> Connectivity:
        """
        Probe both layers through short-lived clients.

        Used for inactive nodes, which hold no live clients. Closed ports are
        never dialed.
        """
        timeout = timeout if timeout is not None else self.connection_timeout

        async def probe(make: Callable[[], LayerClient]) -> bool:
            client = make()
            try:
                return bool(await asyncio.wait_for(client.is_connected(), timeout=timeout))
            except Exception as e:
                logger.debug("%s: remote probe of %s failed: %s", self.name, client.url, e)
                return False
            finally:
                await client.disconnect()

        checks: list[Awaitable[bool]] = []
        if self.has_execute_layer:
            checks.append(probe(lambda: self._factory.execute_client(self.execute_rpc_url())))
        if self.has_consensus_layer:
            checks.append(probe(lambda: self._factory.consensus_client(self.consensus_rpc_url())))
        results = iter(await asyncio.gather(*checks))

        return Connectivity(
            evm_connected=next(results) if self.has_execute_layer else False,
            consensus_connected=next(results) if self.has_consensus_layer else False,
        )

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def make_rpc_request(self, payload: dict[str, Any]) -> RpcOutcome:
        """Send a raw JSON-RPC payload through the execution client. Never raises."""
        if self.execute_client is None:
            return RpcOutcome(self.index, error=str(ClientNotInitializedError(self.name, EXECUTE)))
        try:
            response = await self.execute_client.make_rpc_call(payload)
        except Exception as e:
            return RpcOutcome(self.index, error=str(e))
        return RpcOutcome(self.index, response=response)

    async def send_transaction(self, request: TransactionRequest, private_key: str) -> TxResult:
        """
        Submit a transaction through the execution client.

        Raises:
            ClientNotInitializedError: If the node has no execution client.
        """
        if self.execute_client is None:
            raise ClientNotInitializedError(self.name, EXECUTE)
        return await self.execute_client.send_transaction(request, private_key)

    def _reader(self) -> LayerClient:
        client = self.consensus_client or self.execute_client
        if client is None:
            raise ClientNotInitializedError(self.name, CONSENSUS)
        return client

    async def get_block_height(self) -> int:
        """Latest height, from the consensus client when there is one."""
        return await self._reader().get_block_height()

    async def get_network_info(self) -> NetworkInfo:
        """Network summary, from the consensus client when there is one."""
        return await self._reader().get_network_info()
