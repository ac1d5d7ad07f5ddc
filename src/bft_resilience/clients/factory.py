"""Construct layer clients for the layer kinds a chain config names."""

from __future__ import annotations

import httpx
from typing_extensions import Final

from bft_resilience.types.exceptions import UnsupportedLayerError

from .cometbft import CometBftClient, probe_rest_node_info
from .evm import EvmClient
from .jsonrpc import DEFAULT_TIMEOUT
from .protocols import ConsensusLayerClient, ExecuteLayerClient

EXECUTE_LAYER_KINDS: Final = frozenset({"evm"})
"""Execution layer kinds with a client adapter."""

CONSENSUS_LAYER_KINDS: Final = frozenset({"cosmos", "cometbft", "tendermint"})
"""Consensus layer kinds with a client adapter. All speak CometBFT RPC."""


class ClientFactory:
    """
    Builds layer clients for one chain.

    Nodes hold a factory rather than building clients themselves so that a
    client discarded after a timeout can be replaced with a fresh one, and so
    that tests can hand out in-memory clients.
    """

    def __init__(
        self,
        execute_layer: str,
        consensus_layer: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Validate the layer kinds up front.

        Raises:
            UnsupportedLayerError: If either kind has no adapter.
        """
        if execute_layer not in EXECUTE_LAYER_KINDS:
            raise UnsupportedLayerError(f"Unsupported execute layer: {execute_layer}")
        if consensus_layer not in CONSENSUS_LAYER_KINDS:
            raise UnsupportedLayerError(f"Unsupported consensus layer: {consensus_layer}")
        self.execute_layer = execute_layer
        self.consensus_layer = consensus_layer
        self._timeout = timeout
        self._transport = transport

    def execute_client(self, url: str) -> ExecuteLayerClient:
        """Create an execution layer client for `url`."""
        return EvmClient(url, timeout=self._timeout, transport=self._transport)

    def consensus_client(self, url: str) -> ConsensusLayerClient:
        """Create a consensus layer client for `url`."""
        return CometBftClient(url, timeout=self._timeout, transport=self._transport)

    async def probe_rest(self, url: str, timeout: float) -> bool:
        """Probe a REST gateway's node-info route."""
        return await probe_rest_node_info(url, timeout=timeout, transport=self._transport)
