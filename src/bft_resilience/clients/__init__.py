"""Layer client adapters for execution and consensus endpoints."""

from .cometbft import CometBftClient, probe_rest_node_info
from .evm import EvmClient
from .factory import ClientFactory
from .jsonrpc import BLOCK_NUMBER_REQUEST, build_request, is_hex_quantity, parse_quantity
from .protocols import (
    ConsensusLayerClient,
    ExecuteLayerClient,
    LayerClient,
    NetworkInfo,
    TransactionRequest,
    TxResult,
)

__all__ = [
    "BLOCK_NUMBER_REQUEST",
    "ClientFactory",
    "CometBftClient",
    "ConsensusLayerClient",
    "EvmClient",
    "ExecuteLayerClient",
    "LayerClient",
    "NetworkInfo",
    "TransactionRequest",
    "TxResult",
    "build_request",
    "is_hex_quantity",
    "parse_quantity",
    "probe_rest_node_info",
]
