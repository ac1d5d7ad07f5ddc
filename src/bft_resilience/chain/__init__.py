"""Chain configuration: cluster description and loading."""

from .config import (
    ChainConfig,
    ContainerPatterns,
    DockerSettings,
    ExecutionMethod,
    FounderWallet,
    NodeSpec,
    NodeType,
    ServiceCommand,
    SshSettings,
)
from .loader import load_chain_config, parse_chain_config

__all__ = [
    "ChainConfig",
    "ContainerPatterns",
    "DockerSettings",
    "ExecutionMethod",
    "FounderWallet",
    "NodeSpec",
    "NodeType",
    "ServiceCommand",
    "SshSettings",
    "load_chain_config",
    "parse_chain_config",
]
