"""
Cluster configuration models.

A cluster config describes one chain under test: which layer kinds it runs,
where its nodes live, how their services are stopped and started, and which
wallet pays for probe transactions.

Example (YAML, one section per network)::

    local:
      chainId: "9000"
      executeLayer: evm
      consensusLayer: cosmos
      executeLayerHttpRpcUrl: http://127.0.0.1:8545
      executionMethod: docker
      founderWallet:
        address: "0x..."
      nodes:
        - index: 0
          url: http://127.0.0.1
          type: validator
          votingPower: 10
          consensusLayerHttpRestApiPort: null
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Annotated, Literal

from eth_account import Account
from pydantic import AliasChoices, Field, PlainValidator, field_validator, model_validator
from pydantic.alias_generators import to_camel

from bft_resilience.config import FOUNDER_WALLET_KEY_ENV, SSH_KEY_ENV, WALLET_PRIVATE_KEY_ENV
from bft_resilience.node.ports import (
    DEFAULT_PORTS,
    PortName,
    PortState,
    UseDefault,
    parse_port_state,
)
from bft_resilience.types.base import FrozenModel
from bft_resilience.types.exceptions import ConfigurationError, CredentialError

PortField = Annotated[PortState, PlainValidator(parse_port_state)]
"""Port config field: int exposes, null closes, absent uses the chain default."""


def _port_name(key: str) -> PortName:
    """Accept a port name in snake_case or camelCase."""
    for name in PortName:
        if key in (name.value, to_camel(name.value)):
            return name
    raise ValueError(f"Unknown port name: {key!r}")


class NodeType(str, Enum):
    """Role of a node in the cluster."""

    VALIDATOR = "validator"
    """Holds voting power and signs blocks."""

    NON_VALIDATOR = "non-validator"
    """Full node without voting power."""

    BOOTNODE = "bootnode"
    """Network entry point. Usually has no testable consensus RPC."""


class ExecutionMethod(str, Enum):
    """How node services are stopped and started."""

    SSH = "ssh"
    DOCKER = "docker"
    NONE = "none"


class SshNodeOverride(FrozenModel):
    """Per-node SSH settings that take precedence over the chain defaults."""

    host: str | None = None
    """Host to connect to. Defaults to the host of the node URL."""

    username: str | None = None
    """Login user."""

    key_source: Literal["env", "file"] | None = None
    """Where the private key comes from."""

    key_path: str | None = None
    """Environment variable name holding the key (or holding the key file path)."""


class DockerNodeOverride(FrozenModel):
    """Per-node container names that replace the derived ones."""

    execution_container: str | None = None
    """Container running the execution client."""

    consensus_container: str | None = None
    """Container running the consensus client."""


class NodeSpec(FrozenModel):
    """Static description of one cluster node."""

    index: int = Field(ge=0)
    """Unique node index within the cluster."""

    url: str = Field(validation_alias=AliasChoices("url", "rpcUrl", "rpc_url"))
    """Primary node URL. Only its scheme and host are used."""

    type: NodeType
    """Role of the node."""

    voting_power: int = Field(default=0, ge=0)
    """Consensus weight. Non-validators carry zero."""

    active: bool = True
    """Whether the node starts in the live set."""

    execute_layer_http_rpc_port: PortField = UseDefault()
    """EVM JSON-RPC port."""

    consensus_layer_rpc_port: PortField = UseDefault()
    """CometBFT RPC port."""

    consensus_layer_http_rest_api_port: PortField = UseDefault()
    """Cosmos REST API port."""

    consensus_layer_p2p_comm_port: PortField = UseDefault()
    """CometBFT P2P port."""

    ssh: SshNodeOverride | None = None
    """SSH overrides for this node."""

    docker: DockerNodeOverride | None = None
    """Docker overrides for this node."""

    @property
    def name(self) -> str:
        """Display name, e.g. `validator-2`."""
        return f"{self.type.value}-{self.index}"

    def port_state(self, port: PortName) -> PortState:
        """Configured state of one logical port."""
        return getattr(self, port.value)


class ServiceCommand(FrozenModel):
    """A named service on a host together with its stop and start commands."""

    id: str
    """Identifier referenced by the start and stop orders."""

    display_name: str = ""
    """Human-readable name used in logs."""

    start_command: str
    """Shell command that starts the service."""

    stop_command: str
    """Shell command that stops the service."""


class SshSettings(FrozenModel):
    """Chain-wide SSH backend settings."""

    username: str = "ubuntu"
    """Default login user."""

    port: int = 22
    """SSH port."""

    key_source: Literal["env", "file"] = "env"
    """`env`: the variable holds the key. `file`: the variable holds a key file path."""

    key_path: str = SSH_KEY_ENV
    """Environment variable consulted for the key."""

    connection_timeout: float = 30.0
    """Seconds allowed to establish the connection."""

    exec_timeout: float = 60.0
    """Seconds allowed per remote command."""

    services: list[ServiceCommand] = Field(default_factory=list)
    """Services that make up a node."""

    default_stop_order: list[str] | None = None
    """Service ids in stop order. Defaults to the reverse of the start order."""

    default_start_order: list[str] | None = None
    """Service ids in start order. Defaults to declaration order."""

    def stop_sequence(self) -> list[str]:
        """Service ids in the order they are stopped."""
        if self.default_stop_order is not None:
            return list(self.default_stop_order)
        return list(reversed(self.start_sequence()))

    def start_sequence(self) -> list[str]:
        """Service ids in the order they are started."""
        if self.default_start_order is not None:
            return list(self.default_start_order)
        return [service.id for service in self.services]

    def service(self, service_id: str) -> ServiceCommand | None:
        """Look up a service by id."""
        return next((s for s in self.services if s.id == service_id), None)


class ContainerPatterns(FrozenModel):
    """Container name templates. `{index}` is replaced with the node index."""

    execution_layer: str = "validator{index}-geth"
    consensus_layer: str = "validator{index}-node"


class DockerSettings(FrozenModel):
    """Chain-wide Docker backend settings."""

    container_patterns: ContainerPatterns = Field(default_factory=ContainerPatterns)
    """Templates used to derive container names."""

    bootnode_prefix: str = "bootnode"
    """Replaces the `validator` prefix of the patterns for bootnodes."""

    timeout: float = 30.0
    """Seconds allowed per docker command."""


class FounderWallet(FrozenModel):
    """Funded account that signs probe transactions."""

    name: str = "founder"
    """Label used in logs."""

    address: str | None = None
    """Account address. Derived from the key when omitted."""

    private_key: str | None = Field(default=None, repr=False)
    """Hex private key. Prefer `private_key_env` over keeping it in the file."""

    private_key_env: str = FOUNDER_WALLET_KEY_ENV
    """Environment variable read when no key is in the file."""

    def resolve_private_key(self) -> str:
        """
        Return the signing key.

        `WALLET_PRIVATE_KEY` wins over everything, then the inline key,
        then the configured environment variable.

        Raises:
            CredentialError: If no key is available.
        """
        key = (
            os.environ.get(WALLET_PRIVATE_KEY_ENV)
            or self.private_key
            or os.environ.get(self.private_key_env)
        )
        if not key:
            raise CredentialError(
                f"No private key for wallet {self.name!r}: set {WALLET_PRIVATE_KEY_ENV} "
                f"or {self.private_key_env}"
            )
        return key if key.startswith("0x") else f"0x{key}"

    def resolve_address(self) -> str:
        """Return the wallet address, deriving it from the key if needed."""
        if self.address:
            return self.address

        return Account.from_key(self.resolve_private_key()).address


class ChainConfig(FrozenModel):
    """Everything the harness needs to know about one chain under test."""

    name: str = "local"
    """Network name, e.g. the config section it was loaded from."""

    chain_id: str
    """Chain identifier. Numeric ids are kept as strings."""

    execute_layer: str = "evm"
    """Execution layer kind."""

    consensus_layer: str = "cosmos"
    """Consensus layer kind."""

    execute_layer_http_rpc_url: str | None = None
    """Public execution endpoint used for warm-up transactions."""

    default_ports: dict[PortName, int] = Field(default_factory=lambda: dict(DEFAULT_PORTS))
    """Ports applied to every node port left unspecified."""

    timeout: float = 30.0
    """Seconds allowed for a connection test."""

    execution_method: ExecutionMethod = ExecutionMethod.NONE
    """Backend used to stop and start nodes."""

    ssh: SshSettings = Field(default_factory=SshSettings)
    """SSH backend settings."""

    docker: DockerSettings = Field(default_factory=DockerSettings)
    """Docker backend settings."""

    founder_wallet: FounderWallet = Field(default_factory=FounderWallet)
    """Wallet used for probe transactions."""

    nodes: list[NodeSpec] = Field(default_factory=list)
    """Cluster nodes."""

    @field_validator("chain_id", mode="before")
    @classmethod
    def _chain_id_as_str(cls, v: str | int) -> str:
        # YAML parses unquoted numeric ids as integers.
        return str(v)

    @field_validator("execute_layer", "consensus_layer", mode="before")
    @classmethod
    def _normalize_layer(cls, v: str) -> str:
        return str(v).lower()

    @field_validator("default_ports", mode="before")
    @classmethod
    def _merge_default_ports(cls, v: dict[str, int] | None) -> dict[PortName, int]:
        merged = dict(DEFAULT_PORTS)
        for key, port in (v or {}).items():
            merged[_port_name(key)] = port
        return merged

    @model_validator(mode="after")
    def _unique_indices(self) -> "ChainConfig":
        seen: set[int] = set()
        for node in self.nodes:
            if node.index in seen:
                raise ValueError(f"Duplicate node index {node.index}")
            seen.add(node.index)
        return self

    def require_public_endpoint(self) -> str:
        """
        Return the public execution endpoint.

        Raises:
            ConfigurationError: If the chain has none configured.
        """
        if not self.execute_layer_http_rpc_url:
            raise ConfigurationError(f"Chain {self.name!r} has no executeLayerHttpRpcUrl")
        return self.execute_layer_http_rpc_url
