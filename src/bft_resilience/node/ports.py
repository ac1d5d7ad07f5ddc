"""
Per-layer port configuration.

Every node exposes up to four ports. Each is in exactly one of three states:

- `Exposed(port)`: the config names a port explicitly.
- `NotExposed()`: the config sets the key to `null`. The port must never be
  dialed, not even on its default value.
- `UseDefault()`: the key is absent. The chain-wide default applies.

Collapsing "not exposed" into "unspecified" would make the harness dial
ports the operator deliberately closed, so the two are separate types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from typing_extensions import Final

from bft_resilience.types.exceptions import PortNotExposedError


@dataclass(frozen=True, slots=True)
class Exposed:
    """An explicitly configured port."""

    port: int
    """TCP port number."""

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")


@dataclass(frozen=True, slots=True)
class NotExposed:
    """A port the operator closed on this node."""


@dataclass(frozen=True, slots=True)
class UseDefault:
    """A port left unspecified; the chain default applies."""


PortState = Exposed | NotExposed | UseDefault
"""Three-valued port configuration."""


class PortName(str, Enum):
    """Logical ports a node can expose, keyed by their config field name."""

    EXECUTE_LAYER_HTTP_RPC = "execute_layer_http_rpc_port"
    """EVM JSON-RPC over HTTP."""

    CONSENSUS_LAYER_HTTP_REST_API = "consensus_layer_http_rest_api_port"
    """Cosmos SDK REST gateway."""

    CONSENSUS_LAYER_RPC = "consensus_layer_rpc_port"
    """CometBFT RPC."""

    CONSENSUS_LAYER_P2P_COMM = "consensus_layer_p2p_comm_port"
    """CometBFT peer-to-peer."""


DEFAULT_PORTS: Final[dict[PortName, int]] = {
    PortName.EXECUTE_LAYER_HTTP_RPC: 8545,
    PortName.CONSENSUS_LAYER_HTTP_REST_API: 1317,
    PortName.CONSENSUS_LAYER_RPC: 26657,
    PortName.CONSENSUS_LAYER_P2P_COMM: 26656,
}
"""Ports used when a node leaves a port unspecified."""


def parse_port_state(value: Any) -> PortState:
    """
    Convert a raw config value to a port state.

    An explicit `None` means the port is closed. Integers (and numeric
    strings) become exposed ports. Already-parsed states pass through.

    Raises:
        ValueError: If the value is not a valid port.
    """
    if isinstance(value, (Exposed, NotExposed, UseDefault)):
        return value
    if value is None:
        return NotExposed()
    # bool is an int subclass; `true` in YAML is never a port.
    if isinstance(value, bool):
        raise ValueError(f"Invalid port value: {value!r}")
    if isinstance(value, int):
        return Exposed(value)
    if isinstance(value, str) and value.strip().isdigit():
        return Exposed(int(value.strip()))
    raise ValueError(f"Invalid port value: {value!r}")


def resolve_port(
    state: PortState,
    name: PortName,
    *,
    node_name: str,
    defaults: dict[PortName, int] | None = None,
) -> int:
    """
    Resolve a port state to a concrete port number.

    Args:
        state: The configured port state.
        name: Which logical port is being resolved.
        node_name: Node name for error reporting.
        defaults: Chain-wide defaults. Falls back to `DEFAULT_PORTS`.

    Returns:
        The port to dial.

    Raises:
        PortNotExposedError: If the port is not exposed on this node.
    """
    match state:
        case Exposed(port=port):
            return port
        case NotExposed():
            raise PortNotExposedError(node_name, name.name)
        case UseDefault():
            return (defaults or DEFAULT_PORTS)[name]
    raise TypeError(f"Unknown port state: {state!r}")
