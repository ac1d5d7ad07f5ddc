"""Node ports and connection state."""

from .ports import (
    DEFAULT_PORTS,
    Exposed,
    NotExposed,
    PortName,
    PortState,
    UseDefault,
    parse_port_state,
    resolve_port,
)
from .states import NodeState

__all__ = [
    "DEFAULT_PORTS",
    "Exposed",
    "NodeState",
    "NotExposed",
    "PortName",
    "PortState",
    "UseDefault",
    "parse_port_state",
    "resolve_port",
]
