"""Exception hierarchy for the fault-injection harness.

Three kinds of failure are kept apart so callers can react differently:

- **ConfigurationError**: the harness itself is misconfigured. Raised
  immediately, before any remote state is mutated. Never worth retrying.
- **TransientNetworkFailure**: a single RPC, SSH or Docker call failed.
  Fan-out steps catch and record these per operation.
- **InvariantViolation**: the cluster under test broke the property being
  checked. Aborts the remaining scenario steps.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class HarnessError(Exception):
    """
    Base exception for all harness errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# -----------------------------------------------------------------------------
# Configuration errors
# -----------------------------------------------------------------------------


class ConfigurationError(HarnessError):
    """Base class for harness misconfiguration."""


class NodeNotFoundError(ConfigurationError):
    """
    Raised when a node index is not part of the cluster.

    Attributes:
        index: The requested node index.
    """

    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Node with index {index} not found")


class PortNotExposedError(ConfigurationError):
    """
    Raised when an endpoint is requested for a port that is not exposed.

    Attributes:
        node_name: Name of the node.
        port_name: Logical name of the port.
    """

    def __init__(self, node_name: str, port_name: str) -> None:
        self.node_name = node_name
        self.port_name = port_name
        super().__init__(f"{port_name} is not exposed on {node_name}")


class ClientNotInitializedError(ConfigurationError):
    """
    Raised when a layer client is required but absent.

    Attributes:
        node_name: Name of the node.
        layer: Layer whose client is missing ("execute" or "consensus").
    """

    def __init__(self, node_name: str, layer: str) -> None:
        self.node_name = node_name
        self.layer = layer
        super().__init__(f"{layer} layer client not initialized for {node_name}")


class NoTestableEndpointError(ConfigurationError):
    """Raised when a node exposes no endpoint that a connection test could use."""

    def __init__(self, node_name: str) -> None:
        self.node_name = node_name
        super().__init__(f"No RPC client initialized for {node_name}")


class NoActiveValidatorsError(ConfigurationError):
    """Raised when voting-power selection finds no active validator."""

    def __init__(self) -> None:
        super().__init__("No active validators found")


class InsufficientVotingPowerError(ConfigurationError):
    """
    Raised when no subset of active validators can satisfy a selection scenario.

    Attributes:
        scenario: The requested scenario tag.
        total_voting_power: Total power over the active validator set.
    """

    def __init__(self, scenario: str, total_voting_power: int) -> None:
        self.scenario = scenario
        self.total_voting_power = total_voting_power
        super().__init__(
            f"Cannot satisfy {scenario} with total voting power {total_voting_power}"
        )


class UnsupportedLayerError(ConfigurationError):
    """Raised when a chain config names a layer kind with no client adapter."""


class CredentialError(ConfigurationError):
    """Raised when a private key or SSH key cannot be resolved."""


class IllegalStepTransitionError(ConfigurationError):
    """
    Raised when scenario steps are invoked out of order.

    Attributes:
        current: Name of the step the scenario is in.
        target: Name of the step that was requested.
    """

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move scenario from {current} to {target}")


# -----------------------------------------------------------------------------
# Transient network failures
# -----------------------------------------------------------------------------


class TransientNetworkFailure(HarnessError):
    """Base class for individual remote call failures."""


class RpcError(TransientNetworkFailure):
    """
    Raised when an RPC call fails at the HTTP or JSON-RPC level.

    Attributes:
        url: Endpoint that was called.
        code: JSON-RPC error code, when the server returned one.
    """

    def __init__(self, url: str, detail: str, *, code: int | None = None) -> None:
        self.url = url
        self.code = code
        msg = f"RPC call to {url} failed: {detail}"
        if code is not None:
            msg = f"{msg} (code {code})"
        super().__init__(msg)


class ProbeTimeoutError(TransientNetworkFailure):
    """Raised when a probe does not complete within its timeout."""

    def __init__(self, what: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"{what} timed out after {timeout}s")


class BackendCommandError(TransientNetworkFailure):
    """
    Raised when a backend command cannot be executed at all.

    Attributes:
        command: The command that was attempted.
        returncode: Process exit status, if the process ran.
    """

    def __init__(
        self,
        command: Sequence[str],
        detail: str,
        *,
        returncode: int | None = None,
    ) -> None:
        self.command = list(command)
        self.returncode = returncode
        super().__init__(f"{' '.join(self.command)}: {detail}")


# -----------------------------------------------------------------------------
# Invariant violations
# -----------------------------------------------------------------------------


class InvariantViolation(HarnessError):
    """Base class for failures of the property under test."""


class ConsistencyViolation(InvariantViolation):
    """
    Raised when two nodes disagree on the same request.

    Attributes:
        first_node: Index of the reference node.
        second_node: Index of the disagreeing node.
        first_value: Value observed on the reference node.
        second_value: Value observed on the disagreeing node.
    """

    def __init__(
        self,
        first_node: int,
        second_node: int,
        first_value: Any,
        second_value: Any,
        *,
        detail: str | None = None,
    ) -> None:
        self.first_node = first_node
        self.second_node = second_node
        self.first_value = first_value
        self.second_value = second_value

        msg = (
            f"Nodes {first_node} and {second_node} disagree: "
            f"{first_value!r} != {second_value!r}"
        )
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class InsufficientQuorumError(InvariantViolation):
    """
    Raised when too few nodes answered to compare responses.

    Attributes:
        required: Minimum number of successful responses.
        received: Number of successful responses.
    """

    def __init__(self, required: int, received: int) -> None:
        self.required = required
        self.received = received
        super().__init__(
            f"Need at least {required} successful responses, got {received}"
        )


class ProgressionViolation(InvariantViolation):
    """Raised when block heights do not move the way the scenario expects."""


class UnreachabilityViolation(InvariantViolation):
    """
    Raised when a stopped validator still answers on some layer.

    Attributes:
        node_indices: Stopped validators that were still reachable.
    """

    def __init__(self, node_indices: Sequence[int]) -> None:
        self.node_indices = list(node_indices)
        super().__init__(f"Stopped validators still reachable: {self.node_indices}")


class ProbeTransactionError(InvariantViolation):
    """Raised when a required probe transaction could not be sent."""
