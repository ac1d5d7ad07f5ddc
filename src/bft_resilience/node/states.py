"""Node connection state machine."""

from __future__ import annotations

from enum import Enum, auto


class NodeState(Enum):
    """
    Connection state of a cluster node as seen by the harness.

    State Machine Diagram
    ---------------------
    ::

        INACTIVE <--> ACTIVE_CONNECTED <--> ACTIVE_DISCONNECTED
            ^                                       |
            +---------------------------------------+

    Transitions
    -----------
    INACTIVE -> ACTIVE_CONNECTED
        - Triggered when: the node is activated and its layer clients were built
        - Action: none, clients are ready for probes

    INACTIVE -> ACTIVE_DISCONNECTED
        - Triggered when: the node is activated but client creation failed
        - Action: the error is kept on the node

    ACTIVE_CONNECTED <-> ACTIVE_DISCONNECTED
        - Triggered when: a registry probe fails or recovers

    Any active -> INACTIVE
        - Triggered when: the registry deactivates the node
        - Action: layer clients are torn down

    Only the registry moves nodes between states. Nodes never change their
    own state.
    """

    INACTIVE = auto()
    """Node is not part of the live set. No layer clients exist."""

    ACTIVE_CONNECTED = auto()
    """Node is live and its last probe (or client creation) succeeded."""

    ACTIVE_DISCONNECTED = auto()
    """Node is live but its last probe or client creation failed."""

    def can_transition_to(self, target: "NodeState") -> bool:
        """
        Check if transition to target state is valid.

        Args:
            target: The proposed target state.

        Returns:
            True if the transition is allowed.
        """
        return target in _VALID_TRANSITIONS.get(self, set())

    @property
    def is_active(self) -> bool:
        """True if the node belongs to the live set."""
        return self != NodeState.INACTIVE


_VALID_TRANSITIONS: dict[NodeState, set[NodeState]] = {
    NodeState.INACTIVE: {NodeState.ACTIVE_CONNECTED, NodeState.ACTIVE_DISCONNECTED},
    NodeState.ACTIVE_CONNECTED: {NodeState.ACTIVE_DISCONNECTED, NodeState.INACTIVE},
    NodeState.ACTIVE_DISCONNECTED: {NodeState.ACTIVE_CONNECTED, NodeState.INACTIVE},
}
"""Valid state transitions for the node state machine."""
