"""Scenario step state machine."""

from __future__ import annotations

from enum import Enum


class ScenarioStep(Enum):
    """
    Position of a fault scenario in its linear workflow.

    State Machine Diagram
    ---------------------
    ::

        CREATED -> INITIALIZED -> VALIDATORS_SELECTED -> STOPPED
            -> POST_STOP_VERIFIED -> UNREACHABILITY_CONFIRMED
            -> [LONG_WAIT_ELAPSED] -> RESTARTED -> POST_RESTART_VERIFIED
            -> ANALYZED -> CLEANED_UP

    Every step must run after the one before it. The long wait is the only
    optional step. CLEANED_UP is reachable from every state so a scenario
    aborted anywhere can still restore the cluster.

    Each value is the name the step is logged under in the scenario result.
    """

    CREATED = "created"
    INITIALIZED = "initialize"
    VALIDATORS_SELECTED = "get_validators"
    STOPPED = "stop_validators"
    POST_STOP_VERIFIED = "check_network_after_stop"
    UNREACHABILITY_CONFIRMED = "verify_stopped_validators"
    LONG_WAIT_ELAPSED = "wait_long_period"
    RESTARTED = "restart_validators"
    POST_RESTART_VERIFIED = "check_network_after_restart"
    ANALYZED = "analyze"
    CLEANED_UP = "cleanup"

    def can_transition_to(self, target: "ScenarioStep") -> bool:
        """
        Check if transition to target step is valid.

        Args:
            target: The proposed next step.

        Returns:
            True if the workflow allows it.
        """
        if target is ScenarioStep.CLEANED_UP:
            return True
        return target in _VALID_TRANSITIONS.get(self, set())

    @property
    def record_name(self) -> str:
        """Name used for this step in the scenario result."""
        return self.value


_VALID_TRANSITIONS: dict[ScenarioStep, set[ScenarioStep]] = {
    ScenarioStep.CREATED: {ScenarioStep.INITIALIZED},
    ScenarioStep.INITIALIZED: {ScenarioStep.VALIDATORS_SELECTED},
    ScenarioStep.VALIDATORS_SELECTED: {ScenarioStep.STOPPED},
    ScenarioStep.STOPPED: {ScenarioStep.POST_STOP_VERIFIED},
    ScenarioStep.POST_STOP_VERIFIED: {ScenarioStep.UNREACHABILITY_CONFIRMED},
    ScenarioStep.UNREACHABILITY_CONFIRMED: {
        ScenarioStep.LONG_WAIT_ELAPSED,
        ScenarioStep.RESTARTED,
    },
    ScenarioStep.LONG_WAIT_ELAPSED: {ScenarioStep.RESTARTED},
    ScenarioStep.RESTARTED: {ScenarioStep.POST_RESTART_VERIFIED},
    ScenarioStep.POST_RESTART_VERIFIED: {ScenarioStep.ANALYZED},
    ScenarioStep.ANALYZED: set(),
    ScenarioStep.CLEANED_UP: set(),
}
"""Valid forward transitions. CLEANED_UP is handled separately."""
