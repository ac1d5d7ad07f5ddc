"""Node registry and voting-power selection."""

from .registry import NodeRegistry
from .selection import SelectionScenario, VotingPowerSelection, select_by_voting_power

__all__ = [
    "NodeRegistry",
    "SelectionScenario",
    "VotingPowerSelection",
    "select_by_voting_power",
]
