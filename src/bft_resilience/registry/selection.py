"""
Voting-power based validator selection.

BFT consensus keeps making progress while more than two thirds of the voting
power is online. Stopping validators therefore has three interesting cases:

- **less than one third** offline: the chain must keep producing blocks
- **exactly one third** offline: the boundary, still live
- **more than one third** offline: the chain must halt

Selection works on a snapshot of (index, voting power) pairs taken once,
so later changes to the registry never alter a scenario in flight.

Rules, scanning validators in ascending index order:

- less-than: add each validator whose power keeps the running sum at or
  below floor(total / 3) - 1
- exactly: the achievable subset sum closest to floor(total / 3) from
  below, taking the first subset found for that sum
- more-than: add validators until 3 * sum > total

Validators with zero voting power are eligible like any other.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from bft_resilience.types.exceptions import InsufficientVotingPowerError, NoActiveValidatorsError


class SelectionScenario(str, Enum):
    """Fraction of voting power to take offline."""

    LESS_THAN_ONE_THIRD = "less-than-one-third"
    EXACTLY_ONE_THIRD = "exactly-one-third"
    MORE_THAN_ONE_THIRD = "more-than-one-third"

    @property
    def expects_progress(self) -> bool:
        """Whether the chain should keep producing blocks with the selection stopped."""
        return self is not SelectionScenario.MORE_THAN_ONE_THIRD


@dataclass(frozen=True, slots=True)
class VotingPowerSelection:
    """Validators chosen for one scenario, with the snapshot they were chosen from."""

    scenario: SelectionScenario
    """Requested scenario."""

    total_voting_power: int
    """Sum of voting power over the active validators at selection time."""

    target_voting_power: int
    """Threshold derived from the total for this scenario."""

    selected_indices: tuple[int, ...]
    """Indices of the selected validators, ascending."""

    achieved_voting_power: int
    """Sum of voting power over the selected validators."""

    @property
    def fraction(self) -> float:
        """Achieved share of the total, 0.0 when the total is zero."""
        if self.total_voting_power == 0:
            return 0.0
        return self.achieved_voting_power / self.total_voting_power


def select_by_voting_power(
    validators: Iterable[tuple[int, int]],
    scenario: SelectionScenario | str,
) -> VotingPowerSelection:
    """
    Select validators for a scenario.

    Args:
        validators: (index, voting power) of every active validator.
        scenario: Which fraction to select.

    Returns:
        The selection.

    Raises:
        NoActiveValidatorsError: If there are no validators.
        InsufficientVotingPowerError: If more than one third cannot be reached.
    """
    scenario = SelectionScenario(scenario)
    snapshot = sorted(validators)
    if not snapshot:
        raise NoActiveValidatorsError()

    total = sum(power for _, power in snapshot)

    match scenario:
        case SelectionScenario.LESS_THAN_ONE_THIRD:
            target = total // 3 - 1
            selected = _greedy_up_to(snapshot, target)
        case SelectionScenario.EXACTLY_ONE_THIRD:
            target = total // 3
            selected = _nearest_below(snapshot, target)
        case SelectionScenario.MORE_THAN_ONE_THIRD:
            target = total // 3 + 1
            selected = _until_more_than_third(snapshot, total)
            if selected is None:
                raise InsufficientVotingPowerError(scenario.value, total)

    powers = dict(snapshot)
    return VotingPowerSelection(
        scenario=scenario,
        total_voting_power=total,
        target_voting_power=target,
        selected_indices=tuple(selected),
        achieved_voting_power=sum(powers[i] for i in selected),
    )


def _greedy_up_to(snapshot: list[tuple[int, int]], limit: int) -> list[int]:
    """First-fit: take each validator whose power keeps the sum at most `limit`."""
    selected: list[int] = []
    accumulated = 0
    for index, power in snapshot:
        if accumulated + power <= limit:
            selected.append(index)
            accumulated += power
    return selected


def _nearest_below(snapshot: list[tuple[int, int]], target: int) -> list[int]:
    """Subset with the largest sum not exceeding `target`."""
    # Sum -> first subset (in scan order) reaching it.
    reachable: dict[int, tuple[int, ...]] = {0: ()}
    for index, power in snapshot:
        for reached, subset in list(reachable.items()):
            candidate = reached + power
            if candidate <= target and candidate not in reachable:
                reachable[candidate] = (*subset, index)
        if target in reachable:
            break
    return list(reachable[max(reachable)])


def _until_more_than_third(snapshot: list[tuple[int, int]], total: int) -> list[int] | None:
    """Prefix of the snapshot whose power first exceeds a third of the total."""
    selected: list[int] = []
    accumulated = 0
    for index, power in snapshot:
        selected.append(index)
        accumulated += power
        if 3 * accumulated > total:
            return selected
    return None
