"""
Cross-node response consistency.

Honest nodes of a BFT chain must agree on committed data. The checker sends
one request to several nodes and compares what comes back:

- **tolerance 0**: every response must deep-equal the first one.
- **tolerance T > 0**: values of the `result` field that are hex integers
  (block numbers, balances) may drift, but their spread must stay below T.
  Any other value must still match the first response exactly.

At least two nodes must answer for a comparison to mean anything.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from typing_extensions import Final

from bft_resilience.clients.jsonrpc import is_hex_quantity
from bft_resilience.node.node import RpcOutcome
from bft_resilience.registry.registry import NodeRegistry
from bft_resilience.types.exceptions import ConsistencyViolation, InsufficientQuorumError

logger = logging.getLogger(__name__)

MIN_QUORUM: Final = 2
"""Minimum successful responses needed to compare anything."""


@dataclass(frozen=True, slots=True)
class ConsistencyAssertion:
    """One request, the tolerance it was checked with, and what each node said."""

    request: dict[str, Any]
    """The payload that was fanned out."""

    tolerance: int | None
    """Allowed hex spread. None means responses were only collected."""

    outcomes: tuple[RpcOutcome, ...]
    """Per-node outcomes in target order."""

    @property
    def successes(self) -> list[RpcOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failures(self) -> dict[int, str]:
        """Node index to error for nodes that did not answer."""
        return {o.node_index: o.error or "no response" for o in self.outcomes if not o.ok}

    def results(self) -> dict[int, Any]:
        """Node index to the `result` field of each successful response."""
        return {o.node_index: (o.response or {}).get("result") for o in self.successes}


def check_consistency(outcomes: Sequence[RpcOutcome], tolerance: int) -> None:
    """
    Compare outcomes against the first successful one.

    Raises:
        ValueError: If the tolerance is negative.
        InsufficientQuorumError: If fewer than two nodes answered.
        ConsistencyViolation: If two nodes disagree beyond the tolerance.
    """
    if tolerance < 0:
        raise ValueError(f"Tolerance must be non-negative, got {tolerance}")

    successes = [outcome for outcome in outcomes if outcome.ok]
    if len(successes) < MIN_QUORUM:
        raise InsufficientQuorumError(MIN_QUORUM, len(successes))

    first, rest = successes[0], successes[1:]

    if tolerance == 0:
        for other in rest:
            if other.response != first.response:
                raise ConsistencyViolation(
                    first.node_index,
                    other.node_index,
                    first.response,
                    other.response,
                )
        return

    reference = (first.response or {}).get("result")
    numeric = is_hex_quantity(reference)
    heights: list[tuple[int, int]] = [(first.node_index, int(reference, 16))] if numeric else []

    for other in rest:
        value = (other.response or {}).get("result")
        if numeric and is_hex_quantity(value):
            heights.append((other.node_index, int(value, 16)))
        elif value != reference:
            raise ConsistencyViolation(
                first.node_index,
                other.node_index,
                reference,
                value,
                detail="non-numeric values must match exactly",
            )

    if heights:
        low = min(heights, key=lambda item: item[1])
        high = max(heights, key=lambda item: item[1])
        spread = high[1] - low[1]
        if spread >= tolerance:
            raise ConsistencyViolation(
                low[0],
                high[0],
                hex(low[1]),
                hex(high[1]),
                detail=f"spread {spread} reaches tolerance {tolerance}",
            )


class ConsistencyChecker:
    """Fans requests out through a registry and asserts the nodes agree."""

    def __init__(self, registry: NodeRegistry) -> None:
        self._registry = registry

    async def collect(
        self,
        request: dict[str, Any],
        indices: Sequence[int] | None = None,
    ) -> ConsistencyAssertion:
        """Fan out a request and return the outcomes without comparing them."""
        outcomes = await self._registry.get_multiple_node_responses(request, indices)
        return ConsistencyAssertion(request=request, tolerance=None, outcomes=tuple(outcomes))

    async def assert_consistent_responses(
        self,
        request: dict[str, Any],
        tolerance: int = 0,
        indices: Sequence[int] | None = None,
    ) -> ConsistencyAssertion:
        """
        Fan out a request and require the answers to agree.

        Args:
            request: JSON-RPC payload.
            tolerance: 0 for deep equality, or the allowed hex spread.
            indices: Target nodes. Defaults to every active node.

        Returns:
            The assertion, for reporting.

        Raises:
            InsufficientQuorumError: If fewer than two nodes answered.
            ConsistencyViolation: If two nodes disagree.
        """
        if tolerance < 0:
            raise ValueError(f"Tolerance must be non-negative, got {tolerance}")

        assertion = await self.collect(request, indices)
        assertion = ConsistencyAssertion(
            request=request,
            tolerance=tolerance,
            outcomes=assertion.outcomes,
        )
        for index, error in assertion.failures.items():
            logger.warning("Node %d did not answer %s: %s", index, request.get("method"), error)

        check_consistency(assertion.outcomes, tolerance)
        logger.info(
            "%d nodes agree on %s (tolerance %d)",
            len(assertion.successes),
            request.get("method"),
            tolerance,
        )
        return assertion
