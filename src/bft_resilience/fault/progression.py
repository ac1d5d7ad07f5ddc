"""
Block height progression checks.

Two height samples taken a fixed interval apart tell whether the chain is
live:

- **progress expected**: every sampled node must answer both samples and
  report a strictly higher height the second time.
- **halt expected**: every node that answered both samples must report the
  same height twice. Nodes that stop answering are skipped and reported.

A chain still at genesis (every answer is height 0) cannot show progress
through heights yet. When progress is expected at genesis the height delta
is ignored: every node must still answer the second sample, and the caller
must confirm liveness with a probe transaction instead.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from bft_resilience.types.exceptions import ProgressionViolation

HeightSample = Mapping[int, int | None]
"""Node index to sampled height. None marks a node that did not answer."""


@dataclass(frozen=True, slots=True)
class ProgressionReport:
    """What a progression check compared and concluded."""

    expect_progress: bool
    """Whether the chain was expected to keep producing blocks."""

    genesis: bool
    """True if the chain was still at height 0 and progress was expected."""

    initial: dict[int, int | None]
    """First sample."""

    after: dict[int, int | None]
    """Second sample."""

    compared: tuple[int, ...]
    """Nodes that answered both samples."""

    unresponsive: tuple[int, ...]
    """Nodes that missed at least one sample."""

    def to_payload(self) -> dict[str, Any]:
        """Plain-dict form for step records."""
        return {
            "expect_progress": self.expect_progress,
            "genesis": self.genesis,
            "initial": dict(self.initial),
            "after": dict(self.after),
            "unresponsive": list(self.unresponsive),
        }


def is_genesis(*samples: HeightSample) -> bool:
    """True if at least one node answered and every answer is height 0."""
    answers = [height for sample in samples for height in sample.values() if height is not None]
    return bool(answers) and all(height == 0 for height in answers)


def evaluate_progression(
    initial: HeightSample,
    after: HeightSample,
    *,
    expect_progress: bool,
) -> ProgressionReport:
    """
    Decide whether two height samples match the expected chain behaviour.

    Args:
        initial: First sample.
        after: Second sample, taken a fixed interval later.
        expect_progress: True if blocks must keep coming, False if the chain must halt.

    Returns:
        The report.

    Raises:
        ProgressionViolation: If the samples contradict the expectation.
    """
    indices = sorted(set(initial) | set(after))
    compared = tuple(i for i in indices if initial.get(i) is not None and after.get(i) is not None)
    unresponsive = tuple(i for i in indices if i not in compared)
    genesis = expect_progress and is_genesis(initial, after)

    report = ProgressionReport(
        expect_progress=expect_progress,
        genesis=genesis,
        initial=dict(initial),
        after=dict(after),
        compared=compared,
        unresponsive=unresponsive,
    )

    if not any(h is not None for h in (*initial.values(), *after.values())):
        raise ProgressionViolation(f"No node answered either height sample (nodes {indices})")

    if genesis:
        silent = [i for i in indices if after.get(i) is None]
        if silent:
            raise ProgressionViolation(f"Chain at genesis and nodes {silent} stopped answering")
        return report

    if expect_progress:
        if unresponsive:
            raise ProgressionViolation(f"Nodes {list(unresponsive)} did not answer both samples")
        stalled = {
            i: (initial[i], after[i])
            for i in compared
            if after[i] <= initial[i]  # type: ignore[operator]
        }
        if stalled:
            raise ProgressionViolation(
                f"Expected block production, heights did not increase: {stalled}"
            )
        return report

    if not compared:
        raise ProgressionViolation(
            f"No node answered both samples; cannot confirm halt (nodes {indices})"
        )
    moved = {i: (initial[i], after[i]) for i in compared if after[i] != initial[i]}
    if moved:
        raise ProgressionViolation(f"Expected halt, heights changed: {moved}")
    return report
