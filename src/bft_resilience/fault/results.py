"""Append-only step log of a fault scenario and its analysis."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class StepRecord:
    """Outcome of one scenario step."""

    step: str
    """Step name, e.g. `stop_validators`."""

    success: bool
    """Whether the step achieved what it set out to do."""

    payload: dict[str, Any] = field(default_factory=dict)
    """Step-specific data for reports."""

    error: str | None = None
    """Error message when the step raised."""

    timestamp: float = field(default_factory=time.time)
    """Wall-clock time the record was written."""


@dataclass(frozen=True, slots=True)
class ScenarioAnalysis:
    """Pass/fail summary of a scenario."""

    name: str
    """Scenario name."""

    steps: dict[str, bool]
    """Step name to success."""

    passed: bool
    """True if at least one step ran and every step succeeded."""

    duration: float
    """Seconds from the scenario start to the analysis."""

    errors: dict[str, str]
    """Step name to error message for steps that raised."""

    def summary(self) -> str:
        """One line per step followed by the verdict."""
        lines = [f"{name}: {'PASS' if ok else 'FAIL'}" for name, ok in self.steps.items()]
        lines.append(f"{self.name}: {'PASS' if self.passed else 'FAIL'} in {self.duration:.1f}s")
        return "\n".join(lines)


class FaultScenarioResult:
    """
    Ordered log of scenario steps.

    Records are only ever appended. Earlier records are never changed, so the
    log reflects what the harness saw at the time of each step.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.started_at = time.monotonic()
        self._records: list[StepRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple[StepRecord, ...]:
        """All records in the order they were written."""
        return tuple(self._records)

    def append(self, record: StepRecord) -> None:
        self._records.append(record)

    def record(
        self,
        step: str,
        success: bool,
        payload: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> StepRecord:
        """Build and append a record."""
        entry = StepRecord(step=step, success=success, payload=payload or {}, error=error)
        self.append(entry)
        return entry

    def analyze(self) -> ScenarioAnalysis:
        """Reduce the log to a per-step map and an overall verdict. Never raises."""
        steps: dict[str, bool] = {}
        errors: dict[str, str] = {}
        for entry in self._records:
            steps[entry.step] = steps.get(entry.step, True) and entry.success
            if entry.error is not None:
                errors[entry.step] = entry.error
        return ScenarioAnalysis(
            name=self.name,
            steps=steps,
            passed=bool(steps) and all(steps.values()),
            duration=time.monotonic() - self.started_at,
            errors=errors,
        )
