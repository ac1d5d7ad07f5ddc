"""Fault tolerance scenarios: stop validators, verify, restart, verify."""

from .orchestrator import PROBE_VALUE_WEI, FaultToleranceOrchestrator
from .progression import HeightSample, ProgressionReport, evaluate_progression, is_genesis
from .results import FaultScenarioResult, ScenarioAnalysis, StepRecord
from .steps import ScenarioStep
from .timings import FaultTimings

__all__ = [
    "PROBE_VALUE_WEI",
    "FaultScenarioResult",
    "FaultTimings",
    "FaultToleranceOrchestrator",
    "HeightSample",
    "ProgressionReport",
    "ScenarioAnalysis",
    "ScenarioStep",
    "StepRecord",
    "evaluate_progression",
    "is_genesis",
]
