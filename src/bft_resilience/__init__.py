"""
Fault-injection and consistency harness for BFT/EVM clusters.

Stops validator subsets chosen by voting power, checks that the chain
halts or progresses as BFT thresholds predict, and checks that it recovers
once the validators come back.
"""

from .fault import FaultTimings, FaultToleranceOrchestrator
from .registry import NodeRegistry, SelectionScenario

__all__ = [
    "FaultTimings",
    "FaultToleranceOrchestrator",
    "NodeRegistry",
    "SelectionScenario",
]
