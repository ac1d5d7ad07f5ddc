"""
Metric registry using prometheus_client.

Tracks what the harness did to the cluster and what it observed. Metrics
are written to a text file at the end of a run rather than served.
"""

from __future__ import annotations

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Dedicated registry so default Python process metrics stay out of reports.
REGISTRY = CollectorRegistry()

# -----------------------------------------------------------------------------
# Fault injection
# -----------------------------------------------------------------------------

validators_stopped = Counter(
    "bft_validators_stopped_total",
    "Validators stopped by the harness",
    registry=REGISTRY,
)

validators_restarted = Counter(
    "bft_validators_restarted_total",
    "Validators restarted by the harness",
    registry=REGISTRY,
)

backend_failures = Counter(
    "bft_backend_failures_total",
    "Backend commands that failed",
    ["backend", "action"],
    registry=REGISTRY,
)

# -----------------------------------------------------------------------------
# Observations
# -----------------------------------------------------------------------------

sampled_block_height = Gauge(
    "bft_sampled_block_height",
    "Last block height sampled from a node",
    ["node"],
    registry=REGISTRY,
)

scenario_step_time = Histogram(
    "bft_scenario_step_seconds",
    "Scenario step duration",
    ["step"],
    buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0),
    registry=REGISTRY,
)

scenario_passed = Gauge(
    "bft_scenario_passed",
    "1 if the last analyzed scenario passed, 0 otherwise",
    ["scenario"],
    registry=REGISTRY,
)


def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics output.

    Returns:
        Prometheus text format output as bytes.
    """
    return generate_latest(REGISTRY)
