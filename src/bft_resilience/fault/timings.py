"""Fixed waits used by fault scenarios."""

from __future__ import annotations

from dataclasses import dataclass

from typing_extensions import Final

BLOCK_WAIT: Final = 10.0
"""Seconds between two height samples. Several block times on every supported chain."""

SERVICE_SETTLE: Final = 45.0
"""Seconds to let restarted services rejoin consensus."""

LONG_WAIT: Final = 100.0
"""Seconds of the optional extended fault window."""

TX_TIMEOUT: Final = 20.0
"""Seconds allowed for a probe transaction to be accepted."""

PROBE_TIMEOUT: Final = 30.0
"""Seconds allowed for a connectivity probe."""

WARMUP_SPACING: Final = 2.0
"""Seconds between warm-up transactions."""

WARMUP_SETTLE: Final = 15.0
"""Seconds to let warm-up transactions move the chain off genesis."""


@dataclass(frozen=True, slots=True)
class FaultTimings:
    """
    The waits of one scenario run.

    Waits are fixed rather than adaptive so two runs of the same scenario
    observe the cluster over the same windows.
    """

    block_wait: float = BLOCK_WAIT
    service_settle: float = SERVICE_SETTLE
    long_wait: float = LONG_WAIT
    tx_timeout: float = TX_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    warmup_spacing: float = WARMUP_SPACING
    warmup_settle: float = WARMUP_SETTLE
