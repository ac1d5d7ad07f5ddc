"""
Fault tolerance harness CLI entry point.

Stop a share of the validator voting power, check the chain reacts as BFT
theory predicts, restart, and check it recovers.

Usage::

    python -m bft_resilience --config cluster.yaml --scenario less-than-one-third
    python -m bft_resilience --config cluster.yaml --network devnet --scenario exactly-one-third
    python -m bft_resilience --config cluster.yaml --scenario more-than-one-third
    python -m bft_resilience --config cluster.yaml --scenario less-than-one-third --long-wait

Options:
    --config        Path to the cluster config (YAML or JSON, required)
    --network       Network section to load (default: $CHAIN_ENV or 'local')
    --scenario      Share of voting power to stop (required)
    --expect-halt   Require the chain to halt while validators are down
    --long-wait     Keep validators down for the extended fault window
    --metrics-out   Write Prometheus metrics to this file after the run

Exit status: 0 on PASS, 1 on FAIL, 2 on a configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import copy
import logging
import sys
from pathlib import Path

from typing_extensions import Final

from bft_resilience.backend import create_backend
from bft_resilience.chain import load_chain_config
from bft_resilience.fault import FaultToleranceOrchestrator, ScenarioAnalysis
from bft_resilience.metrics import generate_metrics
from bft_resilience.registry import NodeRegistry, SelectionScenario
from bft_resilience.types.exceptions import ConfigurationError, InvariantViolation

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_CONFIG = 2

LOG_FORMAT: Final = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT: Final = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS: Final = {
    logging.DEBUG: "\x1b[2m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1;31m",
}
"""ANSI prefix per level. Only the level name is colored."""

RESET: Final = "\x1b[0m"


class LevelColorFormatter(logging.Formatter):
    """The plain log format with the level name colored for a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno)
        if color is not None:
            # Other handlers share the record.
            record = copy.copy(record)
            record.levelname = f"{color}{record.levelname:<8}{RESET}"
        return super().format(record)


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure root logging for a harness run."""
    level = logging.DEBUG if verbose else logging.INFO

    colored = not no_color and sys.stderr.isatty()
    formatter_cls = LevelColorFormatter if colored else logging.Formatter
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def run_scenario(
    config_path: Path,
    network: str | None,
    scenario: SelectionScenario,
    *,
    expect_halt: bool = False,
    long_wait: bool = False,
) -> ScenarioAnalysis:
    """
    Load the cluster, run one scenario, and return its analysis.

    Invariant violations are logged and reflected in the analysis. Nodes
    are disconnected and the backend closed whatever happens.

    Raises:
        ConfigurationError: If the cluster config cannot be used.
    """
    config = load_chain_config(config_path, network)
    registry = NodeRegistry(config)
    backend = create_backend(config)

    expect_progress = False if expect_halt else None
    orchestrator = FaultToleranceOrchestrator(
        registry,
        backend,
        scenario,
        expect_progress=expect_progress,
        long_wait=long_wait,
    )

    try:
        return await orchestrator.run()
    except InvariantViolation as e:
        logger.error("Scenario %s failed: %s", orchestrator.name, e)
        return orchestrator.analyze_results()
    finally:
        await backend.close()
        await registry.cleanup()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="BFT fault tolerance harness",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        required=True,
        type=Path,
        help="Path to the cluster config (YAML or JSON)",
    )
    parser.add_argument(
        "--network",
        default=None,
        help="Network section to load (default: $CHAIN_ENV or 'local')",
    )
    parser.add_argument(
        "--scenario",
        required=True,
        choices=[s.value for s in SelectionScenario],
        help="Share of voting power to stop",
    )
    parser.add_argument(
        "--expect-halt",
        action="store_true",
        help="Require the chain to halt while validators are down",
    )
    parser.add_argument(
        "--long-wait",
        action="store_true",
        help="Keep validators down for the extended fault window",
    )
    parser.add_argument(
        "--metrics-out",
        type=Path,
        default=None,
        help="Write Prometheus metrics to this file after the run",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )

    args = parser.parse_args()

    setup_logging(args.verbose, args.no_color)

    try:
        analysis = asyncio.run(
            run_scenario(
                args.config,
                args.network,
                SelectionScenario(args.scenario),
                expect_halt=args.expect_halt,
                long_wait=args.long_wait,
            )
        )
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(EXIT_CONFIG)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(EXIT_FAIL)

    print(analysis.summary())

    if args.metrics_out is not None:
        args.metrics_out.write_bytes(generate_metrics())
        logger.info("Metrics written to %s", args.metrics_out)

    sys.exit(EXIT_PASS if analysis.passed else EXIT_FAIL)


if __name__ == "__main__":
    main()
