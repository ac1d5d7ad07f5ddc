"""
Fault tolerance scenario orchestration.

One scenario takes a computed share of the validator voting power offline,
checks that the chain behaves as BFT theory predicts, brings the validators
back, and checks that the chain recovers:

1. initialize: move a chain still at genesis off height 0
2. get_validators: select validators by voting power
3. stop_validators: stop them through the execution backend
4. check_network_after_stop: heights must progress (or halt)
5. verify_stopped_validators: stopped validators must be unreachable
6. wait_long_period (optional): keep the fault in place longer
7. restart_validators: start them again and let them settle
8. check_network_after_restart: heights must progress again

Steps must run in this order. Calling one out of order raises
`IllegalStepTransitionError` before anything is touched.

Failure handling:

- Configuration problems (no founder key, no transaction sender, no
  backend credentials for a selected validator) are found during selection
  and raised before any validator is stopped.
- Backend and RPC failures inside a fan-out are recorded per node. The step
  is marked failed but the scenario continues.
- Invariant violations abort the scenario.
- `cleanup()` always restarts every validator still recorded as stopped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from typing_extensions import Final

from bft_resilience.backend.base import ExecutionBackend
from bft_resilience.clients.jsonrpc import BLOCK_NUMBER_REQUEST, parse_quantity
from bft_resilience.metrics import registry as metrics
from bft_resilience.registry.registry import NodeRegistry
from bft_resilience.registry.selection import SelectionScenario, VotingPowerSelection
from bft_resilience.types.exceptions import (
    ConfigurationError,
    IllegalStepTransitionError,
    ProbeTimeoutError,
    ProbeTransactionError,
    UnreachabilityViolation,
)

from .progression import ProgressionReport, evaluate_progression, is_genesis
from .results import FaultScenarioResult, ScenarioAnalysis
from .steps import ScenarioStep
from .timings import FaultTimings

logger = logging.getLogger(__name__)

PROBE_VALUE_WEI: Final = 10**16
"""Probe transactions move 0.01 ether from the founder wallet to itself."""

WARMUP_TRANSACTIONS: Final = 3
"""Transactions sent to push a chain off genesis."""

StepBody = Callable[[], Awaitable[tuple[dict[str, Any], bool]]]
"""A step implementation returning (payload, success)."""


class FaultToleranceOrchestrator:
    """Drives one stop/verify/restart/verify scenario against a cluster."""

    def __init__(
        self,
        registry: NodeRegistry,
        backend: ExecutionBackend,
        scenario: SelectionScenario | str,
        *,
        name: str | None = None,
        expect_progress: bool | None = None,
        long_wait: bool = False,
        timings: FaultTimings | None = None,
    ) -> None:
        """
        Prepare a scenario. Nothing is contacted until `initialize()`.

        Args:
            registry: Nodes of the chain under test.
            backend: Backend used to stop and start validators.
            scenario: Share of voting power to stop.
            name: Scenario name for reports.
            expect_progress: Whether the chain must keep producing blocks
                while the validators are down. Defaults to what the
                scenario predicts (halt only above one third).
            long_wait: Include the extended fault window step in `run()`.
            timings: Waits to use. Defaults to the production values.
        """
        self.registry = registry
        self.backend = backend
        self.scenario = SelectionScenario(scenario)
        self.name = name or f"fault-tolerance-{self.scenario.value}"
        self.expect_progress = (
            self.scenario.expects_progress if expect_progress is None else expect_progress
        )
        self.long_wait = long_wait
        self.timings = timings or FaultTimings()

        self.step = ScenarioStep.CREATED
        self.result = FaultScenarioResult(self.name)
        self.selection: VotingPowerSelection | None = None
        self.stopped: list[int] = []
        self.block_numbers: dict[str, dict[str, int | None]] = {}
        self.network_status: dict[str, dict[str, Any]] = {}

    # -------------------------------------------------------------------------
    # Step plumbing
    # -------------------------------------------------------------------------

    def _require(self, target: ScenarioStep) -> None:
        if not self.step.can_transition_to(target):
            raise IllegalStepTransitionError(self.step.name, target.name)

    async def _run_step(self, target: ScenarioStep, body: StepBody) -> dict[str, Any]:
        self._require(target)
        started = time.monotonic()
        try:
            payload, success = await body()
        except Exception as e:
            logger.error("%s: step %s failed: %s", self.name, target.record_name, e)
            self.result.record(target.record_name, False, error=str(e))
            raise
        finally:
            metrics.scenario_step_time.labels(step=target.record_name).observe(
                time.monotonic() - started
            )

        self.result.record(target.record_name, success, payload)
        self.step = target
        logger.info("%s: %s %s", self.name, target.record_name, "ok" if success else "FAILED")
        return payload

    async def _sample_heights(self, indices: Sequence[int]) -> dict[int, int | None]:
        outcomes = await self.registry.get_multiple_node_responses(BLOCK_NUMBER_REQUEST, indices)
        heights: dict[int, int | None] = {}
        for outcome in outcomes:
            height: int | None = None
            if outcome.ok:
                try:
                    height = parse_quantity((outcome.response or {}).get("result"))
                except ValueError:
                    logger.warning("Node %d returned a malformed height", outcome.node_index)
            else:
                logger.warning(
                    "Node %d did not report its height: %s", outcome.node_index, outcome.error
                )
            if height is not None:
                metrics.sampled_block_height.labels(node=str(outcome.node_index)).set(height)
            heights[outcome.node_index] = height
        return heights

    def _sampled_indices(self) -> list[int]:
        return [node.index for node in self.registry.get_active_not_boot_nodes()]

    async def _send_probe_transaction(self) -> tuple[bool, str | None]:
        """
        Send 0.01 ether from the founder wallet to itself.

        Send failures are returned, not raised.

        Raises:
            ConfigurationError: If the founder wallet or a sender is missing.
        """
        try:
            founder = self.registry.config.founder_wallet.resolve_address()
            tx = await asyncio.wait_for(
                self.registry.send_simple_transaction(founder, PROBE_VALUE_WEI),
                timeout=self.timings.tx_timeout,
            )
        except TimeoutError:
            error = str(ProbeTimeoutError("probe transaction", self.timings.tx_timeout))
            logger.warning("%s: %s", self.name, error)
            return False, error
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning("%s: probe transaction failed: %s", self.name, e)
            return False, str(e)
        return True, tx.hash

    async def _check_network(
        self,
        label: str,
        *,
        expect_progress: bool,
    ) -> tuple[dict[str, Any], bool]:
        indices = self._sampled_indices()
        initial = await self._sample_heights(indices)
        await asyncio.sleep(self.timings.block_wait)
        after = await self._sample_heights(indices)

        numbers: dict[str, int | None] = {}
        for index in indices:
            numbers[f"initial_{index}"] = initial.get(index)
            numbers[f"after_{index}"] = after.get(index)
        self.block_numbers[label] = numbers

        report: ProgressionReport = evaluate_progression(
            initial, after, expect_progress=expect_progress
        )

        sent, detail = await self._send_probe_transaction()
        self.network_status[label] = {"transaction_sent": sent, "detail": detail}
        if not sent and expect_progress:
            reason = "chain at genesis" if report.genesis else "progress expected"
            raise ProbeTransactionError(f"Probe transaction failed ({reason}): {detail}")

        payload = report.to_payload()
        payload["transaction_sent"] = sent
        return payload, True

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def initialize(self) -> dict[str, Any]:
        """
        Prepare the chain for height-based checks.

        If every sampled node reports height 0, a few transactions are sent
        through the public endpoint and the chain is given time to produce
        blocks. Failed sends are logged, not fatal. A missing founder wallet
        or public endpoint is a configuration error and aborts the scenario.
        """

        async def body() -> tuple[dict[str, Any], bool]:
            heights = await self._sample_heights(self._sampled_indices())
            genesis = is_genesis(heights)
            sent = 0
            if genesis:
                logger.info("%s: chain at genesis, sending warm-up transactions", self.name)
                sent = await self._warm_up()
            return {"heights": heights, "genesis": genesis, "warmup_sent": sent}, True

        return await self._run_step(ScenarioStep.INITIALIZED, body)

    async def _warm_up(self) -> int:
        founder = self.registry.config.founder_wallet.resolve_address()
        sent = 0
        for i in range(WARMUP_TRANSACTIONS):
            if i:
                await asyncio.sleep(self.timings.warmup_spacing)
            try:
                await self.registry.send_transaction_via_public_endpoint(founder, PROBE_VALUE_WEI)
                sent += 1
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning("%s: warm-up transaction %d failed: %s", self.name, i + 1, e)
        await asyncio.sleep(self.timings.warmup_settle)
        return sent

    def _check_prerequisites(self, selection: VotingPowerSelection) -> None:
        """
        Resolve what later steps need before anything is stopped.

        Raises:
            ConfigurationError: If the founder wallet, a transaction sender or
                backend access to a selected validator is missing.
        """
        founder = self.registry.config.founder_wallet
        founder.resolve_address()
        founder.resolve_private_key()
        self.registry.default_sender()
        for index in selection.selected_indices:
            self.backend.check_node(self.registry.get_node(index))

    async def get_validators_to_stop(self) -> VotingPowerSelection:
        """
        Select validators by voting power for this scenario.

        Raises:
            ConfigurationError: If a later step could not run. Nothing has
                been stopped at this point.
        """

        async def body() -> tuple[dict[str, Any], bool]:
            selection = self.registry.select_validators_by_voting_power(self.scenario)
            self._check_prerequisites(selection)
            self.selection = selection
            if not selection.selected_indices:
                logger.warning("%s: selection is empty, nothing will be stopped", self.name)
            return {
                "scenario": self.selection.scenario.value,
                "validators": list(self.selection.selected_indices),
                "total_voting_power": self.selection.total_voting_power,
                "target_voting_power": self.selection.target_voting_power,
                "achieved_voting_power": self.selection.achieved_voting_power,
            }, True

        await self._run_step(ScenarioStep.VALIDATORS_SELECTED, body)
        assert self.selection is not None
        return self.selection

    async def stop_validators(self) -> dict[str, Any]:
        """
        Stop every selected validator concurrently and mark them inactive.

        Every stop attempt runs to completion. The step fails if any attempt
        failed, but the scenario continues: the unreachability check decides.

        Raises:
            ConfigurationError: If the backend cannot drive a validator. That
                validator is left untouched.
        """

        async def body() -> tuple[dict[str, Any], bool]:
            assert self.selection is not None
            nodes = [self.registry.get_node(i) for i in self.selection.selected_indices]
            results = await asyncio.gather(
                *(self.backend.stop_node(node) for node in nodes),
                return_exceptions=True,
            )

            failed: list[int] = []
            misconfigured: ConfigurationError | None = None
            for node, result in zip(nodes, results, strict=True):
                if isinstance(result, ConfigurationError):
                    misconfigured = misconfigured or result
                    continue
                if result is not True:
                    if isinstance(result, BaseException):
                        logger.warning("%s: stop raised: %s", node.name, result)
                    failed.append(node.index)
                if node.index not in self.stopped:
                    self.stopped.append(node.index)
                await self.registry.set_node_active(node.index, False)
                metrics.validators_stopped.inc()

            if misconfigured is not None:
                raise misconfigured
            return {"stopped": [n.index for n in nodes], "failed": failed}, not failed

        return await self._run_step(ScenarioStep.STOPPED, body)

    async def check_network_status_after_stop(self) -> dict[str, Any]:
        """Check heights against the scenario expectation, then send a probe transaction."""

        async def body() -> tuple[dict[str, Any], bool]:
            return await self._check_network("after_stop", expect_progress=self.expect_progress)

        return await self._run_step(ScenarioStep.POST_STOP_VERIFIED, body)

    async def verify_stopped_validators_not_accessible(self) -> dict[str, Any]:
        """
        Dial the stopped validators and require every layer to be unreachable.

        Raises:
            UnreachabilityViolation: If any stopped validator still answers.
        """

        async def body() -> tuple[dict[str, Any], bool]:
            report = await self.registry.check_connectivity_by_index(
                self.stopped,
                dial_inactive=True,
                timeout=self.timings.probe_timeout,
            )
            reachable = [index for index, c in report.items() if c.any_connected]
            if reachable:
                raise UnreachabilityViolation(reachable)
            return {
                str(index): {
                    "evm_connected": c.evm_connected,
                    "consensus_connected": c.consensus_connected,
                }
                for index, c in report.items()
            }, True

        return await self._run_step(ScenarioStep.UNREACHABILITY_CONFIRMED, body)

    async def wait_for_long_period(self) -> dict[str, Any]:
        """Keep the validators down for the extended fault window."""

        async def body() -> tuple[dict[str, Any], bool]:
            await asyncio.sleep(self.timings.long_wait)
            return {"seconds": self.timings.long_wait}, True

        return await self._run_step(ScenarioStep.LONG_WAIT_ELAPSED, body)

    async def _start_stopped(self) -> list[int]:
        """Start every recorded stopped validator and mark it active. Returns failures."""
        nodes = [self.registry.get_node(i) for i in self.stopped]
        results = await asyncio.gather(
            *(self.backend.start_node(node) for node in nodes),
            return_exceptions=True,
        )

        failed: list[int] = []
        for node, result in zip(nodes, results, strict=True):
            if result is not True:
                if isinstance(result, BaseException):
                    logger.warning("%s: start raised: %s", node.name, result)
                failed.append(node.index)
            await self.registry.set_node_active(node.index, True)
            metrics.validators_restarted.inc()

        # Validators that failed to start stay recorded so cleanup retries them.
        self.stopped = [index for index in self.stopped if index in failed]
        return failed

    async def restart_validators(self) -> dict[str, Any]:
        """Start the stopped validators, mark them active, and let them settle."""

        async def body() -> tuple[dict[str, Any], bool]:
            restarted = list(self.stopped)
            failed = await self._start_stopped()
            await asyncio.sleep(self.timings.service_settle)
            return {"restarted": restarted, "failed": failed}, not failed

        return await self._run_step(ScenarioStep.RESTARTED, body)

    async def check_network_status_after_restart(self) -> dict[str, Any]:
        """Require progress and a successful probe transaction after recovery."""

        async def body() -> tuple[dict[str, Any], bool]:
            return await self._check_network("after_restart", expect_progress=True)

        return await self._run_step(ScenarioStep.POST_RESTART_VERIFIED, body)

    def analyze_results(self) -> ScenarioAnalysis:
        """Summarize the step log. Never raises."""
        analysis = self.result.analyze()
        if self.step.can_transition_to(ScenarioStep.ANALYZED):
            self.step = ScenarioStep.ANALYZED
        metrics.scenario_passed.labels(scenario=self.name).set(1 if analysis.passed else 0)
        logger.info("%s: %s", self.name, "PASS" if analysis.passed else "FAIL")
        return analysis

    async def cleanup(self) -> None:
        """
        Restart every validator still recorded as stopped.

        Runs from any step and never raises, so an aborted scenario does not
        leave the shared cluster degraded.
        """
        if self.stopped:
            logger.info("%s: cleanup restarting validators %s", self.name, self.stopped)
            try:
                failed = await self._start_stopped()
            except Exception as e:
                logger.error("%s: cleanup failed: %s", self.name, e)
            else:
                if failed:
                    logger.error("%s: validators %s did not restart", self.name, failed)
        self.step = ScenarioStep.CLEANED_UP

    async def run(self) -> ScenarioAnalysis:
        """
        Run every step in order, then clean up.

        Cleanup runs even when a step raises. The exception is re-raised
        afterwards; `analyze_results()` still summarizes what ran.
        """
        try:
            await self.initialize()
            await self.get_validators_to_stop()
            await self.stop_validators()
            await self.check_network_status_after_stop()
            await self.verify_stopped_validators_not_accessible()
            if self.long_wait:
                await self.wait_for_long_period()
            await self.restart_validators()
            await self.check_network_status_after_restart()
            return self.analyze_results()
        finally:
            await self.cleanup()
