"""
Execution backend interface and the shared subprocess runner.

A backend stops and starts the services of one node. The harness treats
backends as fire-and-forget:

- `stop_node` / `start_node` do not raise for remote failures. They return
  False when any command failed and log a warning.
- A node the backend cannot drive at all (no credentials, for example) is
  a configuration error. `check_node` reports it before anything is
  touched, and `stop_node` / `start_node` raise it rather than pretend.
- Calling either twice is safe. Stopping a stopped service is a no-op on
  every supported platform.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from bft_resilience.metrics import registry as metrics
from bft_resilience.types.exceptions import BackendCommandError

if TYPE_CHECKING:
    from bft_resilience.node.node import ClusterNode

logger = logging.getLogger(__name__)


@runtime_checkable
class ExecutionBackend(Protocol):
    """Strategy for stopping and starting a node's services."""

    name: str
    """Backend name as used in the chain config."""

    def check_node(self, node: ClusterNode) -> None:
        """
        Resolve everything needed to drive a node without contacting it.

        Raises:
            ConfigurationError: If the node cannot be driven.
        """
        ...

    async def stop_node(self, node: ClusterNode) -> bool:
        """
        Stop every service of a node.

        Returns:
            True if every command succeeded.

        Raises:
            ConfigurationError: If the node cannot be driven.
        """
        ...

    async def start_node(self, node: ClusterNode) -> bool:
        """
        Start every service of a node.

        Returns:
            True if every command succeeded.

        Raises:
            ConfigurationError: If the node cannot be driven.
        """
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
        ...


class NoopBackend:
    """Backend for clusters whose nodes are managed elsewhere."""

    name = "none"

    def check_node(self, node: ClusterNode) -> None:
        return None

    async def stop_node(self, node: ClusterNode) -> bool:
        logger.info("No execution backend configured; not stopping %s", node.name)
        return True

    async def start_node(self, node: ClusterNode) -> bool:
        logger.info("No execution backend configured; not starting %s", node.name)
        return True

    async def close(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one local process."""

    returncode: int
    """Process exit status."""

    stdout: str
    """Captured standard output, stripped."""

    stderr: str
    """Captured standard error, stripped."""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(argv: Sequence[str], timeout: float) -> CommandResult:
    """
    Run a local process and capture its output.

    Args:
        argv: Program and arguments. No shell is involved.
        timeout: Seconds before the process is killed.

    Returns:
        Exit status and output.

    Raises:
        BackendCommandError: If the process cannot be spawned or times out.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise BackendCommandError(argv, f"cannot spawn: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise BackendCommandError(argv, f"timed out after {timeout}s") from e

    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace").strip(),
        stderr=stderr.decode(errors="replace").strip(),
    )


def record_failure(backend: str, action: str) -> None:
    """Count a failed backend command."""
    metrics.backend_failures.labels(backend=backend, action=action).inc()
