"""
Docker execution backend.

Each node maps to two containers, one per layer. Names are derived from
patterns with `{index}` substituted, or taken from per-node overrides:

    validator{index}-geth   execution layer
    validator{index}-node   consensus layer

Bootnodes use the same patterns with the `validator` prefix replaced.

Stopping takes the consensus container down first so the node stops voting
before it loses its execution engine. Starting brings execution up first.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bft_resilience.chain.config import DockerSettings
from bft_resilience.types.exceptions import BackendCommandError

from .base import record_failure, run_command

if TYPE_CHECKING:
    from bft_resilience.node.node import ClusterNode

logger = logging.getLogger(__name__)


class DockerBackend:
    """Stops and starts node containers through the docker CLI."""

    name = "docker"

    def __init__(self, settings: DockerSettings, *, docker_bin: str = "docker") -> None:
        self._settings = settings
        self._docker = docker_bin

    def container_names(self, node: ClusterNode) -> tuple[str, str]:
        """
        Return the (execution, consensus) container names of a node.

        Per-node overrides win over the derived names.
        """
        patterns = self._settings.container_patterns
        execution = patterns.execution_layer.format(index=node.index)
        consensus = patterns.consensus_layer.format(index=node.index)
        if node.is_bootnode:
            execution = execution.replace("validator", self._settings.bootnode_prefix, 1)
            consensus = consensus.replace("validator", self._settings.bootnode_prefix, 1)

        override = node.spec.docker
        if override is not None:
            execution = override.execution_container or execution
            consensus = override.consensus_container or consensus
        return execution, consensus

    def check_node(self, node: ClusterNode) -> None:
        """Container names are derived locally, so any node can be driven."""
        self.container_names(node)

    async def _container(self, node: ClusterNode, action: str, container: str) -> bool:
        try:
            result = await run_command([self._docker, action, container], self._settings.timeout)
        except BackendCommandError as e:
            logger.warning("%s: docker %s %s failed: %s", node.name, action, container, e)
            record_failure(self.name, action)
            return False

        if not result.ok:
            logger.warning(
                "%s: docker %s %s exited with %d: %s",
                node.name,
                action,
                container,
                result.returncode,
                result.stderr,
            )
            record_failure(self.name, action)
            return False

        logger.info("%s: docker %s %s ok", node.name, action, container)
        return True

    async def stop_node(self, node: ClusterNode) -> bool:
        """Stop the consensus container, then the execution container."""
        execution, consensus = self.container_names(node)
        consensus_ok = await self._container(node, "stop", consensus)
        execution_ok = await self._container(node, "stop", execution)
        return consensus_ok and execution_ok

    async def start_node(self, node: ClusterNode) -> bool:
        """Start the execution container, then the consensus container."""
        execution, consensus = self.container_names(node)
        execution_ok = await self._container(node, "start", execution)
        consensus_ok = await self._container(node, "start", consensus)
        return execution_ok and consensus_ok

    async def is_node_running(self, node: ClusterNode) -> bool:
        """True if both containers report `running`."""
        for container in self.container_names(node):
            try:
                result = await run_command(
                    [self._docker, "inspect", "-f", "{{.State.Running}}", container],
                    self._settings.timeout,
                )
            except BackendCommandError as e:
                logger.warning("%s: docker inspect %s failed: %s", node.name, container, e)
                return False
            if not result.ok or result.stdout != "true":
                return False
        return True

    async def close(self) -> None:
        return None
