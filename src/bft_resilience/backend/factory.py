"""Select the execution backend named by a chain config."""

from __future__ import annotations

import logging

from bft_resilience.chain.config import ChainConfig, ExecutionMethod

from .base import ExecutionBackend, NoopBackend
from .docker import DockerBackend
from .ssh import SshBackend

logger = logging.getLogger(__name__)


def create_backend(config: ChainConfig) -> ExecutionBackend:
    """
    Build the backend once per run.

    Args:
        config: Chain config naming the execution method and its settings.

    Returns:
        The backend for `config.execution_method`.
    """
    method = config.execution_method
    logger.info("Using %s execution backend for %s", method.value, config.name)
    if method is ExecutionMethod.SSH:
        return SshBackend(config.ssh)
    if method is ExecutionMethod.DOCKER:
        return DockerBackend(config.docker)
    return NoopBackend()
