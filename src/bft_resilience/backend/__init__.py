"""Execution backends: strategies for stopping and starting node services."""

from .base import CommandResult, ExecutionBackend, NoopBackend, run_command
from .docker import DockerBackend
from .factory import create_backend
from .ssh import SshBackend, SshTarget

__all__ = [
    "CommandResult",
    "DockerBackend",
    "ExecutionBackend",
    "NoopBackend",
    "SshBackend",
    "SshTarget",
    "create_backend",
    "run_command",
]
