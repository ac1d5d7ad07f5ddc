"""
SSH execution backend.

Each node runs a set of named services (for example an execution client and
a consensus client). Stopping a node runs each service's stop command in
the configured stop order. Starting runs the start commands in start order.

All commands for one node share a single multiplexed OpenSSH connection
(ControlMaster). The first command opens the master. Later commands reuse
it. `close()` tears every master down.

Key resolution, per node, first match wins:

- node `ssh.keySource` / `ssh.keyPath` overrides
- chain `ssh.keySource` / `ssh.keyPath`
- `env` / `SSH_KEY`

With `env` the variable holds the key itself. With `file` it holds the path
of a key file.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from bft_resilience.chain.config import ServiceCommand, SshSettings
from bft_resilience.types.exceptions import BackendCommandError, CredentialError

from .base import record_failure, run_command

if TYPE_CHECKING:
    from bft_resilience.node.node import ClusterNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SshTarget:
    """Resolved connection parameters for one node."""

    host: str
    username: str
    port: int
    key_file: Path

    @property
    def destination(self) -> str:
        return f"{self.username}@{self.host}"


class SshBackend:
    """Stops and starts node services over SSH."""

    name = "ssh"

    def __init__(self, settings: SshSettings) -> None:
        self._settings = settings
        self._workdir: Path | None = None
        self._key_files: dict[str, Path] = {}
        self._targets: dict[int, SshTarget] = {}

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _scratch(self) -> Path:
        if self._workdir is None:
            self._workdir = Path(tempfile.mkdtemp(prefix="bft-ssh-"))
        return self._workdir

    def _key_file(self, key_source: str, key_path: str) -> Path:
        """
        Locate (or materialize) the private key file.

        Raises:
            CredentialError: If the environment variable is unset or the file is missing.
        """
        value = os.environ.get(key_path)
        if not value:
            what = "file path" if key_source == "file" else "SSH key"
            raise CredentialError(f"Environment variable {key_path} is not set ({what})")

        if key_source == "file":
            path = Path(value).expanduser()
            if not path.is_file():
                raise CredentialError(f"SSH key file {path} does not exist")
            return path

        if key_path not in self._key_files:
            # Keys passed through CI variables often carry literal "\n".
            key = value.replace("\\n", "\n").strip() + "\n"
            path = self._scratch() / f"key-{len(self._key_files)}"
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(key)
            self._key_files[key_path] = path
        return self._key_files[key_path]

    def resolve_target(self, node: ClusterNode) -> SshTarget:
        """
        Work out host, user and key for a node.

        Raises:
            CredentialError: If no key can be found.
        """
        if node.index in self._targets:
            return self._targets[node.index]

        override = node.spec.ssh
        key_source = (override and override.key_source) or self._settings.key_source
        key_path = (override and override.key_path) or self._settings.key_path

        target = SshTarget(
            host=(override and override.host) or node.host,
            username=(override and override.username) or self._settings.username,
            port=self._settings.port,
            key_file=self._key_file(key_source, key_path),
        )
        self._targets[node.index] = target
        return target

    def _ssh_args(self, target: SshTarget) -> list[str]:
        return [
            "ssh",
            "-i", str(target.key_file),
            "-p", str(target.port),
            "-o", "BatchMode=yes",
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", f"ConnectTimeout={max(1, int(self._settings.connection_timeout))}",
            "-o", "ControlMaster=auto",
            "-o", f"ControlPath={self._scratch()}/%C",
            "-o", "ControlPersist=300",
        ]  # fmt: skip

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def _exec(
        self,
        node: ClusterNode,
        target: SshTarget,
        service: ServiceCommand,
        action: str,
    ) -> bool:
        command = service.stop_command if action == "stop" else service.start_command
        label = service.display_name or service.id
        argv = [*self._ssh_args(target), target.destination, command]

        try:
            result = await run_command(argv, self._settings.exec_timeout)
        except BackendCommandError as e:
            logger.warning("%s: %s %s failed: %s", node.name, action, label, e)
            record_failure(self.name, action)
            return False

        if not result.ok:
            logger.warning(
                "%s: %s %s exited with %d: %s",
                node.name,
                action,
                label,
                result.returncode,
                result.stderr or result.stdout,
            )
            record_failure(self.name, action)
            return False

        logger.info("%s: %s %s ok", node.name, action, label)
        return True

    def check_node(self, node: ClusterNode) -> None:
        """Resolve the node's SSH target. Raises `CredentialError` without a key."""
        self.resolve_target(node)

    async def _run_sequence(self, node: ClusterNode, action: str, order: list[str]) -> bool:
        target = self.resolve_target(node)

        if not order:
            logger.warning("%s: no SSH services configured to %s", node.name, action)

        ok = True
        for service_id in order:
            service = self._settings.service(service_id)
            if service is None:
                logger.warning("%s: service %r not configured, skipping", node.name, service_id)
                continue
            ok = await self._exec(node, target, service, action) and ok
        return ok

    async def stop_node(self, node: ClusterNode) -> bool:
        """Run every service's stop command in stop order."""
        return await self._run_sequence(node, "stop", self._settings.stop_sequence())

    async def start_node(self, node: ClusterNode) -> bool:
        """Run every service's start command in start order."""
        return await self._run_sequence(node, "start", self._settings.start_sequence())

    async def close(self) -> None:
        """Close every master connection and delete materialized keys."""
        for target in self._targets.values():
            argv = [*self._ssh_args(target), "-O", "exit", target.destination]
            try:
                await run_command(argv, self._settings.connection_timeout)
            except BackendCommandError as e:
                logger.debug("Closing SSH master for %s failed: %s", target.host, e)
        self._targets.clear()
        self._key_files.clear()
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None
