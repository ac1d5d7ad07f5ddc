"""Load cluster configuration files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from bft_resilience.config import CHAIN_ENV
from bft_resilience.types.exceptions import ConfigurationError

from .config import ChainConfig

logger = logging.getLogger(__name__)


def load_chain_config(path: Path | str, network: str | None = None) -> ChainConfig:
    """
    Load one chain section from a YAML or JSON cluster config.

    The file either holds a single chain (it has a `nodes` key at the top
    level) or maps network names to chain sections.

    Args:
        path: Path to the config file. JSON is a subset of YAML.
        network: Section to load. Defaults to `CHAIN_ENV`.

    Returns:
        The validated chain config.

    Raises:
        ConfigurationError: If the file is missing, malformed, or has no such network.
    """
    path = Path(path)
    network = network or CHAIN_ENV

    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read cluster config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed cluster config {path}: {e}") from e

    return parse_chain_config(data, network, source=str(path))


def parse_chain_config(data: Any, network: str, *, source: str = "<memory>") -> ChainConfig:
    """
    Validate an already-parsed config document.

    Args:
        data: Parsed YAML/JSON document.
        network: Section to select when the document has several.
        source: Where the document came from, for error messages.

    Returns:
        The validated chain config.
    """
    if not isinstance(data, dict):
        raise ConfigurationError(f"Cluster config {source} must be a mapping")

    if "nodes" in data:
        section = data
    else:
        if network not in data:
            raise ConfigurationError(
                f"Network {network!r} not found in {source}. Available: {sorted(data)}"
            )
        section = data[network]
        if not isinstance(section, dict):
            raise ConfigurationError(f"Network {network!r} in {source} must be a mapping")

    try:
        config = ChainConfig.model_validate({"name": network, **section})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid cluster config {source} [{network}]: {e}") from e

    logger.info(
        "Loaded chain %s (%s) with %d nodes from %s",
        config.name,
        config.chain_id,
        len(config.nodes),
        source,
    )
    return config
