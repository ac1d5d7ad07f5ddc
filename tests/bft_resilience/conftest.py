"""Shared pytest fixtures for the harness tests."""

from __future__ import annotations

import pytest

from bft_resilience.chain.config import ChainConfig
from bft_resilience.config import FOUNDER_WALLET_KEY_ENV, SSH_KEY_ENV, WALLET_PRIVATE_KEY_ENV
from bft_resilience.registry.registry import NodeRegistry
from tests.bft_resilience.helpers import (
    FakeChain,
    FakeClientFactory,
    ScriptedBackend,
    make_chain_config,
    make_registry,
)


@pytest.fixture(autouse=True)
def isolated_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep credentials from the developer's shell out of every test."""
    for name in (WALLET_PRIVATE_KEY_ENV, FOUNDER_WALLET_KEY_ENV, SSH_KEY_ENV):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def chain() -> FakeChain:
    """Fake chain producing one block per read."""
    return FakeChain()


@pytest.fixture
def factory(chain: FakeChain) -> FakeClientFactory:
    """Client factory handing out fake clients over `chain`."""
    return FakeClientFactory(chain)


@pytest.fixture
def config() -> ChainConfig:
    """Four validators of voting power 10."""
    return make_chain_config()


@pytest.fixture
def registry(config: ChainConfig, factory: FakeClientFactory) -> NodeRegistry:
    """Registry over the fake cluster."""
    return make_registry(config, factory)


@pytest.fixture
def backend(factory: FakeClientFactory) -> ScriptedBackend:
    """Backend that takes fake endpoints down and up."""
    return ScriptedBackend(factory)
