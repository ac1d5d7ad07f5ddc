"""Shared test helpers for the harness test suite."""

from .builders import (
    FAST_TIMINGS,
    PUBLIC_RPC_URL,
    TEST_FOUNDER_ADDRESS,
    TEST_PRIVATE_KEY,
    make_chain_config,
    make_config_data,
    make_node,
    make_registry,
)
from .mocks import (
    FakeChain,
    FakeClientFactory,
    FakeEndpoint,
    FakeLayerClient,
    ScriptedBackend,
)

__all__ = [
    # Builders
    "FAST_TIMINGS",
    "PUBLIC_RPC_URL",
    "TEST_FOUNDER_ADDRESS",
    "TEST_PRIVATE_KEY",
    "make_chain_config",
    "make_config_data",
    "make_node",
    "make_registry",
    # Mocks
    "FakeChain",
    "FakeClientFactory",
    "FakeEndpoint",
    "FakeLayerClient",
    "ScriptedBackend",
]
