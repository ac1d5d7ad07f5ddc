"""Shared base types and the exception hierarchy."""

from .base import CamelModel, FrozenModel
from .exceptions import (
    ConfigurationError,
    HarnessError,
    InvariantViolation,
    TransientNetworkFailure,
)

__all__ = [
    "CamelModel",
    "ConfigurationError",
    "FrozenModel",
    "HarnessError",
    "InvariantViolation",
    "TransientNetworkFailure",
]
