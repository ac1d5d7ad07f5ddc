"""Cross-node response consistency checks."""

from .checker import MIN_QUORUM, ConsistencyAssertion, ConsistencyChecker, check_consistency

__all__ = ["MIN_QUORUM", "ConsistencyAssertion", "ConsistencyChecker", "check_consistency"]
