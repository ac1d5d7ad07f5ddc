"""Prometheus metrics for harness runs."""

from .registry import REGISTRY, generate_metrics

__all__ = ["REGISTRY", "generate_metrics"]
