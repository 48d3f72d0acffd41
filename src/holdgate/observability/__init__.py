"""Observability helpers."""

from holdgate.observability.metrics import metrics

__all__ = ["metrics"]
