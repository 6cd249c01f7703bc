"""
Metrics Package

Prometheus instruments for request handling, caching, embedding, upstream
calls, and errors, held by an injectable `MetricsRegistry`.
"""

from .registry import CATALOGUE, CONTENT_TYPE, InstrumentSpec, MetricsRegistry

__all__ = [
    "CATALOGUE",
    "CONTENT_TYPE",
    "InstrumentSpec",
    "MetricsRegistry",
]
