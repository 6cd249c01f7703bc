"""
Metrics Registry

A `MetricsRegistry` owns a Prometheus `CollectorRegistry` and the fixed
catalogue of Ripple instruments. One instance is created at startup and
passed to every component that reads or writes metrics; there is no
module-level global.

Thread Safety
-------------
- Registration is guarded by an RLock and is insert-if-absent, so calling
  `register_all()` from several code paths is harmless
- Instrument updates (inc/set/observe) are synchronized inside
  prometheus_client and need no caller-side locking
"""

from __future__ import annotations

import logging
from threading import RLock
from typing import Dict, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger("ripple.metrics")

Instrument = Union[Counter, Gauge, Histogram]

CONTENT_TYPE = "text/plain; version=0.0.4"


# ---------------------------------------------------------------------
# Instrument Catalogue
# ---------------------------------------------------------------------

class InstrumentSpec(NamedTuple):
    attr: str
    kind: type
    name: str
    documentation: str
    labelnames: Tuple[str, ...] = ()
    buckets: Optional[Tuple[float, ...]] = None


REQUEST_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
EMBEDDING_BUCKETS = (0.001, 0.005, 0.01, 0.02, 0.05, 0.1, 0.25)
UPSTREAM_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

CATALOGUE: Tuple[InstrumentSpec, ...] = (
    # Requests
    InstrumentSpec(
        "requests_total", Counter, "ripple_requests_total",
        "Total number of requests", ("endpoint", "cache_status"),
    ),
    InstrumentSpec(
        "active_requests", Gauge, "ripple_active_requests",
        "Number of currently active requests",
    ),
    InstrumentSpec(
        "request_duration", Histogram, "ripple_request_duration_seconds",
        "Request duration in seconds", ("endpoint", "cache_status"), REQUEST_BUCKETS,
    ),
    # Cache
    InstrumentSpec(
        "cache_hits_total", Counter, "ripple_cache_hits_total",
        "Total cache hits", ("tier",),
    ),
    InstrumentSpec(
        "cache_misses_total", Counter, "ripple_cache_misses_total",
        "Total cache misses", ("endpoint",),
    ),
    InstrumentSpec(
        "cache_size", Gauge, "ripple_cache_size",
        "Current number of cached entries",
    ),
    InstrumentSpec(
        "cache_evictions_total", Counter, "ripple_cache_evictions_total",
        "Total cache evictions", ("reason",),
    ),
    # Embedding
    InstrumentSpec(
        "embedding_duration", Histogram, "ripple_embedding_duration_seconds",
        "Embedding generation duration", ("batch_size",), EMBEDDING_BUCKETS,
    ),
    # Upstream API
    InstrumentSpec(
        "upstream_duration", Histogram, "ripple_upstream_duration_seconds",
        "Upstream API call duration", ("provider",), UPSTREAM_BUCKETS,
    ),
    InstrumentSpec(
        "upstream_errors_total", Counter, "ripple_upstream_errors_total",
        "Total upstream API errors", ("provider", "error_type"),
    ),
    # Cost savings
    InstrumentSpec(
        "cost_saved_usd", Gauge, "ripple_cost_saved_usd",
        "Estimated cost saved in USD", ("provider",),
    ),
    # Errors
    InstrumentSpec(
        "errors_total", Counter, "ripple_errors_total",
        "Total errors by type", ("error_type",),
    ),
)

_BY_ATTR: Dict[str, InstrumentSpec] = {spec.attr: spec for spec in CATALOGUE}


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

class MetricsRegistry:
    """
    Owner of the Ripple instruments.

    After `register_all()`, each catalogue instrument is reachable as an
    attribute named after its spec (`registry.requests_total`,
    `registry.active_requests`, ...) and via `get(name)` using the exposed
    metric name.
    """

    requests_total: Counter
    active_requests: Gauge
    request_duration: Histogram
    cache_hits_total: Counter
    cache_misses_total: Counter
    cache_size: Gauge
    cache_evictions_total: Counter
    embedding_duration: Histogram
    upstream_duration: Histogram
    upstream_errors_total: Counter
    cost_saved_usd: Gauge
    errors_total: Counter

    def __init__(self, collector_registry: Optional[CollectorRegistry] = None):
        self.collector_registry = collector_registry or CollectorRegistry()
        self._instruments: Dict[str, Instrument] = {}
        self._lock = RLock()

    # --------------------------------------------------------------
    # Registration
    # --------------------------------------------------------------

    def register(self, spec: InstrumentSpec) -> Instrument:
        """
        Register one instrument if it is not registered yet.

        Returns the registered instrument either way.
        """
        with self._lock:
            existing = self._instruments.get(spec.name)
            if existing is not None:
                return existing

            kwargs = {
                "labelnames": spec.labelnames,
                "registry": self.collector_registry,
            }
            if spec.buckets is not None:
                kwargs["buckets"] = spec.buckets

            instrument = spec.kind(spec.name, spec.documentation, **kwargs)
            self._instruments[spec.name] = instrument
            setattr(self, spec.attr, instrument)
            return instrument

    def register_all(self) -> int:
        """
        Register the full catalogue.

        Safe to call repeatedly. Returns how many instruments were newly
        registered (0 on every call after the first).
        """
        with self._lock:
            before = len(self._instruments)
            for spec in CATALOGUE:
                self.register(spec)
            added = len(self._instruments) - before

        if added:
            logger.debug("Registered %d metrics instruments", added)
        return added

    @property
    def names(self) -> Sequence[str]:
        with self._lock:
            return list(self._instruments)

    def get(self, name: str) -> Instrument:
        with self._lock:
            return self._instruments[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._instruments

    # --------------------------------------------------------------
    # Reading
    # --------------------------------------------------------------

    def snapshot(self) -> str:
        """Render every registered instrument in the Prometheus text format."""
        return generate_latest(self.collector_registry).decode("utf-8")

    def sample_value(
        self,
        name: str,
        labels: Optional[Mapping[str, str]] = None,
    ) -> Optional[float]:
        """
        Current value of one sample, e.g. `ripple_requests_total` with its
        labels, or `ripple_request_duration_seconds_count`.
        """
        return self.collector_registry.get_sample_value(name, dict(labels or {}))

    # --------------------------------------------------------------
    # Writers used by request-handling code
    # --------------------------------------------------------------

    # Writers register the instrument they touch if it is missing.

    def _instrument(self, attr: str) -> Instrument:
        return self.register(_BY_ATTR[attr])

    def observe_request(self, endpoint: str, cache_status: str, duration: float) -> None:
        self._instrument("requests_total").labels(endpoint=endpoint, cache_status=cache_status).inc()
        self._instrument("request_duration").labels(
            endpoint=endpoint, cache_status=cache_status
        ).observe(duration)

    def record_error(self, error_type: str) -> None:
        self._instrument("errors_total").labels(error_type=error_type).inc()

    def record_upstream_error(self, provider: str, error_type: str) -> None:
        self._instrument("upstream_errors_total").labels(
            provider=provider, error_type=error_type
        ).inc()
