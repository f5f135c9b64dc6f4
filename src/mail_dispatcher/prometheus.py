# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for monitoring the mail dispatcher.

All metrics use the ``gmd_`` prefix (genro-mail-dispatcher). Each
:class:`DispatchMetrics` owns a private registry by default so several
dispatchers can live in one process without name clashes.

Metrics exposed:
    - ``gmd_sent_total``: Tasks delivered, per provider.
    - ``gmd_provider_failures_total``: Exhausted retry sequences, per provider.
    - ``gmd_circuit_skips_total``: Attempts skipped on an open circuit, per provider.
    - ``gmd_failed_total``: Tasks that failed on every provider.
    - ``gmd_rate_limited_total``: Submissions deferred by admission control.
    - ``gmd_duplicates_total``: Submissions rejected as already seen.
    - ``gmd_pending_tasks``: Tasks currently waiting in the pending queue.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class DispatchMetrics:
    """Prometheus metrics collector for the dispatcher.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "gmd_sent_total",
            "Tasks delivered",
            ["provider"],
            registry=self.registry,
        )
        self.provider_failures = Counter(
            "gmd_provider_failures_total",
            "Provider retry sequences exhausted",
            ["provider"],
            registry=self.registry,
        )
        self.circuit_skips = Counter(
            "gmd_circuit_skips_total",
            "Provider attempts skipped on an open circuit",
            ["provider"],
            registry=self.registry,
        )
        self.failed = Counter(
            "gmd_failed_total",
            "Tasks failed on every provider",
            registry=self.registry,
        )
        self.rate_limited = Counter(
            "gmd_rate_limited_total",
            "Submissions deferred by admission control",
            registry=self.registry,
        )
        self.duplicates = Counter(
            "gmd_duplicates_total",
            "Duplicate submissions",
            registry=self.registry,
        )
        self.pending = Gauge(
            "gmd_pending_tasks",
            "Tasks waiting in the pending queue",
            registry=self.registry,
        )

    def inc_sent(self, provider: str) -> None:
        self.sent.labels(provider=provider or "unknown").inc()

    def inc_provider_failure(self, provider: str) -> None:
        self.provider_failures.labels(provider=provider or "unknown").inc()

    def inc_circuit_skip(self, provider: str) -> None:
        self.circuit_skips.labels(provider=provider or "unknown").inc()

    def inc_failed(self) -> None:
        self.failed.inc()

    def inc_rate_limited(self) -> None:
        self.rate_limited.inc()

    def inc_duplicate(self) -> None:
        self.duplicates.inc()

    def set_pending(self, value: int) -> None:
        self.pending.set(value)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
