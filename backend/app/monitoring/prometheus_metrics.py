"""
Prometheus metrics for the realtime gateway.

All collectors live on a private registry so test runs and multiple app
instances in one process never collide with the default global registry.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

ws_connections_active = Gauge(
    "marketchat_ws_connections_active",
    "Authenticated WebSocket connections currently registered",
    registry=REGISTRY,
)

ws_users_online = Gauge(
    "marketchat_ws_users_online",
    "Users with at least one registered connection",
    registry=REGISTRY,
)

ws_auth_failures_total = Counter(
    "marketchat_ws_auth_failures_total",
    "Rejected socket handshakes by reason",
    ["reason"],
    registry=REGISTRY,
)

ws_messages_sent_total = Counter(
    "marketchat_ws_messages_sent_total",
    "Chat messages persisted and fanned out",
    ["message_type"],
    registry=REGISTRY,
)

ws_call_transitions_total = Counter(
    "marketchat_ws_call_transitions_total",
    "Call state machine transitions by resulting status",
    ["status"],
    registry=REGISTRY,
)

ws_handler_errors_total = Counter(
    "marketchat_ws_handler_errors_total",
    "Socket event handlers that ended in an error event",
    ["event", "error_type"],
    registry=REGISTRY,
)

ws_stale_connections_pruned_total = Counter(
    "marketchat_ws_stale_connections_pruned_total",
    "Connections removed by the periodic stale sweep",
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def set_presence(connections: int, users: int) -> None:
        ws_connections_active.set(connections)
        ws_users_online.set(users)

    @staticmethod
    def record_auth_failure(reason: str) -> None:
        ws_auth_failures_total.labels(reason=reason).inc()

    @staticmethod
    def record_message_sent(message_type: str) -> None:
        ws_messages_sent_total.labels(message_type=message_type).inc()

    @staticmethod
    def record_call_transition(status: str) -> None:
        ws_call_transitions_total.labels(status=status).inc()

    @staticmethod
    def record_handler_error(event: str, error_type: str) -> None:
        ws_handler_errors_total.labels(event=event, error_type=error_type).inc()

    @staticmethod
    def record_stale_pruned(count: int = 1) -> None:
        ws_stale_connections_pruned_total.inc(count)

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Scrapes within the TTL window share one rendered payload.
        """
        now = monotonic()
        with PrometheusMetrics._cache_lock:
            payload = PrometheusMetrics._cache_payload
            ts = PrometheusMetrics._cache_ts
            if payload is None or ts is None or (now - ts) > PrometheusMetrics._cache_ttl_seconds:
                payload = cast(bytes, generate_latest(REGISTRY))
                PrometheusMetrics._cache_payload = payload
                PrometheusMetrics._cache_ts = now
        return payload

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
