"""
Prometheus metrics module for the messaging core.

Service timings come from the @measure_operation decorator; messaging
counters are recorded by the conversation service, the publisher and the
SSE stream.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "marketchat_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "marketchat_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "marketchat_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

messages_sent_total = Counter(
    "marketchat_messages_sent_total",
    "Messages accepted by send_message",
    ["outcome"],  # created | duplicate
    registry=REGISTRY,
)

fanout_events_total = Counter(
    "marketchat_fanout_events_total",
    "Real-time fan-out events by outcome",
    ["outcome"],  # scheduled | published | dropped | failed
    registry=REGISTRY,
)

sse_connections_active = Gauge(
    "marketchat_sse_connections_active",
    "Number of open SSE message streams",
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'ConversationService')
            operation: Operation/method name (e.g., 'send_message')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()

        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def inc_messages_sent(outcome: str = "created") -> None:
        messages_sent_total.labels(outcome=outcome).inc()

    @staticmethod
    def inc_fanout(outcome: str) -> None:
        fanout_events_total.labels(outcome=outcome).inc()

    @staticmethod
    def sse_connection_opened() -> None:
        sse_connections_active.inc()

    @staticmethod
    def sse_connection_closed() -> None:
        sse_connections_active.dec()

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
