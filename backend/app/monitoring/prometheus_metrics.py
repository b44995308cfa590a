"""
Prometheus metrics module for the tutor scheduling backend.

Service timings come from the @measure_operation decorator; the scheduling
counters below are incremented directly by the fan-out runner, the booking
write path and the recurring series materializer.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "tutordesk_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

service_operations_total = Counter(
    "tutordesk_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "tutordesk_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

tutor_checks_total = Counter(
    "tutordesk_tutor_checks_total",
    "Per-tutor availability checks by outcome",
    ["operation", "outcome"],  # ok | error | timeout
    registry=REGISTRY,
)

slot_unavailable_total = Counter(
    "tutordesk_slot_unavailable_total",
    "Booking writes rejected because the slot was taken",
    ["reason"],  # recheck | constraint
    registry=REGISTRY,
)

recurring_instances_total = Counter(
    "tutordesk_recurring_instances_total",
    "Recurring lesson instances materialized",
    ["trigger"],  # create | extend
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
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'create_lesson')
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
    def record_tutor_check(operation: str, outcome: str) -> None:
        tutor_checks_total.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def inc_slot_unavailable(reason: str) -> None:
        slot_unavailable_total.labels(reason=reason).inc()

    @staticmethod
    def inc_recurring_instances(trigger: str, count: int) -> None:
        if count > 0:
            recurring_instances_total.labels(trigger=trigger).inc(count)

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
