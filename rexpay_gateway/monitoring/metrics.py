"""
Prometheus metrics for gateway orchestration.

Tracks:
- Gateway operation counts by outcome
- Gateway operation duration
- Errors by kind
- Retries scheduled
- Authorization outcomes
- Subaccount selections and success rates

Metrics live on an explicit CollectorRegistry owned by each
PaymentMetrics instance; pass ``prometheus_client.REGISTRY`` to expose
them through the default exporter.
"""
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram


class PaymentMetrics:
    """Telemetry sink injected into the orchestrator."""

    def __init__(
        self,
        service_name: str = "rexpay_v3",
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Initialize metrics.

        Args:
            service_name: Value of the ``service`` label
            registry: Registry to register metrics on (a fresh one if omitted)
        """
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()

        self.operations_total = Counter(
            "gateway_operations_total",
            "Total gateway operations",
            ["service", "operation", "status"],  # status: success, error
            registry=self.registry,
        )
        self.operation_duration_seconds = Histogram(
            "gateway_operation_duration_seconds",
            "Gateway operation duration in seconds, retries included",
            ["service", "operation"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self.registry,
        )
        self.errors_total = Counter(
            "gateway_errors_total",
            "Total gateway errors surfaced to callers",
            ["service", "operation", "error_kind"],
            registry=self.registry,
        )
        self.retries_total = Counter(
            "gateway_retries_total",
            "Total retries scheduled",
            ["service", "operation", "error_kind"],
            registry=self.registry,
        )
        self.authorizations_total = Counter(
            "gateway_authorizations_total",
            "Authorization outcomes",
            ["service", "outcome"],  # approved, declined
            registry=self.registry,
        )
        self.subaccount_selections_total = Counter(
            "subaccount_selections_total",
            "Times each subaccount was selected",
            ["service", "subaccount_id"],
            registry=self.registry,
        )
        self.subaccount_success_rate = Gauge(
            "subaccount_success_rate",
            "Rolling success rate per subaccount",
            ["service", "subaccount_id"],
            registry=self.registry,
        )

    def record_success(self, operation: str, duration_seconds: float) -> None:
        """Record a successful operation."""
        self.operations_total.labels(self.service_name, operation, "success").inc()
        self.operation_duration_seconds.labels(self.service_name, operation).observe(
            duration_seconds
        )

    def record_error(self, operation: str, error_kind: str, duration_seconds: float) -> None:
        """Record a failed operation."""
        self.operations_total.labels(self.service_name, operation, "error").inc()
        self.errors_total.labels(self.service_name, operation, error_kind).inc()
        self.operation_duration_seconds.labels(self.service_name, operation).observe(
            duration_seconds
        )

    def record_retry(self, operation: str, error_kind: str) -> None:
        """Record a retry scheduled by the retry executor."""
        self.retries_total.labels(self.service_name, operation, error_kind).inc()

    def record_authorization(self, success: bool) -> None:
        """Record an authorization outcome."""
        outcome = "approved" if success else "declined"
        self.authorizations_total.labels(self.service_name, outcome).inc()

    def record_subaccount_selection(self, subaccount_id: str) -> None:
        """Record which subaccount was chosen."""
        self.subaccount_selections_total.labels(self.service_name, subaccount_id).inc()

    def set_subaccount_success_rate(self, subaccount_id: str, success_rate: float) -> None:
        """Publish a subaccount's current success rate."""
        self.subaccount_success_rate.labels(self.service_name, subaccount_id).set(success_rate)

    def sample(self, name: str, **labels: str) -> Optional[float]:
        """Read a sample value from this instance's registry."""
        return self.registry.get_sample_value(name, {"service": self.service_name, **labels})
