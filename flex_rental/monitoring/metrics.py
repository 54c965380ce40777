from prometheus_client import Counter, Gauge, Histogram, Info
from prometheus_fastapi_instrumentator import Instrumentator

SERVICE = "flex-rental"

# Business metrics
rentals_total = Counter(
    "pawatasty_rentals_total",
    "Rental lifecycle transitions",
    ["service", "status"],  # status=active/completed/purchased/failed
)

rental_duration_seconds = Histogram(
    "pawatasty_rental_duration_seconds",
    "Duration of closed rentals in seconds",
    ["service"],
    buckets=[60, 300, 900, 1800, 3600, 7200, 14400, 28800, 86400, 432000],
)

payment_charges_total = Counter(
    "pawatasty_payment_charges_total",
    "Payment gateway charge attempts",
    ["service", "purpose", "outcome"],  # purpose=validation/usage/penalty/refund
)

payment_amount_cents = Counter(
    "pawatasty_payment_amount_cents_total",
    "Successfully charged amount in cents",
    ["service", "purpose"],
)

inventory_operations_total = Counter(
    "pawatasty_inventory_operations_total",
    "Station slot reservations and releases",
    ["service", "operation", "outcome"],
)

points_awarded_total = Counter(
    "pawatasty_points_awarded_total",
    "Loyalty points awarded",
    ["service", "event_type"],
)

# Technical metrics
circuit_breaker_state = Gauge(
    "pawatasty_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["service", "circuit_name"],
)

circuit_breaker_failures = Counter(
    "pawatasty_circuit_breaker_failures_total",
    "Total circuit breaker failures",
    ["service", "circuit_name"],
)

external_api_duration = Histogram(
    "pawatasty_external_api_duration_seconds",
    "External API request duration",
    ["service", "api_service", "endpoint"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

app_info = Info("pawatasty_app_info", "Application information")


class MetricsCollector:
    @staticmethod
    def record_rental(status: str) -> None:
        rentals_total.labels(service=SERVICE, status=status).inc()

    @staticmethod
    def record_rental_duration(seconds: float) -> None:
        rental_duration_seconds.labels(service=SERVICE).observe(seconds)

    @staticmethod
    def record_charge(purpose: str, success: bool, amount: int) -> None:
        outcome = "success" if success else "failure"
        payment_charges_total.labels(
            service=SERVICE, purpose=purpose, outcome=outcome
        ).inc()
        if success:
            payment_amount_cents.labels(service=SERVICE, purpose=purpose).inc(amount)

    @staticmethod
    def record_inventory(operation: str, outcome: str) -> None:
        inventory_operations_total.labels(
            service=SERVICE, operation=operation, outcome=outcome
        ).inc()

    @staticmethod
    def record_points(event_type: str) -> None:
        points_awarded_total.labels(service=SERVICE, event_type=event_type).inc()


def setup_instrumentator() -> Instrumentator:
    return Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/api/v1/health"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )


def init_app_info(version: str = "1.0.0"):
    app_info.info({"version": version, "service": SERVICE, "component": "api"})
