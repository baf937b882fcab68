"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
orders_created_total = Counter(
    "orders_created_total",
    "Total number of purchase orders created",
    ["package_id"],
)

orders_link_failed_total = Counter(
    "orders_link_failed_total",
    "Orders failed because the payment link could not be created",
)

settlements_total = Counter(
    "settlements_total",
    "Settlement attempts by outcome",
    ["source", "outcome"],  # source: verify / callback; outcome: completed / failed / pending / already_processed
)

settlement_tamper_total = Counter(
    "settlement_tamper_total",
    "Orders failed because the amount no longer matched the catalog price",
)

tokens_credited_total = Counter(
    "tokens_credited_total",
    "Tokens credited by settled payments",
)

token_debits_total = Counter(
    "token_debits_total",
    "Tokens debited by generation requests",
    ["kind"],  # image / video
)

balance_rejected_total = Counter(
    "balance_rejected_total",
    "Generation requests rejected for insufficient tokens",
    ["kind"],
)

generation_unbilled_total = Counter(
    "generation_unbilled_total",
    "Provider produced content that could not be recorded or billed",
    ["kind"],
)

provider_requests_total = Counter(
    "provider_requests_total",
    "Total generation provider requests",
    ["provider", "operation", "status"],
)

gateway_requests_total = Counter(
    "gateway_requests_total",
    "Total payment gateway requests",
    ["operation", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Generation provider request duration",
    ["provider", "operation"],
    buckets=[0.5, 1, 5, 10, 30, 60, 120],
)

gateway_request_duration_seconds = Histogram(
    "gateway_request_duration_seconds",
    "Payment gateway request duration",
    ["operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
