"""Monitoring and observability setup.

Traces and metrics are exported over OTLP when TELEMETRY_ENABLED is set.
With telemetry disabled the SDK providers are still installed so spans and
instruments work normally, they are just never exported (tests rely on this).

Exemplars are attached automatically by the SDK to histogram points recorded
inside an active span, so order amounts and sweep durations link back to the
request traces that produced them.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
import pyroscope

from config import (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PROFILING_ENABLED,
    PYROSCOPE_SERVER,
    SERVICE_NAME,
    TELEMETRY_ENABLED,
)

logger = logging.getLogger(__name__)


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    resource = Resource.create({"service.name": SERVICE_NAME})

    tracer_provider = TracerProvider(resource=resource)
    if TELEMETRY_ENABLED:
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")
    trace.set_tracer_provider(tracer_provider)

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    resource = Resource.create({"service.name": SERVICE_NAME})

    metric_readers = []
    if TELEMETRY_ENABLED:
        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        metric_readers.append(PeriodicExportingMetricReader(
            otlp_metric_exporter,
            export_interval_millis=5000
        ))

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=metric_readers
    )
    metrics.set_meter_provider(meter_provider)

    logger.info("Metrics initialized", extra={"exporting": TELEMETRY_ENABLED})

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not PROFILING_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": "demo"}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


# Initialize tracer and meter
tracer = init_tracing()
meter = init_metrics()

# Catalog metrics
product_views_counter = meter.create_counter(
    "storefront.products.views",
    description="Catalog and product detail views",
    unit="1"
)

# Order metrics
orders_created_counter = meter.create_counter(
    "storefront.orders.created",
    description="Total number of orders placed",
    unit="1"
)

orders_rejected_counter = meter.create_counter(
    "storefront.orders.rejected",
    description="Order creations rolled back, by reason",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "storefront.orders.amount",
    description="Order total including tax and fees",
    unit="USD"
)

order_status_changes_counter = meter.create_counter(
    "storefront.orders.status_changes",
    description="Order status transitions applied by admins",
    unit="1"
)

# Auction metrics
auctions_created_counter = meter.create_counter(
    "storefront.auctions.created",
    description="Total number of auctions listed",
    unit="1"
)

auctions_closed_counter = meter.create_counter(
    "storefront.auctions.closed",
    description="Auctions reaching a terminal state, by outcome",
    unit="1"
)

bids_placed_counter = meter.create_counter(
    "storefront.bids.placed",
    description="Total number of accepted bids",
    unit="1"
)

bids_rejected_counter = meter.create_counter(
    "storefront.bids.rejected",
    description="Rejected bid attempts, by reason",
    unit="1"
)

auction_sweep_duration_histogram = meter.create_histogram(
    "storefront.auctions.sweep.duration",
    description="Duration of the lazy auction expiry sweep",
    unit="s"
)

# Review metrics
reviews_submitted_counter = meter.create_counter(
    "storefront.reviews.submitted",
    description="Total number of reviews submitted, by initial status",
    unit="1"
)

reviews_moderated_counter = meter.create_counter(
    "storefront.reviews.moderated",
    description="Review status changes made by moderators",
    unit="1"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "storefront.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "storefront.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "storefront.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "storefront.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)
