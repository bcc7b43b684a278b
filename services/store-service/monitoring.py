"""Monitoring and observability setup.

Tracing and metrics use OpenTelemetry. Spans and metrics are always recorded
in-process; the OTLP exporters are attached only when OTEL_EXPORTER_ENABLED
is set, so local runs and tests do not try to reach a collector.

Exemplars are attached automatically to histogram metrics recorded inside an
active trace (order_amount_histogram, geocoding_duration_histogram), linking a
metric spike straight to the traces behind it.
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
    ENVIRONMENT,
    OTEL_EXPORTER_ENABLED,
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PROFILING_ENABLED,
    PYROSCOPE_SERVER,
    SERVICE_NAME,
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
    if OTEL_EXPORTER_ENABLED:
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
    if OTEL_EXPORTER_ENABLED:
        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        metric_readers.append(PeriodicExportingMetricReader(
            otlp_metric_exporter,
            export_interval_millis=5000
        ))
        logger.info("Metrics initialized with OTLP exporter")

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=metric_readers
    )
    metrics.set_meter_provider(meter_provider)

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not PROFILING_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": ENVIRONMENT}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


# Initialize tracer and meter
tracer = init_tracing()
meter = init_metrics()

# Business metrics using OpenTelemetry

# Product catalog metrics
product_views_counter = meter.create_counter(
    "techstore.products.views",
    description="Total number of product catalog listings served",
    unit="1"
)

product_detail_views_counter = meter.create_counter(
    "techstore.products.detail_views",
    description="Total number of individual product detail views",
    unit="1"
)

# Order metrics
orders_created_counter = meter.create_counter(
    "techstore.orders.created",
    description="Total number of orders placed",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "techstore.orders.amount",
    description="Final order amount in USD",
    unit="USD"
)

order_failures_counter = meter.create_counter(
    "techstore.orders.failures",
    description="Order placements rejected or failed, by reason",
    unit="1"
)

stock_conflicts_counter = meter.create_counter(
    "techstore.inventory.stock_conflicts",
    description="Conditional stock decrements that found insufficient stock at write time",
    unit="1"
)

orders_cancelled_counter = meter.create_counter(
    "techstore.orders.cancelled",
    description="Total number of cancelled orders",
    unit="1"
)

notification_failures_counter = meter.create_counter(
    "techstore.notifications.failures",
    description="Emails that could not be delivered",
    unit="1"
)

# Location metrics
shipping_estimates_counter = meter.create_counter(
    "techstore.shipping.estimates",
    description="Shipping cost estimates by delivery option and source",
    unit="1"
)

geocoding_duration_histogram = meter.create_histogram(
    "techstore.external.geocoding.duration",
    description="Duration of external geocoding calls",
    unit="s"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "techstore.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "techstore.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "techstore.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "techstore.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)
