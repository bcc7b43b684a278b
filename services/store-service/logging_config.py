"""Structured JSON logging.

Every record is one JSON line on stdout carrying the service name, the
deployment environment and, inside a request, the active trace and span IDs
so log lines can be joined with traces. With OTEL_EXPORTER_ENABLED the same
records are also shipped to the collector over OTLP.
"""
import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger
from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource

from config import ENVIRONMENT, LOG_LEVEL, OTEL_EXPORTER_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME

QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "passlib": logging.ERROR,
}


class StoreJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps service and trace context on each record."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            log_record["trace_id"] = format(ctx.trace_id, "032x")
            log_record["span_id"] = format(ctx.span_id, "016x")

        log_record["service"] = SERVICE_NAME
        log_record["environment"] = ENVIRONMENT

        if "message" in log_record:
            log_record["msg"] = log_record.pop("message")


def _otlp_handler() -> Optional[logging.Handler]:
    try:
        provider = LoggerProvider(resource=Resource.create({
            "service.name": SERVICE_NAME,
            "deployment.environment": ENVIRONMENT
        }))
        provider.add_log_record_processor(BatchLogRecordProcessor(
            OTLPLogExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True)
        ))
        set_logger_provider(provider)
        return LoggingHandler(level=logging.INFO, logger_provider=provider)
    except Exception as e:
        logging.getLogger(__name__).warning("OTLP log export unavailable, logging to stdout only", extra={
            "error": str(e)
        })
        return None


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Route all logging through the JSON formatter (and OTLP when enabled)."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StoreJsonFormatter(
        "%(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level"}
    ))
    root_logger.addHandler(console_handler)

    if OTEL_EXPORTER_ENABLED:
        otlp_handler = _otlp_handler()
        if otlp_handler is not None:
            root_logger.addHandler(otlp_handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
