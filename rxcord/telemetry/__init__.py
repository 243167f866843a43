"""OpenTelemetry helpers for rxcord components.

Provider configuration, a structured logger wrapper, a console log-record
exporter and a metrics helper.
"""

from .config import (
    configure_metrics,
    configure_telemetry,
    get_default_providers,
)
from .exporters import ConsoleLogRecordExporter
from .logger import (
    LogContext,
    OTelLogger,
    format_log_record,
)
from .metrics import MetricsHelper

__all__ = [
    # config
    "configure_telemetry",
    "configure_metrics",
    "get_default_providers",
    # logger
    "OTelLogger",
    "LogContext",
    "format_log_record",
    # exporters
    "ConsoleLogRecordExporter",
    # metrics
    "MetricsHelper",
]
