"""OTel logger wrapper and log context for gateway observability.

Provides :class:`OTelLogger`, a thin wrapper around the OTel Logger API
with ``info``/``debug``/``warning``/``error`` methods, and
:class:`LogContext`, an immutable bundle of dimensional log attributes.

:func:`format_log_record` renders a record for the console exporter.
"""

import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from opentelemetry._logs import LogRecord, SeverityNumber

# =============================================================================
# LogContext
# =============================================================================


@dataclass(frozen=True)
class LogContext:
    """Immutable bundle of dimensional log attributes.

    Attached to every log record emitted by an OTelLogger carrying it.
    """

    service: str = ""
    component: str = ""
    connection_id: str = ""
    session_id: str = ""

    def as_attributes(self) -> dict[str, str]:
        """Convert to OTel log record attributes. Empty values are omitted."""
        attrs: dict[str, str] = {}
        if self.service:
            attrs["service.name"] = self.service
        if self.component:
            attrs["component.name"] = self.component
        if self.connection_id:
            attrs["connection.id"] = self.connection_id
        if self.session_id:
            attrs["gateway.session_id"] = self.session_id
        return attrs

    def child(self, **overrides: str) -> "LogContext":
        """Derive a child context, inheriting parent values for unspecified fields."""
        return LogContext(**{**asdict(self), **overrides})


# =============================================================================
# Log Record Formatting
# =============================================================================


def format_log_record(record: LogRecord) -> str:
    """
    Format a LogRecord as one human-readable line.

    Format: YYYY-MM-DDTHH:MM:SSZ [LEVEL] [trace:span] service/component source\\t: body\\n

    Args:
        record: OpenTelemetry LogRecord to format.

    Returns:
        Formatted line, newline terminated.
    """
    timestamp_ns = record.timestamp or 0
    timestamp_str = datetime.fromtimestamp(timestamp_ns / 1e9, tz=UTC).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )
    attrs = record.attributes or {}
    source = attrs.get("log.source", "Unknown")
    parts = [
        p for p in (attrs.get("service.name", ""), attrs.get("component.name", "")) if p
    ]
    dim_prefix = "/".join(str(v) for v in parts) + " " if parts else ""

    trace_part = ""
    if record.trace_id and record.span_id:
        trace_id_hex = f"{record.trace_id:032x}"
        span_id_hex = f"{record.span_id:016x}"
        trace_part = f" [{trace_id_hex[:8]}:{span_id_hex[:8]}]"

    return (
        f"{timestamp_str} [{record.severity_text}]{trace_part} "
        f"{dim_prefix}{source}\t: {record.body}\n"
    )


# =============================================================================
# OTel Logger Wrapper
# =============================================================================


class OTelLogger:
    """Thin wrapper for OTel Logger with convenient emit methods.

    Example:
        >>> logger = OTelLogger(logger_provider.get_logger("rxcord"), source="Gateway")
        >>> logger.info("Connected", url="wss://gateway.discord.gg")
        >>> child = logger.with_context(session_id="abc123")
    """

    def __init__(
        self,
        logger,
        source: str,
        context: LogContext | None = None,
        min_severity: SeverityNumber | None = None,
    ):
        """Initialize OTel logger wrapper.

        Args:
            logger: OTel Logger instance from LoggerProvider.get_logger()
            source: Source identifier for the log.source attribute
            context: Optional LogContext with dimensional attributes.
            min_severity: Records below this level are silently dropped.
        """
        self._logger = logger
        self._source = source
        self._context = context or LogContext()
        self._min_severity = min_severity

    def info(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.INFO, "INFO", message, attrs)

    def debug(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.DEBUG, "DEBUG", message, attrs)

    def warning(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.WARN, "WARN", message, attrs)

    def error(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.ERROR, "ERROR", message, attrs)

    def with_context(self, **overrides) -> "OTelLogger":
        """Derive a child logger with LogContext overrides.

        A ``source`` key is popped and used as the child's source string.
        """
        new_source = overrides.pop("source", self._source)
        return OTelLogger(
            self._logger,
            source=new_source,
            context=self._context.child(**overrides),
            min_severity=self._min_severity,
        )

    def _emit(
        self,
        severity_number: SeverityNumber,
        severity_text: str,
        message: str,
        attrs: dict,
    ) -> None:
        if self._min_severity and severity_number.value < self._min_severity.value:
            return
        merged = {
            "log.source": self._source,
            **self._context.as_attributes(),
            **attrs,
        }
        record = LogRecord(
            timestamp=time.time_ns(),
            body=message,
            severity_text=severity_text,
            severity_number=severity_number,
            attributes=merged,
        )
        self._logger.emit(record)
