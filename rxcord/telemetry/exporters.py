"""Console log-record exporter.

:class:`ConsoleLogRecordExporter` writes one readable line per record to
stderr, which is what a long-running bot process usually wants.
"""

import sys
from collections.abc import Sequence

from opentelemetry.sdk._logs._internal import ReadableLogRecord
from opentelemetry.sdk._logs.export import (
    LogRecordExporter,
    LogRecordExportResult,
)

from .logger import format_log_record


class ConsoleLogRecordExporter(LogRecordExporter):
    """OTel LogRecordExporter that writes CLI-friendly output to stderr.

    Example output:
        2026-02-03T10:30:00Z [INFO] rxcord/gateway Gateway	: Connected.
        2026-02-03T10:30:01Z [WARN] rxcord/gateway Gateway	: Heartbeat ACK not received
    """

    def export(self, batch: Sequence[ReadableLogRecord]) -> LogRecordExportResult:
        try:
            for readable_record in batch:
                sys.stderr.write(format_log_record(readable_record.log_record))
            sys.stderr.flush()
            return LogRecordExportResult.SUCCESS
        except Exception:
            return LogRecordExportResult.FAILURE

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        sys.stderr.flush()
        return True
