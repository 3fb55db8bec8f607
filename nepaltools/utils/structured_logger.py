"""
Structured logging for store events.
Provides JSON-formatted logs with context and metadata.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("nepaltools")
        logger.info("file_saved", file_id="file_1_abc", size_bytes=1024)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Enable console output
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        self.json_log_path: Path | None = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_log_path = log_dir / f"nepaltools_{timestamp}.jsonl"
            self._json_file = open(self.json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        """Format message for console output."""
        parts = [f"[{event}]"]
        for key, value in context.items():
            if key not in ("level", "timestamp"):
                parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        """Write structured log entry to JSON file."""
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _log(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        """Log debug event."""
        self._log(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        """Log info event."""
        self._log(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        """Log warning event."""
        self._log(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        """Log error event."""
        self._log(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class StoreEventLogger:
    """Specialized logger for file store events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def file_saved(self, file_id: str, name: str, mime_type: str, size_bytes: int):
        self.logger.info(
            "file_saved",
            file_id=file_id,
            name=name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            size_mb=round(size_bytes / (1024 * 1024), 2),
        )

    def file_rejected(self, name: str, size_bytes: int, max_size_bytes: int):
        self.logger.warning(
            "file_rejected",
            name=name,
            size_bytes=size_bytes,
            max_size_bytes=max_size_bytes,
        )

    def file_deleted(self, file_id: str, size_bytes: int):
        self.logger.info("file_deleted", file_id=file_id, size_bytes=size_bytes)

    def metadata_updated(self, file_id: str, fields: list[str]):
        self.logger.debug("metadata_updated", file_id=file_id, fields=fields)

    def backup_exported(self, file_count: int, destination: str | None = None):
        self.logger.info(
            "backup_exported", file_count=file_count, destination=destination
        )

    def backup_imported(
        self, file_count: int, size_bytes: int, overlapping: int, source: str | None
    ):
        """Log a completed import; overlapping ids are double counted in stats."""
        self.logger.info(
            "backup_imported",
            file_count=file_count,
            size_bytes=size_bytes,
            overlapping=overlapping,
            source=source,
        )
        if overlapping:
            self.logger.warning(
                "stats_double_counted",
                overlapping=overlapping,
                hint="run 'nepaltools recount' to rebuild statistics",
            )

    def import_rejected(self, reason: str, kind: str):
        self.logger.error("backup_import_rejected", reason=reason, kind=kind)

    def stats_recounted(self, total_files: int, total_size_bytes: int, drifted: bool):
        self.logger.info(
            "stats_recounted",
            total_files=total_files,
            total_size_bytes=total_size_bytes,
            drifted=drifted,
        )

    def store_cleared(self, backend: str):
        self.logger.warning("store_cleared", backend=backend)


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, StoreEventLogger]:
    """
    Create the structured loggers.

    Returns:
        Tuple of (base_logger, store_event_logger)
    """
    base = StructuredLogger("nepaltools", log_dir=log_dir, enable_json=enable_json)
    return base, StoreEventLogger(base)
