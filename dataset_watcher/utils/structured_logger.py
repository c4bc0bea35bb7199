"""
Structured logging for watcher events.
Provides JSON-formatted logs with context and metadata next to the console output.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("dataset_watcher", log_dir=Path("logs"))
        logger.info("check_completed", index=9, status=404, exists=False)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None

        self._logger = logging.getLogger(name)

        self._json_file = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"dataset_watcher_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
        }

    @property
    def json_path(self) -> Path | None:
        return Path(self._json_file.name) if self._json_file else None

    def _format_message(self, event: str, **context) -> str:
        """Format message for console output."""
        parts = [f"[{event}]"]
        for key, value in context.items():
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
            self._logger.warning(f"JSON event logging failed: {e}")

    def _log(self, level: int, event: str, **context) -> None:
        self._logger.log(level, self._format_message(event, **context), extra={"markup": False})
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

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()


class WatcherEventLogger:
    """Specialized logger for check cycle and download events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def check_completed(self, index: int, url: str, exists: bool, status: int | None):
        """Log the outcome of one probe."""
        self.logger.debug(
            "check_completed", index=index, url=url, exists=exists, status=status
        )

    def state_repaired(self, field: str, value: Any, replacement: Any):
        """Log an invalid stored value being reset."""
        self.logger.warning(
            "state_repaired", field=field, value=value, replacement=replacement
        )

    def download_started(self, index: int, handle: str):
        """Log a download being handed to the requester."""
        self.logger.info("download_started", index=index, handle=handle)

    def download_start_failed(self, index: int, error: str):
        """Log a download that could not be started."""
        self.logger.warning("download_start_failed", index=index, error=error)

    def download_finished(self, index: int, handle: str, next_index: int):
        """Log a completed download and the index watched next."""
        self.logger.info(
            "download_finished", index=index, handle=handle, next_index=next_index
        )

    def download_interrupted(self, index: int, handle: str):
        """Log an interrupted download."""
        self.logger.warning("download_interrupted", index=index, handle=handle)


def create_event_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> WatcherEventLogger:
    """Create the watcher's event logger, optionally writing JSONL to `log_dir`."""
    base = StructuredLogger("dataset_watcher.events", log_dir=log_dir, enable_json=enable_json)
    return WatcherEventLogger(base)
