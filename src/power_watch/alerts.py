"""Alert sinks: the append-only CSV log and desktop notifications."""

import csv
from collections import deque
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol

import structlog

from power_watch.detector import AlertEvent
from power_watch.formatting import format_mb
from power_watch.notifications import Notifier

log = structlog.get_logger()

CSV_HEADER = ["Timestamp", "PID", "ProcessName", "CPUPercent", "WorkingSetMB"]


class AlertSink(Protocol):
    """Receives alert events. Delivery is best effort."""

    def deliver(self, event: AlertEvent) -> None: ...


def format_timestamp(timestamp: float) -> str:
    """Format a Unix timestamp as local ISO-8601 with UTC offset."""
    return datetime.fromtimestamp(timestamp).astimezone().isoformat()


class CsvAlertLog:
    """Append-only CSV file of alert records.

    The header line is written only when the file does not exist yet; the
    file is never truncated or rewritten.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def ensure_header(self) -> None:
        """Create the file with its header line if it is missing."""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(CSV_HEADER)
        log.info("alert_log_created", path=str(self.path))

    def deliver(self, event: AlertEvent) -> None:
        """Append one record for an alert.

        Raises:
            OSError: If the file cannot be written.
        """
        self.ensure_header()
        with open(self.path, "a", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(
                [
                    format_timestamp(event.timestamp),
                    event.pid,
                    event.name,
                    f"{event.cpu_percent:.1f}",
                    format_mb(event.working_set_bytes),
                ]
            )

    def read_recent(self, limit: int = 20) -> list[dict[str, str]]:
        """Return the last ``limit`` records, oldest first.

        Returns an empty list when the log does not exist yet.
        """
        if not self.path.exists():
            return []
        with open(self.path, newline="", encoding="utf-8") as f:
            return list(deque(csv.DictReader(f), maxlen=limit))


class NotificationSink:
    """Adapts a Notifier to the AlertSink interface."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier

    def deliver(self, event: AlertEvent) -> None:
        self.notifier.hog_detected(
            name=event.name,
            pid=event.pid,
            cpu_percent=event.cpu_percent,
            working_set_mb=event.working_set_mb,
        )


class AlertDispatcher:
    """Fans alert events out to sinks with at-most-once, best-effort delivery.

    A failing sink is logged and skipped; it never raises into the caller and
    is never retried.
    """

    def __init__(self, sinks: Sequence[AlertSink] = ()) -> None:
        self.sinks = list(sinks)
        self.delivered = 0
        self.failed = 0

    def dispatch(self, event: AlertEvent) -> None:
        """Deliver one event to every sink."""
        for sink in self.sinks:
            try:
                sink.deliver(event)
                self.delivered += 1
            except Exception as e:
                self.failed += 1
                log.warning(
                    "alert_sink_failed",
                    sink=type(sink).__name__,
                    pid=event.pid,
                    error=str(e),
                )
