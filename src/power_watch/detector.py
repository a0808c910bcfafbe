"""Sustained CPU overuse detection."""

from dataclasses import dataclass

import structlog

from power_watch.formatting import bytes_to_mb
from power_watch.tracker import CpuReading, ProcessState

log = structlog.get_logger()


@dataclass(frozen=True)
class AlertEvent:
    """A process held CPU at or above threshold for a full duration window."""

    pid: int
    name: str
    cpu_percent: float
    working_set_bytes: int
    timestamp: float  # Unix timestamp of the cycle that fired

    @property
    def working_set_mb(self) -> float:
        """Resident memory in MB."""
        return bytes_to_mb(self.working_set_bytes)


class OveruseDetector:
    """Accumulates time over threshold and fires one alert per full window.

    The accumulator resets to zero when an alert fires, so a process that
    stays hot produces one alert per duration window rather than one per cycle.
    """

    def __init__(self, threshold_percent: float, duration_seconds: float) -> None:
        self.threshold_percent = threshold_percent
        self.duration_seconds = duration_seconds

    def check(self, state: ProcessState, reading: CpuReading, now: float) -> AlertEvent | None:
        """Apply one CPU reading to a process's accumulator.

        Args:
            state: Tracked state (its overuse_seconds is mutated)
            reading: This cycle's CPU reading for the same process
            now: Wall-clock timestamp of the cycle

        Returns:
            An AlertEvent when the accumulated time reaches the duration window.
        """
        if reading.cpu_percent < self.threshold_percent:
            if state.overuse_seconds > 0:
                log.debug("overuse_reset", pid=state.pid, accumulated=state.overuse_seconds)
            state.overuse_seconds = 0.0
            return None

        state.overuse_seconds += reading.wall_delta
        if state.overuse_seconds < self.duration_seconds:
            return None

        state.overuse_seconds = 0.0
        event = AlertEvent(
            pid=state.pid,
            name=state.name,
            cpu_percent=reading.cpu_percent,
            working_set_bytes=state.working_set_bytes,
            timestamp=now,
        )
        log.info(
            "hog_detected",
            pid=event.pid,
            name=event.name,
            cpu_percent=round(event.cpu_percent, 1),
            working_set_mb=round(event.working_set_mb, 1),
        )
        return event
