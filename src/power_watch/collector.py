"""Process snapshot collection via psutil.

One call to ``PsutilCollector.collect()`` enumerates every live process and
returns an item per PID: a ``ProcessSample`` when its counters could be read,
or a ``SampleFailure`` when the OS refused or the process vanished mid-read.
Enumeration failing as a whole raises ``SnapshotError``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol

import psutil
import structlog

log = structlog.get_logger()


class SnapshotError(RuntimeError):
    """Raised when the process table cannot be enumerated at all."""


@dataclass(frozen=True)
class ProcessSample:
    """Counters for one live process at snapshot time."""

    pid: int
    name: str
    cpu_time: float  # Cumulative user+system CPU seconds since process start
    working_set_bytes: int  # Resident memory


@dataclass(frozen=True)
class SampleFailure:
    """A process the OS listed but whose counters could not be read."""

    pid: int
    reason: str  # "access_denied", "gone", "zombie"


SnapshotItem = ProcessSample | SampleFailure


class ProcessSource(Protocol):
    """Anything that can produce a process snapshot."""

    def collect(self) -> list[SnapshotItem]: ...


def core_count() -> int:
    """Return the number of logical processors, never less than 1."""
    return psutil.cpu_count(logical=True) or 1


class PsutilCollector:
    """Collects per-process CPU time and resident memory using psutil."""

    def collect(self) -> list[SnapshotItem]:
        """Take one snapshot of all live processes.

        Raises:
            SnapshotError: If process enumeration itself fails.
        """
        try:
            procs = list(psutil.process_iter())
        except (OSError, psutil.Error) as e:
            raise SnapshotError(f"process enumeration failed: {e}") from e

        items: list[SnapshotItem] = []
        for proc in procs:
            items.append(self._sample(proc))
        return items

    def _sample(self, proc: psutil.Process) -> SnapshotItem:
        """Read counters for one process, converting OS errors to a SampleFailure."""
        try:
            with proc.oneshot():
                times = proc.cpu_times()
                mem = proc.memory_info()
                name = proc.name()
        except psutil.ZombieProcess:
            return SampleFailure(pid=proc.pid, reason="zombie")
        except psutil.NoSuchProcess:
            return SampleFailure(pid=proc.pid, reason="gone")
        except psutil.AccessDenied:
            return SampleFailure(pid=proc.pid, reason="access_denied")

        return ProcessSample(
            pid=proc.pid,
            name=name or "",
            cpu_time=times.user + times.system,
            working_set_bytes=mem.rss,
        )


# ─────────────────────────────────────────────────────────────────────────────
# System-wide totals
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SystemTotals:
    """Host-wide utilization counters. None means the counter is unavailable."""

    cpu_percent: float | None
    disk_percent: float | None
    gpu_percent: float | None = None


class SystemCounters:
    """Reads host-wide CPU and disk utilization between successive calls.

    Like psutil.cpu_percent(), the first read primes the counters; disk busy
    percent needs two reads and is None until then (and on platforms where
    psutil does not report busy_time).
    """

    def __init__(self) -> None:
        self._last_disk_busy_ms: float | None = None
        self._last_read: float | None = None
        self.read()

    def read(self) -> SystemTotals:
        """Return utilization since the previous read."""
        now = time.monotonic()
        try:
            cpu: float | None = psutil.cpu_percent(interval=None)
        except (OSError, psutil.Error) as e:
            log.debug("system_cpu_unavailable", error=str(e))
            cpu = None

        disk = self._disk_percent(now)
        self._last_read = now
        return SystemTotals(cpu_percent=cpu, disk_percent=disk)

    def _disk_percent(self, now: float) -> float | None:
        try:
            counters = psutil.disk_io_counters()
        except (OSError, psutil.Error, RuntimeError) as e:
            log.debug("system_disk_unavailable", error=str(e))
            return None

        busy_ms = getattr(counters, "busy_time", None) if counters is not None else None
        if busy_ms is None:
            return None

        previous, last_read = self._last_disk_busy_ms, self._last_read
        self._last_disk_busy_ms = busy_ms
        if previous is None or last_read is None or now <= last_read:
            return None

        elapsed_ms = (now - last_read) * 1000
        return min(100.0, max(0.0, (busy_ms - previous) / elapsed_ms * 100))
