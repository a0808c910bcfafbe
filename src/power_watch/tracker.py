"""Per-process CPU state tracking across scan cycles."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import structlog

from power_watch.classifier import classify
from power_watch.collector import ProcessSample
from power_watch.formatting import bytes_to_mb
from power_watch.resolver import (
    MetadataResolver,
    ProcessMetadata,
    ResolutionStatus,
)

log = structlog.get_logger()


@dataclass
class ProcessState:
    """In-memory state for one tracked PID."""

    pid: int
    name: str
    last_cpu_time: float  # Cumulative CPU seconds at the last sample
    last_sample_time: float  # Wall-clock timestamp of the last sample
    working_set_bytes: int = 0
    overuse_seconds: float = 0.0  # Consecutive seconds at or above threshold
    last_cpu_percent: float | None = None  # None until a second sample exists
    metadata: ProcessMetadata | None = None
    resolution: ResolutionStatus = ResolutionStatus.UNRESOLVED
    is_flagged: bool = False

    @property
    def working_set_mb(self) -> float:
        """Resident memory in MB."""
        return bytes_to_mb(self.working_set_bytes)


@dataclass(frozen=True)
class CpuReading:
    """CPU percent computed from two consecutive samples of one process."""

    pid: int
    cpu_percent: float
    wall_delta: float  # Seconds between the two samples (always > 0)


@dataclass(frozen=True)
class SummaryRow:
    """One row of the ranked summary view."""

    name: str
    pid: int
    cpu_percent: float
    working_set_mb: float
    is_flagged: bool


def compute_cpu_percent(
    cpu_delta: float,
    wall_delta: float,
    core_count: int,
) -> float:
    """Convert a cumulative CPU time delta into percent of total machine capacity.

    Args:
        cpu_delta: CPU seconds consumed between samples
        wall_delta: Wall-clock seconds between samples (must be > 0)
        core_count: Logical processors

    Returns:
        Percent on a 0-100 scale, never negative.
    """
    return max(0.0, (cpu_delta / wall_delta) * 100.0 / core_count)


class ProcessTracker:
    """Owns one ProcessState per live PID and computes CPU percent per cycle.

    Only the scan cycle touches this store, so it needs no locking.
    """

    def __init__(
        self,
        core_count: int,
        resolver: MetadataResolver,
        keywords: Sequence[str] = (),
    ) -> None:
        """Initialize process tracker.

        Args:
            core_count: Logical processor count, read once at startup
            resolver: Metadata resolver invoked for new or unresolved processes
            keywords: Classifier keywords for flagging known-noise processes
        """
        if core_count < 1:
            raise ValueError(f"core_count must be >= 1, got {core_count}")
        self.core_count = core_count
        self.resolver = resolver
        self.keywords = list(keywords)
        self.tracked: dict[int, ProcessState] = {}

    def __len__(self) -> int:
        return len(self.tracked)

    def __contains__(self, pid: object) -> bool:
        return pid in self.tracked

    def get(self, pid: int) -> ProcessState | None:
        """Return tracked state for a PID, if any."""
        return self.tracked.get(pid)

    def update(self, sample: ProcessSample, now: float) -> CpuReading | None:
        """Feed one sample into the store.

        Args:
            sample: Counters read for the process this cycle
            now: Wall-clock timestamp of the snapshot

        Returns:
            A CpuReading when a percent was computed; None on first sighting
            or when the wall clock did not advance since the last sample.
        """
        state = self.tracked.get(sample.pid)
        if state is None:
            state = ProcessState(
                pid=sample.pid,
                name=sample.name,
                last_cpu_time=sample.cpu_time,
                last_sample_time=now,
                working_set_bytes=sample.working_set_bytes,
            )
            self.tracked[sample.pid] = state
            self._enrich(state)
            return None

        state.name = sample.name
        state.working_set_bytes = sample.working_set_bytes

        if state.resolution is ResolutionStatus.UNRESOLVED:
            self._enrich(state)

        wall_delta = now - state.last_sample_time
        if wall_delta <= 0:
            log.debug("sample_clock_skipped", pid=sample.pid, wall_delta=wall_delta)
            return None

        cpu_delta = sample.cpu_time - state.last_cpu_time
        cpu_percent = compute_cpu_percent(cpu_delta, wall_delta, self.core_count)

        state.last_cpu_time = sample.cpu_time
        state.last_sample_time = now
        state.last_cpu_percent = cpu_percent

        return CpuReading(pid=sample.pid, cpu_percent=cpu_percent, wall_delta=wall_delta)

    def _enrich(self, state: ProcessState) -> None:
        """Resolve metadata and (re)classify.

        A failed attempt never replaces metadata from an earlier success.
        """
        result = self.resolver.resolve(state.pid)

        if result.status is ResolutionStatus.RESOLVED and result.metadata is not None:
            state.metadata = result.metadata
            state.resolution = ResolutionStatus.RESOLVED
            log.debug("metadata_resolved", pid=state.pid, path=state.metadata.path)
        elif state.metadata is None:
            state.resolution = result.status
            log.debug("metadata_unresolved", pid=state.pid, reason=result.reason)

        # Unresolved processes are classified on name alone
        state.is_flagged = classify(state.metadata, state.name, self.keywords)

    def evict(self, seen: Iterable[int]) -> list[ProcessState]:
        """Drop every tracked PID absent from this cycle's snapshot.

        Returns:
            The evicted states.
        """
        seen_pids = set(seen)
        evicted = [state for pid, state in self.tracked.items() if pid not in seen_pids]
        for state in evicted:
            del self.tracked[state.pid]
        if evicted:
            log.debug("processes_evicted", count=len(evicted))
        return evicted

    def summary(self, limit: int = 30) -> list[SummaryRow]:
        """Return the top processes by CPU percent, highest first.

        Processes without a computed percent (first sighting) or at exactly
        zero are left out.
        """
        ranked = sorted(
            (s for s in self.tracked.values() if s.last_cpu_percent),
            key=lambda s: s.last_cpu_percent or 0.0,
            reverse=True,
        )
        return [
            SummaryRow(
                name=s.name,
                pid=s.pid,
                cpu_percent=s.last_cpu_percent or 0.0,
                working_set_mb=s.working_set_mb,
                is_flagged=s.is_flagged,
            )
            for s in ranked[:limit]
        ]
