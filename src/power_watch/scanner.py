"""One polling iteration: snapshot, track, detect, evict, summarize."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from power_watch.alerts import AlertDispatcher
from power_watch.collector import (
    ProcessSample,
    ProcessSource,
    SampleFailure,
    SnapshotError,
    SystemCounters,
    SystemTotals,
)
from power_watch.detector import AlertEvent, OveruseDetector
from power_watch.tracker import ProcessTracker, SummaryRow

log = structlog.get_logger()

# Failure reasons that mean the process is still alive, just unreadable
_ALIVE_FAILURES = frozenset({"access_denied"})


@dataclass
class CycleResult:
    """Outcome of one scan cycle, read-only for presentation layers."""

    timestamp: float
    ok: bool  # False when the snapshot failed and the cycle was skipped
    summary: list[SummaryRow] = field(default_factory=list)
    alerts: list[AlertEvent] = field(default_factory=list)
    sampled: int = 0
    skipped: int = 0
    evicted: int = 0
    totals: SystemTotals | None = None
    error: str = ""


class Scanner:
    """Drives scan cycles over a process source.

    Cycles never overlap: run_cycle() runs to completion before returning and
    is the only code that mutates the tracker.
    """

    def __init__(
        self,
        source: ProcessSource,
        tracker: ProcessTracker,
        detector: OveruseDetector,
        dispatcher: AlertDispatcher | None = None,
        summary_size: int = 30,
        counters: SystemCounters | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.source = source
        self.tracker = tracker
        self.detector = detector
        self.dispatcher = dispatcher or AlertDispatcher()
        self.summary_size = summary_size
        self.counters = counters
        self.clock = clock
        self.cycle_count = 0
        self.alert_count = 0

    def run_cycle(self, now: float | None = None) -> CycleResult:
        """Run one scan cycle.

        Args:
            now: Snapshot timestamp; defaults to the scanner's clock

        Returns:
            CycleResult with alerts fired this cycle and the ranked summary.
            When the snapshot fails, ok is False and tracked state is untouched.
        """
        if now is None:
            now = self.clock()
        self.cycle_count += 1

        try:
            items = self.source.collect()
        except SnapshotError as e:
            log.warning("snapshot_failed", error=str(e))
            return CycleResult(
                timestamp=now,
                ok=False,
                summary=self.tracker.summary(self.summary_size),
                error=str(e),
            )

        result = CycleResult(timestamp=now, ok=True)
        seen: set[int] = set()

        for item in items:
            if isinstance(item, SampleFailure):
                result.skipped += 1
                if item.reason in _ALIVE_FAILURES:
                    seen.add(item.pid)
                log.debug("sample_skipped", pid=item.pid, reason=item.reason)
                continue

            seen.add(item.pid)
            try:
                event = self._process(item, now)
            except Exception as e:
                result.skipped += 1
                log.debug("sample_failed", pid=item.pid, error=repr(e))
                continue
            result.sampled += 1
            if event is not None:
                result.alerts.append(event)

        result.evicted = len(self.tracker.evict(seen))

        for event in result.alerts:
            self.dispatcher.dispatch(event)
        self.alert_count += len(result.alerts)

        result.summary = self.tracker.summary(self.summary_size)
        if self.counters is not None:
            result.totals = self.counters.read()
        return result

    def _process(self, sample: ProcessSample, now: float) -> AlertEvent | None:
        """Feed one sample through tracker and detector."""
        reading = self.tracker.update(sample, now)
        if reading is None:
            return None
        state = self.tracker.get(sample.pid)
        if state is None:
            return None
        return self.detector.check(state, reading, now)
