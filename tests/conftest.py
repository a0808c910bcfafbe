"""Shared test fixtures for power-watch."""

from collections.abc import Iterable

import pytest

from power_watch.alerts import AlertDispatcher
from power_watch.collector import ProcessSample, SnapshotItem
from power_watch.detector import AlertEvent, OveruseDetector
from power_watch.resolver import (
    ProcessMetadata,
    ResolutionStatus,
    ResolveResult,
)
from power_watch.scanner import Scanner
from power_watch.tracker import ProcessTracker

MB = 1024 * 1024


def make_sample(
    pid: int = 100,
    name: str = "worker",
    cpu_time: float = 0.0,
    working_set_bytes: int = 64 * MB,
) -> ProcessSample:
    """Create a ProcessSample for testing."""
    return ProcessSample(
        pid=pid,
        name=name,
        cpu_time=cpu_time,
        working_set_bytes=working_set_bytes,
    )


def resolved(path: str = "/usr/bin/worker", description: str = "", publisher: str = ""):
    """Create a RESOLVED ResolveResult."""
    return ResolveResult(
        ResolutionStatus.RESOLVED,
        metadata=ProcessMetadata(path=path, description=description, publisher=publisher),
    )


UNRESOLVED = ResolveResult(ResolutionStatus.UNRESOLVED, reason="access_denied")
UNAVAILABLE = ResolveResult(ResolutionStatus.UNAVAILABLE, reason="no_executable")


class FakeResolver:
    """Resolver returning scripted results per PID.

    A list value is consumed one result per call; its last entry repeats.
    An exception value is raised instead of returned.
    """

    def __init__(self, results: dict | None = None, default: ResolveResult | None = None):
        self.results = dict(results or {})
        self.default = default or resolved()
        self.calls: list[int] = []

    def resolve(self, pid: int) -> ResolveResult:
        self.calls.append(pid)
        result = self.results.get(pid, self.default)
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeSource:
    """Process source replaying scripted snapshots.

    Each entry is a list of snapshot items, or an exception to raise.
    """

    def __init__(self, snapshots: Iterable[list[SnapshotItem] | Exception] = ()):
        self.snapshots = list(snapshots)
        self.calls = 0

    def push(self, snapshot: list[SnapshotItem] | Exception) -> None:
        self.snapshots.append(snapshot)

    def collect(self) -> list[SnapshotItem]:
        self.calls += 1
        snapshot = self.snapshots.pop(0)
        if isinstance(snapshot, Exception):
            raise snapshot
        return snapshot


class ListSink:
    """Alert sink that records delivered events."""

    def __init__(self) -> None:
        self.events: list[AlertEvent] = []

    def deliver(self, event: AlertEvent) -> None:
        self.events.append(event)


class FailingSink:
    """Alert sink that always raises."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or OSError("disk full")
        self.attempts = 0

    def deliver(self, event: AlertEvent) -> None:
        self.attempts += 1
        raise self.exc


@pytest.fixture
def fake_resolver() -> FakeResolver:
    """Resolver that resolves every PID to /usr/bin/worker."""
    return FakeResolver()


@pytest.fixture
def tracker(fake_resolver: FakeResolver) -> ProcessTracker:
    """Single-core tracker with the default keyword list."""
    from power_watch.config import DEFAULT_KEYWORDS

    return ProcessTracker(core_count=1, resolver=fake_resolver, keywords=DEFAULT_KEYWORDS)


@pytest.fixture
def sink() -> ListSink:
    """Recording alert sink."""
    return ListSink()


@pytest.fixture
def source() -> FakeSource:
    """Empty scripted process source; push snapshots before each cycle."""
    return FakeSource()


@pytest.fixture
def scanner(source: FakeSource, tracker: ProcessTracker, sink: ListSink) -> Scanner:
    """Scanner with threshold 20%, duration 10s, recording alerts into `sink`."""
    return Scanner(
        source=source,
        tracker=tracker,
        detector=OveruseDetector(threshold_percent=20.0, duration_seconds=10.0),
        dispatcher=AlertDispatcher([sink]),
        summary_size=30,
    )
