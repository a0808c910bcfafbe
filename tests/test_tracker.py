"""Tests for per-process CPU state tracker."""

import pytest

from power_watch.resolver import ProcessMetadata, ResolutionStatus
from power_watch.tracker import ProcessTracker, compute_cpu_percent
from tests.conftest import (
    MB,
    UNAVAILABLE,
    UNRESOLVED,
    FakeResolver,
    make_sample,
    resolved,
)


class TestComputeCpuPercent:
    """Tests for the CPU percent formula."""

    def test_single_core(self):
        """Half a CPU second over one wall second is 50% on one core."""
        assert compute_cpu_percent(0.5, 1.0, 1) == 50.0

    def test_normalized_by_core_count(self):
        """Cumulative time across cores is divided by the core count."""
        # 4 CPU-seconds in 2 wall seconds on 8 cores = 2 cores busy = 25%
        assert compute_cpu_percent(4.0, 2.0, 8) == 25.0

    def test_never_negative(self):
        """A counter that went backwards clamps to zero."""
        assert compute_cpu_percent(-1.0, 2.0, 4) == 0.0

    @pytest.mark.parametrize(
        "c1,c2,wall,cores",
        [(0.0, 1.0, 2.0, 1), (10.0, 13.0, 3.0, 4), (5.0, 5.0, 1.0, 2)],
    )
    def test_matches_formula(self, c1, c2, wall, cores):
        """Percent equals (c2-c1)/w*100/cores."""
        assert compute_cpu_percent(c2 - c1, wall, cores) == pytest.approx(
            (c2 - c1) / wall * 100 / cores
        )


def test_first_sighting_creates_state_without_percent(tracker):
    """First sample records a baseline and computes no percent."""
    reading = tracker.update(make_sample(pid=1, cpu_time=5.0), now=100.0)

    assert reading is None
    state = tracker.get(1)
    assert state is not None
    assert state.last_cpu_time == 5.0
    assert state.last_sample_time == 100.0
    assert state.overuse_seconds == 0.0
    assert state.last_cpu_percent is None


def test_second_sample_computes_percent(tracker):
    """Second sample yields a CpuReading and updates the state."""
    tracker.update(make_sample(pid=1, cpu_time=5.0), now=100.0)
    reading = tracker.update(
        make_sample(pid=1, name="renamed", cpu_time=6.0, working_set_bytes=10 * MB),
        now=102.0,
    )

    assert reading is not None
    assert reading.cpu_percent == 50.0
    assert reading.wall_delta == 2.0

    state = tracker.get(1)
    assert state.last_cpu_time == 6.0
    assert state.last_sample_time == 102.0
    assert state.last_cpu_percent == 50.0
    assert state.name == "renamed"
    assert state.working_set_bytes == 10 * MB


def test_multicore_tracker_normalizes():
    """A 4-core tracker divides by four."""
    tracker = ProcessTracker(core_count=4, resolver=FakeResolver())
    tracker.update(make_sample(pid=1, cpu_time=0.0), now=0.0)
    reading = tracker.update(make_sample(pid=1, cpu_time=4.0), now=2.0)

    assert reading.cpu_percent == 50.0


def test_invalid_core_count_rejected():
    """Core count below one fails fast."""
    with pytest.raises(ValueError):
        ProcessTracker(core_count=0, resolver=FakeResolver())


@pytest.mark.parametrize("later", [100.0, 99.0])
def test_non_positive_wall_delta_skips_computation(tracker, later):
    """Duplicate or backwards timestamps leave percent and baseline unchanged."""
    tracker.update(make_sample(pid=1, cpu_time=0.0), now=98.0)
    tracker.update(make_sample(pid=1, cpu_time=1.0), now=100.0)
    state = tracker.get(1)
    state.overuse_seconds = 4.0

    reading = tracker.update(
        make_sample(pid=1, name="newname", cpu_time=9.0, working_set_bytes=7 * MB),
        now=later,
    )

    assert reading is None
    assert state.last_cpu_percent == 50.0
    assert state.last_cpu_time == 1.0
    assert state.last_sample_time == 100.0
    assert state.overuse_seconds == 4.0
    # Name and memory are still refreshed
    assert state.name == "newname"
    assert state.working_set_bytes == 7 * MB


def test_evict_removes_absent_pids(tracker):
    """evict() drops every PID not in the seen set."""
    for pid in (1, 2, 3):
        tracker.update(make_sample(pid=pid), now=0.0)

    evicted = tracker.evict({1, 3})

    assert [s.pid for s in evicted] == [2]
    assert 2 not in tracker
    assert 1 in tracker and 3 in tracker
    assert len(tracker) == 2


def test_reused_pid_after_eviction_is_new_identity(tracker):
    """A PID seen again after eviction starts over with no percent."""
    tracker.update(make_sample(pid=7, cpu_time=100.0), now=0.0)
    tracker.update(make_sample(pid=7, cpu_time=101.0), now=2.0)
    tracker.evict(set())

    reading = tracker.update(make_sample(pid=7, name="other", cpu_time=0.1), now=4.0)

    assert reading is None
    state = tracker.get(7)
    assert state.name == "other"
    assert state.last_cpu_percent is None
    assert state.last_cpu_time == 0.1


class TestMetadataEnrichment:
    """Tests for lazy metadata resolution and classification."""

    def test_resolved_on_first_sighting(self):
        """Metadata is attached and classified when a PID first appears."""
        resolver = FakeResolver(
            {1: resolved("C:/Razer/Synapse.exe", "Razer Synapse", "Razer Inc.")}
        )
        tracker = ProcessTracker(core_count=1, resolver=resolver, keywords=["razer"])

        tracker.update(make_sample(pid=1, name="Synapse"), now=0.0)

        state = tracker.get(1)
        assert state.resolution is ResolutionStatus.RESOLVED
        assert state.metadata.description == "Razer Synapse"
        assert state.is_flagged is True

    def test_resolved_metadata_is_cached(self, tracker, fake_resolver):
        """A resolved PID is not looked up again."""
        tracker.update(make_sample(pid=1), now=0.0)
        tracker.update(make_sample(pid=1), now=2.0)
        tracker.update(make_sample(pid=1), now=4.0)

        assert fake_resolver.calls == [1]

    def test_unresolved_retried_each_cycle(self):
        """Transient failures are retried until resolution succeeds."""
        resolver = FakeResolver({1: [UNRESOLVED, UNRESOLVED, resolved("/opt/app")]})
        tracker = ProcessTracker(core_count=1, resolver=resolver)

        tracker.update(make_sample(pid=1), now=0.0)
        assert tracker.get(1).resolution is ResolutionStatus.UNRESOLVED
        tracker.update(make_sample(pid=1), now=2.0)
        assert tracker.get(1).metadata is None
        tracker.update(make_sample(pid=1), now=4.0)

        state = tracker.get(1)
        assert state.resolution is ResolutionStatus.RESOLVED
        assert state.metadata == ProcessMetadata(path="/opt/app")
        assert resolver.calls == [1, 1, 1]

    def test_unavailable_is_terminal(self):
        """Processes with no executable are not retried."""
        resolver = FakeResolver({1: UNAVAILABLE})
        tracker = ProcessTracker(core_count=1, resolver=resolver)

        for now in (0.0, 2.0, 4.0):
            tracker.update(make_sample(pid=1), now=now)

        assert tracker.get(1).resolution is ResolutionStatus.UNAVAILABLE
        assert resolver.calls == [1]

    def test_unresolved_classified_by_name(self):
        """Without metadata, the name alone decides the flag."""
        resolver = FakeResolver(default=UNRESOLVED)
        tracker = ProcessTracker(core_count=1, resolver=resolver, keywords=["updater"])

        tracker.update(make_sample(pid=1, name="GoogleUpdater"), now=0.0)
        tracker.update(make_sample(pid=2, name="bash"), now=0.0)

        assert tracker.get(1).is_flagged is True
        assert tracker.get(2).is_flagged is False

    def test_resolution_failure_does_not_block_cpu_tracking(self):
        """CPU percent is computed even while metadata stays unresolved."""
        tracker = ProcessTracker(core_count=1, resolver=FakeResolver(default=UNRESOLVED))

        tracker.update(make_sample(pid=1, cpu_time=0.0), now=0.0)
        reading = tracker.update(make_sample(pid=1, cpu_time=1.0), now=2.0)

        assert reading.cpu_percent == 50.0


class TestSummary:
    """Tests for the ranked summary view."""

    def test_ranked_by_cpu_descending(self, tracker):
        """Summary lists processes busiest first."""
        for pid in (1, 2, 3):
            tracker.update(make_sample(pid=pid, cpu_time=0.0), now=0.0)
        tracker.update(make_sample(pid=1, cpu_time=0.2), now=2.0)
        tracker.update(make_sample(pid=2, cpu_time=1.0), now=2.0)
        tracker.update(make_sample(pid=3, cpu_time=0.6), now=2.0)

        rows = tracker.summary()

        assert [r.pid for r in rows] == [2, 3, 1]
        assert rows[0].cpu_percent == 50.0
        assert rows[0].working_set_mb == 64.0

    def test_excludes_first_sighting_and_zero(self, tracker):
        """Processes without a percent or at exactly 0% are left out."""
        tracker.update(make_sample(pid=1, cpu_time=0.0), now=0.0)
        tracker.update(make_sample(pid=2, cpu_time=0.0), now=0.0)
        tracker.update(make_sample(pid=2, cpu_time=0.0), now=2.0)
        tracker.update(make_sample(pid=3, cpu_time=0.0), now=2.0)

        assert tracker.summary() == []

    def test_limit(self, tracker):
        """Summary is capped at the requested size."""
        for pid in range(1, 41):
            tracker.update(make_sample(pid=pid, cpu_time=0.0), now=0.0)
            tracker.update(make_sample(pid=pid, cpu_time=pid / 100), now=2.0)

        rows = tracker.summary(limit=30)

        assert len(rows) == 30
        assert rows[0].pid == 40

    def test_includes_flag(self):
        """Summary rows carry the classification flag."""
        tracker = ProcessTracker(core_count=1, resolver=FakeResolver(), keywords=["rgb"])
        tracker.update(make_sample(pid=1, name="RGBFusion", cpu_time=0.0), now=0.0)
        tracker.update(make_sample(pid=1, name="RGBFusion", cpu_time=1.0), now=2.0)

        assert tracker.summary()[0].is_flagged is True
