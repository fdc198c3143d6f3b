from __future__ import annotations

import numpy as np
import pytest

from quakesim.exceptions import RunStateError
from quakesim.geometry import haversine_distance
from quakesim.models import RunOutcome, Station
from quakesim.scheduler import RunListener, Scheduler
from quakesim.settings import Settings


class _Recorder(RunListener):
    def __init__(self):
        self.events = []

    def on_started(self):
        self.events.append(("started",))

    def on_station_picked(self, station_code, tick):
        self.events.append(("picked", station_code, tick))

    def on_picking_complete(self, tick):
        self.events.append(("complete", tick))

    def on_solved(self, solution):
        self.events.append(("solved", solution))

    def on_failed(self, reason):
        self.events.append(("failed", reason))

    def on_timeout(self, tick):
        self.events.append(("timeout", tick))


def _quiet_settings(**overrides) -> Settings:
    settings = Settings(noise_sigma=0.0, prob_noise_sigma=0.0)
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def test_end_to_end_noiseless_run_solves_near_source() -> None:
    settings = _quiet_settings()
    recorder = _Recorder()
    scheduler = Scheduler.from_settings(settings, listener=recorder)

    scheduler.start()
    outcome = scheduler.run()

    assert outcome is RunOutcome.SOLVED
    solution = scheduler.solution
    assert solution is not None
    assert solution.lat == pytest.approx(settings.source_lat, abs=settings.grid_step + 1e-9)
    assert solution.lon == pytest.approx(settings.source_lon, abs=settings.grid_step + 1e-9)
    assert solution.misfit < 0.01
    assert solution.used_stations == 3
    assert solution.magnitude is not None


def test_end_to_end_picks_follow_moveout() -> None:
    settings = _quiet_settings()
    scheduler = Scheduler.from_settings(settings)
    scheduler.run()

    by_distance = sorted(
        settings.stations,
        key=lambda st: haversine_distance(settings.source_lat, settings.source_lon, st.lat, st.lon),
    )
    assert scheduler.picked_order == [st.code for st in by_distance]

    ticks = [snap.p_pick_tick for snap in scheduler.snapshot()]
    assert all(tick is not None for tick in ticks)
    codes = [snap.code for snap in scheduler.snapshot()]
    ordered_ticks = [ticks[codes.index(st.code)] for st in by_distance]
    assert ordered_ticks == sorted(ordered_ticks)
    assert len(set(ordered_ticks)) == 3


def test_end_to_end_signal_sequence() -> None:
    settings = _quiet_settings()
    recorder = _Recorder()
    scheduler = Scheduler.from_settings(settings, listener=recorder)
    scheduler.run()

    names = [event[0] for event in recorder.events]
    assert names == ["started", "picked", "picked", "picked", "complete", "solved"]
    complete_tick = recorder.events[4][1]
    assert complete_tick == recorder.events[3][2]
    assert scheduler.tick == complete_tick + settings.settle_ticks


def test_solution_origin_time_tracks_source() -> None:
    settings = _quiet_settings()
    scheduler = Scheduler.from_settings(settings)
    scheduler.run()

    # Picks fire on the rising flank of the probability bump, a fixed number
    # of ticks ahead of the onset, which shifts the origin time by the same.
    origin_tick = scheduler.solution.origin_tick(settings.dt)
    assert settings.origin_tick - 8 < origin_tick <= settings.origin_tick + 1


def test_noisy_run_still_solves() -> None:
    settings = Settings(seed=3)
    scheduler = Scheduler.from_settings(settings)
    assert scheduler.run() is RunOutcome.SOLVED
    assert scheduler.solution.lat == pytest.approx(settings.source_lat, abs=0.06)
    assert scheduler.solution.lon == pytest.approx(settings.source_lon, abs=0.06)


def test_unreachable_threshold_times_out() -> None:
    settings = _quiet_settings(p_threshold=1.01, s_threshold=1.01, max_ticks=300)
    recorder = _Recorder()
    scheduler = Scheduler.from_settings(settings, listener=recorder)

    outcome = scheduler.run()

    assert outcome is RunOutcome.TIMEOUT
    assert scheduler.tick == 300
    assert scheduler.solution is None
    assert recorder.events[-1] == ("timeout", 300)
    assert not any(event[0] == "solved" for event in recorder.events)
    with pytest.raises(RunStateError):
        scheduler.step()


def test_single_station_fails_with_insufficient_picks() -> None:
    settings = _quiet_settings(stations=[Station("TWA", 24.05, 120.90)])
    recorder = _Recorder()
    scheduler = Scheduler.from_settings(settings, listener=recorder)

    outcome = scheduler.run()

    assert outcome is RunOutcome.FAILED
    assert scheduler.failure_reason == "insufficient_picks"
    assert scheduler.solution is None
    assert recorder.events[-1] == ("failed", "insufficient_picks")


def test_lowered_threshold_only_affects_future_ticks() -> None:
    settings = _quiet_settings(p_threshold=1.01, s_threshold=1.01, max_ticks=400)
    scheduler = Scheduler.from_settings(settings)
    scheduler.start()

    # TWA and TWB bumps have passed by tick 130; TWC arrives later.
    scheduler.advance(130)
    scheduler.set_thresholds(p=0.5)
    outcome = scheduler.run()

    snaps = {snap.code: snap for snap in scheduler.snapshot()}
    assert snaps["TWA"].p_pick_tick is None
    assert snaps["TWB"].p_pick_tick is None
    assert snaps["TWC"].p_pick_tick is not None
    assert snaps["TWC"].p_pick_tick > 130
    assert outcome is RunOutcome.TIMEOUT


def test_snapshot_is_read_only_and_fixed_length() -> None:
    settings = _quiet_settings(buffer_samples=64)
    scheduler = Scheduler.from_settings(settings)
    scheduler.start()
    scheduler.advance(100)

    snaps = scheduler.snapshot()
    assert len(snaps) == 3
    for snap in snaps:
        assert snap.samples.shape == (64,)
        assert snap.p_prob.shape == (64,)
        assert snap.s_prob.shape == (64,)
        assert snap.samples.flags.writeable is False
        with pytest.raises(ValueError):
            snap.samples[0] = 1.0


def test_fired_and_peak_amplitude_track_p_energy() -> None:
    settings = _quiet_settings()
    scheduler = Scheduler.from_settings(settings)
    scheduler.start()

    scheduler.advance(10)
    assert not any(snap.fired for snap in scheduler.snapshot())
    assert all(snap.peak_amplitude == 0.0 for snap in scheduler.snapshot())

    scheduler.advance(200)
    twa = next(snap for snap in scheduler.snapshot() if snap.code == "TWA")
    assert twa.fired is True
    assert twa.peak_amplitude > 0.0
    assert twa.peak_amplitude >= float(np.max(np.abs(twa.samples)))


def test_abort_discards_run_state() -> None:
    settings = _quiet_settings()
    scheduler = Scheduler.from_settings(settings)
    scheduler.start()
    scheduler.advance(120)
    assert scheduler.picked_order

    scheduler.abort()
    assert scheduler.outcome is RunOutcome.ABORTED
    assert scheduler.snapshot() == ()
    assert scheduler.solution is None
    with pytest.raises(RunStateError):
        scheduler.step()

    scheduler.start()
    assert scheduler.outcome is RunOutcome.STREAMING
    assert scheduler.tick == 0
    assert scheduler.picked_order == []
    scheduler.step()
    for snap in scheduler.snapshot():
        assert snap.p_pick_tick is None
        np.testing.assert_array_equal(snap.samples[:-1], 0.0)


def test_seeded_runs_are_reproducible() -> None:
    settings = Settings(seed=11)
    first = Scheduler.from_settings(settings)
    second = Scheduler.from_settings(settings)
    first.start()
    second.start()
    first.advance(150)
    second.advance(150)
    for a, b in zip(first.snapshot(), second.snapshot()):
        np.testing.assert_array_equal(a.samples, b.samples)
        np.testing.assert_array_equal(a.p_prob, b.p_prob)
        assert a.p_pick_tick == b.p_pick_tick


def test_step_requires_started_run() -> None:
    scheduler = Scheduler.from_settings(_quiet_settings())
    assert scheduler.outcome is RunOutcome.IDLE
    with pytest.raises(RunStateError):
        scheduler.step()


def test_rejects_empty_station_list() -> None:
    settings = _quiet_settings(stations=[])
    with pytest.raises(ValueError):
        Scheduler.from_settings(settings)


def test_rejects_min_stations_below_two() -> None:
    settings = _quiet_settings(min_stations=1)
    with pytest.raises(ValueError, match="min_stations"):
        Scheduler.from_settings(settings)


def test_rejects_duplicate_station_codes() -> None:
    settings = _quiet_settings(
        stations=[
            Station("TWA", 24.05, 120.90),
            Station("TWA", 24.30, 121.30),
            Station("TWB", 23.75, 121.10),
        ]
    )
    with pytest.raises(ValueError, match="unique"):
        Scheduler.from_settings(settings)


def test_rejects_grid_too_fine_to_search() -> None:
    settings = _quiet_settings(grid_step=0.0001)
    with pytest.raises(ValueError, match="grid too fine"):
        Scheduler.from_settings(settings)
