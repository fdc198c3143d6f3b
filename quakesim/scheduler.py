"""
Tick-driven execution of a single simulated detection-and-location run.

The :class:`Scheduler` owns the current :class:`Run`, which owns one
:class:`StationRun` per station. Each call to :meth:`Scheduler.step` reveals
one more synthetic sample per station, updates picks, and moves the run
through its lifecycle::

    IDLE -> STREAMING -> SETTLING -> SOLVED | FAILED
                     \\-> TIMEOUT
    (any) -> ABORTED via abort()

Display code reads :meth:`Scheduler.snapshot` once per tick and may register
a listener for lifecycle signals; it never touches run state directly.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .associator import associate, usable
from .buffer import RingBuffer
from .exceptions import InsufficientPicksError, RunStateError
from .magnitude import estimate_magnitude
from .models import RunOutcome, SearchBox, Solution, SourceEvent, Station, VelocityModel
from .picks import update_pick
from .solver import grid_axes, solve
from .waveform import GeneratorConfig, SyntheticTraceGenerator

logger = logging.getLogger(__name__)


@dataclass
class StationRun:
    station: Station
    samples: RingBuffer
    p_prob: RingBuffer
    s_prob: RingBuffer
    peak_amplitude: float = 0.0
    p_pick_tick: Optional[int] = None
    s_pick_tick: Optional[int] = None
    p_pick_score: Optional[float] = None
    s_pick_score: Optional[float] = None
    fired: bool = False
    picked: bool = False

    @classmethod
    def create(cls, station: Station, capacity: int) -> "StationRun":
        return cls(
            station=station,
            samples=RingBuffer(capacity),
            p_prob=RingBuffer(capacity),
            s_prob=RingBuffer(capacity),
        )


@dataclass(frozen=True)
class StationSnapshot:
    code: str
    samples: np.ndarray
    p_prob: np.ndarray
    s_prob: np.ndarray
    peak_amplitude: float
    p_pick_tick: Optional[int]
    s_pick_tick: Optional[int]
    fired: bool
    picked: bool


def _frozen_copy(buf: RingBuffer) -> np.ndarray:
    out = buf.to_array()
    out.setflags(write=False)
    return out


@dataclass
class Run:
    station_runs: List[StationRun]
    generator: SyntheticTraceGenerator
    tick: int = 0
    outcome: RunOutcome = RunOutcome.STREAMING
    completed_tick: Optional[int] = None
    solution: Optional[Solution] = None
    failure: Optional[str] = None
    picked_order: List[str] = field(default_factory=list)


class RunListener:
    """No-op base for lifecycle signal receivers."""

    def on_started(self) -> None:
        pass

    def on_station_picked(self, station_code: str, tick: int) -> None:
        pass

    def on_picking_complete(self, tick: int) -> None:
        pass

    def on_solved(self, solution: Solution) -> None:
        pass

    def on_failed(self, reason: str) -> None:
        pass

    def on_timeout(self, tick: int) -> None:
        pass


class Scheduler:
    def __init__(
        self,
        stations: Sequence[Station],
        velocity: VelocityModel,
        source: SourceEvent,
        search_box: SearchBox,
        dt: float = 0.05,
        p_threshold: float = 0.5,
        s_threshold: float = 0.5,
        grid_step: float = 0.02,
        min_stations: int = 2,
        buffer_samples: int = 400,
        max_ticks: int = 1200,
        settle_ticks: int = 40,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        generator_config: Optional[GeneratorConfig] = None,
        listener=None,
    ):
        if not stations:
            raise ValueError("at least one station is required")
        if dt <= 0:
            raise ValueError("dt must be > 0")
        if max_ticks <= 0:
            raise ValueError("max_ticks must be > 0")
        if settle_ticks < 0:
            raise ValueError("settle_ticks must be >= 0")
        if min_stations < 2:
            raise ValueError("min_stations must be >= 2")
        codes = [station.code for station in stations]
        if len(set(codes)) != len(codes):
            raise ValueError(f"station codes must be unique: {codes}")
        # Reject a grid the solver would refuse before any run starts.
        grid_axes(search_box, grid_step)
        self.stations: Tuple[Station, ...] = tuple(stations)
        self.velocity = velocity
        self.source = source
        self.search_box = search_box
        self.dt = dt
        self.p_threshold = p_threshold
        self.s_threshold = s_threshold
        self.grid_step = grid_step
        self.min_stations = min_stations
        self.buffer_samples = buffer_samples
        self.max_ticks = max_ticks
        self.settle_ticks = settle_ticks
        self.seed = seed
        self.rng = rng
        self.generator_config = generator_config or GeneratorConfig()
        self.listener = listener if listener is not None else RunListener()
        self._run: Optional[Run] = None
        self._aborted = False

    @classmethod
    def from_settings(cls, settings, listener=None) -> "Scheduler":
        return cls(
            stations=settings.stations,
            velocity=settings.velocity_model(),
            source=settings.source_event(),
            search_box=settings.search_box(),
            dt=settings.dt,
            p_threshold=settings.p_threshold,
            s_threshold=settings.s_threshold,
            grid_step=settings.grid_step,
            min_stations=settings.min_stations,
            buffer_samples=settings.buffer_samples,
            max_ticks=settings.max_ticks,
            settle_ticks=settings.settle_ticks,
            seed=settings.seed,
            generator_config=settings.generator_config(),
            listener=listener,
        )

    @property
    def outcome(self) -> RunOutcome:
        if self._run is None:
            return RunOutcome.ABORTED if self._aborted else RunOutcome.IDLE
        return self._run.outcome

    @property
    def tick(self) -> int:
        return self._run.tick if self._run is not None else 0

    @property
    def solution(self) -> Optional[Solution]:
        return self._run.solution if self._run is not None else None

    @property
    def failure_reason(self) -> Optional[str]:
        return self._run.failure if self._run is not None else None

    @property
    def picked_order(self) -> List[str]:
        return list(self._run.picked_order) if self._run is not None else []

    def start(self) -> None:
        rng = self.rng if self.rng is not None else np.random.default_rng(self.seed)
        generator = SyntheticTraceGenerator(
            self.source, self.velocity, self.dt, rng, self.generator_config
        )
        self._run = Run(
            station_runs=[StationRun.create(st, self.buffer_samples) for st in self.stations],
            generator=generator,
        )
        self._aborted = False
        logger.info(
            "Run started: stations=%d dt=%.3f thresholds(P=%.2f S=%.2f) max_ticks=%d",
            len(self.stations),
            self.dt,
            self.p_threshold,
            self.s_threshold,
            self.max_ticks,
        )
        self._emit("on_started")

    def abort(self) -> None:
        if self._run is not None:
            logger.info(
                "Run aborted at tick=%d outcome=%s",
                self._run.tick,
                self._run.outcome.value,
            )
        self._run = None
        self._aborted = True

    def set_thresholds(self, p: Optional[float] = None, s: Optional[float] = None) -> None:
        if p is not None:
            self.p_threshold = p
        if s is not None:
            self.s_threshold = s
        logger.info(
            "Thresholds updated: P=%.2f S=%.2f",
            self.p_threshold,
            self.s_threshold,
        )

    def step(self) -> RunOutcome:
        run = self._run
        if run is None:
            raise RunStateError("No active run; call start() first")
        if run.outcome.is_terminal:
            raise RunStateError(f"Run already finished: {run.outcome.value}")

        run.tick += 1
        tick = run.tick
        for station_run in run.station_runs:
            self._advance_station(run, station_run, tick)

        if run.outcome is RunOutcome.STREAMING and all(sr.picked for sr in run.station_runs):
            run.outcome = RunOutcome.SETTLING
            run.completed_tick = tick
            logger.info("Picking complete at tick=%d order=%s", tick, run.picked_order)
            self._emit("on_picking_complete", tick)

        if run.outcome is RunOutcome.SETTLING:
            if tick - run.completed_tick >= self.settle_ticks:
                self._finish(run)
        elif tick >= self.max_ticks:
            run.outcome = RunOutcome.TIMEOUT
            logger.warning(
                "Run timed out at tick=%d: picked=%d/%d",
                tick,
                sum(sr.picked for sr in run.station_runs),
                len(run.station_runs),
            )
            self._emit("on_timeout", tick)
        return run.outcome

    def advance(self, ticks: int) -> RunOutcome:
        """Run up to ``ticks`` steps, stopping early on a terminal state."""
        for _ in range(ticks):
            if self.step().is_terminal:
                break
        return self.outcome

    def run(self) -> RunOutcome:
        if self._run is None:
            self.start()
        while not self.outcome.is_terminal:
            self.step()
        return self.outcome

    def snapshot(self) -> Tuple[StationSnapshot, ...]:
        if self._run is None:
            return ()
        return tuple(
            StationSnapshot(
                code=sr.station.code,
                samples=_frozen_copy(sr.samples),
                p_prob=_frozen_copy(sr.p_prob),
                s_prob=_frozen_copy(sr.s_prob),
                peak_amplitude=sr.peak_amplitude,
                p_pick_tick=sr.p_pick_tick,
                s_pick_tick=sr.s_pick_tick,
                fired=sr.fired,
                picked=sr.picked,
            )
            for sr in self._run.station_runs
        )

    def _advance_station(self, run: Run, station_run: StationRun, tick: int) -> None:
        station = station_run.station
        amplitude, p_prob, s_prob = run.generator.sample(station, tick)
        station_run.samples.append(amplitude)
        station_run.p_prob.append(p_prob)
        station_run.s_prob.append(s_prob)
        station_run.peak_amplitude = max(station_run.peak_amplitude, abs(amplitude))

        if not station_run.fired and tick >= run.generator.onset_ticks(station)[0]:
            station_run.fired = True

        for phase in update_pick(station_run, tick, self.p_threshold, self.s_threshold):
            if phase == "P":
                run.picked_order.append(station.code)
                logger.info(
                    "P pick: station=%s tick=%d prob=%.3f",
                    station.code,
                    tick,
                    station_run.p_pick_score,
                )
                self._emit("on_station_picked", station.code, tick)
            else:
                logger.info(
                    "S pick: station=%s tick=%d prob=%.3f",
                    station.code,
                    tick,
                    station_run.s_pick_score,
                )

    def _finish(self, run: Run) -> None:
        picks = associate(run.station_runs, min_stations=self.min_stations)
        try:
            estimate = solve(
                picks,
                vp_km_s=self.velocity.vp_km_s,
                dt=self.dt,
                search_box=self.search_box,
                grid_step=self.grid_step,
                min_stations=self.min_stations,
            )
        except InsufficientPicksError as exc:
            run.outcome = RunOutcome.FAILED
            run.failure = "insufficient_picks"
            logger.warning("Run failed at tick=%d: %s", run.tick, exc)
            self._emit("on_failed", run.failure)
            return

        usable_runs = [sr for sr in run.station_runs if usable(sr)]
        magnitude = estimate_magnitude(usable_runs, estimate.lat, estimate.lon)
        run.solution = dataclasses.replace(estimate, magnitude=magnitude)
        run.outcome = RunOutcome.SOLVED
        self._emit("on_solved", run.solution)

    def _emit(self, name: str, *args) -> None:
        handler = getattr(self.listener, name, None)
        if callable(handler):
            handler(*args)
