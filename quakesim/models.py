from __future__ import annotations

import enum
from dataclasses import dataclass


@dataclass(frozen=True)
class Station:
    code: str
    lat: float
    lon: float


@dataclass(frozen=True)
class VelocityModel:
    vp_km_s: float
    vs_km_s: float

    def __post_init__(self) -> None:
        if self.vs_km_s <= 0:
            raise ValueError("vs_km_s must be > 0")
        if self.vp_km_s <= self.vs_km_s:
            raise ValueError("vp_km_s must be greater than vs_km_s")


@dataclass(frozen=True)
class SourceEvent:
    """Ground truth hypocentre used only to synthesize waveforms."""

    lat: float
    lon: float
    origin_tick: int


@dataclass(frozen=True)
class SearchBox:
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    def __post_init__(self) -> None:
        if self.lat_min > self.lat_max:
            raise ValueError("lat_min must be <= lat_max")
        if self.lon_min > self.lon_max:
            raise ValueError("lon_min must be <= lon_max")


@dataclass(frozen=True)
class Pick:
    station: Station
    phase: str
    tick: int
    score: float | None = None

    def time_seconds(self, dt: float) -> float:
        return self.tick * dt


@dataclass(frozen=True)
class ArrivalResidual:
    pick: Pick
    distance_km: float
    azimuth_deg: float
    predicted_tt_seconds: float
    residual_seconds: float


@dataclass(frozen=True)
class Solution:
    lat: float
    lon: float
    origin_time: float
    misfit: float
    rms_seconds: float
    azimuthal_gap_deg: float
    used_stations: int
    arrivals: tuple[ArrivalResidual, ...] = ()
    magnitude: float | None = None

    def origin_tick(self, dt: float) -> float:
        return self.origin_time / dt


class RunOutcome(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    SETTLING = "settling"
    SOLVED = "solved"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (
            RunOutcome.SOLVED,
            RunOutcome.FAILED,
            RunOutcome.TIMEOUT,
            RunOutcome.ABORTED,
        )
