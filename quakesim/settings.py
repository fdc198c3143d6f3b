from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .models import SearchBox, SourceEvent, Station, VelocityModel
from .waveform import GeneratorConfig


def default_stations() -> List[Station]:
    return [
        Station("TWA", 24.05, 120.90),
        Station("TWB", 23.75, 121.10),
        Station("TWC", 24.30, 121.30),
    ]


@dataclass
class Settings:
    stations: List[Station] = field(default_factory=default_stations)
    vp_km_s: float = 6.0
    vs_km_s: float = 3.5
    dt: float = 0.05
    p_threshold: float = 0.5
    s_threshold: float = 0.5
    lat_min: float = 23.5
    lat_max: float = 24.5
    lon_min: float = 120.5
    lon_max: float = 121.5
    grid_step: float = 0.02
    min_stations: int = 2
    seed: Optional[int] = 42
    noise_sigma: float = 0.05
    prob_noise_sigma: float = 0.02
    buffer_samples: int = 400
    max_ticks: int = 1200
    settle_ticks: int = 40
    source_lat: float = 24.0
    source_lon: float = 121.08
    origin_tick: int = 20
    log_level: str = "INFO"

    def velocity_model(self) -> VelocityModel:
        return VelocityModel(vp_km_s=self.vp_km_s, vs_km_s=self.vs_km_s)

    def search_box(self) -> SearchBox:
        return SearchBox(self.lat_min, self.lat_max, self.lon_min, self.lon_max)

    def source_event(self) -> SourceEvent:
        return SourceEvent(self.source_lat, self.source_lon, self.origin_tick)

    def generator_config(self) -> GeneratorConfig:
        return GeneratorConfig(
            noise_sigma=self.noise_sigma,
            prob_noise_sigma=self.prob_noise_sigma,
        )


def parse_station(value: str) -> Station:
    parts = [part.strip() for part in value.split(",")]
    if len(parts) != 3 or not parts[0]:
        raise argparse.ArgumentTypeError(
            f"Station must look like CODE,LAT,LON; got '{value}'"
        )
    try:
        return Station(parts[0], float(parts[1]), float(parts[2]))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Station coordinates must be numbers; got '{value}'"
        ) from None


def parse_args(argv: Optional[Sequence[str]] = None) -> Settings:
    parser = argparse.ArgumentParser(description="Synthetic earthquake pick-and-locate simulation")
    parser.add_argument("--station", action="append", dest="stations", type=parse_station,
                        help="Station as CODE,LAT,LON. Repeatable.",
                        default=None)
    parser.add_argument("--vp-km-s", type=float, default=6.0)
    parser.add_argument("--vs-km-s", type=float, default=3.5)
    parser.add_argument("--dt", type=float, default=0.05,
                        help="Simulated seconds per tick")
    parser.add_argument("--p-threshold", type=float, default=0.5)
    parser.add_argument("--s-threshold", type=float, default=0.5)
    parser.add_argument("--lat-min", type=float, default=23.5)
    parser.add_argument("--lat-max", type=float, default=24.5)
    parser.add_argument("--lon-min", type=float, default=120.5)
    parser.add_argument("--lon-max", type=float, default=121.5)
    parser.add_argument("--grid-step", type=float, default=0.02,
                        help="Grid search spacing in degrees")
    parser.add_argument("--min-stations", type=int, default=2)
    parser.add_argument("--seed", type=int, default=42,
                        help="Seed for the noise generator")
    parser.add_argument("--noise-sigma", type=float, default=0.05)
    parser.add_argument("--prob-noise-sigma", type=float, default=0.02)
    parser.add_argument("--buffer-samples", type=int, default=400,
                        help="Samples kept per station window")
    parser.add_argument("--max-ticks", type=int, default=1200,
                        help="Tick ceiling before the run times out")
    parser.add_argument("--settle-ticks", type=int, default=40,
                        help="Ticks streamed after the last P pick before solving")
    parser.add_argument("--source-lat", type=float, default=24.0)
    parser.add_argument("--source-lon", type=float, default=121.08)
    parser.add_argument("--origin-tick", type=int, default=20)
    parser.add_argument("--log-level", default="INFO",
                        help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    args = parser.parse_args(argv)

    stations = args.stations if args.stations else default_stations()
    return Settings(
        stations=stations,
        vp_km_s=args.vp_km_s,
        vs_km_s=args.vs_km_s,
        dt=args.dt,
        p_threshold=args.p_threshold,
        s_threshold=args.s_threshold,
        lat_min=args.lat_min,
        lat_max=args.lat_max,
        lon_min=args.lon_min,
        lon_max=args.lon_max,
        grid_step=args.grid_step,
        min_stations=args.min_stations,
        seed=args.seed,
        noise_sigma=args.noise_sigma,
        prob_noise_sigma=args.prob_noise_sigma,
        buffer_samples=args.buffer_samples,
        max_ticks=args.max_ticks,
        settle_ticks=args.settle_ticks,
        source_lat=args.source_lat,
        source_lon=args.source_lon,
        origin_tick=args.origin_tick,
        log_level=args.log_level.upper(),
    )
