"""
Synthetic ground motion and detector-confidence traces.

A single source radiates a P and an S pulse that reach each station after
``distance / v`` seconds. The trace is Gaussian background noise plus two
damped sinusoids; the companion P/S probability curves are Gaussian bumps
centred on the true onsets, which stand in for the confidence output of a
learned picker.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from .geometry import compute_travel_time, compute_travel_time_s, haversine_distance
from .models import SourceEvent, Station, VelocityModel

logger = logging.getLogger(__name__)


@dataclass
class GeneratorConfig:
    noise_sigma: float = 0.05
    prob_noise_sigma: float = 0.02
    p_amplitude: float = 0.6
    p_frequency: float = 0.18
    p_decay: float = 0.06
    s_amplitude: float = 1.2
    s_frequency: float = 0.08
    s_decay: float = 0.025
    clip: float = 1.6
    bump_width_ticks: float = 4.0
    prob_floor: float = 0.02


def gaussian_noise(rng: np.random.Generator, sigma: float) -> float:
    if sigma <= 0:
        return 0.0
    return float(rng.normal(0.0, sigma))


def wavelet(dt_ticks: float, frequency: float, decay: float) -> float:
    """Damped sinusoid ``sin(2*pi*f*dt) * exp(-decay*dt)``; zero before onset."""
    if dt_ticks < 0:
        return 0.0
    return float(np.sin(2 * np.pi * frequency * dt_ticks) * np.exp(-decay * dt_ticks))


def probability_bump(tick: float, onset: float, width: float, floor: float) -> float:
    z = (tick - onset) / width
    return float(floor + (1.0 - floor) * np.exp(-0.5 * z * z))


class SyntheticTraceGenerator:
    def __init__(
        self,
        source: SourceEvent,
        velocity: VelocityModel,
        dt: float,
        rng: np.random.Generator,
        config: GeneratorConfig | None = None,
    ):
        if dt <= 0:
            raise ValueError("dt must be > 0")
        self.source = source
        self.velocity = velocity
        self.dt = dt
        self.rng = rng
        self.config = config or GeneratorConfig()
        self._onsets: Dict[Station, Tuple[float, float]] = {}

    def travel_times(self, station: Station) -> Tuple[float, float]:
        distance_km = float(
            haversine_distance(self.source.lat, self.source.lon, station.lat, station.lon)
        )
        return (
            compute_travel_time(distance_km, self.velocity.vp_km_s),
            compute_travel_time_s(distance_km, self.velocity.vs_km_s),
        )

    def onset_ticks(self, station: Station) -> Tuple[float, float]:
        onsets = self._onsets.get(station)
        if onsets is None:
            t_p, t_s = self.travel_times(station)
            onsets = (
                self.source.origin_tick + t_p / self.dt,
                self.source.origin_tick + t_s / self.dt,
            )
            self._onsets[station] = onsets
            logger.debug(
                "Onsets for %s: p_tick=%.2f s_tick=%.2f (t_p=%.3fs t_s=%.3fs)",
                station.code,
                onsets[0],
                onsets[1],
                t_p,
                t_s,
            )
        return onsets

    def sample(self, station: Station, tick: int) -> Tuple[float, float, float]:
        cfg = self.config
        p_onset, s_onset = self.onset_ticks(station)

        amplitude = gaussian_noise(self.rng, cfg.noise_sigma)
        if tick >= p_onset:
            amplitude += cfg.p_amplitude * wavelet(tick - p_onset, cfg.p_frequency, cfg.p_decay)
        if tick >= s_onset:
            amplitude += cfg.s_amplitude * wavelet(tick - s_onset, cfg.s_frequency, cfg.s_decay)
        amplitude = float(np.clip(amplitude, -cfg.clip, cfg.clip))

        p_prob = probability_bump(tick, p_onset, cfg.bump_width_ticks, cfg.prob_floor)
        p_prob += gaussian_noise(self.rng, cfg.prob_noise_sigma)
        s_prob = probability_bump(tick, s_onset, cfg.bump_width_ticks, cfg.prob_floor)
        s_prob += gaussian_noise(self.rng, cfg.prob_noise_sigma)

        return (
            amplitude,
            float(np.clip(p_prob, 0.0, 1.0)),
            float(np.clip(s_prob, 0.0, 1.0)),
        )
