import logging
from typing import Iterable, Optional

import numpy as np

from .geometry import haversine_distance

logger = logging.getLogger(__name__)

# ML-like regression: log10(A) + A_DIST * log10(R) + B_DIST * R + C_OFFSET
A_DIST = 1.10
B_DIST = 0.003
C_OFFSET = 2.0
MIN_AMPLITUDE = 1e-6
MIN_DISTANCE_KM = 1.0


def station_magnitude(peak_amplitude: float, distance_km: float) -> float:
    amplitude = max(MIN_AMPLITUDE, peak_amplitude)
    distance_km = max(MIN_DISTANCE_KM, distance_km)
    return float(
        np.log10(amplitude)
        + A_DIST * np.log10(distance_km)
        + B_DIST * distance_km
        + C_OFFSET
    )


def estimate_magnitude(station_runs: Iterable, lat: float, lon: float) -> Optional[float]:
    contributions = []
    for run in station_runs:
        distance_km = float(haversine_distance(run.station.lat, run.station.lon, lat, lon))
        value = station_magnitude(run.peak_amplitude, distance_km)
        logger.debug(
            "Station magnitude %s: peak=%.4f distance_km=%.2f ml=%.3f",
            run.station.code,
            run.peak_amplitude,
            distance_km,
            value,
        )
        contributions.append(value)

    if not contributions:
        logger.warning("No stations available for magnitude estimation")
        return None
    magnitude = float(np.mean(contributions))
    logger.info("Magnitude estimated: ml=%.2f stations=%d", magnitude, len(contributions))
    return magnitude
