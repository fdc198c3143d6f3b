import logging

import numpy as np

from .exceptions import InsufficientPicksError
from .geometry import azimuth, azimuthal_gap, compute_travel_time, haversine_distance
from .models import ArrivalResidual, Pick, SearchBox, Solution

logger = logging.getLogger(__name__)

# Upper bound on lat x lon nodes; each picked station adds several float
# arrays of this size.
MAX_GRID_NODES = 250_000


def node_count(start: float, stop: float, step: float) -> int:
    return int(np.floor((stop - start) / step + 1e-9)) + 1


def grid_nodes(start: float, stop: float, step: float) -> np.ndarray:
    """Uniform nodes from ``start`` up to ``stop`` (inclusive when aligned)."""
    return start + step * np.arange(node_count(start, stop, step), dtype=float)


def grid_axes(search_box: SearchBox, grid_step: float) -> tuple[np.ndarray, np.ndarray]:
    if grid_step <= 0:
        raise ValueError("grid_step must be > 0")
    n_lat = node_count(search_box.lat_min, search_box.lat_max, grid_step)
    n_lon = node_count(search_box.lon_min, search_box.lon_max, grid_step)
    if n_lat * n_lon > MAX_GRID_NODES:
        raise ValueError(
            f"grid too fine: {n_lat}x{n_lon} nodes exceeds {MAX_GRID_NODES}; "
            "increase grid_step or shrink the search box"
        )
    return (
        grid_nodes(search_box.lat_min, search_box.lat_max, grid_step),
        grid_nodes(search_box.lon_min, search_box.lon_max, grid_step),
    )


def solve(
    picks: list[Pick],
    vp_km_s: float,
    dt: float,
    search_box: SearchBox,
    grid_step: float = 0.02,
    min_stations: int = 2,
) -> Solution:
    logger.info(
        "Starting grid search: picks=%d min_stations=%d vp_km_s=%.3f grid_step=%.4f",
        len(picks),
        min_stations,
        vp_km_s,
        grid_step,
    )
    if vp_km_s <= 0:
        raise ValueError("vp_km_s must be > 0")
    if dt <= 0:
        raise ValueError("dt must be > 0")
    if min_stations < 2:
        raise ValueError("min_stations must be >= 2")
    lat_nodes, lon_nodes = grid_axes(search_box, grid_step)

    # One P arrival per station; the earliest wins if a caller passes more.
    per_station: dict[str, Pick] = {}
    for pick in sorted(picks, key=lambda p: p.tick):
        if pick.phase.upper() != "P":
            continue
        per_station.setdefault(pick.station.code, pick)
    used = list(per_station.values())

    if len(used) < min_stations:
        logger.warning(
            "Location rejected: usable_stations=%d required=%d",
            len(used),
            min_stations,
        )
        raise InsufficientPicksError(len(used), min_stations)

    lat_grid, lon_grid = np.meshgrid(lat_nodes, lon_nodes, indexing="ij")

    observed = np.array([pick.time_seconds(dt) for pick in used], dtype=float)
    distances = np.stack(
        [
            haversine_distance(lat_grid, lon_grid, pick.station.lat, pick.station.lon)
            for pick in used
        ]
    )
    predicted_tt = compute_travel_time(distances, vp_km_s)
    observed = observed[:, None, None]

    # Least-squares origin time for a fixed location is the mean residual.
    origin_times = np.mean(observed - predicted_tt, axis=0)
    residuals = observed - (origin_times + predicted_tt)
    misfit = np.sum(residuals * residuals, axis=0)

    # argmin returns the first minimum in C order, i.e. lat-major scan order.
    best = np.unravel_index(int(np.argmin(misfit)), misfit.shape)
    lat = float(lat_grid[best])
    lon = float(lon_grid[best])
    origin_time = float(origin_times[best])
    best_misfit = float(misfit[best])
    logger.debug(
        "Grid evaluated: nodes=%d lat_nodes=%d lon_nodes=%d best_index=%s",
        misfit.size,
        lat_nodes.size,
        lon_nodes.size,
        best,
    )

    arrivals: list[ArrivalResidual] = []
    azimuths: list[float] = []
    for i, pick in enumerate(used):
        distance_km = float(distances[i][best])
        az = azimuth(lat, lon, pick.station.lat, pick.station.lon)
        arrivals.append(
            ArrivalResidual(
                pick=pick,
                distance_km=distance_km,
                azimuth_deg=az,
                predicted_tt_seconds=float(predicted_tt[i][best]),
                residual_seconds=float(residuals[i][best]),
            )
        )
        azimuths.append(az)

    result = Solution(
        lat=lat,
        lon=lon,
        origin_time=origin_time,
        misfit=best_misfit,
        rms_seconds=float(np.sqrt(best_misfit / len(used))),
        azimuthal_gap_deg=float(azimuthal_gap(azimuths)),
        used_stations=len(used),
        arrivals=tuple(arrivals),
    )
    logger.info(
        "Origin solved: lat=%.4f lon=%.4f origin_time=%.3fs misfit=%.6f rms=%.4f stations=%d",
        result.lat,
        result.lon,
        result.origin_time,
        result.misfit,
        result.rms_seconds,
        result.used_stations,
    )
    return result
