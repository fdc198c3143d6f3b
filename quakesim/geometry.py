import numpy as np

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1, lon1, lat2, lon2):
    """Calculate great circle distance in km using haversine formula.

    Accepts scalars or numpy arrays; arrays broadcast against each other.
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))
    a = (
        np.sin(dlat / 2) ** 2
        + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    )
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def azimuth(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate azimuth from point 1 to point 2 in degrees (0-360)."""
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlon = np.radians(lon2 - lon1)
    x = np.sin(dlon) * np.cos(lat2_rad)
    y = np.cos(lat1_rad) * np.sin(lat2_rad) - np.sin(lat1_rad) * np.cos(
        lat2_rad
    ) * np.cos(dlon)
    az = np.degrees(np.arctan2(x, y))
    return float((az + 360) % 360)


def compute_travel_time(distance_km, vp_km_s: float):
    """Compute P-wave travel time in seconds along the surface path."""
    return distance_km / vp_km_s


def compute_travel_time_s(distance_km, vs_km_s: float):
    """Compute S-wave travel time in seconds along the surface path."""
    return distance_km / vs_km_s


def azimuthal_gap(station_azimuths: list[float]) -> float:
    """Calculate largest azimuthal gap."""
    if len(station_azimuths) < 2:
        return 360.0
    sorted_az = sorted(station_azimuths)
    gaps = [sorted_az[i + 1] - sorted_az[i] for i in range(len(sorted_az) - 1)]
    gaps.append(360.0 + sorted_az[0] - sorted_az[-1])
    return max(gaps)
