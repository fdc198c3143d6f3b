import logging
from typing import Iterable

from .models import Pick

logger = logging.getLogger(__name__)


def usable(station_run) -> bool:
    """A station takes part in the location once it carries a P pick."""
    return station_run.p_pick_tick is not None


def associate(station_runs: Iterable, min_stations: int = 2) -> list[Pick]:
    runs = list(station_runs)
    logger.info(
        "Starting association: stations=%s min_stations=%s",
        len(runs),
        min_stations,
    )

    picks: list[Pick] = []
    dropped = 0
    for run in runs:
        if not usable(run):
            dropped += 1
            logger.debug("Station %s has no P pick; not associated", run.station.code)
            continue
        picks.append(
            Pick(
                station=run.station,
                phase="P",
                tick=run.p_pick_tick,
                score=run.p_pick_score,
            )
        )

    picks.sort(key=lambda pick: pick.tick)
    if len(picks) < min_stations:
        logger.info(
            "Association below minimum: usable=%s/%s dropped=%s",
            len(picks),
            min_stations,
            dropped,
        )
    else:
        logger.info("Association complete: usable=%s dropped=%s", len(picks), dropped)
    return picks
