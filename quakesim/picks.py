from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from .scheduler import StationRun


def first_crossing(probabilities: Iterable[float], threshold: float) -> Optional[int]:
    for index, value in enumerate(probabilities):
        if value >= threshold:
            return index
    return None


def update_pick(
    station_run: "StationRun",
    current_tick: int,
    p_threshold: float,
    s_threshold: float,
) -> List[str]:
    """Pick the phases whose latest probability reaches its threshold.

    Only the newest value of each probability buffer is tested, so a
    threshold changed mid-run never produces picks for ticks already seen.
    An established pick is never moved.
    """
    picked: List[str] = []

    if station_run.p_pick_tick is None:
        p_prob = station_run.p_prob.latest()
        if p_prob >= p_threshold:
            station_run.p_pick_tick = current_tick
            station_run.p_pick_score = p_prob
            station_run.picked = True
            picked.append("P")

    if station_run.s_pick_tick is None:
        s_prob = station_run.s_prob.latest()
        if s_prob >= s_threshold:
            station_run.s_pick_tick = current_tick
            station_run.s_pick_score = s_prob
            picked.append("S")

    return picked
