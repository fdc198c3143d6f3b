import logging

from quakesim.models import RunOutcome
from quakesim.scheduler import Scheduler
from quakesim.settings import parse_args


def run_simulation(settings, logger: logging.Logger, listener=None):
    scheduler = Scheduler.from_settings(settings, listener=listener)
    scheduler.start()
    outcome = scheduler.run()

    metrics = {
        "outcome": outcome.value,
        "ticks": scheduler.tick,
        "stations": len(settings.stations),
        "picked": len(scheduler.picked_order),
        "solved": int(outcome is RunOutcome.SOLVED),
    }

    solution = scheduler.solution
    if solution is not None:
        logger.info(
            "Event located: lat=%.4f lon=%.4f origin_tick=%.1f misfit=%.5f ml=%s",
            solution.lat,
            solution.lon,
            solution.origin_tick(settings.dt),
            solution.misfit,
            "n/a" if solution.magnitude is None else f"{solution.magnitude:.2f}",
        )
        for arr in solution.arrivals:
            logger.info(
                "Arrival %s: tick=%d distance_km=%.2f azimuth=%.1f residual=%.3fs",
                arr.pick.station.code,
                arr.pick.tick,
                arr.distance_km,
                arr.azimuth_deg,
                arr.residual_seconds,
            )
    elif outcome is RunOutcome.TIMEOUT:
        logger.warning("No solution: picking did not complete within %d ticks", settings.max_ticks)
    else:
        logger.warning("No solution: %s", scheduler.failure_reason)

    logger.info(
        "Simulation complete: outcome=%s ticks=%d picked=%d/%d",
        metrics["outcome"],
        metrics["ticks"],
        metrics["picked"],
        metrics["stations"],
    )
    return scheduler, metrics


def main() -> None:
    settings = parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("quakesim.main")
    logger.debug("Settings: %s", settings)
    logger.info("Starting simulation")

    try:
        run_simulation(settings, logger)
    except ValueError:
        logger.exception("Invalid simulation configuration")
    except KeyboardInterrupt:
        logger.info("Stopping simulation")


if __name__ == "__main__":
    main()
