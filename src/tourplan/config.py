"""
Tunable constants for the tour planner, overridable from the environment.
"""

import os
import sys

from loguru import logger

# Road distance is approximated as straight-line distance times this factor.
ROAD_FACTOR = float(os.getenv("TOURPLAN_ROAD_FACTOR", 1.3))

# Speed bands (km/h) keyed by the upper distance bound of each band.
URBAN_MAX_KM = 5.0
URBAN_SPEED_KMPH = float(os.getenv("TOURPLAN_URBAN_SPEED_KMPH", 25.0))
PERIURBAN_MAX_KM = 30.0
PERIURBAN_SPEED_KMPH = float(os.getenv("TOURPLAN_PERIURBAN_SPEED_KMPH", 45.0))
INTERURBAN_SPEED_KMPH = float(os.getenv("TOURPLAN_INTERURBAN_SPEED_KMPH", 70.0))

# Day timeline, minutes since midnight.
DAY_START_MINUTE = 9 * 60
LUNCH_START_MINUTE = 12 * 60
LUNCH_END_MINUTE = 13 * 60

DEFAULT_VISIT_MINUTES = int(os.getenv("TOURPLAN_VISIT_MINUTES", 45))
DEFAULT_MAX_VISITS_PER_DAY = int(os.getenv("TOURPLAN_MAX_VISITS_PER_DAY", 6))
DEFAULT_START_LOCATION = os.getenv("TOURPLAN_START_LOCATION", "Lyon")

# Coordinate jitter applied per practitioner, in degrees.
JITTER_DEGREES = 0.05


def configure_logging(level: str = None) -> None:
    """
    Replace loguru's default sink with a compact stdout sink.
    """
    logger.remove()
    logger.add(
        sys.stdout,
        colorize=True,
        level=level or os.getenv("TOURPLAN_LOG_LEVEL", "INFO"),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
    )
