"""
Entry point of the tour planner: validates criteria and runs the pipeline
resolve -> cluster -> order -> schedule.
"""

import datetime
from typing import Callable, Iterable, Optional, Union

from loguru import logger

from tourplan.cities import resolve_start_location, select_practitioners
from tourplan.models import (
    OptimizationCancelled,
    OptimizationCriteria,
    OptimizationResult,
    Practitioner,
    SelectedPractitioner,
)
from tourplan.schedule import materialize_schedule, next_weekday
from tourplan.tour import build_day_clusters

ProgressCallback = Callable[[str, float], None]

PHASES = ("resolve", "cluster", "schedule")


def optimize(
    practitioners: Iterable[Union[Practitioner, SelectedPractitioner]],
    criteria: Optional[OptimizationCriteria] = None,
    start_date: Optional[datetime.date] = None,
    *,
    today: Optional[datetime.date] = None,
    progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> OptimizationResult:
    """
    Plan a multi-day visit tour for the selected practitioners.

    The start date is taken from `start_date`, then `criteria.start_date`, then
    `today` (defaults to the current date); weekends roll forward to Monday.
    `progress(phase, fraction)` is called after each phase and
    `should_cancel()` is checked before each; a cancelled run raises
    OptimizationCancelled and produces nothing.
    """
    criteria = criteria or OptimizationCriteria()
    criteria.validate()
    day_zero = next_weekday(start_date or criteria.start_date or today or datetime.date.today())
    start = resolve_start_location(criteria.start_location)

    def enter(phase: str) -> None:
        if should_cancel is not None and should_cancel():
            logger.warning(f"Optimization cancelled before phase {phase!r}")
            raise OptimizationCancelled(phase)
        logger.info(f"Optimization phase: {phase}")

    def done(phase: str) -> None:
        if progress is not None:
            progress(phase, (PHASES.index(phase) + 1) / len(PHASES))

    enter("resolve")
    selected = select_practitioners(practitioners)
    seen = set()
    for p in selected:
        if p.id in seen:
            raise ValueError(f"duplicate practitioner id: {p.id}")
        seen.add(p.id)
    done("resolve")

    enter("cluster")
    clusters = build_day_clusters(selected, start, criteria.max_visits_per_day)
    done("cluster")

    enter("schedule")
    result = materialize_schedule(clusters, criteria, day_zero, start, baseline_order=selected)
    done("schedule")

    logger.success(f"Tour optimized: {result.summary}")
    return result


class ResultStore:
    """
    Holds the latest successful optimization result.

    A run that raises leaves the previously stored result in place.
    """

    def __init__(self) -> None:
        self.result: Optional[OptimizationResult] = None

    def run(self, practitioners, criteria=None, start_date=None, **kwargs) -> OptimizationResult:
        result = optimize(practitioners, criteria, start_date, **kwargs)
        self.result = result
        return result

    def clear(self) -> None:
        self.result = None
