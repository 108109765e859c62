"""
Day ordering and schedule materialization.

Turns optimized day clusters into dated, timed itineraries and computes the
unoptimized baseline used for savings reporting.
"""

import datetime
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union

from loguru import logger

from tourplan import config
from tourplan.geo import Point, distance_km, estimate_travel_minutes
from tourplan.models import (
    DayCluster,
    GeoPoint,
    OptimizationCriteria,
    OptimizationResult,
    OptimizedDay,
    OptimizeFor,
    ScheduledVisit,
    SelectedPractitioner,
)
from tourplan.tour import balanced_chunk_size, split_into_days

Stop = Union[SelectedPractitioner, ScheduledVisit]


class DayTimeline(NamedTuple):
    visits: List[ScheduledVisit]
    return_distance_km: float
    return_travel_minutes: int
    end_minute: int


def next_weekday(day: datetime.date) -> datetime.date:
    while day.weekday() >= 5:
        day += datetime.timedelta(days=1)
    return day


def working_days(start: datetime.date, n: int) -> List[datetime.date]:
    """
    The first `n` weekdays on or after `start`.
    """
    dates: List[datetime.date] = []
    cursor = next_weekday(start)
    while len(dates) < n:
        if cursor.weekday() < 5:
            dates.append(cursor)
        cursor += datetime.timedelta(days=1)
    return dates


def period_start_date(period: str, today: datetime.date, custom: Optional[datetime.date] = None) -> datetime.date:
    """
    First working day of a planning period: next-week, next-month or custom.
    """
    if period == "next-week":
        return today + datetime.timedelta(days=7 - today.weekday())
    if period == "next-month":
        first = (today.replace(day=1) + datetime.timedelta(days=32)).replace(day=1)
        return next_weekday(first)
    if period == "custom":
        if custom is None:
            raise ValueError("custom period requires a start date")
        return next_weekday(custom)
    raise ValueError(f"unknown period: {period!r}")


def apply_lunch_rule(arrival_minute: int) -> int:
    if config.LUNCH_START_MINUTE <= arrival_minute < config.LUNCH_END_MINUTE:
        return config.LUNCH_END_MINUTE
    return arrival_minute


def recompute_day_times(
    stops: Sequence[Stop],
    start: Point,
    visit_minutes: Optional[int] = None,
) -> DayTimeline:
    """
    Walk a day's stops in order from 09:00 and assign arrival/departure times.

    Works on practitioners or on already scheduled visits (e.g. after a manual
    reorder); for the latter each visit keeps its own duration unless
    `visit_minutes` is given. Arrivals falling in the lunch hour are deferred
    to 13:00. The day ends after driving back to `start`.
    """
    current_time = config.DAY_START_MINUTE
    position: Point = start
    visits: List[ScheduledVisit] = []
    for order, stop in enumerate(stops, start=1):
        if isinstance(stop, ScheduledVisit):
            practitioner = stop.practitioner
            duration = visit_minutes if visit_minutes is not None else stop.visit_minutes
        else:
            practitioner = stop
            duration = visit_minutes if visit_minutes is not None else config.DEFAULT_VISIT_MINUTES
        leg_km = distance_km(position, practitioner.point)
        leg_min = estimate_travel_minutes(leg_km)
        arrival = apply_lunch_rule(current_time + leg_min)
        departure = arrival + duration
        visits.append(
            ScheduledVisit(
                practitioner=practitioner,
                order=order,
                arrival_minute=arrival,
                departure_minute=departure,
                travel_minutes=leg_min,
                distance_km=leg_km,
                visit_minutes=duration,
            )
        )
        current_time = departure
        position = practitioner.point

    if not visits:
        return DayTimeline(visits, 0.0, 0, current_time)
    return_km = distance_km(position, start)
    return_min = estimate_travel_minutes(return_km)
    return DayTimeline(visits, return_km, return_min, current_time + return_min)


def build_day(
    day_index: int,
    date: datetime.date,
    stops: Sequence[Stop],
    start: Point,
    visit_minutes: Optional[int] = None,
) -> OptimizedDay:
    timeline = recompute_day_times(stops, start, visit_minutes)
    return OptimizedDay(
        day_index=day_index,
        date=date,
        visits=timeline.visits,
        total_distance_km=sum(v.distance_km for v in timeline.visits) + timeline.return_distance_km,
        total_travel_minutes=sum(v.travel_minutes for v in timeline.visits) + timeline.return_travel_minutes,
        total_visit_minutes=sum(v.visit_minutes for v in timeline.visits),
        return_distance_km=timeline.return_distance_km,
        return_travel_minutes=timeline.return_travel_minutes,
        end_minute=timeline.end_minute,
    )


def reorder_day(day: OptimizedDay, practitioner_ids: Sequence[str], start: Point) -> OptimizedDay:
    """
    Return a copy of `day` with visits in the given order and times recomputed.
    """
    by_id = {v.practitioner.id: v for v in day.visits}
    if sorted(practitioner_ids) != sorted(by_id):
        raise ValueError("new order must contain exactly the day's practitioners")
    reordered = [by_id[pid] for pid in practitioner_ids]
    return build_day(day.day_index, day.date, reordered, start)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def order_days(
    clusters: Sequence[DayCluster],
    criteria: OptimizationCriteria,
    start: Point,
) -> List[DayCluster]:
    """
    Reorder day clusters for the chosen objective. Sorting is stable, so ties
    keep the construction order.
    """
    objective = OptimizeFor(criteria.optimize_for)

    def kol_count(day: DayCluster) -> int:
        return sum(1 for p in day if p.is_kol)

    def volume(day: DayCluster) -> float:
        return sum(p.volume_l for p in day)

    if objective is OptimizeFor.KOL_FIRST:
        return sorted(clusters, key=lambda d: (kol_count(d), volume(d)), reverse=True)
    if objective is OptimizeFor.VOLUME:
        return sorted(clusters, key=volume, reverse=True)
    if objective in (OptimizeFor.DISTANCE, OptimizeFor.TIME):
        return sorted(clusters, key=lambda d: _mean([distance_km(start, p.point) for p in d]))

    total_volume = sum(volume(d) for d in clusters)

    def balanced_score(day: DayCluster) -> float:
        if not day:
            return 0.0
        kol_density = kol_count(day) / len(day)
        volume_share = volume(day) / total_volume if total_volume > 0 else 0.0
        score = kol_density + volume_share
        if criteria.prioritize_kols:
            score += kol_density
        if criteria.prioritize_at_risk:
            score += sum(1 for p in day if p.practitioner.is_at_risk) / len(day)
        return score

    return sorted(clusters, key=balanced_score, reverse=True)


def compute_baseline(
    selection: Sequence[SelectedPractitioner], start: Point, chunk_size: int
) -> Tuple[float, int]:
    """
    Distance (km) and travel time (min) of visiting the selection in its
    original order, sliced into days of `chunk_size`, with no optimization.
    """
    total_km = 0.0
    total_min = 0
    for day in split_into_days(selection, chunk_size):
        legs = [start] + [p.point for p in day] + [start]
        for a, b in zip(legs, legs[1:]):
            leg_km = distance_km(a, b)
            total_km += leg_km
            total_min += estimate_travel_minutes(leg_km)
    return total_km, total_min


def _pct(saved: float, baseline: float) -> float:
    return saved / baseline * 100.0 if baseline > 0 else 0.0


def materialize_schedule(
    clusters: Sequence[DayCluster],
    criteria: OptimizationCriteria,
    start_date: datetime.date,
    start: GeoPoint,
    baseline_order: Optional[Sequence[SelectedPractitioner]] = None,
) -> OptimizationResult:
    """
    Order days, assign working dates and times, and compute savings.

    `baseline_order` is the selection as the user picked it; when omitted the
    clusters' concatenation is used.
    """
    ordered = order_days(clusters, criteria, start)
    dates = working_days(start_date, len(ordered))
    days = [
        build_day(index, date, cluster, start, criteria.visit_minutes)
        for index, (date, cluster) in enumerate(zip(dates, ordered), start=1)
    ]

    if baseline_order is None:
        baseline_order = [p for cluster in clusters for p in cluster]
    chunk = balanced_chunk_size(len(baseline_order), criteria.max_visits_per_day)
    baseline_km, baseline_min = compute_baseline(baseline_order, start, chunk)

    total_km = sum(d.total_distance_km for d in days)
    total_min = sum(d.total_travel_minutes for d in days)
    km_saved = max(0.0, baseline_km - total_km)
    minutes_saved = max(0, baseline_min - total_min)
    visits = [v for d in days for v in d.visits]

    result = OptimizationResult(
        days=days,
        criteria=criteria,
        start=GeoPoint(*start),
        total_distance_km=total_km,
        total_travel_minutes=total_min,
        total_visit_minutes=sum(d.total_visit_minutes for d in days),
        baseline_distance_km=baseline_km,
        baseline_travel_minutes=baseline_min,
        km_saved=km_saved,
        minutes_saved=minutes_saved,
        km_saved_pct=_pct(km_saved, baseline_km),
        minutes_saved_pct=_pct(minutes_saved, baseline_min),
        kol_count=sum(1 for v in visits if v.practitioner.is_kol),
        volume_l=sum(v.practitioner.volume_l for v in visits),
        visit_count=len(visits),
        unresolved_city_ids=[v.practitioner.id for v in visits if not v.practitioner.city_resolved],
    )
    logger.info(
        f"Scheduled {len(days)} day(s) from {start_date}: {total_km:.1f} km vs baseline {baseline_km:.1f} km"
    )
    return result
