import datetime
from collections import Counter

import pytest

from tourplan.cities import CITY_COORDS, select_practitioners
from tourplan.data import generate_practitioners
from tourplan.geo import distance_km, estimate_travel_minutes, round_trip_km
from tourplan.models import (
    ConfigurationError,
    OptimizationCancelled,
    OptimizationCriteria,
    OptimizeFor,
    Practitioner,
)
from tourplan.optimizer import ResultStore, optimize

MONDAY = datetime.date(2026, 10, 19)
LYON = CITY_COORDS["lyon"]


def make_practitioners(city, n, prefix, is_kol=False, volume=1000.0):
    return [
        Practitioner(id=f"{prefix}{i}", name=f"Dr {prefix}{i}", city=city, is_kol=is_kol, volume_l=volume)
        for i in range(n)
    ]


def test_scenario_single_city_fits_one_day():
    practitioners = make_practitioners("Lyon", 6, "L")
    result = optimize(practitioners, OptimizationCriteria(max_visits_per_day=6), MONDAY)

    assert len(result.days) == 1
    day = result.days[0]
    assert len(day.visits) == 6
    naive = round_trip_km(LYON, [s.point for s in select_practitioners(practitioners)])
    assert day.total_distance_km <= naive + 1e-9
    assert day.total_distance_km == pytest.approx(round_trip_km(LYON, [v.practitioner.point for v in day.visits]))


def test_scenario_two_distant_cities_are_grouped_by_day():
    lyon = make_practitioners("Lyon", 6, "L")
    grenoble = make_practitioners("Grenoble", 6, "G")
    interleaved = [p for pair in zip(lyon, grenoble) for p in pair]
    criteria = OptimizationCriteria(optimize_for=OptimizeFor.DISTANCE, max_visits_per_day=6)

    result = optimize(interleaved, criteria, MONDAY)

    assert len(result.days) == 2
    for day in result.days:
        cities = {v.practitioner.practitioner.city for v in day.visits}
        assert len(cities) == 1
    # Closest day first.
    assert result.days[0].visits[0].practitioner.practitioner.city == "Lyon"
    assert result.total_distance_km < result.baseline_distance_km
    assert result.km_saved > 0
    assert 0 < result.km_saved_pct <= 100


def test_scenario_kol_first_moves_kol_day_to_front():
    practitioners = (
        make_practitioners("Lyon", 3, "L")
        + make_practitioners("Bourg-en-Bresse", 3, "B", is_kol=True)
        + make_practitioners("Grenoble", 3, "G")
        + make_practitioners("Valence", 3, "V")
    )
    kol_ids = {"B0", "B1", "B2"}

    by_distance = optimize(practitioners, OptimizationCriteria(optimize_for="distance", max_visits_per_day=3), MONDAY)
    kol_positions = [i for i, d in enumerate(by_distance.days) if {v.practitioner.id for v in d.visits} == kol_ids]
    assert kol_positions and kol_positions[0] > 0

    result = optimize(practitioners, OptimizationCriteria(optimize_for="kol-first", max_visits_per_day=3), MONDAY)
    assert len(result.days) == 4
    assert {v.practitioner.id for v in result.days[0].visits} == kol_ids
    assert result.days[0].kol_count == 3
    assert result.days[0].date == MONDAY
    assert result.kol_count == 3


def test_scenario_single_practitioner():
    practitioner = Practitioner(id="P1", name="Solo", city="Villeurbanne")
    criteria = OptimizationCriteria(max_visits_per_day=1, visit_minutes=45)
    result = optimize([practitioner], criteria, MONDAY)

    assert len(result.days) == 1
    day = result.days[0]
    assert len(day.visits) == 1
    visit = day.visits[0]
    leg = distance_km(LYON, visit.practitioner.point)
    assert visit.order == 1
    assert visit.travel_minutes == estimate_travel_minutes(leg)
    assert visit.arrival_minute == 9 * 60 + visit.travel_minutes
    assert visit.departure_minute == visit.arrival_minute + 45
    assert day.end_minute == visit.departure_minute + day.return_travel_minutes
    assert day.return_distance_km == pytest.approx(leg)


def test_every_practitioner_scheduled_exactly_once():
    practitioners = generate_practitioners(seed=21, n=40)
    result = optimize(practitioners, OptimizationCriteria(max_visits_per_day=6), MONDAY)

    scheduled = Counter(v.practitioner.id for d in result.days for v in d.visits)
    assert scheduled == Counter(p.id for p in practitioners)
    assert all(1 <= len(d.visits) <= 6 for d in result.days)
    assert [d.day_index for d in result.days] == list(range(1, len(result.days) + 1))
    assert all(d.date.weekday() < 5 for d in result.days)
    for day in result.days:
        assert [v.order for v in day.visits] == list(range(1, len(day.visits) + 1))


@pytest.mark.parametrize("objective", [o.value for o in OptimizeFor])
def test_optimize_is_deterministic(objective):
    practitioners = generate_practitioners(seed=8, n=25)
    criteria = OptimizationCriteria(optimize_for=objective, max_visits_per_day=5)
    first = optimize(practitioners, criteria, MONDAY).to_dict()
    second = optimize(generate_practitioners(seed=8, n=25), criteria, MONDAY).to_dict()
    assert first == second


@pytest.mark.parametrize("seed", [1, 2, 3, 4])
def test_savings_never_negative(seed):
    practitioners = generate_practitioners(seed=seed, n=15)
    result = optimize(practitioners, OptimizationCriteria(max_visits_per_day=4), MONDAY)
    assert result.km_saved >= 0
    assert result.minutes_saved >= 0
    assert result.km_saved_pct >= 0
    assert result.minutes_saved_pct >= 0


def test_empty_selection_returns_empty_result():
    result = optimize([], OptimizationCriteria(), MONDAY)
    assert result.days == []
    assert result.visit_count == 0
    assert result.total_distance_km == 0.0
    assert result.km_saved_pct == 0.0


@pytest.mark.parametrize("bad", [0, -2, 2.5, float("inf"), float("nan"), "6", None, True])
def test_invalid_max_visits_is_rejected(bad):
    with pytest.raises(ConfigurationError):
        optimize(make_practitioners("Lyon", 2, "L"), OptimizationCriteria(max_visits_per_day=bad), MONDAY)


def test_huge_integer_cap_fits_one_day():
    result = optimize(make_practitioners("Lyon", 5, "L"), OptimizationCriteria(max_visits_per_day=10**400), MONDAY)
    assert len(result.days) == 1
    assert result.visit_count == 5


def test_invalid_objective_and_visit_duration_are_rejected():
    with pytest.raises(ConfigurationError):
        optimize([], OptimizationCriteria(optimize_for="fastest"), MONDAY)
    with pytest.raises(ConfigurationError):
        optimize([], OptimizationCriteria(visit_minutes=0), MONDAY)
    with pytest.raises(ConfigurationError):
        optimize([], OptimizationCriteria(visit_minutes=True), MONDAY)


def test_unknown_city_uses_fallback_and_is_reported():
    practitioners = [Practitioner(id="X1", name="Nobody", city="Atlantis")] + make_practitioners("Lyon", 2, "L")
    result = optimize(practitioners, OptimizationCriteria(), MONDAY)
    assert result.unresolved_city_ids == ["X1"]
    assert result.visit_count == 3


def test_duplicate_ids_are_rejected():
    p = Practitioner(id="D1", name="Dup", city="Lyon")
    with pytest.raises(ValueError):
        optimize([p, p], OptimizationCriteria(), MONDAY)


def test_weekend_start_rolls_to_monday():
    saturday = datetime.date(2026, 10, 24)
    practitioners = make_practitioners("Lyon", 4, "L")
    result = optimize(practitioners, OptimizationCriteria(max_visits_per_day=2), saturday)
    assert [d.date for d in result.days] == [datetime.date(2026, 10, 26), datetime.date(2026, 10, 27)]


def test_start_date_falls_back_to_criteria_then_today():
    practitioners = make_practitioners("Lyon", 1, "L")
    criteria = OptimizationCriteria(start_date=datetime.date(2026, 10, 21))
    assert optimize(practitioners, criteria).days[0].date == datetime.date(2026, 10, 21)
    assert optimize(practitioners, OptimizationCriteria(), today=MONDAY).days[0].date == MONDAY


def test_progress_reports_each_phase():
    calls = []
    optimize(make_practitioners("Lyon", 3, "L"), OptimizationCriteria(), MONDAY, progress=lambda *a: calls.append(a))
    assert [name for name, _ in calls] == ["resolve", "cluster", "schedule"]
    assert calls[-1][1] == pytest.approx(1.0)


def test_cancel_between_phases():
    checks = []

    def should_cancel():
        checks.append(1)
        return len(checks) > 1

    with pytest.raises(OptimizationCancelled):
        optimize(make_practitioners("Lyon", 3, "L"), OptimizationCriteria(), MONDAY, should_cancel=should_cancel)


def test_store_keeps_previous_result_on_failure():
    store = ResultStore()
    first = store.run(make_practitioners("Lyon", 3, "L"), OptimizationCriteria(), MONDAY)
    with pytest.raises(ConfigurationError):
        store.run(make_practitioners("Lyon", 3, "L"), OptimizationCriteria(max_visits_per_day=0), MONDAY)
    with pytest.raises(OptimizationCancelled):
        store.run(make_practitioners("Lyon", 3, "L"), OptimizationCriteria(), MONDAY, should_cancel=lambda: True)
    assert store.result is first


def test_custom_start_location():
    practitioners = make_practitioners("Grenoble", 2, "G")
    from_grenoble = optimize(practitioners, OptimizationCriteria(start_location="Grenoble"), MONDAY)
    from_lyon = optimize(practitioners, OptimizationCriteria(start_location="Lyon"), MONDAY)
    assert from_grenoble.total_distance_km < from_lyon.total_distance_km
    assert from_grenoble.start == CITY_COORDS["grenoble"]
