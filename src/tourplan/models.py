"""
Data structures shared by the tour planner pipeline.
"""

import datetime
import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Union

from tourplan import config


class ConfigurationError(ValueError):
    """Raised when optimization criteria cannot produce a valid plan."""


class OptimizationCancelled(RuntimeError):
    """Raised when a caller abandons an optimization run between phases."""


class GeoPoint(NamedTuple):
    lat: float
    lon: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": round(self.lat, 6), "lon": round(self.lon, 6)}


class OptimizeFor(str, enum.Enum):
    BALANCED = "balanced"
    TIME = "time"
    KOL_FIRST = "kol-first"
    VOLUME = "volume"
    DISTANCE = "distance"


def format_clock(minute: int) -> str:
    """
    Render minutes since midnight as HH:MM.
    """
    return f"{minute // 60:02d}:{minute % 60:02d}"


@dataclass(frozen=True)
class Practitioner:
    id: str
    name: str
    city: str
    title: str = "Dr."
    specialty: str = ""
    is_kol: bool = False
    vingtile: int = 20
    volume_l: float = 0.0
    loyalty_score: int = 10
    risk_level: str = "low"

    @property
    def is_at_risk(self) -> bool:
        return self.loyalty_score < 6 or self.risk_level == "high"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Practitioner":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            city=str(data.get("city", "")),
            title=str(data.get("title", "Dr.")),
            specialty=str(data.get("specialty", "")),
            is_kol=bool(data.get("is_kol", False)),
            vingtile=int(data.get("vingtile", 20)),
            volume_l=float(data.get("volume_l", 0.0)),
            loyalty_score=int(data.get("loyalty_score", 10)),
            risk_level=str(data.get("risk_level", "low")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "title": self.title,
            "specialty": self.specialty,
            "city": self.city,
            "is_kol": self.is_kol,
            "vingtile": self.vingtile,
            "volume_l": self.volume_l,
            "loyalty_score": self.loyalty_score,
            "risk_level": self.risk_level,
        }


@dataclass
class SelectedPractitioner:
    practitioner: Practitioner
    point: GeoPoint
    selected: bool = True
    city_resolved: bool = True

    @property
    def id(self) -> str:
        return self.practitioner.id

    @property
    def is_kol(self) -> bool:
        return self.practitioner.is_kol

    @property
    def volume_l(self) -> float:
        return self.practitioner.volume_l


DayCluster = List[SelectedPractitioner]


@dataclass
class OptimizationCriteria:
    optimize_for: OptimizeFor = OptimizeFor.BALANCED
    max_visits_per_day: int = config.DEFAULT_MAX_VISITS_PER_DAY
    visit_minutes: int = config.DEFAULT_VISIT_MINUTES
    prioritize_kols: bool = False
    prioritize_at_risk: bool = False
    start_location: Union[str, GeoPoint] = config.DEFAULT_START_LOCATION
    start_date: Optional[datetime.date] = None

    def validate(self) -> None:
        """
        Reject criteria that would produce empty or unbounded day clusters.
        """
        try:
            self.optimize_for = OptimizeFor(self.optimize_for)
        except ValueError:
            raise ConfigurationError(f"unknown optimization objective: {self.optimize_for!r}") from None
        max_visits = self.max_visits_per_day
        if isinstance(max_visits, bool) or not isinstance(max_visits, (int, float)):
            raise ConfigurationError("max_visits_per_day must be a number")
        if isinstance(max_visits, float) and not math.isfinite(max_visits):
            raise ConfigurationError(f"max_visits_per_day must be finite, got {max_visits!r}")
        if max_visits <= 0 or max_visits != int(max_visits):
            raise ConfigurationError(f"max_visits_per_day must be a positive integer, got {max_visits!r}")
        self.max_visits_per_day = int(max_visits)
        minutes = self.visit_minutes
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
            raise ConfigurationError(f"visit_minutes must be a positive integer, got {self.visit_minutes!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptimizationCriteria":
        start_date = data.get("start_date")
        if isinstance(start_date, str):
            try:
                start_date = datetime.date.fromisoformat(start_date)
            except ValueError:
                raise ConfigurationError(f"invalid start_date: {start_date!r}") from None
        start_location = data.get("start_location", config.DEFAULT_START_LOCATION)
        if isinstance(start_location, dict):
            start_location = GeoPoint(float(start_location["lat"]), float(start_location["lon"]))
        return cls(
            optimize_for=data.get("optimize_for", OptimizeFor.BALANCED),
            max_visits_per_day=data.get("max_visits_per_day", config.DEFAULT_MAX_VISITS_PER_DAY),
            visit_minutes=data.get("visit_minutes", config.DEFAULT_VISIT_MINUTES),
            prioritize_kols=bool(data.get("prioritize_kols", False)),
            prioritize_at_risk=bool(data.get("prioritize_at_risk", False)),
            start_location=start_location,
            start_date=start_date,
        )

    def to_dict(self) -> Dict[str, Any]:
        location = self.start_location
        return {
            "optimize_for": OptimizeFor(self.optimize_for).value,
            "max_visits_per_day": self.max_visits_per_day,
            "visit_minutes": self.visit_minutes,
            "prioritize_kols": self.prioritize_kols,
            "prioritize_at_risk": self.prioritize_at_risk,
            "start_location": location.to_dict() if isinstance(location, GeoPoint) else location,
            "start_date": self.start_date.isoformat() if self.start_date else None,
        }


@dataclass
class ScheduledVisit:
    practitioner: SelectedPractitioner
    order: int
    arrival_minute: int
    departure_minute: int
    travel_minutes: int
    distance_km: float
    visit_minutes: int

    @property
    def arrival(self) -> str:
        return format_clock(self.arrival_minute)

    @property
    def departure(self) -> str:
        return format_clock(self.departure_minute)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "practitioner_id": self.practitioner.id,
            "practitioner": self.practitioner.practitioner.to_dict(),
            "point": self.practitioner.point.to_dict(),
            "order": self.order,
            "arrival": self.arrival,
            "departure": self.departure,
            "travel_minutes": self.travel_minutes,
            "distance_km": round(self.distance_km, 1),
            "visit_minutes": self.visit_minutes,
        }


@dataclass
class OptimizedDay:
    day_index: int
    date: datetime.date
    visits: List[ScheduledVisit] = field(default_factory=list)
    total_distance_km: float = 0.0
    total_travel_minutes: int = 0
    total_visit_minutes: int = 0
    return_distance_km: float = 0.0
    return_travel_minutes: int = 0
    end_minute: int = config.DAY_START_MINUTE

    @property
    def end_time(self) -> str:
        return format_clock(self.end_minute)

    @property
    def kol_count(self) -> int:
        return sum(1 for v in self.visits if v.practitioner.is_kol)

    @property
    def volume_l(self) -> float:
        return sum(v.practitioner.volume_l for v in self.visits)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day_index": self.day_index,
            "date": self.date.isoformat(),
            "visits": [v.to_dict() for v in self.visits],
            "total_distance_km": round(self.total_distance_km, 1),
            "total_travel_minutes": self.total_travel_minutes,
            "total_visit_minutes": self.total_visit_minutes,
            "return_distance_km": round(self.return_distance_km, 1),
            "return_travel_minutes": self.return_travel_minutes,
            "end_time": self.end_time,
            "kol_count": self.kol_count,
        }


@dataclass
class OptimizationResult:
    days: List[OptimizedDay]
    criteria: OptimizationCriteria
    start: GeoPoint
    total_distance_km: float = 0.0
    total_travel_minutes: int = 0
    total_visit_minutes: int = 0
    baseline_distance_km: float = 0.0
    baseline_travel_minutes: int = 0
    km_saved: float = 0.0
    minutes_saved: int = 0
    km_saved_pct: float = 0.0
    minutes_saved_pct: float = 0.0
    kol_count: int = 0
    volume_l: float = 0.0
    visit_count: int = 0
    unresolved_city_ids: List[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        hours, minutes = divmod(self.total_travel_minutes, 60)
        return (
            f"{self.visit_count} visits over {len(self.days)} day(s); "
            f"{self.total_distance_km:.0f} km, {hours}h{minutes:02d} travel; "
            f"{self.km_saved:.0f} km saved ({self.km_saved_pct:.0f}%)"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days": [d.to_dict() for d in self.days],
            "criteria": self.criteria.to_dict(),
            "start": self.start.to_dict(),
            "total_distance_km": round(self.total_distance_km, 1),
            "total_travel_minutes": self.total_travel_minutes,
            "total_visit_minutes": self.total_visit_minutes,
            "baseline_distance_km": round(self.baseline_distance_km, 1),
            "baseline_travel_minutes": self.baseline_travel_minutes,
            "km_saved": round(self.km_saved, 1),
            "minutes_saved": self.minutes_saved,
            "km_saved_pct": round(self.km_saved_pct, 1),
            "minutes_saved_pct": round(self.minutes_saved_pct, 1),
            "kol_count": self.kol_count,
            "volume_l": self.volume_l,
            "visit_count": self.visit_count,
            "unresolved_city_ids": list(self.unresolved_city_ids),
            "summary": self.summary,
        }
