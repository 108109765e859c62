"""
Reporting utilities: itinerary text, coordinate previews and exports.
"""

import datetime
from typing import Any, Dict, List, Optional, Sequence

from tourplan.models import GeoPoint, OptimizationResult, SelectedPractitioner, format_clock


def format_schedule(result: OptimizationResult) -> str:
    """
    Render a human-readable itinerary summary.
    """
    lines = [result.summary]
    for day in result.days:
        lines.append(
            f"Day {day.day_index} ({day.date.isoformat()}): {len(day.visits)} visits, "
            f"{day.total_distance_km:.1f} km, travel {day.total_travel_minutes} min, back at {day.end_time}"
        )
        for visit in day.visits:
            p = visit.practitioner.practitioner
            kol = " [KOL]" if p.is_kol else ""
            lines.append(
                f"  {visit.order}. {visit.arrival}-{visit.departure} {p.title} {p.name}{kol} ({p.city}) "
                f"+{visit.travel_minutes} min / {visit.distance_km:.1f} km"
            )
    if result.unresolved_city_ids:
        lines.append(f"Approximate location (unknown city): {', '.join(result.unresolved_city_ids)}")
    return "\n".join(lines)


def format_coordinates(start: GeoPoint, selected: Sequence[SelectedPractitioner], limit: int = 10) -> str:
    """
    Format coordinate table for start point and practitioners (preview limited to `limit` rows).
    """
    lines = []
    lines.append("Start:")
    lines.append(f"  lat: {start.lat:.4f}, lon: {start.lon:.4f}")
    lines.append("")
    lines.append("Practitioners (preview):")
    lines.append("ID\tLat\tLon\tCity\tKOL")
    for s in selected[:limit]:
        city = s.practitioner.city if s.city_resolved else f"{s.practitioner.city} (?)"
        lines.append(f"{s.id}\t{s.point.lat:.4f}\t{s.point.lon:.4f}\t{city}\t{s.is_kol}")
    if len(selected) > limit:
        lines.append(f"... ({len(selected) - limit} more)")
    return "\n".join(lines)


def _ics_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,").replace("\n", "\\n")


def _ics_datetime(date: datetime.date, minute: int) -> str:
    moment = datetime.datetime.combine(date, datetime.time()) + datetime.timedelta(minutes=minute)
    return moment.strftime("%Y%m%dT%H%M%S")


def to_ics(result: OptimizationResult, stamp: Optional[datetime.datetime] = None) -> str:
    """
    Export the schedule as an iCalendar document with one event per visit.
    """
    stamp = stamp or datetime.datetime.now(datetime.timezone.utc)
    dtstamp = stamp.strftime("%Y%m%dT%H%M%SZ")
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//tourplan//visit tour//EN", "CALSCALE:GREGORIAN"]
    for day in result.days:
        for visit in day.visits:
            p = visit.practitioner.practitioner
            lines.extend(
                [
                    "BEGIN:VEVENT",
                    f"UID:{day.date.isoformat()}-{p.id}@tourplan",
                    f"DTSTAMP:{dtstamp}",
                    f"DTSTART:{_ics_datetime(day.date, visit.arrival_minute)}",
                    f"DTEND:{_ics_datetime(day.date, visit.departure_minute)}",
                    f"SUMMARY:{_ics_escape(f'Visit {p.title} {p.name}')}",
                    f"LOCATION:{_ics_escape(p.city)}",
                    f"GEO:{visit.practitioner.point.lat:.6f};{visit.practitioner.point.lon:.6f}",
                    "END:VEVENT",
                ]
            )
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


def visit_records(result: OptimizationResult) -> List[Dict[str, Any]]:
    """
    Flatten the schedule into visit records for the planned-visit store.
    """
    return [
        {
            "practitioner_id": visit.practitioner.id,
            "date": day.date.isoformat(),
            "time": format_clock(visit.arrival_minute),
        }
        for day in result.days
        for visit in day.visits
    ]
