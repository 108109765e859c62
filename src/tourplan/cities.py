"""
Coordinate resolution for practitioners.

Practitioners only carry a free-text city, so positions are derived from a
fixed table of city centres plus a small deterministic offset per
practitioner. Unknown cities fall back to the default metropolitan centre
rather than failing; callers get `city_resolved=False` so they can flag the
practitioner in the UI.
"""

import re
import unicodedata
from typing import Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from tourplan import config
from tourplan.models import GeoPoint, Practitioner, SelectedPractitioner

CITY_COORDS: Dict[str, GeoPoint] = {
    "lyon": GeoPoint(45.7640, 4.8357),
    "villeurbanne": GeoPoint(45.7667, 4.8800),
    "venissieux": GeoPoint(45.6975, 4.8867),
    "vaulx-en-velin": GeoPoint(45.7781, 4.9225),
    "bron": GeoPoint(45.7389, 4.9131),
    "caluire-et-cuire": GeoPoint(45.7953, 4.8464),
    "decines-charpieu": GeoPoint(45.7689, 4.9594),
    "oullins": GeoPoint(45.7142, 4.8075),
    "saint-priest": GeoPoint(45.6960, 4.9440),
    "villefranche-sur-saone": GeoPoint(45.9856, 4.7186),
    "vienne": GeoPoint(45.5245, 4.8774),
    "bourgoin-jallieu": GeoPoint(45.5861, 5.2736),
    "meximieux": GeoPoint(45.9053, 5.1947),
    "amberieu-en-bugey": GeoPoint(45.9581, 5.3597),
    "bourg-en-bresse": GeoPoint(46.2051, 5.2259),
    "oyonnax": GeoPoint(46.2561, 5.6556),
    "bellegarde-sur-valserine": GeoPoint(46.1083, 5.8253),
    "gex": GeoPoint(46.3333, 6.0578),
    "divonne-les-bains": GeoPoint(46.3567, 6.1428),
    "ferney-voltaire": GeoPoint(46.2558, 6.1081),
    "annecy": GeoPoint(45.8992, 6.1294),
    "chambery": GeoPoint(45.5646, 5.9178),
    "grenoble": GeoPoint(45.1885, 5.7245),
    "echirolles": GeoPoint(45.1436, 5.7203),
    "fontaine": GeoPoint(45.1928, 5.6856),
    "saint-martin-d'heres": GeoPoint(45.1672, 5.7653),
    "voiron": GeoPoint(45.3642, 5.5889),
    "saint-etienne": GeoPoint(45.4397, 4.3872),
    "valence": GeoPoint(44.9334, 4.8924),
    "montelimar": GeoPoint(44.5581, 4.7509),
}

DEFAULT_CITY = "lyon"

# Longest keys first so "saint-martin-d'heres" wins over a shorter prefix.
_KEYS_BY_LENGTH = sorted(CITY_COORDS, key=len, reverse=True)

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def normalize_city_name(city: str) -> str:
    """
    Case-fold, strip accents and unify separators: "Saint Étienne" -> "saint-etienne".
    """
    decomposed = unicodedata.normalize("NFKD", city or "")
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    stripped = stripped.replace("’", "'").casefold().strip()
    return re.sub(r"[\s_-]+", "-", stripped)


def lookup_city(city: str) -> Tuple[GeoPoint, bool]:
    """
    Return (base coordinate, resolved) for a city name.

    Tries an exact match, then a prefix match on whole name segments (so
    "Lyon 3e" resolves to Lyon), then falls back to the default city.
    """
    key = normalize_city_name(city)
    if key in CITY_COORDS:
        return CITY_COORDS[key], True
    for known in _KEYS_BY_LENGTH:
        if key.startswith(known + "-"):
            return CITY_COORDS[known], True
    return CITY_COORDS[DEFAULT_CITY], False


def stable_hash(text: str) -> int:
    """
    32-bit FNV-1a hash; unlike hash() it does not change between processes.
    """
    h = _FNV_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def jitter_offsets(practitioner: Practitioner) -> Tuple[float, float]:
    """
    (lat, lon) offsets within +-JITTER_DEGREES derived from the practitioner identity.
    """
    h = stable_hash(f"{practitioner.id}:{practitioner.name}")
    lat_frac = (h % 1000) / 999.0
    lon_frac = ((h // 1000) % 1000) / 999.0
    span = config.JITTER_DEGREES
    return (lat_frac * 2 - 1) * span, (lon_frac * 2 - 1) * span


def resolve_coordinates(practitioner: Practitioner) -> GeoPoint:
    """
    Map a practitioner to a reproducible (lat, lon) near their city centre.
    """
    base, _ = lookup_city(practitioner.city)
    d_lat, d_lon = jitter_offsets(practitioner)
    return GeoPoint(base.lat + d_lat, base.lon + d_lon)


def resolve_start_location(ref: Union[str, GeoPoint, Tuple[float, float]]) -> GeoPoint:
    """
    Resolve a start-location reference (city name or coordinate) without jitter.
    """
    if isinstance(ref, str):
        point, resolved = lookup_city(ref)
        if not resolved:
            logger.warning(f"Unknown start location {ref!r}, using {DEFAULT_CITY}")
        return point
    lat, lon = ref
    return GeoPoint(float(lat), float(lon))


def select_practitioners(
    practitioners: Iterable[Union[Practitioner, SelectedPractitioner]],
    ids: Optional[Iterable[str]] = None,
) -> List[SelectedPractitioner]:
    """
    Resolve coordinates for the practitioners to optimize.

    Already-selected records are kept as-is when their flag is set. When `ids`
    is given only those practitioners are kept, in input order.
    """
    wanted = set(ids) if ids is not None else None
    selected: List[SelectedPractitioner] = []
    for item in practitioners:
        if isinstance(item, SelectedPractitioner):
            if item.selected and (wanted is None or item.id in wanted):
                selected.append(item)
            continue
        if wanted is not None and item.id not in wanted:
            continue
        _, resolved = lookup_city(item.city)
        if not resolved:
            logger.warning(f"Unknown city {item.city!r} for practitioner {item.id}, using fallback coordinate")
        selected.append(SelectedPractitioner(item, resolve_coordinates(item), True, resolved))
    return selected
