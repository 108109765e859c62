"""
Seeded mock practitioner generation for demos and tests.
"""

import random
from typing import List, Optional, Sequence

from tourplan.models import Practitioner

FIRST_NAMES = ["Marie", "Jean", "Sophie", "Pierre", "Claire", "Luc", "Anne", "Paul", "Julie", "Marc"]
LAST_NAMES = ["Martin", "Bernard", "Dubois", "Moreau", "Laurent", "Simon", "Michel", "Lefebvre", "Garcia", "Roux"]
SPECIALTIES = ["Médecin généraliste", "Pneumologue"]
DEFAULT_CITIES = [
    "Lyon 3e",
    "Lyon 6e",
    "Villeurbanne",
    "Vénissieux",
    "Bron",
    "Vienne",
    "Bourg-en-Bresse",
    "Grenoble",
    "Échirolles",
    "Annecy",
    "Chambéry",
    "Saint-Étienne",
]


def generate_practitioners(
    seed: int,
    n: int = 30,
    cities: Optional[Sequence[str]] = None,
    kol_ratio: float = 0.15,
) -> List[Practitioner]:
    """
    Generate n practitioners spread over `cities`; the same seed yields the same list.
    """
    rng = random.Random(seed)
    city_pool = list(cities) if cities else DEFAULT_CITIES
    practitioners: List[Practitioner] = []
    for i in range(n):
        is_kol = rng.random() < kol_ratio
        # KOLs sit in the top vingtiles and prescribe more.
        vingtile = rng.randint(1, 5) if is_kol else rng.randint(1, 20)
        volume = round(rng.uniform(20_000, 120_000) if is_kol else rng.uniform(500, 60_000), 1)
        loyalty = rng.randint(1, 10)
        risk = "high" if loyalty <= 3 else ("medium" if loyalty <= 6 else "low")
        practitioners.append(
            Practitioner(
                id=f"P{i+1:03d}",
                name=f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
                title="Pr." if is_kol and rng.random() < 0.5 else "Dr.",
                specialty=rng.choice(SPECIALTIES),
                city=rng.choice(city_pool),
                is_kol=is_kol,
                vingtile=vingtile,
                volume_l=volume,
                loyalty_score=loyalty,
                risk_level=risk,
            )
        )
    return practitioners
