"""
Tour construction: global nearest-neighbor ordering, balanced day slicing and
per-day 2-opt improvement of the round trip from the start point.
"""

from typing import List, Sequence

from loguru import logger

from tourplan.geo import Point, distance_km
from tourplan.models import DayCluster, SelectedPractitioner

# Minimum gain (km) for a 2-opt move; keeps float noise from cycling.
_EPSILON_KM = 1e-9


def _distance_matrix(start: Point, stops: Sequence[SelectedPractitioner]) -> List[List[float]]:
    """
    Pairwise road distances with the start point at index 0.
    """
    points = [start] + [s.point for s in stops]
    n = len(points)
    matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            d = distance_km(points[i], points[j])
            matrix[i][j] = d
            matrix[j][i] = d
    return matrix


def _nearest_neighbor_indices(matrix: List[List[float]]) -> List[int]:
    # Indices are 1-based into the matrix; ties keep input order.
    unvisited = list(range(1, len(matrix)))
    route: List[int] = []
    current = 0
    while unvisited:
        nxt = min(unvisited, key=lambda i: matrix[current][i])
        route.append(nxt)
        unvisited.remove(nxt)
        current = nxt
    return route


def _round_trip(matrix: List[List[float]], route: Sequence[int]) -> float:
    if not route:
        return 0.0
    total = matrix[0][route[0]] + matrix[route[-1]][0]
    for a, b in zip(route, route[1:]):
        total += matrix[a][b]
    return total


def _two_opt_indices(matrix: List[List[float]], route: List[int]) -> List[int]:
    """
    Reverse segments of the closed tour 0 -> route -> 0 while that strictly
    shortens it. Returns a new list.
    """
    best = list(route)
    n = len(best)
    if n < 3:
        # Reversing any segment of a 1- or 2-stop round trip gives the same length.
        return best
    improved = True
    passes = 0
    while improved:
        improved = False
        passes += 1
        for i in range(n - 1):
            prev = best[i - 1] if i > 0 else 0
            for j in range(i + 1, n):
                nxt = best[j + 1] if j + 1 < n else 0
                before = matrix[prev][best[i]] + matrix[best[j]][nxt]
                after = matrix[prev][best[j]] + matrix[best[i]][nxt]
                if after < before - _EPSILON_KM:
                    best[i:j + 1] = reversed(best[i:j + 1])
                    improved = True
    logger.debug(f"2-opt converged after {passes} pass(es) on {n} stops")
    return best


def nearest_neighbor_order(selected: Sequence[SelectedPractitioner], start: Point) -> List[SelectedPractitioner]:
    """
    Greedy tour from `start`: always move to the closest unvisited practitioner.
    """
    matrix = _distance_matrix(start, selected)
    return [selected[i - 1] for i in _nearest_neighbor_indices(matrix)]


def two_opt(route: Sequence[SelectedPractitioner], start: Point) -> List[SelectedPractitioner]:
    """
    Improve a day's visit order by 2-opt on the round trip from `start`.
    """
    matrix = _distance_matrix(start, route)
    improved = _two_opt_indices(matrix, list(range(1, len(route) + 1)))
    return [route[i - 1] for i in improved]


def optimize_day_order(stops: Sequence[SelectedPractitioner], start: Point) -> List[SelectedPractitioner]:
    """
    Nearest-neighbor from `start` followed by 2-opt, on one day's stops.
    """
    matrix = _distance_matrix(start, stops)
    initial = _nearest_neighbor_indices(matrix)
    improved = _two_opt_indices(matrix, initial)
    logger.debug(
        f"Day of {len(stops)} stops: NN {_round_trip(matrix, initial):.1f} km -> "
        f"2-opt {_round_trip(matrix, improved):.1f} km"
    )
    return [stops[i - 1] for i in improved]


def balanced_chunk_size(n: int, max_per_day: int) -> int:
    """
    Chunk size giving the fewest days with evenly filled days.

    >>> balanced_chunk_size(7, 6)
    4
    """
    if n <= 0:
        return max_per_day
    days = -(-n // max_per_day)
    return -(-n // days)


def split_into_days(ordered: Sequence[SelectedPractitioner], chunk_size: int) -> List[DayCluster]:
    return [list(ordered[i:i + chunk_size]) for i in range(0, len(ordered), chunk_size)]


def build_day_clusters(
    selected: Sequence[SelectedPractitioner],
    start: Point,
    max_per_day: int,
) -> List[DayCluster]:
    """
    Partition the selection into day clusters and optimize each day's order.

    The global nearest-neighbor tour keeps geographically close practitioners
    in the same slice; each slice is then re-optimized from `start` on its own.
    """
    if max_per_day <= 0:
        raise ValueError("max_per_day must be positive")
    if not selected:
        return []
    global_order = nearest_neighbor_order(selected, start)
    chunk = balanced_chunk_size(len(global_order), max_per_day)
    clusters = [optimize_day_order(day, start) for day in split_into_days(global_order, chunk)]
    logger.info(f"Built {len(clusters)} day cluster(s) of up to {chunk} visits from {len(selected)} practitioners")
    return clusters
