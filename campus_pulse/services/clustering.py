"""
clustering.py — Density-based clustering (DBSCAN) of alert points.

Points are visited in input order. A point's eps-neighbourhood includes the
point itself, so with min_points=3 a point needs two other alerts within eps
to seed a cluster. Border points (inside some core point's neighbourhood but
not dense themselves) join the first cluster that reaches them; everything
else is noise.

Neighbourhoods are computed by brute force (O(n²)). Per-run alert volumes
are tens to low hundreds of points.

USAGE
─────
    result = dbscan(points, eps_meters=50, min_points=3)
    result.clusters   → list[list[AlertPoint]]
    result.noise      → list[AlertPoint]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from campus_pulse.models.alert import AlertPoint
from campus_pulse.services.geo import distance_between


@dataclass
class ClusteringResult:
    clusters: list[list[AlertPoint]] = field(default_factory=list)
    noise: list[AlertPoint] = field(default_factory=list)


def region_query(points: Sequence[AlertPoint], idx: int, eps_meters: float) -> list[int]:
    """Indices of every point within eps_meters of points[idx] (itself included)."""
    p = points[idx]
    return [
        j for j, q in enumerate(points)
        if distance_between(p, q) <= eps_meters
    ]


def dbscan(
    points: Sequence[AlertPoint],
    eps_meters: float,
    min_points: int,
) -> ClusteringResult:
    """
    Partition points into density clusters plus noise.

    Deterministic for a fixed input order and fixed eps/min_points.

    Raises:
        ValueError: eps_meters is not positive or min_points is below 1.
    """
    if not eps_meters > 0:
        raise ValueError(f"eps_meters must be positive, got {eps_meters!r}")
    if min_points < 1:
        raise ValueError(f"min_points must be at least 1, got {min_points!r}")

    visited: set[int] = set()
    assigned: set[int] = set()
    clusters: list[list[int]] = []

    for i in range(len(points)):
        if i in visited:
            continue
        visited.add(i)

        neighbours = region_query(points, i, eps_meters)
        if len(neighbours) < min_points:
            # Provisional noise; may still be absorbed as a border point later.
            continue

        cluster: list[int] = [i]
        assigned.add(i)
        seeds = list(neighbours)
        seen = set(seeds)

        k = 0
        while k < len(seeds):
            n = seeds[k]
            k += 1
            if n not in visited:
                visited.add(n)
                n_neighbours = region_query(points, n, eps_meters)
                if len(n_neighbours) >= min_points:
                    for nn in n_neighbours:
                        if nn not in seen:
                            seen.add(nn)
                            seeds.append(nn)
            if n not in assigned:
                assigned.add(n)
                cluster.append(n)

        clusters.append(cluster)

    return ClusteringResult(
        clusters=[[points[j] for j in c] for c in clusters],
        noise=[p for j, p in enumerate(points) if j not in assigned],
    )
