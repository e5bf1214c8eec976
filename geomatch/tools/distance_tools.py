"""Distance band post-filter applied after the store fetch."""

from __future__ import annotations

import math

from geomatch.utils.geo import haversine_km
from geomatch.utils.logging_config import logger

DEFAULT_MIN_RADIUS_KM = 0.0
DEFAULT_MAX_RADIUS_KM = 1000.0


def parse_coordinate(value: object) -> float | None:
    """A finite float from a stored coordinate, or None when unusable."""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def candidate_distance_km(lat: float, lng: float, candidate: dict) -> float | None:
    """Distance from (lat, lng) to the candidate, or None without coordinates."""

    cand_lat = parse_coordinate(candidate.get("latitude"))
    cand_lng = parse_coordinate(candidate.get("longitude"))
    if cand_lat is None or cand_lng is None:
        return None
    return haversine_km(lat, lng, cand_lat, cand_lng)


def filter_by_distance(
    candidates: list[dict],
    lat: float,
    lng: float,
    min_km: float = DEFAULT_MIN_RADIUS_KM,
    max_km: float = DEFAULT_MAX_RADIUS_KM,
) -> list[dict]:
    """Keep candidates whose distance lies within [min_km, max_km].

    Both bounds are inclusive. Input order is preserved. Candidates without
    usable coordinates are dropped.
    """

    filtered: list[dict] = []
    for candidate in candidates:
        distance = candidate_distance_km(lat, lng, candidate)
        if distance is None:
            continue
        if min_km <= distance <= max_km:
            filtered.append(candidate)

    logger.debug(
        "filter_by_distance band=%s-%s kept=%s of %s",
        min_km,
        max_km,
        len(filtered),
        len(candidates),
    )
    return filtered
