"""Geospatial utilities used for distance calculations."""

from __future__ import annotations

from math import asin, cos, radians, sin, sqrt

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Calculate great-circle distance between two lat/lng points in kilometers.

    Args:
        lat1: Latitude of the first point.
        lng1: Longitude of the first point.
        lat2: Latitude of the second point.
        lng2: Longitude of the second point.

    Returns:
        Distance in kilometers. Identical points give 0.0.

    Notes:
        NaN inputs propagate to the result; callers validate coordinates.
    """

    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)

    delta_lat = lat2_rad - lat1_rad
    delta_lng = radians(lng2) - radians(lng1)

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(
        delta_lng / 2
    ) ** 2
    # Rounding can push antipodal points just above 1.0.
    if a > 1.0:
        a = 1.0

    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))
