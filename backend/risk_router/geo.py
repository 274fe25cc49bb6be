"""
Geospatial helpers.

Coordinates are (lon, lat) pairs in decimal degrees, matching GeoJSON order.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from .errors import InvalidCoordinate

Coordinate = tuple[float, float]
Path = list[Coordinate]

EARTH_RADIUS_M = 6_371_000.0


def is_number(value: Any) -> bool:
    # bool is an int subclass but never a coordinate component
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def looks_like_coordinate(value: Any) -> bool:
    """Shape check only: a two-element list/tuple of numbers."""
    return isinstance(value, (list, tuple)) and len(value) == 2 and all(is_number(v) for v in value)


def to_coordinate(value: Any) -> Coordinate:
    if not looks_like_coordinate(value):
        raise InvalidCoordinate(f"Invalid coordinate: expected [lng, lat], got {value!r}")
    lon, lat = float(value[0]), float(value[1])
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise InvalidCoordinate(f"Invalid coordinate: non-finite value in {value!r}")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinate(f"Invalid coordinate: longitude {lon} out of range")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Invalid coordinate: latitude {lat} out of range")
    return (lon, lat)


def to_path(values: Sequence[Any]) -> Path:
    return [to_coordinate(v) for v in values]


def paths_equal(a: Sequence[Sequence[float]], b: Sequence[Sequence[float]]) -> bool:
    """Element-wise equality of two coordinate sequences.

    Lists and tuples compare equal, and 1 == 1.0, so the result does not depend on
    how either path was built or serialised.
    """
    if len(a) != len(b):
        return False
    for pa, pb in zip(a, b):
        if len(pa) != 2 or len(pb) != 2:
            return False
        if float(pa[0]) != float(pb[0]) or float(pa[1]) != float(pb[1]):
            return False
    return True


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    lon1, lat1 = math.radians(a[0]), math.radians(a[1])
    lon2, lat2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))
