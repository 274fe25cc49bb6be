from __future__ import annotations

import copy
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from .errors import RiskSurfaceUnavailable, UnexpectedInputFormat
from .geo import EARTH_RADIUS_M, Coordinate, is_number, to_coordinate, to_path


@dataclass(frozen=True)
class Incident:
    lon: float
    lat: float
    severity: float = 1.0


def _incident_from_record(record: Any, *, index: int) -> Incident:
    if not isinstance(record, Mapping):
        raise RiskSurfaceUnavailable(f"incident #{index} is not an object")

    # GeoJSON Feature or plain {lng|lon, lat, severity}
    if record.get("type") == "Feature":
        geometry = record.get("geometry") or {}
        props = record.get("properties") or {}
        if geometry.get("type") != "Point":
            raise RiskSurfaceUnavailable(f"incident #{index} geometry must be a Point")
        lon, lat = to_coordinate(geometry.get("coordinates"))
        severity = props.get("severity", 1.0)
    else:
        lon_raw = record.get("lng", record.get("lon"))
        lon, lat = to_coordinate([lon_raw, record.get("lat")])
        severity = record.get("severity", 1.0)

    if not is_number(severity) or severity < 0:
        raise RiskSurfaceUnavailable(f"incident #{index} severity must be a non-negative number")
    return Incident(lon=lon, lat=lat, severity=float(severity))


def load_incidents(path: str | Path) -> list[Incident]:
    """Read incidents from a JSON array or a GeoJSON FeatureCollection of points."""
    p = Path(path)
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise RiskSurfaceUnavailable(
            f"Could not read incidents from {p}: {e}",
            details={"path": str(p)},
        ) from e

    if isinstance(payload, Mapping) and payload.get("type") == "FeatureCollection":
        records = payload.get("features") or []
    elif isinstance(payload, list):
        records = payload
    else:
        raise RiskSurfaceUnavailable(
            "Incident file must be a JSON array or a GeoJSON FeatureCollection",
            details={"path": str(p)},
        )
    return [_incident_from_record(r, index=i) for i, r in enumerate(records)]


class RiskSurface:
    """Gaussian kernel density over weighted incident points.

    risk(p) = sum_i severity_i * exp(-0.5 * (d(p, incident_i) / bandwidth)^2)
    """

    def __init__(
        self,
        incidents: Sequence[Incident],
        *,
        bandwidth_m: float = 250.0,
        chunk_cells: int = 1 << 20,
    ) -> None:
        if bandwidth_m <= 0:
            raise ValueError("bandwidth_m must be positive")
        if chunk_cells < 1:
            raise ValueError("chunk_cells must be positive")
        self.bandwidth_m = float(bandwidth_m)
        self.chunk_cells = int(chunk_cells)
        self._lon = np.radians(np.array([i.lon for i in incidents], dtype=float))
        self._lat = np.radians(np.array([i.lat for i in incidents], dtype=float))
        self._severity = np.array([i.severity for i in incidents], dtype=float)

    @classmethod
    def from_file(cls, path: str | Path, *, bandwidth_m: float = 250.0) -> "RiskSurface":
        return cls(load_incidents(path), bandwidth_m=bandwidth_m)

    @property
    def incident_count(self) -> int:
        return int(self._severity.size)

    def score_many(self, coordinates: Sequence[Coordinate]) -> np.ndarray:
        """Risk for already-validated coordinates, in input order.

        Incidents are summed in blocks so the distance matrix never exceeds
        `chunk_cells` entries, whatever the size of the incident file.
        """
        if len(coordinates) == 0:
            return np.zeros(0, dtype=float)
        pts = np.radians(np.asarray(coordinates, dtype=float).reshape(-1, 2))
        risk = np.zeros(pts.shape[0], dtype=float)
        if self._severity.size == 0:
            return risk

        lon = pts[:, 0][:, None]
        lat = pts[:, 1][:, None]
        cos_lat = np.cos(lat)
        block = max(1, self.chunk_cells // pts.shape[0])
        for start in range(0, self._severity.size, block):
            end = start + block
            inc_lat = self._lat[None, start:end]
            dlat = inc_lat - lat
            dlon = self._lon[None, start:end] - lon
            h = np.sin(dlat / 2) ** 2 + cos_lat * np.cos(inc_lat) * np.sin(dlon / 2) ** 2
            dist_m = 2 * EARTH_RADIUS_M * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))
            risk += np.exp(-0.5 * (dist_m / self.bandwidth_m) ** 2) @ self._severity[start:end]
        return risk

    async def score_coordinate(self, coordinate: Any) -> float:
        point = to_coordinate(coordinate)
        return float(self.score_many([point])[0])

    async def score_coordinates(self, coordinates: Sequence[Any]) -> list[float]:
        path = to_path(coordinates)
        return [float(v) for v in self.score_many(path)]

    async def decorate_feature(self, feature: Mapping[str, Any]) -> dict[str, Any]:
        """Return a deep copy of a Point feature (or bare Point geometry) carrying its risk."""
        kind = feature.get("type")
        if kind == "Feature":
            geometry = feature.get("geometry")
            if not isinstance(geometry, Mapping) or geometry.get("type") != "Point":
                raise UnexpectedInputFormat("Feature geometry must be a Point.")
            risk = await self.score_coordinate(geometry.get("coordinates"))
            out = copy.deepcopy(dict(feature))
            props = out.get("properties")
            out["properties"] = dict(props) if isinstance(props, Mapping) else {}
            out["properties"]["risk"] = risk
            return out
        if kind == "Point":
            risk = await self.score_coordinate(feature.get("coordinates"))
            out = copy.deepcopy(dict(feature))
            out["risk"] = risk
            return out
        raise UnexpectedInputFormat("Feature must be a GeoJSON Point or a Feature with a Point geometry.")
