from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .geo import Coordinate


class WireModel(BaseModel):
    """Snake case in Python, camelCase on the wire (riskWeight, riskiestIndex)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LngLat(BaseModel):
    lng: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)

    def as_coordinate(self) -> Coordinate:
        return (float(self.lng), float(self.lat))


class CandidatePath(WireModel):
    """One risk-biased search result, before realization."""

    path: list[tuple[float, float]]
    risk_weight: float
    cost: float = 0.0


class TripRouteRequest(WireModel):
    path: list[tuple[float, float]] = Field(..., min_length=1)
    risk_weight: float | None = None


class RealizedRoute(WireModel):
    """Trip service output for one request; unknown keys are preserved."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    path: list[tuple[float, float]] = Field(..., min_length=1)
    route: Any = None


class RouteProfile(WireModel):
    count: int = Field(..., ge=0)
    total: float
    mean: float
    min: float
    max: float
    p50: float
    p90: float
    cvar95: float
    riskiest_index: int | None = None


class MergedRoute(RouteProfile):
    risk_weight: float | None = None
    # Every search weight that produced this path; two entries when both collapsed.
    risk_weights: list[float] = Field(default_factory=list)
    route: Any = None
    path: list[tuple[float, float]]


class RiskRequest(BaseModel):
    point: Any = None


class RiskResponse(BaseModel):
    risk: Any


class ErrorDetail(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    trip_service_configured: bool
    incident_count: int
