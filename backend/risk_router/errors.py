from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

REASON_CODES: frozenset[str] = frozenset(
    {
        "unexpected_input_format",
        "invalid_route_input",
        "invalid_coordinate",
        "no_path",
        "risk_surface_unavailable",
        "trip_service_unconfigured",
        "trip_service_failed",
    }
)


@dataclass(eq=False)
class RiskRouterError(ValueError):
    """Base error: `message` is what callers see, `reason_code` is for logs and tests."""

    message: str
    reason_code: str = "unexpected_input_format"
    details: dict[str, Any] | None = field(default=None)

    def __str__(self) -> str:
        return self.message


class UnexpectedInputFormat(RiskRouterError):
    def __init__(self, message: str = "Unexpected input format.", details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, reason_code="unexpected_input_format", details=details)


class InvalidRouteInput(RiskRouterError):
    def __init__(
        self,
        message: str = "Input must be an array of objects with key path.",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, reason_code="invalid_route_input", details=details)


class InvalidCoordinate(RiskRouterError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, reason_code="invalid_coordinate", details=details)


class PathNotFound(RiskRouterError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, reason_code="no_path", details=details)


class RiskSurfaceUnavailable(RiskRouterError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, reason_code="risk_surface_unavailable", details=details)


class TripServiceNotConfigured(RuntimeError):
    """The service is misconfigured; path finding must not start."""

    reason_code = "trip_service_unconfigured"

    def __init__(self, message: str = "No URL for the Trip Service set in TRIP_SERVICE_URL") -> None:
        super().__init__(message)


def normalize_reason_code(reason_code: str, *, default: str = "unexpected_input_format") -> str:
    code = str(reason_code or "").strip()
    if code in REASON_CODES:
        return code
    return default
