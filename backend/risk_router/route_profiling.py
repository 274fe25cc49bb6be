from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .errors import InvalidRouteInput
from .fanout import gather_all
from .geo import Path, to_path
from .models import RouteProfile
from .risk_gateway import RiskScorer


class Profiler(Protocol):
    def profile(self, risks: Sequence[float]) -> RouteProfile: ...


def validate_route_inputs(value: Any) -> list[Path]:
    """Extract the `path` of every route descriptor, rejecting anything else."""
    if not isinstance(value, (list, tuple)):
        raise InvalidRouteInput(details={"input_type": type(value).__name__})

    paths: list[Path] = []
    for idx, route in enumerate(value):
        raw = route.get("path") if isinstance(route, Mapping) else None
        if not isinstance(raw, (list, tuple)) or not raw:
            raise InvalidRouteInput(details={"route_index": idx})
        paths.append(to_path(raw))
    return paths


async def profile_paths(paths: Sequence[Path], scorer: RiskScorer, profiler: Profiler) -> list[RouteProfile]:
    # Every risk array must resolve before any profile is built.
    risk_arrays = await gather_all(scorer.score_coordinates(p) for p in paths)
    return [profiler.profile(risks) for risks in risk_arrays]


async def profile_routes(value: Any, scorer: RiskScorer, profiler: Profiler) -> list[RouteProfile]:
    return await profile_paths(validate_route_inputs(value), scorer, profiler)
