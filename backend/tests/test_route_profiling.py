from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from risk_router.errors import InvalidRouteInput
from risk_router.models import RouteProfile
from risk_router.route_profiler import RouteProfiler, cvar, quantile
from risk_router.route_profiling import profile_paths, profile_routes, validate_route_inputs


class LatitudeScorer:
    """risk = lat + 1, so [[0,0],[0,1],[0,2]] scores [1,2,3]. First route resolves last."""

    def __init__(self, *, fail_on_len: int | None = None) -> None:
        self.fail_on_len = fail_on_len
        self.started = 0
        self.completed = 0

    async def score_coordinate(self, coordinate: Any) -> float:
        return float(coordinate[1]) + 1.0

    async def score_coordinates(self, coordinates: Any) -> list[float]:
        self.started += 1
        await asyncio.sleep(0.02 if self.started == 1 else 0.0)
        if self.fail_on_len is not None and len(coordinates) == self.fail_on_len:
            raise ValueError("risk lookup timed out")
        self.completed += 1
        return [float(c[1]) + 1.0 for c in coordinates]

    async def decorate_feature(self, feature: dict[str, Any]) -> dict[str, Any]:
        return dict(feature)


class BarrierCheckingProfiler(RouteProfiler):
    def __init__(self, scorer: LatitudeScorer, expected: int) -> None:
        super().__init__()
        self.scorer = scorer
        self.expected = expected

    def profile(self, risks: Sequence[float]) -> RouteProfile:
        assert self.scorer.completed == self.expected
        return super().profile(risks)


def test_quantile_and_cvar_basics() -> None:
    assert quantile([], 0.5) == 0.0
    assert quantile([3.0, 1.0, 2.0], 0.5) == 2.0
    assert quantile([1.0, 2.0, 3.0], 0.9) == pytest.approx(2.8)
    assert cvar([1.0, 2.0, 3.0], alpha=0.95) == pytest.approx(2.95)
    assert cvar([4.0]) == 4.0


def test_profile_summarises_single_array() -> None:
    profile = RouteProfiler().profile([1, 2, 3])
    assert profile.count == 3
    assert profile.total == 6.0
    assert profile.mean == 2.0
    assert profile.min == 1.0
    assert profile.max == 3.0
    assert profile.p50 == 2.0
    assert profile.p90 == pytest.approx(2.8)
    assert profile.cvar95 == pytest.approx(2.95)
    assert profile.riskiest_index == 2


def test_profile_of_empty_array_is_zero() -> None:
    profile = RouteProfiler().profile([])
    assert profile.count == 0
    assert profile.total == 0.0
    assert profile.riskiest_index is None


@pytest.mark.parametrize(
    "value",
    [
        {"path": [[0, 0]]},
        "routes",
        None,
        [{"nopath": [[0, 0]]}],
        [{"path": []}],
        [{"path": "0,0"}],
        [[[0, 0], [0, 1]]],
    ],
)
def test_validate_route_inputs_rejects_malformed_input(value: object) -> None:
    with pytest.raises(InvalidRouteInput, match="Input must be an array of objects with key path."):
        validate_route_inputs(value)


def test_profile_routes_example_single_route() -> None:
    scorer = LatitudeScorer()
    out = asyncio.run(profile_routes([{"path": [[0, 0], [0, 1], [0, 2]]}], scorer, RouteProfiler()))
    assert len(out) == 1
    assert out[0] == RouteProfiler().profile([1, 2, 3])


def test_profile_routes_keeps_input_order_and_waits_for_all_risk_arrays() -> None:
    scorer = LatitudeScorer()
    routes = [
        {"path": [[0, 0], [0, 1]]},
        {"path": [[0, 5]]},
        {"path": [[0, 2], [0, 3], [0, 4]], "name": "extra keys are ignored"},
    ]
    out = asyncio.run(profile_routes(routes, scorer, BarrierCheckingProfiler(scorer, expected=3)))

    assert [p.count for p in out] == [2, 1, 3]
    assert [p.max for p in out] == [2.0, 6.0, 5.0]


def test_profile_routes_is_idempotent_with_deterministic_scorer() -> None:
    routes = [{"path": [[0, 0], [0, 1]]}, {"path": [[0, 3], [0, 1], [0, 2]]}]
    first = asyncio.run(profile_routes(routes, LatitudeScorer(), RouteProfiler()))
    second = asyncio.run(profile_routes(routes, LatitudeScorer(), RouteProfiler()))
    assert first == second


def test_profile_paths_fails_whole_batch() -> None:
    with pytest.raises(ValueError, match="risk lookup timed out"):
        asyncio.run(
            profile_paths([[(0.0, 0.0)], [(0.0, 1.0), (0.0, 2.0)]], LatitudeScorer(fail_on_len=2), RouteProfiler())
        )
