from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest
from fastapi.testclient import TestClient

import risk_router.main as main_module
from risk_router.main import app, path_orchestrator, risk_surface, route_profiler
from risk_router.models import CandidatePath, RealizedRoute, TripRouteRequest
from risk_router.path_orchestrator import RiskPathOrchestrator
from risk_router.risk_surface import Incident, RiskSurface
from risk_router.route_profiler import RouteProfiler
from risk_router.trip_service import TripServiceConfig, TripServiceError

PATH_QUERY = {
    "origin[lng]": -0.1,
    "origin[lat]": 51.5,
    "destination[lng]": -0.12,
    "destination[lat]": 51.51,
}


class StraightPathfinder:
    def __init__(self) -> None:
        self.calls = 0

    async def search(self, origin: Any, destination: Any, risk_weight: float) -> CandidatePath:
        self.calls += 1
        return CandidatePath(path=[origin, destination], risk_weight=risk_weight)


class EchoTripClient:
    def __init__(self, *, error: str | None = None) -> None:
        self.error = error
        self.requests: list[TripRouteRequest] = []

    async def realize_routes(self, requests: Sequence[TripRouteRequest]) -> list[RealizedRoute]:
        self.requests.extend(requests)
        if self.error:
            raise TripServiceError(self.error)
        return [RealizedRoute(path=r.path, route={"summary": "A1"}) for r in requests]


SURFACE = RiskSurface([Incident(lon=-0.1, lat=51.5, severity=2.0)], bandwidth_m=250.0)


@pytest.fixture
def pathfinder() -> StraightPathfinder:
    return StraightPathfinder()


def _client(orchestrator: RiskPathOrchestrator | None = None) -> TestClient:
    app.dependency_overrides[risk_surface] = lambda: SURFACE
    app.dependency_overrides[route_profiler] = lambda: RouteProfiler()
    if orchestrator is not None:
        app.dependency_overrides[path_orchestrator] = lambda: orchestrator
    return TestClient(app)


def _orchestrator(pathfinder: StraightPathfinder, trip: EchoTripClient, *, base_url: str = "http://trip.test") -> RiskPathOrchestrator:
    return RiskPathOrchestrator(
        config=TripServiceConfig(base_url=base_url),
        pathfinder=pathfinder,
        trip_client=trip,
        scorer=SURFACE,
        profiler=RouteProfiler(),
    )


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


def test_risk_single_coordinate() -> None:
    resp = _client().post("/risk", json={"point": [-0.1, 51.5]})
    assert resp.status_code == 200
    assert resp.json()["risk"] == pytest.approx(2.0)


def test_risk_batch_and_feature_shapes() -> None:
    client = _client()
    batch = client.post("/risk", json={"point": [[-0.1, 51.5], [10.0, 10.0]]}).json()["risk"]
    assert batch[0] == pytest.approx(2.0)
    assert batch[1] == 0.0

    feature = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [-0.1, 51.5]}, "properties": {"id": "a"}}
    single = client.post("/risk", json={"point": feature}).json()["risk"]
    assert single["properties"] == {"id": "a", "risk": pytest.approx(2.0)}

    many = client.post("/risk", json={"point": [feature, feature]}).json()["risk"]
    assert len(many) == 2


def test_risk_rejects_unexpected_input() -> None:
    resp = _client().post("/risk", json={"point": "somewhere"})
    assert resp.status_code == 400
    assert resp.json() == {"error": {"message": "Unexpected input format."}}


def test_risk_downstream_error_message_passes_through() -> None:
    resp = _client().post("/risk", json={"point": [0.0, 123.0]})
    assert resp.status_code == 400
    assert "latitude 123.0 out of range" in resp.json()["error"]["message"]


def test_risk_path_profiles_each_route_in_order() -> None:
    resp = _client().post(
        "/risk/path",
        json=[{"path": [[10.0, 10.0], [10.0, 10.1]]}, {"path": [[-0.1, 51.5]]}],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert [p["count"] for p in body] == [2, 1]
    assert body[0]["max"] == 0.0
    assert body[1]["max"] == pytest.approx(2.0)
    assert body[1]["riskiestIndex"] == 0


def test_risk_path_rejects_non_array() -> None:
    resp = _client().post("/risk/path", json={"path": [[0, 0]]})
    assert resp.status_code == 400
    assert resp.json() == {"error": {"message": "Input must be an array of objects with key path."}}


def test_find_path_merges_profile_with_realized_route(pathfinder: StraightPathfinder) -> None:
    trip = EchoTripClient()
    resp = _client(_orchestrator(pathfinder, trip)).get("/path", params=PATH_QUERY)

    assert resp.status_code == 200
    body = resp.json()
    # both searches return the straight line, so they collapse to one route
    assert len(trip.requests) == 1
    assert len(body) == 1
    route = body[0]
    assert route["riskWeight"] == 2.0
    assert route["riskWeights"] == [2.0, 10.0]
    assert route["route"] == {"summary": "A1"}
    assert route["path"] == [[-0.1, 51.5], [-0.12, 51.51]]
    assert route["count"] == 2
    assert route["max"] == pytest.approx(2.0)


def test_find_path_without_trip_service_is_a_configuration_fault(pathfinder: StraightPathfinder) -> None:
    trip = EchoTripClient()
    resp = _client(_orchestrator(pathfinder, trip, base_url="")).get("/path", params=PATH_QUERY)

    assert resp.status_code == 503
    assert resp.json() == {"error": {"message": "No URL for the Trip Service set in TRIP_SERVICE_URL"}}
    assert pathfinder.calls == 0
    assert trip.requests == []


def test_find_path_downstream_failure(pathfinder: StraightPathfinder) -> None:
    trip = EchoTripClient(error="Trip service 500: boom")
    resp = _client(_orchestrator(pathfinder, trip)).get("/path", params=PATH_QUERY)
    assert resp.status_code == 400
    assert resp.json() == {"error": {"message": "Trip service 500: boom"}}


def test_find_path_requires_all_query_parameters(pathfinder: StraightPathfinder) -> None:
    query = dict(PATH_QUERY)
    query.pop("destination[lat]")
    resp = _client(_orchestrator(pathfinder, EchoTripClient())).get("/path", params=query)
    assert resp.status_code == 400
    assert "destination[lat]" in resp.json()["error"]["message"]
    assert pathfinder.calls == 0


def test_find_path_rejects_out_of_range_origin(pathfinder: StraightPathfinder) -> None:
    query = dict(PATH_QUERY, **{"origin[lat]": 95.0})
    resp = _client(_orchestrator(pathfinder, EchoTripClient())).get("/path", params=query)
    assert resp.status_code == 400
    message = resp.json()["error"]["message"]
    assert message.startswith("query.origin[lat]: ")
    assert "90" in message
    assert "\n" not in message
    assert pathfinder.calls == 0


@pytest.mark.parametrize(
    "query",
    [
        dict(PATH_QUERY, **{"origin[lng]": 500.0}),
        {"origin[lng]": -0.1},
        {},
    ],
)
def test_unconfigured_trip_service_wins_over_bad_query(pathfinder: StraightPathfinder, query: dict[str, float]) -> None:
    trip = EchoTripClient()
    resp = _client(_orchestrator(pathfinder, trip, base_url="")).get("/path", params=query)

    assert resp.status_code == 503
    assert resp.json() == {"error": {"message": "No URL for the Trip Service set in TRIP_SERVICE_URL"}}
    assert pathfinder.calls == 0
    assert trip.requests == []


def test_dependencies_report_uninitialised_state(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delattr(app.state, "surface", raising=False)
    resp = TestClient(app).post("/risk", json={"point": [0, 0]})
    assert resp.status_code == 503
    assert resp.json() == {"error": {"message": "Risk surface not initialised"}}


@pytest.mark.parametrize("url, configured", [("", False), ("http://trip.test", True)])
def test_lifespan_wires_services_from_settings(monkeypatch: pytest.MonkeyPatch, url: str, configured: bool) -> None:
    monkeypatch.setattr(main_module.settings, "trip_service_url", url)
    monkeypatch.setattr(main_module.settings, "risk_incidents_path", "")

    with TestClient(app) as client:
        health = client.get("/health")
        assert health.status_code == 200
        assert health.json() == {"status": "ok", "trip_service_configured": configured, "incident_count": 0}

        risk = client.post("/risk", json={"point": [0, 0]})
        assert risk.json() == {"risk": 0.0}
