from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import TripServiceNotConfigured
from .logging_utils import elapsed_ms, log_event, log_failure
from .models import ErrorResponse, HealthResponse, LngLat, MergedRoute, RiskRequest, RiskResponse, RouteProfile
from .path_orchestrator import RiskPathOrchestrator
from .pathfinder import GridPathfinder
from .risk_gateway import assess_risk
from .risk_surface import RiskSurface
from .route_profiler import RouteProfiler
from .route_profiling import profile_routes
from .settings import settings
from .trip_service import TripServiceClient, TripServiceConfig


def build_risk_surface() -> RiskSurface:
    if settings.risk_incidents_path:
        return RiskSurface.from_file(settings.risk_incidents_path, bandwidth_m=settings.risk_bandwidth_m)
    return RiskSurface([], bandwidth_m=settings.risk_bandwidth_m)


@asynccontextmanager
async def lifespan(app: FastAPI):
    surface = build_risk_surface()
    profiler = RouteProfiler()
    config = TripServiceConfig.from_settings(settings)
    trip_client = TripServiceClient(config) if config.configured else None
    if trip_client is None:
        log_event("trip_service_unconfigured", level=logging.WARNING, setting="TRIP_SERVICE_URL")

    app.state.surface = surface
    app.state.profiler = profiler
    app.state.orchestrator = RiskPathOrchestrator(
        config=config,
        pathfinder=GridPathfinder(
            surface,
            grid_size=settings.pathfinder_grid_size,
            padding_ratio=settings.pathfinder_padding_ratio,
        ),
        trip_client=trip_client,
        scorer=surface,
        profiler=profiler,
        risk_weights=(settings.risk_weight_low, settings.risk_weight_high),
    )
    log_event("startup", incident_count=surface.incident_count, trip_service_configured=config.configured)
    yield
    if trip_client is not None:
        await trip_client.aclose()


app = FastAPI(title="Risk-Aware Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message}})


@app.exception_handler(StarletteHTTPException)
async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return _error(400, f"{where}: {message}" if where else message)


def risk_surface(request: Request) -> RiskSurface:
    surface: RiskSurface | None = getattr(request.app.state, "surface", None)
    if surface is None:
        raise HTTPException(status_code=503, detail="Risk surface not initialised")
    return surface


def route_profiler(request: Request) -> RouteProfiler:
    profiler: RouteProfiler | None = getattr(request.app.state, "profiler", None)
    if profiler is None:
        raise HTTPException(status_code=503, detail="Route profiler not initialised")
    return profiler


def path_orchestrator(request: Request) -> RiskPathOrchestrator:
    orchestrator: RiskPathOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Path orchestrator not initialised")
    return orchestrator


OrchestratorDep = Annotated[RiskPathOrchestrator, Depends(path_orchestrator)]


def configured_orchestrator(orchestrator: OrchestratorDep) -> RiskPathOrchestrator:
    # dependencies resolve before query validation, so a missing URL wins over a bad query
    if not orchestrator.config.configured:
        exc = TripServiceNotConfigured()
        log_failure("path_request", exc)
        raise HTTPException(status_code=503, detail=str(exc))
    return orchestrator


SurfaceDep = Annotated[RiskSurface, Depends(risk_surface)]
ProfilerDep = Annotated[RouteProfiler, Depends(route_profiler)]
ConfiguredOrchestratorDep = Annotated[RiskPathOrchestrator, Depends(configured_orchestrator)]

_ERRORS: dict[int | str, dict[str, Any]] = {400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Risk-aware router is running. Visit /docs for the API UI.", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse)
async def health(surface: SurfaceDep, orchestrator: OrchestratorDep) -> HealthResponse:
    return HealthResponse(
        trip_service_configured=orchestrator.config.configured,
        incident_count=surface.incident_count,
    )


@app.post("/risk", response_model=RiskResponse, responses=_ERRORS)
async def get_risk(req: RiskRequest, surface: SurfaceDep):
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    try:
        risk = await assess_risk(req.point, surface)
    except Exception as e:
        log_failure("risk_request", e, request_id=request_id, duration_ms=elapsed_ms(t0))
        return _error(400, str(e))

    log_event("risk_request", request_id=request_id, ok=True, duration_ms=elapsed_ms(t0))
    return RiskResponse(risk=risk)


@app.post("/risk/path", response_model=list[RouteProfile], responses=_ERRORS)
async def get_risk_path(
    payload: Annotated[Any, Body()],
    surface: SurfaceDep,
    profiler: ProfilerDep,
):
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    try:
        profiles = await profile_routes(payload, surface, profiler)
    except Exception as e:
        log_failure("risk_path_request", e, request_id=request_id, duration_ms=elapsed_ms(t0))
        return _error(400, str(e))

    log_event(
        "risk_path_request",
        request_id=request_id,
        ok=True,
        route_count=len(profiles),
        duration_ms=elapsed_ms(t0),
    )
    return profiles


@app.get("/path", response_model=list[MergedRoute], responses=_ERRORS)
async def find_path(
    orchestrator: ConfiguredOrchestratorDep,
    origin_lng: Annotated[float, Query(alias="origin[lng]", ge=-180, le=180)],
    origin_lat: Annotated[float, Query(alias="origin[lat]", ge=-90, le=90)],
    destination_lng: Annotated[float, Query(alias="destination[lng]", ge=-180, le=180)],
    destination_lat: Annotated[float, Query(alias="destination[lat]", ge=-90, le=90)],
):
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    try:
        origin = LngLat(lng=origin_lng, lat=origin_lat)
        destination = LngLat(lng=destination_lng, lat=destination_lat)
        routes = await orchestrator.find_path(origin.as_coordinate(), destination.as_coordinate())
    except TripServiceNotConfigured as e:
        log_failure("path_request", e, request_id=request_id, duration_ms=elapsed_ms(t0))
        return _error(503, str(e))
    except Exception as e:
        log_failure("path_request", e, request_id=request_id, duration_ms=elapsed_ms(t0))
        return _error(400, str(e))

    log_event(
        "path_request",
        request_id=request_id,
        ok=True,
        origin=[origin_lng, origin_lat],
        destination=[destination_lng, destination_lat],
        route_count=len(routes),
        risk_weights=[r.risk_weights for r in routes],
        duration_ms=elapsed_ms(t0),
    )
    return routes
