from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from .fanout import gather_all
from .geo import Coordinate, paths_equal, to_path
from .models import CandidatePath, MergedRoute, RealizedRoute, TripRouteRequest
from .risk_gateway import RiskScorer
from .route_profiling import Profiler, profile_paths
from .trip_service import TripServiceConfig

LOW_RISK_WEIGHT = 2.0
HIGH_RISK_WEIGHT = 10.0


class Pathfinder(Protocol):
    async def search(self, origin: Coordinate, destination: Coordinate, risk_weight: float) -> CandidatePath: ...


class TripClient(Protocol):
    async def realize_routes(self, requests: Sequence[TripRouteRequest]) -> list[RealizedRoute]: ...


@dataclass(frozen=True)
class CandidateGroup:
    """A distinct path plus every search result that produced it."""

    path: list[tuple[float, float]]
    members: tuple[CandidatePath, ...]

    @property
    def risk_weight(self) -> float:
        return self.members[0].risk_weight

    @property
    def risk_weights(self) -> list[float]:
        return [m.risk_weight for m in self.members]


def dedupe_candidates(candidates: Sequence[CandidatePath]) -> list[CandidateGroup]:
    """Collapse candidates with element-wise identical paths, keeping first-seen order."""
    groups: list[CandidateGroup] = []
    for cand in candidates:
        for i, group in enumerate(groups):
            if paths_equal(group.path, cand.path):
                groups[i] = CandidateGroup(path=group.path, members=(*group.members, cand))
                break
        else:
            groups.append(CandidateGroup(path=list(cand.path), members=(cand,)))
    return groups


class RiskPathOrchestrator:
    """Finds risk-weighted paths: search twice, dedupe, realize, profile, merge."""

    def __init__(
        self,
        *,
        config: TripServiceConfig,
        pathfinder: Pathfinder,
        trip_client: TripClient | None,
        scorer: RiskScorer,
        profiler: Profiler,
        risk_weights: tuple[float, float] = (LOW_RISK_WEIGHT, HIGH_RISK_WEIGHT),
    ) -> None:
        self.config = config
        self.pathfinder = pathfinder
        self.trip_client = trip_client
        self.scorer = scorer
        self.profiler = profiler
        self.risk_weights = risk_weights

    async def find_candidate_paths(self, origin: Coordinate, destination: Coordinate) -> list[CandidateGroup]:
        found = await gather_all(self.pathfinder.search(origin, destination, w) for w in self.risk_weights)
        return dedupe_candidates(found)

    async def find_path(self, origin: Coordinate, destination: Coordinate) -> list[MergedRoute]:
        self.config.require()
        if self.trip_client is None:
            raise RuntimeError("Trip service client not initialised")

        groups = await self.find_candidate_paths(origin, destination)
        requests = [TripRouteRequest(path=g.path, risk_weight=g.risk_weight) for g in groups]
        realized = await self.trip_client.realize_routes(requests)

        profiles = await profile_paths([to_path(r.path) for r in realized], self.scorer, self.profiler)
        return [
            MergedRoute(
                **profile.model_dump(),
                risk_weight=group.risk_weight,
                risk_weights=group.risk_weights,
                route=route.route,
                path=route.path,
            )
            for profile, group, route in zip(profiles, groups, realized, strict=True)
        ]
