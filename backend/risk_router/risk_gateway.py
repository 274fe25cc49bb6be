from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, Union

from .errors import UnexpectedInputFormat
from .fanout import gather_all
from .geo import looks_like_coordinate


class RiskScorer(Protocol):
    async def score_coordinate(self, coordinate: Any) -> float: ...

    async def score_coordinates(self, coordinates: Any) -> list[float]: ...

    async def decorate_feature(self, feature: Mapping[str, Any]) -> dict[str, Any]: ...


@dataclass(frozen=True)
class SingleCoordinate:
    coordinate: Any


@dataclass(frozen=True)
class CoordinateBatch:
    coordinates: list[Any]


@dataclass(frozen=True)
class SingleFeature:
    feature: Mapping[str, Any]


@dataclass(frozen=True)
class FeatureBatch:
    features: list[Mapping[str, Any]]


RiskInput = Union[SingleCoordinate, CoordinateBatch, SingleFeature, FeatureBatch]


def classify_risk_input(value: Any) -> RiskInput:
    """Decide which of the four accepted shapes `value` is, checked in priority order."""
    if looks_like_coordinate(value):
        return SingleCoordinate(coordinate=value)
    if isinstance(value, (list, tuple)) and value:
        items = list(value)
        if all(looks_like_coordinate(v) for v in items):
            return CoordinateBatch(coordinates=items)
        if all(isinstance(v, Mapping) for v in items):
            return FeatureBatch(features=items)
    if isinstance(value, Mapping):
        return SingleFeature(feature=value)
    raise UnexpectedInputFormat(details={"input_type": type(value).__name__})


async def assess_risk(value: Any, scorer: RiskScorer) -> Any:
    """Score or decorate `value`; the result has the same shape as the input."""
    shape = classify_risk_input(value)
    if isinstance(shape, SingleCoordinate):
        return await scorer.score_coordinate(shape.coordinate)
    if isinstance(shape, CoordinateBatch):
        return await gather_all(scorer.score_coordinate(c) for c in shape.coordinates)
    if isinstance(shape, SingleFeature):
        return await scorer.decorate_feature(shape.feature)
    return await gather_all(scorer.decorate_feature(f) for f in shape.features)
