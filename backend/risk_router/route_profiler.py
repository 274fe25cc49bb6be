from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import numpy as np

from .models import RouteProfile


def quantile(values: Sequence[float], q: float) -> float:
    """Linearly interpolated quantile; 0.0 for an empty array."""
    if len(values) == 0:
        return 0.0
    return float(np.quantile(np.asarray(values, dtype=float), min(1.0, max(0.0, float(q)))))


def cvar(values: Iterable[float], *, alpha: float = 0.95) -> float:
    """Mean of the upper (1 - alpha) tail of the interpolated quantile function."""
    arr = np.sort(np.fromiter((float(v) for v in values), dtype=float))
    if arr.size == 0:
        return 0.0
    level = min(1.0, max(0.0, float(alpha)))
    if arr.size == 1 or level >= 1.0:
        return float(arr[-1])

    # the quantile curve is piecewise linear between sample ranks, so trapezoids are exact
    ranks = np.linspace(0.0, 1.0, arr.size)
    knots = np.unique(np.concatenate(([level], ranks[(ranks > level) & (ranks < 1.0)], [1.0])))
    curve = np.quantile(arr, knots)
    tail = float(np.sum((curve[1:] + curve[:-1]) * np.diff(knots))) / 2.0 / (1.0 - level)
    return max(tail, float(curve[0]))


class RouteProfiler:
    """Reduces a per-coordinate risk array to route-level statistics."""

    def __init__(self, *, tail_alpha: float = 0.95, precision: int = 6) -> None:
        self.tail_alpha = tail_alpha
        self.precision = precision

    def profile(self, risks: Sequence[float]) -> RouteProfile:
        values = [float(r) for r in risks]
        if not values:
            return RouteProfile(count=0, total=0.0, mean=0.0, min=0.0, max=0.0, p50=0.0, p90=0.0, cvar95=0.0)

        total = math.fsum(values)
        peak = max(values)
        r = self.precision
        return RouteProfile(
            count=len(values),
            total=round(total, r),
            mean=round(total / len(values), r),
            min=round(min(values), r),
            max=round(peak, r),
            p50=round(quantile(values, 0.5), r),
            p90=round(quantile(values, 0.9), r),
            cvar95=round(cvar(values, alpha=self.tail_alpha), r),
            riskiest_index=values.index(peak),
        )
