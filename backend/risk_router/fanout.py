from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from typing import TypeVar

T = TypeVar("T")


async def gather_all(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Run every awaitable concurrently and join on all of them.

    Results come back in input order regardless of completion order. The first
    exception propagates as soon as it is raised; siblings still in flight are not
    cancelled and finish in the background with their results discarded.
    """
    items = list(awaitables)
    if not items:
        return []
    return list(await asyncio.gather(*items))
