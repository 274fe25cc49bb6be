from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Final

import httpx
from pydantic import ValidationError

from .errors import TripServiceNotConfigured
from .models import RealizedRoute, TripRouteRequest
from .settings import Settings


class TripServiceError(RuntimeError):
    reason_code = "trip_service_failed"


class TripServiceRetryableError(TripServiceError):
    """A trip service error that is likely transient and safe to retry."""


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class TripServiceConfig:
    """Where the trip service lives. An empty base_url is the unconfigured state."""

    base_url: str = ""
    max_retries: int = 3
    timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, s: Settings) -> "TripServiceConfig":
        return cls(base_url=s.trip_service_url, max_retries=s.trip_service_max_retries, timeout_s=s.trip_service_timeout_s)

    @property
    def configured(self) -> bool:
        return bool(self.base_url.strip())

    def require(self) -> str:
        if not self.configured:
            raise TripServiceNotConfigured()
        return self.base_url.rstrip("/")


def _format_trip_error(resp: httpx.Response) -> str:
    """Best-effort decode of `{error: {message}}` / `{message}` payloads."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        err = data.get("error")
        message = err.get("message") if isinstance(err, dict) else data.get("message")
        if message:
            return f"Trip service {resp.status_code}: {message}"

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"Trip service {resp.status_code}: {body}"
    return f"Trip service HTTP {resp.status_code}"


class TripServiceClient:
    def __init__(self, config: TripServiceConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = config.require()
        self.max_retries = max(1, int(config.max_retries))
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_s, connect=5.0),
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post_routes(self, payload: list[dict[str, Any]]) -> Any:
        url = f"{self.base_url}/routes"
        last_err: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                resp = await self._client.post(url, json=payload)
                if resp.status_code in _RETRYABLE_STATUS:
                    raise TripServiceRetryableError(_format_trip_error(resp))
                if resp.status_code >= 400:
                    # Request errors will not improve on retry.
                    raise TripServiceError(_format_trip_error(resp))
                return resp.json()
            except TripServiceRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                last_err = e
            except ValueError as e:
                raise TripServiceError(f"Trip service returned invalid JSON: {e}") from e

            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        # httpx exceptions can stringify to "" (e.g. some timeouts), so include the type.
        msg = str(last_err).strip() if last_err is not None else ""
        detail = f"{type(last_err).__name__}: {msg}" if msg else repr(last_err)
        raise TripServiceError(
            f"Trip service request failed after {self.max_retries} attempts (base={self.base_url}): {detail}"
        )

    async def realize_routes(self, requests: Sequence[TripRouteRequest]) -> list[RealizedRoute]:
        """POST candidate paths to `/routes`; one realized route per request, same order."""
        payload = [r.model_dump(by_alias=True, exclude_none=True, mode="json") for r in requests]
        data = await self._post_routes(payload)

        if not isinstance(data, list):
            raise TripServiceError("Trip service response must be a JSON array of routes")
        if len(data) != len(requests):
            raise TripServiceError(
                f"Trip service returned {len(data)} routes for {len(requests)} requested paths"
            )
        try:
            return [RealizedRoute.model_validate(item) for item in data]
        except ValidationError as e:
            raise TripServiceError(f"Trip service returned a malformed route: {e.errors()[0]['msg']}") from e
