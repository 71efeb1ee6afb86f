"""Async JSON client for the dashboard's market data endpoints."""

from __future__ import annotations

import logging
from urllib.parse import quote
from typing import Any

import httpx

from finsight_agent.config import MarketDataConfig
from finsight_agent.errors import MarketDataError

logger = logging.getLogger(__name__)


class MarketDataClient:
    """Thin wrapper over `httpx.AsyncClient` that returns decoded JSON.

    Every method raises `MarketDataError` on transport failures, non-2xx
    responses, or bodies that are not JSON. Callers decide whether a failure
    is fatal for their tool.
    """

    def __init__(
        self,
        config: MarketDataConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or MarketDataConfig()
        self._client = http_client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_quote(self, symbol: str) -> dict[str, Any]:
        return await self._get_object(f"/api/stocks/{_segment(symbol)}")

    async def get_chart(self, symbol: str, timeframe: str | None = None) -> list[dict[str, Any]]:
        params = {"timeframe": timeframe} if timeframe else None
        return await self._get_list(f"/api/stocks/{_segment(symbol)}/chart", params=params)

    async def get_portfolio(self, user_id: str) -> list[dict[str, Any]]:
        return await self._get_list("/api/portfolio", params={"userId": user_id})

    async def get_watchlist(self, user_id: str) -> list[dict[str, Any]]:
        return await self._get_list("/api/watchlist", params={"userId": user_id})

    async def get_sentiment(self, symbol: str) -> Any:
        return await self._get_json("/api/ai/sentiment", params={"symbol": symbol})

    async def get_news(self, symbol: str | None = None, limit: int = 5) -> Any:
        path = f"/api/news/{_segment(symbol)}" if symbol else "/api/news/market"
        return await self._get_json(path, params={"limit": limit})

    async def _get_object(self, path: str) -> dict[str, Any]:
        payload = await self._get_json(path)
        if not isinstance(payload, dict):
            raise MarketDataError(f"Expected a JSON object from {path}")
        return payload

    async def _get_list(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        payload = await self._get_json(path, params=params)
        if not isinstance(payload, list):
            raise MarketDataError(f"Expected a JSON array from {path}")
        return payload

    async def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning(f"Market data request to {path} failed: {exc}")
            raise MarketDataError(f"Request to {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise MarketDataError(
                f"Failed to fetch {path}: HTTP {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise MarketDataError(f"Invalid JSON from {path}") from exc


def _segment(value: str) -> str:
    if not value or set(value) == {"."}:
        raise MarketDataError(f"Invalid path segment: {value!r}")
    return quote(value, safe="")
