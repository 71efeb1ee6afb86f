"""Market data tool implementations for the assistant."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, StringConstraints

from finsight_agent.agent.registry import ToolSpec
from finsight_agent.config import MarketDataConfig
from finsight_agent.errors import MarketDataError
from finsight_agent.market import indicators
from finsight_agent.market.client import MarketDataClient
from finsight_agent.market.hours import is_market_open
from finsight_agent.types import ToolKind

logger = logging.getLogger(__name__)

QUOTE_FIELDS = (
    "symbol",
    "price",
    "change",
    "changePercent",
    "volume",
    "high",
    "low",
    "open",
    "previousClose",
    "lastUpdated",
)
FUNDAMENTAL_FIELDS = ("symbol", "price", "change", "changePercent", "volume")


# Ticker-like symbols only: letters, digits and the `.^=-` used by share
# classes, indices and futures. Must not start with a dot.
SYMBOL_PATTERN = r"^[A-Z0-9^][A-Z0-9.^=-]{0,14}$"


def _normalize_symbol(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


Symbol = Annotated[
    str,
    StringConstraints(pattern=SYMBOL_PATTERN),
    BeforeValidator(_normalize_symbol),
]


class SymbolInput(BaseModel):
    symbol: Symbol


class ChartInput(SymbolInput):
    timeframe: str = "1M"


class PortfolioInput(BaseModel):
    user_id: str = Field(min_length=1)


class NewsInput(BaseModel):
    symbol: Symbol | None = None
    limit: int = Field(default=5, ge=1, le=50)


class ComparisonInput(BaseModel):
    symbols: list[Symbol] = Field(min_length=1)


class OverviewInput(BaseModel):
    pass


class ToolCatalogEntry(BaseModel):
    """One row of the tool configuration source."""

    name: str
    description: str
    is_active: bool = True


DEFAULT_TOOL_CATALOG: list[ToolCatalogEntry] = [
    ToolCatalogEntry(
        name="stock_price",
        description="Get the current quote for a stock symbol.",
    ),
    ToolCatalogEntry(
        name="stock_chart",
        description="Get recent historical price points for a symbol and timeframe.",
    ),
    ToolCatalogEntry(
        name="portfolio_analysis",
        description="Summarize the user's portfolio value, profit and watchlist.",
    ),
    ToolCatalogEntry(
        name="market_sentiment",
        description="Get the news sentiment score for a symbol.",
    ),
    ToolCatalogEntry(
        name="technical_indicators",
        description="Compute SMA, EMA, RSI, MACD and Bollinger bands for a symbol.",
    ),
    ToolCatalogEntry(
        name="fundamental_analysis",
        description="Get a fundamental snapshot for a symbol.",
    ),
    ToolCatalogEntry(
        name="market_news",
        description="Get the latest news for a symbol or the whole market.",
    ),
    ToolCatalogEntry(
        name="stock_comparison",
        description="Compare quotes and daily performance of several symbols.",
    ),
    ToolCatalogEntry(
        name="market_overview",
        description="Get major index quotes and the market session status.",
    ),
]

_ARGS_SCHEMAS: dict[ToolKind, type[BaseModel]] = {
    ToolKind.STOCK_PRICE: SymbolInput,
    ToolKind.STOCK_CHART: ChartInput,
    ToolKind.PORTFOLIO_ANALYSIS: PortfolioInput,
    ToolKind.MARKET_SENTIMENT: SymbolInput,
    ToolKind.TECHNICAL_INDICATORS: SymbolInput,
    ToolKind.FUNDAMENTAL_ANALYSIS: SymbolInput,
    ToolKind.MARKET_NEWS: NewsInput,
    ToolKind.STOCK_COMPARISON: ComparisonInput,
    ToolKind.MARKET_OVERVIEW: OverviewInput,
}

_TAGS: dict[ToolKind, list[str]] = {
    ToolKind.STOCK_PRICE: ["quote"],
    ToolKind.STOCK_CHART: ["chart"],
    ToolKind.PORTFOLIO_ANALYSIS: ["portfolio", "user"],
    ToolKind.MARKET_SENTIMENT: ["sentiment"],
    ToolKind.TECHNICAL_INDICATORS: ["chart", "indicators"],
    ToolKind.FUNDAMENTAL_ANALYSIS: ["quote"],
    ToolKind.MARKET_NEWS: ["news"],
    ToolKind.STOCK_COMPARISON: ["quote", "comparison"],
    ToolKind.MARKET_OVERVIEW: ["index", "market"],
}


def load_tool_catalog(path: str | Path) -> list[ToolCatalogEntry]:
    """Read tool catalog rows from a JSON array file."""

    payload: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"Tool catalog must be a JSON array: {path}")
    return [ToolCatalogEntry.model_validate(item) for item in payload]


def build_market_tools(
    client: MarketDataClient,
    catalog: list[ToolCatalogEntry] | None = None,
    *,
    config: MarketDataConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> list[ToolSpec]:
    """Bind catalog rows to handlers.

    Tools:
    - `stock_price` / `fundamental_analysis`: quote snapshots.
    - `stock_chart`: the last N chart points.
    - `technical_indicators`: indicators over chart closes.
    - `portfolio_analysis`: portfolio totals plus watchlist.
    - `market_sentiment` / `market_news`: passthrough JSON.
    - `stock_comparison`: quotes for several symbols side by side.
    - `market_overview`: index quotes and session status.

    Catalog rows whose name is not a known tool are rejected with a warning.
    """

    settings = config or client.config
    now = clock or (lambda: datetime.now(timezone.utc))

    async def _stock_price(input_data: SymbolInput) -> dict[str, Any]:
        quote = await client.get_quote(input_data.symbol)
        return {field: quote.get(field) for field in QUOTE_FIELDS}

    async def _stock_chart(input_data: ChartInput) -> dict[str, Any]:
        points = await client.get_chart(input_data.symbol, input_data.timeframe)
        return {
            "symbol": input_data.symbol,
            "timeframe": input_data.timeframe,
            "data": points[-settings.chart_points :],
            "lastUpdated": now().isoformat(),
        }

    async def _portfolio_analysis(input_data: PortfolioInput) -> dict[str, Any]:
        portfolio, watchlist = await asyncio.gather(
            client.get_portfolio(input_data.user_id),
            client.get_watchlist(input_data.user_id),
            return_exceptions=True,
        )
        holdings = portfolio if isinstance(portfolio, list) else []
        watched = watchlist if isinstance(watchlist, list) else []

        total_value = sum(_as_float(item.get("totalValue")) or 0.0 for item in holdings)
        total_profit = sum(_as_float(item.get("profit")) or 0.0 for item in holdings)
        cost_basis = total_value - total_profit
        total_profit_percent = (
            (total_profit / cost_basis) * 100.0
            if total_value > 0 and cost_basis != 0
            else 0.0
        )
        return {
            "totalValue": total_value,
            "totalProfit": total_profit,
            "totalProfitPercent": total_profit_percent,
            "holdings": len(holdings),
            "watchlistCount": len(watched),
            "portfolio": holdings,
            "watchlist": watched,
        }

    async def _market_sentiment(input_data: SymbolInput) -> Any:
        return await client.get_sentiment(input_data.symbol)

    async def _technical_indicators(input_data: SymbolInput) -> dict[str, Any]:
        points = await client.get_chart(input_data.symbol)
        closes = [
            close
            for close in (_as_float(point.get("close")) for point in points)
            if close is not None
        ]
        if not closes:
            raise MarketDataError(f"No closing prices for {input_data.symbol}")

        macd = indicators.macd(closes)
        bands = indicators.bollinger_bands(closes)
        return {
            "symbol": input_data.symbol,
            "sma20": indicators.last(indicators.sma(closes, 20)),
            "sma50": indicators.last(indicators.sma(closes, 50)),
            "ema12": indicators.last(indicators.ema(closes, 12)),
            "rsi": indicators.last(indicators.rsi(closes)),
            "macd": indicators.last(macd.macd),
            "macdSignal": indicators.last(macd.signal),
            "macdHistogram": indicators.last(macd.histogram),
            "bollingerUpper": indicators.last(bands.upper),
            "bollingerMiddle": indicators.last(bands.middle),
            "bollingerLower": indicators.last(bands.lower),
            "volatility": indicators.volatility(closes),
            "currentPrice": closes[-1],
        }

    async def _fundamental_analysis(input_data: SymbolInput) -> dict[str, Any]:
        quote = await client.get_quote(input_data.symbol)
        return {field: quote.get(field) for field in FUNDAMENTAL_FIELDS}

    async def _market_news(input_data: NewsInput) -> Any:
        return await client.get_news(input_data.symbol, input_data.limit)

    async def _stock_comparison(input_data: ComparisonInput) -> dict[str, Any]:
        stocks = await _fetch_quotes(client, input_data.symbols)
        return {
            "symbols": input_data.symbols,
            "stocks": stocks,
            "comparison": [_comparison_row(stock) for stock in stocks],
        }

    async def _market_overview(input_data: OverviewInput) -> dict[str, Any]:
        del input_data
        return {
            "indices": await _fetch_quotes(client, settings.overview_indices),
            "marketStatus": is_market_open(now()),
            "lastUpdated": now().isoformat(),
        }

    handlers: dict[ToolKind, Callable[..., Any]] = {
        ToolKind.STOCK_PRICE: _stock_price,
        ToolKind.STOCK_CHART: _stock_chart,
        ToolKind.PORTFOLIO_ANALYSIS: _portfolio_analysis,
        ToolKind.MARKET_SENTIMENT: _market_sentiment,
        ToolKind.TECHNICAL_INDICATORS: _technical_indicators,
        ToolKind.FUNDAMENTAL_ANALYSIS: _fundamental_analysis,
        ToolKind.MARKET_NEWS: _market_news,
        ToolKind.STOCK_COMPARISON: _stock_comparison,
        ToolKind.MARKET_OVERVIEW: _market_overview,
    }

    specs: list[ToolSpec] = []
    for entry in catalog if catalog is not None else DEFAULT_TOOL_CATALOG:
        kind = ToolKind.parse(entry.name)
        if kind is None:
            logger.warning(f"Skipping unknown tool in catalog: {entry.name}")
            continue
        specs.append(
            ToolSpec(
                name=kind,
                description=entry.description,
                args_schema=_ARGS_SCHEMAS[kind],
                handler=handlers[kind],
                tags=_TAGS[kind],
                active=entry.is_active,
            )
        )
    return specs


async def _fetch_quotes(client: MarketDataClient, symbols: list[str]) -> list[dict[str, Any]]:
    results = await asyncio.gather(
        *(client.get_quote(symbol) for symbol in symbols),
        return_exceptions=True,
    )
    quotes: list[dict[str, Any]] = []
    for symbol, result in zip(symbols, results, strict=True):
        if isinstance(result, BaseException):
            logger.info(f"Quote for {symbol} unavailable: {result}")
            continue
        quotes.append(result)
    return quotes


def _comparison_row(stock: dict[str, Any]) -> dict[str, Any]:
    change_percent = _as_float(stock.get("changePercent")) or 0.0
    return {
        "symbol": stock.get("symbol"),
        "price": stock.get("price"),
        "change": stock.get("change"),
        "changePercent": stock.get("changePercent"),
        "volume": stock.get("volume"),
        "performance": "positive" if change_percent > 0 else "negative",
    }


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("%"))
        except ValueError:
            return None
    return None
