import asyncio

import pytest
from pydantic import BaseModel

from finsight_agent.agent.executor import ToolExecutor, build_tool_params
from finsight_agent.agent.registry import ToolRegistry, ToolSpec
from finsight_agent.config import ToolExecutionConfig
from finsight_agent.errors import MarketDataError
from finsight_agent.types import IntentEntities, ToolKind


class SymbolArgs(BaseModel):
    symbol: str


class EmptyArgs(BaseModel):
    pass


def _registry(**handlers) -> ToolRegistry:
    registry = ToolRegistry()
    registry.load(
        ToolSpec(
            name=name,
            description=name,
            args_schema=EmptyArgs if name == "market_overview" else SymbolArgs,
            handler=handler,
        )
        for name, handler in handlers.items()
    )
    return registry


def test_build_tool_params_per_tool() -> None:
    entities = IntentEntities(symbols=["AAPL", "MSFT"], timeframes=["1Y", "1M"])

    assert build_tool_params(ToolKind.STOCK_PRICE, entities) == {"symbol": "AAPL"}
    assert build_tool_params(ToolKind.MARKET_NEWS, entities) == {"symbol": "AAPL"}
    assert build_tool_params(ToolKind.STOCK_CHART, entities) == {
        "symbol": "AAPL",
        "timeframe": "1Y",
    }
    assert build_tool_params(ToolKind.STOCK_COMPARISON, entities) == {
        "symbols": ["AAPL", "MSFT"]
    }
    assert build_tool_params(ToolKind.PORTFOLIO_ANALYSIS, entities, user_id="u-1") == {
        "user_id": "u-1"
    }
    assert build_tool_params(ToolKind.MARKET_OVERVIEW, entities) == {}


def test_build_tool_params_without_symbols() -> None:
    entities = IntentEntities()

    assert build_tool_params(ToolKind.STOCK_PRICE, entities) == {"symbol": None}
    assert build_tool_params(ToolKind.STOCK_CHART, entities) == {"symbol": None}


@pytest.mark.asyncio
async def test_one_failing_tool_does_not_affect_others() -> None:
    async def _price(data: SymbolArgs) -> dict[str, object]:
        return {"symbol": data.symbol, "price": 150.0}

    async def _sentiment(data: SymbolArgs) -> dict[str, object]:
        raise MarketDataError("sentiment service down")

    executor = ToolExecutor(_registry(stock_price=_price, market_sentiment=_sentiment))

    results = await executor.execute(
        ["stock_price", "market_sentiment"], IntentEntities(symbols=["AAPL"])
    )

    assert results["stock_price"].ok
    assert results["stock_price"].payload() == {"symbol": "AAPL", "price": 150.0}
    assert not results["market_sentiment"].ok
    assert results["market_sentiment"].payload() == {"error": "sentiment service down"}
    assert results["market_sentiment"].params == {"symbol": "AAPL"}


@pytest.mark.asyncio
async def test_unknown_and_inactive_tools_are_skipped() -> None:
    async def _price(data: SymbolArgs) -> dict[str, object]:
        return {"price": 1.0}

    registry = _registry(stock_price=_price)
    registry.register(
        ToolSpec(
            name="market_news",
            description="news",
            args_schema=SymbolArgs,
            handler=_price,
            active=False,
        )
    )

    results = await ToolExecutor(registry).execute(
        ["crypto_price", "market_news", "stock_price"], IntentEntities(symbols=["AAPL"])
    )

    assert list(results) == ["stock_price"]


@pytest.mark.asyncio
async def test_no_selected_tools_returns_empty_mapping() -> None:
    results = await ToolExecutor(ToolRegistry()).execute([], IntentEntities())

    assert results == {}


@pytest.mark.asyncio
async def test_missing_symbol_becomes_validation_error_result() -> None:
    async def _price(data: SymbolArgs) -> dict[str, object]:
        return {"price": 1.0}

    results = await ToolExecutor(_registry(stock_price=_price)).execute(
        ["stock_price"], IntentEntities()
    )

    assert not results["stock_price"].ok
    assert results["stock_price"].error


@pytest.mark.asyncio
async def test_slow_tool_times_out_without_blocking_others() -> None:
    async def _slow(data: SymbolArgs) -> dict[str, object]:
        await asyncio.sleep(5)
        return {"never": True}

    async def _fast(data: EmptyArgs) -> dict[str, object]:
        return {"indices": []}

    executor = ToolExecutor(
        _registry(stock_price=_slow, market_overview=_fast),
        ToolExecutionConfig(timeout_seconds=0.05),
    )

    results = await executor.execute(
        ["stock_price", "market_overview"], IntentEntities(symbols=["AAPL"])
    )

    assert "timed out" in results["stock_price"].error
    assert results["market_overview"].payload() == {"indices": []}


@pytest.mark.asyncio
async def test_tools_run_concurrently_and_duplicates_run_once() -> None:
    running = 0
    peak = 0
    calls = 0

    async def _track(data: BaseModel) -> dict[str, object]:
        nonlocal running, peak, calls
        calls += 1
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return {}

    executor = ToolExecutor(_registry(stock_price=_track, market_overview=_track))

    await executor.execute(
        ["stock_price", "market_overview", "stock_price"], IntentEntities(symbols=["AAPL"])
    )

    assert calls == 2
    assert peak == 2
