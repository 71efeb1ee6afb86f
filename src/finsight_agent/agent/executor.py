"""Concurrent tool execution for one assistant turn."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any

from finsight_agent.agent.registry import ToolRegistry, ToolSpec
from finsight_agent.config import ToolExecutionConfig
from finsight_agent.types import IntentEntities, ToolInvocationResult, ToolKind

logger = logging.getLogger(__name__)

_SYMBOL_TOOLS = frozenset(
    {
        ToolKind.STOCK_PRICE,
        ToolKind.MARKET_SENTIMENT,
        ToolKind.TECHNICAL_INDICATORS,
        ToolKind.FUNDAMENTAL_ANALYSIS,
        ToolKind.MARKET_NEWS,
    }
)


def build_tool_params(
    kind: ToolKind, entities: IntentEntities, *, user_id: str | None = None
) -> dict[str, Any]:
    """Derive one tool's payload from the extracted entities."""

    first_symbol = entities.symbols[0] if entities.symbols else None
    if kind in _SYMBOL_TOOLS:
        return {"symbol": first_symbol}
    if kind is ToolKind.STOCK_CHART:
        params: dict[str, Any] = {"symbol": first_symbol}
        if entities.timeframes:
            params["timeframe"] = entities.timeframes[0]
        return params
    if kind is ToolKind.PORTFOLIO_ANALYSIS:
        return {"user_id": user_id}
    if kind is ToolKind.STOCK_COMPARISON:
        return {"symbols": list(entities.symbols)}
    return {}


class ToolExecutor:
    """Runs the tools named by an intent against entity-derived parameters.

    Unknown and inactive tool names are skipped. Each selected tool runs
    concurrently under its own deadline; a failure or timeout becomes an
    error result for that tool only.
    """

    def __init__(
        self,
        tool_registry: ToolRegistry,
        config: ToolExecutionConfig | None = None,
    ) -> None:
        self.tool_registry = tool_registry
        self.config = config or ToolExecutionConfig()

    async def execute(
        self,
        tool_names: list[str],
        entities: IntentEntities,
        *,
        user_id: str | None = None,
    ) -> dict[str, ToolInvocationResult]:
        selected: dict[str, tuple[ToolSpec, dict[str, Any]]] = {}
        for name in tool_names:
            if name in selected:
                continue
            spec = self.tool_registry.get(name)
            if spec is None or not spec.active:
                logger.debug(f"Skipping unavailable tool: {name}")
                continue
            selected[name] = (spec, build_tool_params(spec.name, entities, user_id=user_id))

        if not selected:
            return {}

        results = await asyncio.gather(
            *(self._run(spec, params) for spec, params in selected.values())
        )
        return {result.tool_name: result for result in results}

    async def _run(self, spec: ToolSpec, params: dict[str, Any]) -> ToolInvocationResult:
        name = spec.name.value
        logger.info(f"Executing tool: {name}")
        start = perf_counter()
        try:
            output = await asyncio.wait_for(
                self.tool_registry.execute(name, params),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            message = f"Tool {name} timed out after {self.config.timeout_seconds:.1f}s"
            logger.warning(message)
            return ToolInvocationResult(
                tool_name=name, error=message, params=params, latency_ms=_elapsed_ms(start)
            )
        except Exception as exc:
            logger.error(f"Tool execution failed: {name}: {exc}")
            return ToolInvocationResult(
                tool_name=name,
                error=str(exc) or exc.__class__.__name__,
                params=params,
                latency_ms=_elapsed_ms(start),
            )

        return ToolInvocationResult(
            tool_name=name, output=output, params=params, latency_ms=_elapsed_ms(start)
        )


def _elapsed_ms(start: float) -> float:
    return (perf_counter() - start) * 1000.0
