"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from time import perf_counter
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from finsight_agent.errors import DuplicateToolError
from finsight_agent.types import ToolKind, ToolTrace

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any], Awaitable[Any]]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation.

    `name` must be a `ToolKind`; unknown names fail validation when the spec
    is built, before it can reach a registry.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: ToolKind
    description: str
    args_schema: type[BaseModel]
    handler: ToolHandler
    tags: list[str] = Field(default_factory=list)
    active: bool = True

    @property
    def parameter_schema(self) -> dict[str, Any]:
        return self.args_schema.model_json_schema()

    async def invoke(self, payload: dict[str, Any]) -> Any:
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)


class ToolRegistry:
    """Holds the process-wide tool set for the assistant.

    Reads never lock. `load` builds a fresh mapping and swaps it in, so a
    reader sees either the old or the new tool set.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None

    def register(self, spec: ToolSpec, *, strict: bool = False) -> None:
        key = spec.name.value
        if strict and key in self._tools:
            raise DuplicateToolError(f"Tool already registered: {key}")
        tools = dict(self._tools)
        tools[key] = spec
        self._tools = tools

    def load(self, specs: Iterable[ToolSpec]) -> None:
        """Replace every registered tool; later specs win on name clashes."""
        tools: dict[str, ToolSpec] = {}
        for spec in specs:
            tools[spec.name.value] = spec
        self._tools = tools
        logger.info(f"Loaded {len(tools)} tools")

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def list_active(self) -> list[ToolSpec]:
        return [spec for spec in self._tools.values() if spec.active]

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    async def execute(self, name: str, payload: dict[str, Any]) -> Any:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return await self._execute_spec(spec, payload)

    async def _execute_spec(self, spec: ToolSpec, payload: dict[str, Any]) -> Any:
        start = perf_counter()
        output = await spec.invoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            trace = ToolTrace(
                name=spec.name.value,
                input_payload=payload,
                output_preview=preview_output(output),
                latency_ms=latency_ms,
            )
            try:
                self._observer(trace)
            except Exception:
                logger.exception(f"Tool observer failed for {trace.name}")
        return output


def preview_output(output: Any) -> str:
    try:
        text = json.dumps(output, default=str)
    except (TypeError, ValueError):
        text = str(output)
    return text[:320]
