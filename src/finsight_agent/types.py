"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal


class ToolKind(str, Enum):
    """Closed set of tools the assistant knows how to parameterize."""

    STOCK_PRICE = "stock_price"
    STOCK_CHART = "stock_chart"
    PORTFOLIO_ANALYSIS = "portfolio_analysis"
    MARKET_SENTIMENT = "market_sentiment"
    TECHNICAL_INDICATORS = "technical_indicators"
    FUNDAMENTAL_ANALYSIS = "fundamental_analysis"
    MARKET_NEWS = "market_news"
    STOCK_COMPARISON = "stock_comparison"
    MARKET_OVERVIEW = "market_overview"

    @classmethod
    def parse(cls, name: str) -> "ToolKind | None":
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass(slots=True)
class KnowledgeEntry:
    """A short topical snippet used to ground answers."""

    title: str
    category: str
    content: str
    keywords: frozenset[str]
    priority: int = 0


@dataclass(slots=True)
class IntentEntities:
    """Entities extracted from a user message."""

    symbols: list[str] = field(default_factory=list)
    companies: list[str] = field(default_factory=list)
    timeframes: list[str] = field(default_factory=list)
    metrics: list[str] = field(default_factory=list)


@dataclass(slots=True)
class IntentDescriptor:
    """Structured execution plan for one turn."""

    intent: str
    entities: IntentEntities = field(default_factory=IntentEntities)
    tools: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def default(cls) -> "IntentDescriptor":
        return cls(intent="general_query")


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class ToolInvocationResult:
    """Outcome of one tool call: either an output or an error message."""

    tool_name: str
    output: Any = None
    error: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def payload(self) -> Any:
        if self.error is not None:
            return {"error": self.error}
        return self.output


@dataclass(slots=True)
class ChatTurn:
    """One persisted message of a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str
    data: Any = None
    sources: list[dict[str, Any]] | None = None
    confidence: float | None = None
    tokens: int | None = None
    response_time_ms: float | None = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


@dataclass(slots=True)
class ChatResponse:
    """Assistant reply returned to the caller."""

    message: str
    confidence: float
    tokens: int
    response_time_ms: float
    data: dict[str, Any] | None = None
    sources: list[dict[str, Any]] | None = None
    follow_up_questions: list[str] | None = None
    related_topics: list[str] | None = None
