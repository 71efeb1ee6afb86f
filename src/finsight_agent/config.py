"""Configuration models for the FinSight assistant."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """Configures the chat models used for classification and synthesis."""

    model: str = "gpt-4"
    followup_model: str = "gpt-3.5-turbo"
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)


class ToolExecutionConfig(BaseModel):
    """Configures concurrent tool invocation for one turn."""

    timeout_seconds: float = Field(default=10.0, gt=0.0)


class KnowledgeConfig(BaseModel):
    """Configures knowledge snippet retrieval and prompt excerpts."""

    snippet_chars: int = Field(default=100, ge=1)
    deduplicate: bool = False


class AssistantConfig(BaseModel):
    """Configures turn-level behavior and confidence placeholders."""

    history_window: int = Field(default=10, ge=0)
    turn_timeout_seconds: float = Field(default=45.0, gt=0.0)
    success_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    degraded_confidence: float = Field(default=0.1, ge=0.0, le=1.0)


class MarketDataConfig(BaseModel):
    """Configures the dashboard data endpoints the tools read from."""

    base_url: str = "http://localhost:3000"
    timeout_seconds: float = Field(default=8.0, gt=0.0)
    chart_points: int = Field(default=30, ge=1)
    overview_indices: list[str] = Field(default_factory=lambda: ["SPY", "QQQ", "DIA"])
