"""FinSight conversational assistant package."""

from .config import AssistantConfig, KnowledgeConfig, LLMConfig, MarketDataConfig, ToolExecutionConfig

__all__ = [
    "AssistantConfig",
    "KnowledgeConfig",
    "LLMConfig",
    "MarketDataConfig",
    "ToolExecutionConfig",
]
