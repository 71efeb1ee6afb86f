"""Intent classification via a single strict-JSON model call."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from finsight_agent.agent.json_output import parse_json_object, string_list
from finsight_agent.agent.llm import ChatModelGateway
from finsight_agent.agent.registry import ToolRegistry
from finsight_agent.types import IntentDescriptor, IntentEntities

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You are an expert financial analyst AI assistant. "
    "Analyze user queries and extract structured information."
)

_PROMPT_TEMPLATE = """
Analyze the following user message and extract:
1. Primary intent (what the user wants to know)
2. Entities (stock symbols, companies, timeframes, etc.)
3. Required tools to answer the question
4. Keywords for knowledge retrieval

Available tools: {tools}

Message: "{message}"

Respond in JSON format:
{{
  "intent": "string",
  "entities": {{
    "symbols": ["string"],
    "companies": ["string"],
    "timeframes": ["string"],
    "metrics": ["string"]
  }},
  "tools": ["string"],
  "keywords": ["string"]
}}
""".strip()

MAX_TOKENS = 500
TEMPERATURE = 0.1


class IntentClassifier:
    """Turns a user message into an `IntentDescriptor`.

    Classification never raises: a missing model, a failed call or an
    unusable reply all produce `IntentDescriptor.default()`.
    """

    def __init__(
        self,
        gateway: ChatModelGateway,
        *,
        tool_registry: ToolRegistry | None = None,
    ) -> None:
        self.gateway = gateway
        self.tool_registry = tool_registry

    def build_messages(self, message: str) -> list[dict[str, str]]:
        tool_lines = (
            [f"{spec.name.value}: {spec.description}" for spec in self.tool_registry.list_active()]
            if self.tool_registry is not None
            else []
        )
        prompt = _PROMPT_TEMPLATE.format(
            tools="\n- " + "\n- ".join(tool_lines) if tool_lines else "none",
            message=message,
        )
        return [
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def classify(self, message: str) -> IntentDescriptor:
        try:
            completion = await self.gateway.complete(
                self.build_messages(message),
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
            )
        except Exception as exc:
            logger.warning(f"Intent classification failed, using default intent: {exc}")
            return IntentDescriptor.default()

        descriptor = parse_intent(completion.content)
        if descriptor is None:
            logger.warning("Intent classifier returned unparseable output")
            return IntentDescriptor.default()
        return descriptor


class EntitiesModel(BaseModel):
    """Entities block of a classifier reply; wrong types become empty lists."""

    symbols: list[str] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)
    timeframes: list[str] = Field(default_factory=list)
    metrics: list[str] = Field(default_factory=list)

    @field_validator("companies", "timeframes", "metrics", mode="before")
    @classmethod
    def _strings(cls, value: Any) -> list[str]:
        return string_list(value)

    @field_validator("symbols", mode="before")
    @classmethod
    def _symbols(cls, value: Any) -> list[str]:
        return _dedupe([symbol.upper() for symbol in string_list(value)])


class IntentModel(BaseModel):
    """Lenient schema for the classifier's JSON reply."""

    intent: str = "general_query"
    entities: EntitiesModel = Field(default_factory=EntitiesModel)
    tools: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    @field_validator("intent", mode="before")
    @classmethod
    def _intent(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            return "general_query"
        return value.strip()

    @field_validator("entities", mode="before")
    @classmethod
    def _entities(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @field_validator("tools", mode="before")
    @classmethod
    def _tools(cls, value: Any) -> list[str]:
        return _dedupe(string_list(value))

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords(cls, value: Any) -> list[str]:
        return string_list(value)


def parse_intent(text: str) -> IntentDescriptor | None:
    """Validate a classifier reply into an `IntentDescriptor`."""

    payload = parse_json_object(text)
    if payload is None:
        return None
    try:
        model = IntentModel.model_validate(payload)
    except ValidationError as exc:
        logger.warning(f"Intent reply failed validation: {exc}")
        return None

    entities = model.entities
    return IntentDescriptor(
        intent=model.intent,
        entities=IntentEntities(
            symbols=entities.symbols,
            companies=entities.companies,
            timeframes=entities.timeframes,
            metrics=entities.metrics,
        ),
        tools=model.tools,
        keywords=model.keywords,
    )


def _dedupe(items: list[str]) -> list[str]:
    deduped: list[str] = []
    for item in items:
        if item not in deduped:
            deduped.append(item)
    return deduped
