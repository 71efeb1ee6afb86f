"""Grounded answer generation from tool results and knowledge snippets."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from finsight_agent.agent.json_output import parse_json_object, string_list
from finsight_agent.agent.llm import ChatModelGateway
from finsight_agent.config import AssistantConfig, KnowledgeConfig
from finsight_agent.errors import SynthesisError
from finsight_agent.market.hours import market_status
from finsight_agent.types import ChatTurn, IntentDescriptor, KnowledgeEntry, ToolInvocationResult

logger = logging.getLogger(__name__)

_GUIDELINES = """
Guidelines:
1. Provide accurate, data-driven insights
2. Always cite your sources when using specific data
3. Include relevant metrics and numbers when available
4. Be concise but thorough
5. If data is unavailable, clearly state it
6. Always include a disclaimer that this is not financial advice
7. Use markdown formatting for better readability
8. Include relevant charts or tables when appropriate

Remember: You have access to real-time market data, so provide the most current information available.
""".strip()

_FOLLOW_UP_SYSTEM_PROMPT = (
    "You are a helpful assistant. Generate relevant follow-up questions and topics."
)

_FOLLOW_UP_TEMPLATE = """
Based on this response: "{response}", generate 2-3 follow-up questions and 3-5 related topics. Respond in JSON:
{{
  "followUpQuestions": ["question1", "question2"],
  "relatedTopics": ["topic1", "topic2", "topic3"]
}}
""".strip()

PRIMARY_MAX_TOKENS = 1000
PRIMARY_TEMPERATURE = 0.3
FOLLOW_UP_MAX_TOKENS = 200
FOLLOW_UP_TEMPERATURE = 0.3
MAX_FOLLOW_UP_QUESTIONS = 3
MAX_RELATED_TOPICS = 5


class FollowUpModel(BaseModel):
    """Follow-up reply; non-list fields become empty, lists are capped."""

    model_config = ConfigDict(populate_by_name=True)

    follow_up_questions: list[str] = Field(default_factory=list, alias="followUpQuestions")
    related_topics: list[str] = Field(default_factory=list, alias="relatedTopics")

    @field_validator("follow_up_questions", mode="before")
    @classmethod
    def _questions(cls, value: Any) -> list[str]:
        return string_list(value)[:MAX_FOLLOW_UP_QUESTIONS]

    @field_validator("related_topics", mode="before")
    @classmethod
    def _topics(cls, value: Any) -> list[str]:
        return string_list(value)[:MAX_RELATED_TOPICS]


@dataclass(slots=True)
class SynthesisResult:
    content: str
    confidence: float
    tokens: int
    data: dict[str, Any] = field(default_factory=dict)
    sources: list[dict[str, Any]] = field(default_factory=list)
    follow_up_questions: list[str] = field(default_factory=list)
    related_topics: list[str] = field(default_factory=list)


class ResponseSynthesizer:
    """Builds the grounding prompt and runs the answer and follow-up calls.

    The primary completion is required: its failure raises `SynthesisError`.
    The follow-up completion is best effort and only empties the suggestion
    lists when it fails. Token accounting covers the primary call only.
    """

    def __init__(
        self,
        gateway: ChatModelGateway,
        *,
        followup_gateway: ChatModelGateway | None = None,
        config: AssistantConfig | None = None,
        knowledge_config: KnowledgeConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.followup_gateway = followup_gateway or gateway
        self.config = config or AssistantConfig()
        self.knowledge_config = knowledge_config or KnowledgeConfig()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def synthesize(
        self,
        message: str,
        history: Sequence[ChatTurn],
        intent: IntentDescriptor,
        tool_results: dict[str, ToolInvocationResult],
        knowledge: list[KnowledgeEntry],
        context: dict[str, Any] | None = None,
    ) -> SynthesisResult:
        data = {name: result.payload() for name, result in tool_results.items()}
        messages = self.build_messages(message, history, intent, data, knowledge, context)

        try:
            completion = await self.gateway.complete(
                messages,
                max_tokens=PRIMARY_MAX_TOKENS,
                temperature=PRIMARY_TEMPERATURE,
                presence_penalty=0.1,
                frequency_penalty=0.1,
            )
        except Exception as exc:
            raise SynthesisError(f"Failed to generate response: {exc}") from exc

        questions, topics = await self._follow_ups(completion.content)
        return SynthesisResult(
            content=completion.content,
            confidence=self.config.success_confidence,
            tokens=completion.total_tokens,
            data=data,
            sources=[{"title": entry.title, "category": entry.category} for entry in knowledge],
            follow_up_questions=questions,
            related_topics=topics,
        )

    def build_messages(
        self,
        message: str,
        history: Sequence[ChatTurn],
        intent: IntentDescriptor,
        data: dict[str, Any],
        knowledge: list[KnowledgeEntry],
        context: dict[str, Any] | None = None,
    ) -> list[dict[str, str]]:
        window = self.config.history_window
        recent = list(history)[-window:] if window > 0 else []
        return [
            {"role": "system", "content": self.build_system_prompt(intent, data, knowledge, context)},
            *({"role": turn.role, "content": turn.content} for turn in recent),
            {"role": "user", "content": message},
        ]

    def build_system_prompt(
        self,
        intent: IntentDescriptor,
        data: dict[str, Any],
        knowledge: list[KnowledgeEntry],
        context: dict[str, Any] | None = None,
    ) -> str:
        now = self.clock()
        current_date = f"{now.month}/{now.day}/{now.year}"
        limit = self.knowledge_config.snippet_chars
        knowledge_lines = "\n".join(
            f"- {entry.title}: {entry.content[:limit]}..." for entry in knowledge
        )

        sections = [
            "You are FinSight AI, an advanced financial assistant with real-time market "
            f"data access. Today is {current_date} and the market is {market_status(now)}.",
            "Current Context:\n"
            f"- User Intent: {intent.intent}\n"
            f"- Available Data: {', '.join(data)}\n"
            f"- Knowledge Base: {len(knowledge)} relevant articles found",
            f"Tool Results:\n {json.dumps(data, indent=2, default=str)}",
            f"Knowledge Base:\n {knowledge_lines}",
        ]
        if context:
            sections.append(f"User Context:\n {json.dumps(context, indent=2, default=str)}")
        sections.append(_GUIDELINES)
        return "\n\n".join(sections)

    async def _follow_ups(self, response: str) -> tuple[list[str], list[str]]:
        messages = [
            {"role": "system", "content": _FOLLOW_UP_SYSTEM_PROMPT},
            {"role": "user", "content": _FOLLOW_UP_TEMPLATE.format(response=response)},
        ]
        try:
            completion = await self.followup_gateway.complete(
                messages,
                max_tokens=FOLLOW_UP_MAX_TOKENS,
                temperature=FOLLOW_UP_TEMPERATURE,
            )
        except Exception as exc:
            logger.warning(f"Follow-up generation failed: {exc}")
            return [], []

        payload = parse_json_object(completion.content)
        if payload is None:
            logger.warning("Follow-up generation returned unparseable output")
            return [], []
        try:
            follow_ups = FollowUpModel.model_validate(payload)
        except ValidationError as exc:
            logger.warning(f"Follow-up reply failed validation: {exc}")
            return [], []
        return follow_ups.follow_up_questions, follow_ups.related_topics
