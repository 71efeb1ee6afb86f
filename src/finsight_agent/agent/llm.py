"""Chat model gateway over LangChain chat models."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from finsight_agent.errors import ModelCallError, ModelUnavailableError

logger = logging.getLogger(__name__)

_MESSAGE_TYPES: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


@dataclass(slots=True)
class Completion:
    content: str
    total_tokens: int


class ChatModelGateway:
    """Runs one chat completion with a token budget and temperature.

    `llm` is any LangChain chat model (production uses `ChatOpenAI`). Extra
    keyword arguments are forwarded to the model call, which is how the
    OpenAI integration receives `max_tokens`, `temperature` and penalties.
    A gateway without a model raises `ModelUnavailableError` on every call.
    """

    def __init__(self, llm: Any | None, *, timeout_seconds: float = 30.0) -> None:
        self.llm = llm
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return self.llm is not None

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
        **params: Any,
    ) -> Completion:
        if self.llm is None:
            raise ModelUnavailableError("No chat model configured")

        prompt = [_to_message(message) for message in messages]
        try:
            result = await asyncio.wait_for(
                self.llm.ainvoke(
                    prompt, max_tokens=max_tokens, temperature=temperature, **params
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ModelCallError(
                f"Chat model timed out after {self.timeout_seconds:.1f}s"
            ) from exc
        except Exception as exc:
            logger.debug("Chat model call failed", exc_info=True)
            raise ModelCallError(f"Chat model call failed: {exc}") from exc

        return Completion(content=_message_text(result), total_tokens=_total_tokens(result))


def _to_message(message: dict[str, str]) -> BaseMessage:
    message_cls = _MESSAGE_TYPES.get(message.get("role", "user"), HumanMessage)
    return message_cls(content=message.get("content", ""))


def _message_text(result: Any) -> str:
    content = getattr(result, "content", result)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return "" if content is None else str(content)


def _total_tokens(result: Any) -> int:
    usage = getattr(result, "usage_metadata", None)
    if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
        return usage["total_tokens"]

    metadata = getattr(result, "response_metadata", None) or {}
    token_usage = metadata.get("token_usage") if isinstance(metadata, dict) else None
    if isinstance(token_usage, dict) and isinstance(token_usage.get("total_tokens"), int):
        return token_usage["total_tokens"]
    return 0
