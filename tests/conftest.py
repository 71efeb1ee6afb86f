from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from finsight_agent.agent.llm import Completion


class StubGateway:
    """Scripted stand-in for `ChatModelGateway`.

    Replies are consumed in call order. A reply may be a string, a
    `(text, tokens)` tuple, or an exception instance to raise.
    """

    configured = True

    def __init__(self, replies: list[Any] | None = None, *, tokens: int = 42) -> None:
        self.replies = list(replies or [])
        self.tokens = tokens
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        max_tokens: int,
        temperature: float,
        **params: Any,
    ) -> Completion:
        self.calls.append(
            {
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
                **params,
            }
        )
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, tuple):
            text, tokens = reply
            return Completion(content=text, total_tokens=tokens)
        return Completion(content=reply, total_tokens=self.tokens)


@pytest.fixture
def fixed_now() -> datetime:
    # Monday 2024-01-08 15:00 UTC is 10:00 in the fixed UTC-5 session clock.
    return datetime(2024, 1, 8, 15, 0, tzinfo=timezone.utc)
