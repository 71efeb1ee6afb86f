"""In-memory conversation persistence for the chat API."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from finsight_agent.types import ChatResponse, ChatTurn

TITLE_CHARS = 50


@dataclass(slots=True)
class Conversation:
    conversation_id: str
    user_id: str
    title: str
    turns: list[ChatTurn] = field(default_factory=list)
    is_archived: bool = False
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    updated_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ConversationStore:
    """Stores conversations per user. The assistant itself never writes here."""

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}

    def get(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise KeyError(f"Conversation not found: {conversation_id}")
        return conversation

    def get_or_create(
        self, user_id: str, first_message: str, conversation_id: str | None = None
    ) -> Conversation:
        if conversation_id:
            try:
                return self.get(conversation_id, user_id)
            except KeyError:
                pass

        conversation = Conversation(
            conversation_id=str(uuid.uuid4()),
            user_id=user_id,
            title=make_title(first_message),
        )
        self._conversations[conversation.conversation_id] = conversation
        return conversation

    def history(self, conversation: Conversation, limit: int = 20) -> list[ChatTurn]:
        """The most recent `limit` turns, oldest first."""
        if limit <= 0:
            return []
        return list(conversation.turns[-limit:])

    def record_exchange(
        self, conversation: Conversation, message: str, response: ChatResponse
    ) -> ChatTurn:
        conversation.turns.append(
            ChatTurn(role="user", content=message, tokens=len(message))
        )
        assistant_turn = ChatTurn(
            role="assistant",
            content=response.message,
            data=response.data or {},
            sources=response.sources or [],
            confidence=response.confidence,
            tokens=response.tokens,
            response_time_ms=response.response_time_ms,
        )
        conversation.turns.append(assistant_turn)
        conversation.updated_at = assistant_turn.timestamp
        return assistant_turn

    def list_for_user(self, user_id: str, *, include_archived: bool = False) -> list[Conversation]:
        conversations = [
            c
            for c in self._conversations.values()
            if c.user_id == user_id and (include_archived or not c.is_archived)
        ]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    def update(
        self,
        conversation_id: str,
        user_id: str,
        *,
        title: str | None = None,
        is_archived: bool | None = None,
    ) -> Conversation:
        """Rename or (un)archive a conversation; `None` leaves a field as is."""
        conversation = self.get(conversation_id, user_id)
        if title is not None:
            conversation.title = title
        if is_archived is not None:
            conversation.is_archived = is_archived
        conversation.updated_at = datetime.now(timezone.utc).isoformat()
        return conversation

    def delete(self, conversation_id: str, user_id: str) -> None:
        self.get(conversation_id, user_id)
        del self._conversations[conversation_id]


def make_title(message: str) -> str:
    if len(message) > TITLE_CHARS:
        return message[:TITLE_CHARS] + "..."
    return message
