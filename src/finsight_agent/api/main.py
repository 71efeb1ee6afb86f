"""FastAPI entrypoint for chat, conversation, tool and trace endpoints."""

from __future__ import annotations

import os
from dataclasses import asdict
from functools import partial
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from finsight_agent.agent.assistant import AdvancedAssistant
from finsight_agent.agent.conversation import ConversationStore
from finsight_agent.agent.knowledge import (
    KnowledgeStore,
    default_knowledge_entries,
    load_knowledge_file,
)
from finsight_agent.agent.llm import ChatModelGateway
from finsight_agent.agent.registry import ToolRegistry
from finsight_agent.agent.tools import DEFAULT_TOOL_CATALOG, build_market_tools, load_tool_catalog
from finsight_agent.config import (
    AssistantConfig,
    KnowledgeConfig,
    LLMConfig,
    MarketDataConfig,
    ToolExecutionConfig,
)
from finsight_agent.market.client import MarketDataClient
from finsight_agent.obs.logging import configure_logging
from finsight_agent.obs.tracing import TraceStore

HISTORY_TURNS = 20


def _create_llm(model: str, timeout_seconds: float) -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=model, temperature=0, timeout=timeout_seconds)


def build_assistant() -> AdvancedAssistant:
    """Compose the assistant from environment settings and load its data."""

    llm_config = LLMConfig(
        model=os.getenv("OPENAI_MODEL", LLMConfig().model),
        followup_model=os.getenv("OPENAI_FOLLOWUP_MODEL", LLMConfig().followup_model),
    )
    market_config = MarketDataConfig(
        base_url=os.getenv("MARKET_DATA_BASE_URL", MarketDataConfig().base_url)
    )
    catalog_path = os.getenv("FINSIGHT_TOOL_CATALOG")
    knowledge_path = os.getenv("FINSIGHT_KNOWLEDGE_FILE")

    client = MarketDataClient(market_config)
    gateway = ChatModelGateway(
        _create_llm(llm_config.model, llm_config.request_timeout_seconds),
        timeout_seconds=llm_config.request_timeout_seconds,
    )
    followup_gateway = ChatModelGateway(
        _create_llm(llm_config.followup_model, llm_config.request_timeout_seconds),
        timeout_seconds=llm_config.request_timeout_seconds,
    )

    def _load_tools() -> list[Any]:
        catalog = load_tool_catalog(catalog_path) if catalog_path else DEFAULT_TOOL_CATALOG
        return build_market_tools(client, catalog)

    knowledge_loader = (
        partial(load_knowledge_file, knowledge_path)
        if knowledge_path
        else default_knowledge_entries
    )

    assistant = AdvancedAssistant(
        gateway=gateway,
        followup_gateway=followup_gateway,
        tool_registry=ToolRegistry(),
        knowledge_store=KnowledgeStore(KnowledgeConfig()),
        trace_store=TraceStore(),
        config=AssistantConfig(),
        tool_config=ToolExecutionConfig(),
        tool_loader=_load_tools,
        knowledge_loader=knowledge_loader,
    )
    assistant.initialize()
    return assistant


class ChatRequest(BaseModel):
    user_id: str = Field(min_length=1)
    message: str = Field(min_length=1)
    conversation_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class ConversationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    is_archived: bool | None = None


def create_app(
    assistant: AdvancedAssistant | None = None,
    conversations: ConversationStore | None = None,
) -> FastAPI:
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    app = FastAPI(title="FinSight Assistant", version="0.1.0")
    _assistant = assistant or build_assistant()
    _conversations = conversations or ConversationStore()

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": _assistant.gateway.configured,
            "active_tools": len(_assistant.tool_registry.list_active()),
            "knowledge_entries": len(_assistant.knowledge_store),
        }

    @app.post("/chat")
    async def chat(request: ChatRequest) -> dict[str, Any]:
        conversation = _conversations.get_or_create(
            request.user_id, request.message, request.conversation_id
        )
        history = _conversations.history(conversation, limit=HISTORY_TURNS)
        response = await _assistant.process_message(
            request.user_id,
            request.message,
            history,
            request.context,
        )
        saved = _conversations.record_exchange(conversation, request.message, response)
        return {
            **asdict(response),
            "conversation_id": conversation.conversation_id,
            "timestamp": saved.timestamp,
        }

    @app.get("/conversations")
    def list_conversations(user_id: str, include_archived: bool = False) -> dict[str, Any]:
        return {
            "items": [
                {
                    "conversation_id": conversation.conversation_id,
                    "title": conversation.title,
                    "updated_at": conversation.updated_at,
                    "last_message": conversation.turns[-1].content
                    if conversation.turns
                    else None,
                }
                for conversation in _conversations.list_for_user(
                    user_id, include_archived=include_archived
                )
            ]
        }

    @app.get("/conversations/{conversation_id}")
    def conversation_detail(conversation_id: str, user_id: str) -> dict[str, Any]:
        try:
            conversation = _conversations.get(conversation_id, user_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(conversation)

    @app.put("/conversations/{conversation_id}")
    def update_conversation(
        conversation_id: str, user_id: str, request: ConversationUpdate
    ) -> dict[str, Any]:
        try:
            conversation = _conversations.update(
                conversation_id,
                user_id,
                title=request.title,
                is_archived=request.is_archived,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(conversation)

    @app.delete("/conversations/{conversation_id}")
    def delete_conversation(conversation_id: str, user_id: str) -> dict[str, Any]:
        try:
            _conversations.delete(conversation_id, user_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"success": True}

    @app.get("/tools")
    def tools() -> dict[str, Any]:
        return {
            "items": [
                {
                    "name": spec.name.value,
                    "description": spec.description,
                    "parameters": spec.parameter_schema,
                    "tags": spec.tags,
                }
                for spec in _assistant.tool_registry.list_active()
            ]
        }

    @app.post("/admin/reload")
    def reload() -> dict[str, Any]:
        try:
            _assistant.initialize()
        except (OSError, ValueError) as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "active_tools": len(_assistant.tool_registry.list_active()),
            "knowledge_entries": len(_assistant.knowledge_store),
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in _assistant.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = _assistant.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return _assistant.trace_store.summary()

    return app


app = create_app()
