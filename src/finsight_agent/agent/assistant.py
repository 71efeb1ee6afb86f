"""Conversational assistant orchestrator with observability hooks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from finsight_agent.agent.executor import ToolExecutor
from finsight_agent.agent.intent import IntentClassifier
from finsight_agent.agent.knowledge import KnowledgeStore
from finsight_agent.agent.llm import ChatModelGateway
from finsight_agent.agent.registry import ToolRegistry, ToolSpec, preview_output
from finsight_agent.agent.synthesizer import ResponseSynthesizer, SynthesisResult
from finsight_agent.config import AssistantConfig, ToolExecutionConfig
from finsight_agent.obs.tracing import Timer, TraceStore
from finsight_agent.types import (
    ChatResponse,
    ChatTurn,
    IntentDescriptor,
    KnowledgeEntry,
    ToolInvocationResult,
    ToolTrace,
)

logger = logging.getLogger(__name__)

DEGRADED_MESSAGE = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try again."
)


@dataclass(slots=True)
class _TurnState:
    intent: IntentDescriptor | None = None
    tool_results: dict[str, ToolInvocationResult] = field(default_factory=dict)
    knowledge: list[KnowledgeEntry] = field(default_factory=list)


class AdvancedAssistant:
    """Top-level orchestrator for one conversational turn.

    Phases: classify intent, run the selected tools, retrieve knowledge,
    synthesize the grounded answer. `process_message` is total: any failure
    or a blown turn deadline yields a degraded, well-formed response.

    The tool registry and knowledge store are populated by `initialize()`,
    which can be called again to reload both.
    """

    def __init__(
        self,
        *,
        gateway: ChatModelGateway,
        tool_registry: ToolRegistry,
        knowledge_store: KnowledgeStore,
        trace_store: TraceStore,
        followup_gateway: ChatModelGateway | None = None,
        config: AssistantConfig | None = None,
        tool_config: ToolExecutionConfig | None = None,
        tool_loader: Callable[[], list[ToolSpec]] | None = None,
        knowledge_loader: Callable[[], list[KnowledgeEntry]] | None = None,
        classifier: IntentClassifier | None = None,
        executor: ToolExecutor | None = None,
        synthesizer: ResponseSynthesizer | None = None,
    ) -> None:
        self.gateway = gateway
        self.tool_registry = tool_registry
        self.knowledge_store = knowledge_store
        self.trace_store = trace_store
        self.config = config or AssistantConfig()
        self._tool_loader = tool_loader
        self._knowledge_loader = knowledge_loader

        self.classifier = classifier or IntentClassifier(gateway, tool_registry=tool_registry)
        self.executor = executor or ToolExecutor(tool_registry, tool_config)
        self.synthesizer = synthesizer or ResponseSynthesizer(
            gateway,
            followup_gateway=followup_gateway,
            config=self.config,
            knowledge_config=knowledge_store.config,
        )

    def initialize(self) -> None:
        """Load tools and knowledge from their configuration sources."""

        if self._tool_loader is not None:
            self.tool_registry.load(self._tool_loader())
        if self._knowledge_loader is not None:
            self.knowledge_store.load(self._knowledge_loader())
        logger.info(
            f"Assistant initialized with {len(self.tool_registry.list_active())} active tools "
            f"and {len(self.knowledge_store)} knowledge entries"
        )

    async def process_message(
        self,
        user_id: str,
        message: str,
        history: Sequence[ChatTurn] | None = None,
        context: dict[str, Any] | None = None,
    ) -> ChatResponse:
        """Run one full assistant turn and record its trace.

        Returns:
            A `ChatResponse`. On any failure the response carries the fixed
            apology, the degraded confidence, zero tokens and the elapsed time.
        """

        state = _TurnState()
        result: SynthesisResult | None = None
        with Timer() as timer:
            try:
                result = await asyncio.wait_for(
                    self._run_turn(user_id, message, list(history or []), context, state),
                    timeout=self.config.turn_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.error(
                    f"Turn exceeded {self.config.turn_timeout_seconds:.1f}s deadline"
                )
            except Exception:
                logger.exception("Error processing message")

        if result is None:
            response = ChatResponse(
                message=DEGRADED_MESSAGE,
                confidence=self.config.degraded_confidence,
                tokens=0,
                response_time_ms=timer.elapsed_ms,
            )
        else:
            response = ChatResponse(
                message=result.content,
                confidence=result.confidence,
                tokens=result.tokens,
                response_time_ms=timer.elapsed_ms,
                data=result.data,
                sources=result.sources,
                follow_up_questions=result.follow_up_questions,
                related_topics=result.related_topics,
            )

        self._record(user_id, message, state, response, degraded=result is None)
        return response

    async def _run_turn(
        self,
        user_id: str,
        message: str,
        history: list[ChatTurn],
        context: dict[str, Any] | None,
        state: _TurnState,
    ) -> SynthesisResult:
        state.intent = await self.classifier.classify(message)
        logger.info(
            f"Intent: {state.intent.intent} tools={state.intent.tools} "
            f"symbols={state.intent.entities.symbols}"
        )

        state.tool_results = await self.executor.execute(
            state.intent.tools, state.intent.entities, user_id=user_id
        )
        state.knowledge = self.knowledge_store.retrieve(state.intent.keywords)

        return await self.synthesizer.synthesize(
            message,
            history,
            state.intent,
            state.tool_results,
            state.knowledge,
            context,
        )

    def _record(
        self,
        user_id: str,
        message: str,
        state: _TurnState,
        response: ChatResponse,
        *,
        degraded: bool,
    ) -> None:
        self.trace_store.create_record(
            user_id=user_id,
            message=message,
            intent=state.intent.intent if state.intent is not None else "unknown",
            tool_traces=[_tool_trace(result) for result in state.tool_results.values()],
            knowledge_titles=[entry.title for entry in state.knowledge],
            tokens=response.tokens,
            latency_ms=response.response_time_ms,
            confidence=response.confidence,
            degraded=degraded,
        )


def _tool_trace(result: ToolInvocationResult) -> ToolTrace:
    return ToolTrace(
        name=result.tool_name,
        input_payload=result.params,
        output_preview=preview_output(result.payload()),
        latency_ms=result.latency_ms,
    )
