import pytest
from conftest import StubGateway

from finsight_agent.agent.synthesizer import ResponseSynthesizer
from finsight_agent.config import AssistantConfig
from finsight_agent.errors import ModelCallError, SynthesisError
from finsight_agent.types import (
    ChatTurn,
    IntentDescriptor,
    IntentEntities,
    KnowledgeEntry,
    ToolInvocationResult,
)

_FOLLOW_UPS = (
    '{"followUpQuestions": ["What is the P/E?", "How did it trade last week?", "Any news?", "Extra?"],'
    ' "relatedTopics": ["earnings", "valuation"]}'
)

_KNOWLEDGE = [
    KnowledgeEntry(
        title="Dividends",
        category="fundamentals",
        content="x" * 150,
        keywords=frozenset({"dividends"}),
    )
]


def _intent() -> IntentDescriptor:
    return IntentDescriptor(
        intent="get_stock_price",
        entities=IntentEntities(symbols=["AAPL"]),
        tools=["stock_price", "market_sentiment"],
        keywords=["dividend"],
    )


def _tool_results() -> dict[str, ToolInvocationResult]:
    return {
        "stock_price": ToolInvocationResult(
            tool_name="stock_price", output={"symbol": "AAPL", "price": 150.0}
        ),
        "market_sentiment": ToolInvocationResult(
            tool_name="market_sentiment", error="sentiment service down"
        ),
    }


def _synthesizer(gateway: StubGateway, fixed_now, **kwargs) -> ResponseSynthesizer:
    return ResponseSynthesizer(gateway, clock=lambda: fixed_now, **kwargs)


@pytest.mark.asyncio
async def test_synthesize_grounds_answer_in_tool_data(fixed_now) -> None:
    gateway = StubGateway([("AAPL trades at $150.00. Not financial advice.", 180), (_FOLLOW_UPS, 50)])

    result = await _synthesizer(gateway, fixed_now).synthesize(
        "What's AAPL trading at?", [], _intent(), _tool_results(), _KNOWLEDGE
    )

    assert result.content.startswith("AAPL trades at $150.00")
    assert result.confidence == 0.85
    assert result.tokens == 180
    assert result.data == {
        "stock_price": {"symbol": "AAPL", "price": 150.0},
        "market_sentiment": {"error": "sentiment service down"},
    }
    assert result.sources == [{"title": "Dividends", "category": "fundamentals"}]
    assert len(result.follow_up_questions) == 3
    assert result.related_topics == ["earnings", "valuation"]


@pytest.mark.asyncio
async def test_primary_call_parameters_and_system_prompt(fixed_now) -> None:
    gateway = StubGateway(["answer", _FOLLOW_UPS])

    await _synthesizer(gateway, fixed_now).synthesize(
        "hi", [], _intent(), _tool_results(), _KNOWLEDGE, {"riskProfile": "moderate"}
    )

    primary = gateway.calls[0]
    assert primary["max_tokens"] == 1000
    assert primary["temperature"] == 0.3
    assert primary["presence_penalty"] == 0.1
    assert primary["frequency_penalty"] == 0.1
    assert gateway.calls[1]["max_tokens"] == 200

    system = primary["messages"][0]["content"]
    assert "Today is 1/8/2024 and the market is OPEN" in system
    assert "- User Intent: get_stock_price" in system
    assert "- Available Data: stock_price, market_sentiment" in system
    assert "- Knowledge Base: 1 relevant articles found" in system
    assert f"- Dividends: {'x' * 100}..." in system
    assert "x" * 101 not in system
    assert '"riskProfile": "moderate"' in system
    assert "not financial advice" in system


@pytest.mark.asyncio
async def test_system_prompt_is_deterministic(fixed_now) -> None:
    first = StubGateway(["answer", _FOLLOW_UPS])
    second = StubGateway(["answer", _FOLLOW_UPS])

    result_a = await _synthesizer(first, fixed_now).synthesize(
        "q", [], _intent(), _tool_results(), _KNOWLEDGE
    )
    result_b = await _synthesizer(second, fixed_now).synthesize(
        "q", [], _intent(), _tool_results(), _KNOWLEDGE
    )

    assert first.calls[0]["messages"] == second.calls[0]["messages"]
    assert result_a == result_b


@pytest.mark.asyncio
async def test_history_is_windowed_to_last_ten_turns(fixed_now) -> None:
    history = [
        ChatTurn(role="user" if i % 2 == 0 else "assistant", content=f"turn {i}")
        for i in range(15)
    ]
    gateway = StubGateway(["answer", _FOLLOW_UPS])

    await _synthesizer(gateway, fixed_now).synthesize(
        "latest", history, _intent(), {}, []
    )

    messages = gateway.calls[0]["messages"]
    assert len(messages) == 12
    assert messages[1]["content"] == "turn 5"
    assert messages[-2]["content"] == "turn 14"
    assert messages[-1] == {"role": "user", "content": "latest"}


@pytest.mark.asyncio
async def test_zero_history_window_sends_no_history(fixed_now) -> None:
    gateway = StubGateway(["answer", _FOLLOW_UPS])

    await _synthesizer(gateway, fixed_now, config=AssistantConfig(history_window=0)).synthesize(
        "latest", [ChatTurn(role="user", content="old")], _intent(), {}, []
    )

    assert len(gateway.calls[0]["messages"]) == 2


@pytest.mark.asyncio
async def test_follow_up_failure_keeps_primary_answer(fixed_now) -> None:
    gateway = StubGateway([("answer", 77), ModelCallError("follow-up down")])

    result = await _synthesizer(gateway, fixed_now).synthesize("q", [], _intent(), {}, [])

    assert result.content == "answer"
    assert result.tokens == 77
    assert result.follow_up_questions == []
    assert result.related_topics == []


@pytest.mark.asyncio
async def test_unparseable_follow_ups_give_empty_lists(fixed_now) -> None:
    gateway = StubGateway(["answer", "no json here"])

    result = await _synthesizer(gateway, fixed_now).synthesize("q", [], _intent(), {}, [])

    assert result.follow_up_questions == []
    assert result.related_topics == []


@pytest.mark.asyncio
async def test_follow_ups_can_use_a_separate_gateway(fixed_now) -> None:
    primary = StubGateway(["answer"])
    followup = StubGateway([_FOLLOW_UPS])

    result = await _synthesizer(primary, fixed_now, followup_gateway=followup).synthesize(
        "q", [], _intent(), {}, []
    )

    assert len(primary.calls) == 1
    assert len(followup.calls) == 1
    assert result.related_topics == ["earnings", "valuation"]


@pytest.mark.asyncio
async def test_primary_failure_raises_synthesis_error(fixed_now) -> None:
    gateway = StubGateway([ModelCallError("model down")])

    with pytest.raises(SynthesisError):
        await _synthesizer(gateway, fixed_now).synthesize("q", [], _intent(), {}, [])


@pytest.mark.asyncio
async def test_follow_ups_are_capped_and_wrong_types_dropped(fixed_now) -> None:
    reply = (
        'Here you go: {"followUpQuestions": ["a?", "b?", "c?", "d?", 7], '
        '"relatedTopics": "earnings"}'
    )
    gateway = StubGateway(["answer", reply])

    result = await _synthesizer(gateway, fixed_now).synthesize("q", [], _intent(), {}, [])

    assert result.follow_up_questions == ["a?", "b?", "c?"]
    assert result.related_topics == []
