import asyncio
from typing import Any

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from finsight_agent.agent.llm import ChatModelGateway
from finsight_agent.errors import ModelCallError, ModelUnavailableError


class RecordingModel:
    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.prompt: list[Any] = []
        self.kwargs: dict[str, Any] = {}

    async def ainvoke(self, prompt: list[Any], **kwargs: Any) -> Any:
        self.prompt = prompt
        self.kwargs = kwargs
        if isinstance(self.reply, BaseException):
            raise self.reply
        return self.reply


class SlowModel:
    async def ainvoke(self, prompt: list[Any], **kwargs: Any) -> Any:
        await asyncio.sleep(5)
        return AIMessage(content="late")


@pytest.mark.asyncio
async def test_complete_with_fake_chat_model_reads_usage() -> None:
    reply = AIMessage(
        content="AAPL is at $150.00.",
        usage_metadata={"input_tokens": 100, "output_tokens": 20, "total_tokens": 120},
    )
    gateway = ChatModelGateway(GenericFakeChatModel(messages=iter([reply])))

    completion = await gateway.complete(
        [{"role": "user", "content": "price?"}], max_tokens=100, temperature=0.3
    )

    assert completion.content == "AAPL is at $150.00."
    assert completion.total_tokens == 120


@pytest.mark.asyncio
async def test_complete_forwards_roles_and_parameters() -> None:
    model = RecordingModel(
        AIMessage(content="ok", response_metadata={"token_usage": {"total_tokens": 9}})
    )
    gateway = ChatModelGateway(model)

    completion = await gateway.complete(
        [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ],
        max_tokens=1000,
        temperature=0.3,
        presence_penalty=0.1,
    )

    assert [type(message) for message in model.prompt] == [SystemMessage, HumanMessage, AIMessage]
    assert model.kwargs == {"max_tokens": 1000, "temperature": 0.3, "presence_penalty": 0.1}
    assert completion.total_tokens == 9


@pytest.mark.asyncio
async def test_list_content_is_flattened_and_missing_usage_is_zero() -> None:
    model = RecordingModel(AIMessage(content=[{"type": "text", "text": "part one"}, "part two"]))

    completion = await ChatModelGateway(model).complete(
        [{"role": "user", "content": "hi"}], max_tokens=10, temperature=0.0
    )

    assert completion.content == "part one part two"
    assert completion.total_tokens == 0


@pytest.mark.asyncio
async def test_unconfigured_gateway_raises() -> None:
    gateway = ChatModelGateway(None)

    assert not gateway.configured
    with pytest.raises(ModelUnavailableError):
        await gateway.complete([], max_tokens=10, temperature=0.0)


@pytest.mark.asyncio
async def test_model_failure_is_wrapped() -> None:
    gateway = ChatModelGateway(RecordingModel(RuntimeError("rate limited")))

    with pytest.raises(ModelCallError, match="rate limited"):
        await gateway.complete([{"role": "user", "content": "hi"}], max_tokens=10, temperature=0.0)


@pytest.mark.asyncio
async def test_model_timeout_is_wrapped() -> None:
    gateway = ChatModelGateway(SlowModel(), timeout_seconds=0.05)

    with pytest.raises(ModelCallError, match="timed out"):
        await gateway.complete([{"role": "user", "content": "hi"}], max_tokens=10, temperature=0.0)
