from __future__ import annotations

import asyncio

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from docongo.config.llm_config import conversation_config, prescription_config
from docongo.errors import AuthError, ModelTransportError
from docongo.models.stages import Role
from docongo.services.model_gateway import ChatTurn, ModelGateway, to_langchain_messages
from docongo.utils.llm_helpers import content_to_text

from conftest import run


class _FailingModel:
    def __init__(self, exc: Exception):
        self.exc = exc

    async def ainvoke(self, messages):
        raise self.exc


class _SlowModel:
    async def ainvoke(self, messages):
        await asyncio.sleep(5)
        return AIMessage(content="too late")


class _RecordingModel:
    def __init__(self, content):
        self.content = content
        self.received = None

    async def ainvoke(self, messages):
        self.received = messages
        return AIMessage(content=self.content)


TURNS = [
    ChatTurn(role=Role.SYSTEM, text="You are Dr. AI"),
    ChatTurn(role=Role.USER, text="I have a headache"),
]


def test_conversation_and_prescription_temperatures_differ():
    conversation = conversation_config("key-123")
    prescription = prescription_config("key-123")
    assert conversation.temperature > prescription.temperature
    assert conversation.model_name == prescription.model_name
    assert conversation.api_key.get_secret_value() == "key-123"


@pytest.mark.parametrize("api_key", [None, "", "   "])
def test_missing_api_key_is_an_auth_error(api_key):
    with pytest.raises(AuthError):
        ModelGateway(conversation_config(api_key), llm=FakeListChatModel(responses=["x"]))


def test_invoke_returns_primary_text():
    gateway = ModelGateway(
        conversation_config("key-123"),
        llm=FakeListChatModel(responses=['{"message": "Hello"}']),
    )
    assert run(gateway.invoke(TURNS)) == '{"message": "Hello"}'


def test_roles_are_mapped_to_langchain_messages():
    model = _RecordingModel("ok")
    gateway = ModelGateway(conversation_config("key-123"), llm=model)
    run(gateway.invoke(TURNS + [ChatTurn(role=Role.ASSISTANT, text="earlier reply")]))

    assert [type(m) for m in model.received] == [SystemMessage, HumanMessage, AIMessage]
    assert model.received[1].content == "I have a headache"


def test_provider_failure_becomes_transport_error():
    gateway = ModelGateway(
        conversation_config("bad-key"), llm=_FailingModel(RuntimeError("401 invalid api key"))
    )
    with pytest.raises(ModelTransportError) as exc_info:
        run(gateway.invoke(TURNS))
    assert "invalid api key" in exc_info.value.detail


def test_timeout_becomes_transport_error():
    config = conversation_config("key-123").model_copy(update={"timeout": 0.01})
    gateway = ModelGateway(config, llm=_SlowModel())
    with pytest.raises(ModelTransportError):
        run(gateway.invoke(TURNS))


def test_content_parts_are_flattened():
    model = _RecordingModel([{"type": "text", "text": "Hello "}, "there", {"type": "image_url"}])
    gateway = ModelGateway(conversation_config("key-123"), llm=model)
    assert run(gateway.invoke(TURNS)) == "Hello there"


def test_content_to_text_handles_none_and_objects():
    assert content_to_text(None) == ""
    assert content_to_text(12) == "12"
    assert to_langchain_messages([]) == []
