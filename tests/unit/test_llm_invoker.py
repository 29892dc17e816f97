"""Tests for the pydantic-ai backed invoker."""

import pytest
from pydantic_ai.messages import ModelResponse, TextPart
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models.test import TestModel

from agentchain.errors import InvocationError, MalformedResponseError
from agentchain.invocation import InvocationOptions, LLMInvoker, get_invoker
from agentchain.invocation.llm import parse_json_payload
from agentchain.prompts import response_schema

OFFLINE = InvocationOptions(use_internet_context=False)


def test_parse_json_payload_accepts_fenced_json() -> None:
    assert parse_json_payload('{"next_action": "ship"}') == {"next_action": "ship"}
    assert parse_json_payload('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}


def test_parse_json_payload_rejects_prose() -> None:
    with pytest.raises(MalformedResponseError):
        parse_json_payload("Sure! Here are my recommendations.")


@pytest.mark.asyncio
async def test_invoke_returns_parsed_payload() -> None:
    invoker = LLMInvoker(TestModel(custom_output_text='{"next_action": "deploy"}'))
    payload = await invoker.invoke("analyze", response_schema(), OFFLINE)
    assert payload == {"next_action": "deploy"}


@pytest.mark.asyncio
async def test_prompt_carries_schema_instructions() -> None:
    seen = []

    def respond(messages, info: AgentInfo):
        seen.append(messages[-1].parts[-1].content)
        return ModelResponse(parts=[TextPart('{"recommendations": []}')])

    invoker = LLMInvoker(FunctionModel(respond))
    payload = await invoker.invoke("analyze the shop", response_schema(), OFFLINE)

    assert payload == {"recommendations": []}
    assert seen[0].startswith("analyze the shop\n\n")
    assert "conforms to this JSON schema" in seen[0]


@pytest.mark.asyncio
async def test_model_failure_becomes_invocation_error() -> None:
    def respond(messages, info: AgentInfo):
        raise RuntimeError("quota exceeded")

    invoker = LLMInvoker(FunctionModel(respond))
    with pytest.raises(InvocationError, match="quota exceeded"):
        await invoker.invoke("analyze", response_schema(), OFFLINE)


def test_get_invoker_requires_a_model(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("AGENTCHAIN_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("AGENTCHAIN_MODEL", raising=False)
    with pytest.raises(ValueError):
        get_invoker()

    monkeypatch.setenv("AGENTCHAIN_MODEL", "test")
    invoker = get_invoker()
    assert isinstance(invoker, LLMInvoker)
    assert invoker.model == "test"
    assert get_invoker("openai:gpt-4o").model == "openai:gpt-4o"
