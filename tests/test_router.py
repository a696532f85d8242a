import json

import httpx
import pytest
import respx
from httpx import Response

from planner_core.llm.router import LLMError, LLMParseError, ReasoningClient, llm_json, llm_object
from tests.fakes import FakeReasoningService


@pytest.mark.asyncio
async def test_ollama_payload_and_reply():
    captured = {}
    async with ReasoningClient("http://llm.test/", provider="ollama", temperature=0.1) as client:
        with respx.mock(assert_all_called=True) as respx_mock:

            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json={"message": {"content": '  {"steps": []} '}})

            respx_mock.post("http://llm.test/api/chat").mock(side_effect=handler)
            text = await client.complete(model="m1", system="sys", user='{"prompt": "x"}')

    assert text == '{"steps": []}'
    payload = captured["json"]
    assert payload["model"] == "m1"
    assert payload["stream"] is False
    assert payload["options"] == {"temperature": 0.1}
    assert [m["role"] for m in payload["messages"]] == ["system", "user"]


@pytest.mark.asyncio
async def test_openai_compatible_provider_sends_bearer_token():
    captured = {}
    async with ReasoningClient("http://llm.test/v1", provider="openai", api_key="sk-test") as client:
        with respx.mock(assert_all_called=True) as respx_mock:

            def handler(request):
                captured["auth"] = request.headers.get("authorization")
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json={"choices": [{"message": {"content": "{}"}}]})

            respx_mock.post("http://llm.test/v1/chat/completions").mock(side_effect=handler)
            text = await client.complete(model="m2", system="sys", user="{}")

    assert text == "{}"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["json"]["temperature"] == 0.2
    assert captured["json"]["stream"] is False


@pytest.mark.asyncio
async def test_mock_provider_never_touches_the_network():
    async with ReasoningClient("http://llm.test", provider="mock") as client:
        with respx.mock(assert_all_mocked=True):
            assert await client.complete(model="m", system="s", user="{}") == "{}"


@pytest.mark.asyncio
async def test_status_error_raises_llm_error():
    async with ReasoningClient("http://llm.test", provider="ollama") as client:
        with respx.mock() as respx_mock:
            respx_mock.post("http://llm.test/api/chat").mock(return_value=Response(503, text="overloaded"))
            with pytest.raises(LLMError, match="503"):
                await client.complete(model="m", system="s", user="{}")


@pytest.mark.asyncio
async def test_network_error_and_bad_envelope_raise_llm_error():
    async with ReasoningClient("http://llm.test", provider="ollama") as client:
        with respx.mock() as respx_mock:
            route = respx_mock.post("http://llm.test/api/chat")
            route.mock(side_effect=httpx.ConnectError("refused"))
            with pytest.raises(LLMError):
                await client.complete(model="m", system="s", user="{}")
            route.mock(return_value=Response(200, json={"unexpected": True}))
            with pytest.raises(LLMError):
                await client.complete(model="m", system="s", user="{}")


def test_unknown_provider_is_rejected():
    with pytest.raises(LLMError):
        ReasoningClient("http://llm.test", provider="carrier-pigeon")


@pytest.mark.asyncio
async def test_llm_json_and_llm_object():
    llm = FakeReasoningService({"SYS": "Here you go: [1, 2]"})
    assert await llm_json(llm, model="m", system="SYS", payload={"a": 1}) == [1, 2]
    assert llm.calls[0]["payload"] == {"a": 1}
    with pytest.raises(LLMParseError):
        await llm_object(llm, model="m", system="SYS", payload={})

    llm = FakeReasoningService({"SYS": "no json at all"})
    with pytest.raises(LLMParseError):
        await llm_json(llm, model="m", system="SYS", payload={})
