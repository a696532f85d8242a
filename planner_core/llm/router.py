"""
Reasoning-service call wrapper and it does:
- Sends one system instruction + JSON user payload to the model provider
- Keeps every call single-shot and non-streaming
- Extracts the JSON value embedded in the reply

Main purpose:
Central interface for all reasoning-service calls.
"""


import json
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel

from planner_core.core.config import settings
from planner_core.core.logging import get_logger
from planner_core.llm.json_parse import UNPARSABLE, parse_json_payload

log = get_logger("llm.router")


class LLMError(RuntimeError):
    pass


class LLMParseError(LLMError):
    """A reply arrived but no JSON value could be extracted from it."""


class ReasoningService(Protocol):
    async def complete(self, *, model: str, system: str, user: str) -> str: ...


def _safe_snippet(text: str, n: int = 400) -> str:
    return (text or "")[:n].replace("\n", "\\n").replace("\r", "\\r")


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    return str(value)


def dump_payload(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, default=_jsonable)


class ReasoningClient:
    """
    httpx-backed client for the reasoning service.

    Providers:
    - ollama: POST {base}/api/chat, reply text at message.content
    - openai: POST {base}/chat/completions (OpenAI/Groq compatible), reply at choices[0].message.content
    - mock:   no network, always answers "{}"
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.provider = (provider or settings.LLM_PROVIDER or "").lower().strip()
        if self.provider not in ("ollama", "openai", "mock"):
            raise LLMError(f"Unsupported LLM_PROVIDER={self.provider}. Use ollama, openai or mock.")
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        seconds = settings.LLM_TIMEOUT_SECONDS if timeout is None else timeout
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(seconds))
        self._owns_client = http_client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ReasoningClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def complete(self, *, model: str, system: str, user: str) -> str:
        if self.provider == "mock":
            return "{}"

        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        if self.provider == "ollama":
            url = f"{self.base_url}/api/chat"
            headers: dict[str, str] = {}
            payload: dict[str, Any] = {
                "model": model,
                "stream": False,
                "messages": messages,
                "options": {"temperature": self.temperature},
            }
        else:
            url = f"{self.base_url}/chat/completions"
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
            payload = {
                "model": model,
                "stream": False,
                "messages": messages,
                "temperature": self.temperature,
            }

        try:
            r = await self._client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise LLMError(f"Reasoning call to {url} failed: {e}") from e

        if r.status_code >= 400:
            raise LLMError(f"Reasoning service error {r.status_code}: {_safe_snippet(r.text, 200)}")

        try:
            data = r.json()
            if self.provider == "ollama":
                content = data["message"]["content"]
            else:
                content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected reasoning response: {_safe_snippet(r.text, 200)}") from e

        if not isinstance(content, str):
            raise LLMError(f"Reasoning response content is {type(content).__name__}, expected text")
        return content.strip()


async def llm_json(llm: ReasoningService, *, model: str, system: str, payload: dict) -> Any:
    """
    Calls the reasoning service once and returns the first JSON value in the reply.
    Raises LLMError on transport/status failure and LLMParseError when nothing parses.
    """
    text = await llm.complete(model=model, system=system, user=dump_payload(payload))
    parsed = parse_json_payload(text)
    if parsed is UNPARSABLE:
        log.warning(f"JSON parse failed. Snippet={_safe_snippet(text)}")
        raise LLMParseError(f"No JSON in reasoning response. Snippet={_safe_snippet(text)}")
    return parsed


async def llm_object(llm: ReasoningService, *, model: str, system: str, payload: dict) -> dict:
    """llm_json, but a non-object payload counts as a parse failure."""
    parsed = await llm_json(llm, model=model, system=system, payload=payload)
    if not isinstance(parsed, dict):
        raise LLMParseError(f"JSON is not an object (got {type(parsed).__name__})")
    return parsed
