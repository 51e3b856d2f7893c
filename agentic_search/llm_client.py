"""OpenRouter chat-completions client (plain and server-sent-event streaming)."""
from __future__ import annotations

import codecs
import json
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator

import httpx
from loguru import logger

from agentic_search.config import settings
from agentic_search.errors import ConfigurationError, ProviderError
from agentic_search.models.messages import StreamingResult, TokenUsage, ToolCall
from agentic_search.services import logger as log_service

PROVIDER = "openrouter"
DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def get_model() -> str:
    """Return the configured research model (explicit override first)."""
    return settings.openrouter_model or settings.default_model


def get_citation_model(research_model: str | None = None) -> str:
    return settings.citation_model or research_model or get_model()


class SSELineDecoder:
    """Incrementally turns raw stream bytes into complete text lines.

    Multi-byte UTF-8 sequences split across chunks are held back by the
    incremental decoder; a trailing partial line is buffered until the next
    chunk completes it.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return [remainder.rstrip("\r")] if remainder.strip() else []


class ToolCallAccumulator:
    """Merges streamed ``tool_calls`` deltas into complete calls, keyed by index."""

    def __init__(self) -> None:
        self._calls: dict[int, ToolCall] = {}

    def add(self, deltas: list[dict[str, Any]]) -> None:
        for delta in deltas:
            index = delta.get("index")
            if not isinstance(index, int):
                index = 0
            function = delta.get("function") or {}
            fragment = function.get("arguments") or ""
            existing = self._calls.get(index)
            if existing is None:
                self._calls[index] = ToolCall(
                    id=delta.get("id") or f"call_{index}",
                    name=function.get("name") or "",
                    arguments=fragment,
                )
            elif fragment:
                existing.arguments += fragment

    def calls(self) -> list[ToolCall]:
        return [self._calls[i] for i in sorted(self._calls)]


async def _iter_lines(response: httpx.Response, decoder: SSELineDecoder) -> AsyncIterator[str]:
    async for chunk in response.aiter_bytes():
        for line in decoder.feed(chunk):
            yield line
    for line in decoder.flush():
        yield line


@dataclass
class StreamEvent:
    type: str  # content | reasoning | tool_calls | done
    text: str = ""
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    result: StreamingResult | None = None


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Parse the first JSON object in ``raw_text``, tolerating code fences and prose."""
    text = raw_text.strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def message_content(response: dict[str, Any]) -> str:
    choices = response.get("choices") or []
    if not choices:
        return ""
    message = choices[0].get("message") or {}
    return message.get("content") or ""


class OpenRouterClient:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: httpx.Timeout | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        if not self.api_key:
            raise ConfigurationError("OpenRouter API key is not configured.")
        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self.model = model or get_model()
        self.timeout = timeout or httpx.Timeout(
            settings.llm_timeout_seconds, connect=settings.llm_connect_timeout_seconds
        )
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": settings.app_referer,
            "X-Title": settings.app_title,
        }

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    def _payload(
        self,
        model: str | None,
        messages: list[dict[str, Any]],
        *,
        stream: bool,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
        temperature: float | None = None,
        response_format: dict[str, Any] | None = None,
        include_reasoning: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "stream": stream,
        }
        if tools:
            payload["tools"] = tools
            if tool_choice:
                payload["tool_choice"] = tool_choice
        if temperature is not None:
            payload["temperature"] = temperature
        if response_format is not None:
            payload["response_format"] = response_format
        if include_reasoning:
            payload["include_reasoning"] = True
        return payload

    async def chat(
        self,
        model: str | None,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
        temperature: float | None = None,
        response_format: dict[str, Any] | None = None,
        caller: str = "chat",
    ) -> dict[str, Any]:
        """Run one non-streaming completion and return the JSON body as-is."""
        payload = self._payload(
            model,
            messages,
            stream=False,
            tools=tools,
            tool_choice=tool_choice,
            temperature=temperature,
            response_format=response_format,
        )
        start = time.monotonic()
        try:
            async with self._session() as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
            if response.status_code >= 400:
                raise ProviderError(
                    f"OpenRouter API error: {response.status_code} - {response.text}",
                    provider=PROVIDER,
                    status_code=response.status_code,
                )
            body = response.json()
        except Exception as exc:
            log_service.log_llm_call(
                model=payload["model"],
                caller=caller,
                duration_ms=int((time.monotonic() - start) * 1000),
                status="error",
                error=str(exc),
            )
            raise

        usage = TokenUsage.from_dict(body.get("usage"))
        log_service.log_llm_call(
            model=payload["model"],
            caller=caller,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return body

    async def stream_chat(
        self,
        model: str | None,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
        include_reasoning: bool = False,
        caller: str = "stream",
    ) -> AsyncGenerator[StreamEvent, None]:
        """Stream one completion, yielding deltas and finally a ``done`` event."""
        payload = self._payload(
            model,
            messages,
            stream=True,
            tools=tools,
            tool_choice=tool_choice,
            include_reasoning=include_reasoning,
        )
        result = StreamingResult()
        accumulator = ToolCallAccumulator()
        decoder = SSELineDecoder()
        start = time.monotonic()

        async with self._session() as client:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProviderError(
                        f"OpenRouter API error: {response.status_code} - {body}",
                        provider=PROVIDER,
                        status_code=response.status_code,
                    )
                async for line in _iter_lines(response, decoder):
                    events = self._handle_line(line, result, accumulator)
                    done = None in events
                    for event in events:
                        if event is not None:
                            yield event
                    if done:
                        break

        result.tool_calls = accumulator.calls()
        usage = result.usage or TokenUsage()
        log_service.log_llm_call(
            model=payload["model"],
            caller=caller,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        yield StreamEvent(type="done", result=result)

    def _handle_line(
        self,
        line: str,
        result: StreamingResult,
        accumulator: ToolCallAccumulator,
    ) -> list[StreamEvent | None]:
        """Apply one SSE line; a ``None`` entry marks the end of the stream."""
        if not line.startswith(DATA_PREFIX):
            return []
        data = line[len(DATA_PREFIX):].strip()
        if not data:
            return []
        if data == DONE_SENTINEL:
            return [None]
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse stream chunk: {data[:200]}")
            return []
        if not isinstance(parsed, dict):
            logger.warning(f"Ignoring non-object stream chunk: {data[:200]}")
            return []

        error = parsed.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            raise ProviderError(
                f"Provider error: {message} (Code: {code})",
                provider=PROVIDER,
                code=code,
            )

        if parsed.get("usage"):
            result.usage = TokenUsage.from_dict(parsed["usage"])

        choices = parsed.get("choices") or []
        if not choices:
            return []
        choice = choices[0] or {}
        if choice.get("finish_reason"):
            result.finish_reason = choice["finish_reason"]
        delta = choice.get("delta") or {}

        events: list[StreamEvent | None] = []
        reasoning = delta.get("reasoning") or delta.get("reasoning_content")
        if reasoning:
            result.reasoning += reasoning
            events.append(StreamEvent(type="reasoning", text=reasoning))
        content = delta.get("content")
        if content:
            result.content += content
            events.append(StreamEvent(type="content", text=content))
        tool_deltas = delta.get("tool_calls")
        if tool_deltas:
            accumulator.add(tool_deltas)
            events.append(StreamEvent(type="tool_calls", tool_calls=tool_deltas))
        return events

    async def complete_json(
        self,
        model: str | None,
        system: str,
        user: str,
        *,
        temperature: float | None = None,
        caller: str = "json",
    ) -> dict[str, Any]:
        """JSON-mode completion; raises ``json.JSONDecodeError`` on unparseable output."""
        response = await self.chat(
            model,
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
            caller=caller,
        )
        return extract_json_object(message_content(response))

    async def list_models(self) -> list[dict[str, Any]]:
        """Fetch the live OpenRouter model catalogue (including pricing)."""
        async with self._session() as client:
            response = await client.get(f"{self.base_url}/models", headers=self._headers())
        if response.status_code >= 400:
            raise ProviderError(
                f"OpenRouter API error: {response.status_code} - {response.text}",
                provider=PROVIDER,
                status_code=response.status_code,
            )
        data = response.json().get("data")
        return data if isinstance(data, list) else []
