from __future__ import annotations

import asyncio
import json
import time
import uuid
from datetime import date
from enum import StrEnum
from typing import Any, AsyncGenerator

from loguru import logger

from agentic_search.agents.tool_executor import ToolExecutor
from agentic_search.config import settings
from agentic_search.errors import ResearchRunError
from agentic_search.llm_client import OpenRouterClient, get_model
from agentic_search.models.events import EventType, SSEEvent
from agentic_search.models.messages import Message, Role, TokenUsage, ToolCall, ToolCallStatus
from agentic_search.models.sources import SourceRegistry
from agentic_search.models.usage import UsageMetrics
from agentic_search.services import logger as log_service
from agentic_search.services import streaming
from agentic_search.services.pricing import ModelPricing
from agentic_search.services.prompt_store import render_prompt
from agentic_search.tools.definitions import RESEARCH_TOOLS


class ResearchPhase(StrEnum):
    GATHERING = "gathering"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class ResearchOrchestrator:
    """Runs the tool-calling research loop for one query.

    Flow:
      1. Seed the conversation with the research system prompt and the query
      2. Ask the model (non-streaming, tools enabled) what to do next
      3. Execute requested tool calls one after another, feeding results back
      4. Repeat until the model answers without tools or the ceiling is hit
      5. Deliver the answer as content chunks (re-chunked or truly streamed)

    All steps yield SSE events for real-time frontend updates.
    """

    def __init__(
        self,
        model: str | None = None,
        *,
        client: OpenRouterClient | None = None,
        parallel_api_key: str | None = None,
        max_iterations: int | None = None,
        chunk_size: int | None = None,
        chunk_delay_ms: int | None = None,
        pricing: ModelPricing | None = None,
    ):
        self.model = model or get_model()
        self.client = client or OpenRouterClient(model=self.model)
        self.parallel_api_key = parallel_api_key
        self.max_iterations = max(int(max_iterations or settings.research_max_iterations), 1)
        self.chunk_size = max(int(chunk_size or settings.stream_chunk_size), 1)
        self.chunk_delay_ms = (
            settings.stream_chunk_delay_ms if chunk_delay_ms is None else max(int(chunk_delay_ms), 0)
        )
        self.pricing = pricing
        self.phase = ResearchPhase.GATHERING
        self.run_id = uuid.uuid4().hex[:12]
        self.sources = SourceRegistry()
        self.usage = UsageMetrics()
        self.iterations = 0

    def _system_prompt(self) -> str:
        today = date.today()
        return render_prompt(
            "research.system_prompt",
            today=f"{today:%A, %B} {today.day}, {today.year}",
        )

    async def research(self, query: str) -> AsyncGenerator[SSEEvent, None]:
        """Run the research loop, yielding SSE events as progress is made."""
        self.phase = ResearchPhase.GATHERING
        log_service.log_research_step(
            self.run_id, "research", "started", {"query": query[:100], "model": self.model}
        )
        yield streaming.research_started(query, self.model)

        try:
            history: list[dict[str, Any]] = [
                Message(role=Role.SYSTEM, content=self._system_prompt()).to_dict(),
                Message(role=Role.USER, content=query).to_dict(),
            ]

            last_message: Message | None = None
            async for event in self._gather(history):
                if isinstance(event, Message):
                    last_message = event
                else:
                    yield event

            self.phase = ResearchPhase.FINALIZING
            report = ""
            async for event in self._finalize(history, last_message):
                if event.event == EventType.CONTENT_CHUNK:
                    report += event.data["chunk"]
                yield event

            self.usage.finish()
            self.phase = ResearchPhase.DONE
            usage = self.usage.to_dict(self.pricing)
            log_service.log_research_step(
                self.run_id,
                "research",
                "completed",
                {"iterations": self.iterations, "sources": len(self.sources), **usage},
            )
            yield streaming.research_complete(
                report=report,
                sources=[s.to_dict() for s in self.sources],
                usage=usage,
                iterations=self.iterations,
            )
        except (asyncio.CancelledError, GeneratorExit):
            self.phase = ResearchPhase.FAILED
            log_service.log_research_step(self.run_id, "research", "cancelled")
            raise
        except Exception as exc:
            self.phase = ResearchPhase.FAILED
            message = f"Research failed: {exc}"
            logger.exception(f"Research run {self.run_id} failed")
            log_service.log_research_step(self.run_id, "research", "failed", {"error": str(exc)})
            yield streaming.error(message, stage="research")
            raise ResearchRunError(message) from exc

    async def _gather(self, history: list[dict[str, Any]]) -> AsyncGenerator[SSEEvent | Message, None]:
        """Tool-calling loop. Yields events, and the final assistant turn as a ``Message``."""
        executor = ToolExecutor(self.sources, parallel_api_key=self.parallel_api_key)
        message: Message | None = None

        while self.iterations < self.max_iterations:
            self.iterations += 1
            response = await self.client.chat(
                self.model,
                history,
                tools=RESEARCH_TOOLS,
                tool_choice="auto",
                caller="research_loop",
            )
            choices = response.get("choices") or []
            if not choices:
                raise ValueError("Model response contained no choices")
            choice = choices[0]
            message = Message.from_dict(choice.get("message") or {})

            if response.get("usage"):
                self.usage.add(TokenUsage.from_dict(response["usage"]))
                yield streaming.usage_update(self.usage.to_dict(self.pricing))

            if choice.get("finish_reason") != "tool_calls" or not message.tool_calls:
                break

            history.append(message.to_dict())
            for call in message.tool_calls:
                async for event in self._run_tool(executor, call, history):
                    yield event
        else:
            logger.warning(
                f"Research run {self.run_id} hit the iteration ceiling ({self.max_iterations}); "
                "finalizing with the last turn"
            )
            log_service.log_research_step(
                self.run_id, "gathering", "degraded", {"iterations": self.iterations}
            )

        if message is not None:
            yield message

    async def _run_tool(
        self,
        executor: ToolExecutor,
        call: ToolCall,
        history: list[dict[str, Any]],
    ) -> AsyncGenerator[SSEEvent, None]:
        yield streaming.tool_call(call.with_status(ToolCallStatus.EXECUTING))
        before = len(self.sources)
        start = time.monotonic()
        try:
            result, _ = await executor.execute(call)
            content = json.dumps(result)
            status = ToolCallStatus.COMPLETE
            error = None
        except Exception as exc:
            # Tool failures go back to the model as data and never end the run.
            content = json.dumps({"error": str(exc)})
            status = ToolCallStatus.ERROR
            error = str(exc)

        log_service.log_tool_call(
            tool_name=call.name,
            tool_call_id=call.id,
            status=status.value,
            duration_ms=int((time.monotonic() - start) * 1000),
            error=error,
        )
        for source in self.sources.to_list()[before:]:
            yield streaming.source_added(source)
        history.append(Message(role=Role.TOOL, content=content, tool_call_id=call.id).to_dict())
        yield streaming.tool_call(call.with_status(status))

    async def _finalize(
        self,
        history: list[dict[str, Any]],
        last_message: Message | None,
    ) -> AsyncGenerator[SSEEvent, None]:
        if last_message is not None and last_message.content:
            self.usage.simulated_streaming = True
            async for event in self._rechunk(last_message.content):
                yield event
            return

        async for stream_event in self.client.stream_chat(
            self.model,
            history,
            include_reasoning=True,
            caller="research_synthesis",
        ):
            if stream_event.type == "reasoning":
                self.usage.mark_thinking()
                yield streaming.thinking_chunk(stream_event.text)
            elif stream_event.type == "content":
                self.usage.mark_content(stream_event.text)
                yield streaming.content_chunk(stream_event.text)
            elif stream_event.type == "done" and stream_event.result is not None:
                if stream_event.result.usage is not None:
                    self.usage.add(stream_event.result.usage)
                    yield streaming.usage_update(self.usage.to_dict(self.pricing))

    async def _rechunk(self, content: str) -> AsyncGenerator[SSEEvent, None]:
        """Replay a finished answer as fixed-size chunks with a small delay."""
        delay = self.chunk_delay_ms / 1000
        for i in range(0, len(content), self.chunk_size):
            chunk = content[i : i + self.chunk_size]
            self.usage.mark_content(chunk)
            yield streaming.content_chunk(chunk)
            if delay:
                await asyncio.sleep(delay)
