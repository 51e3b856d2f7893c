from __future__ import annotations

import asyncio
import json
from typing import AsyncGenerator

from loguru import logger

from agentic_search.config import settings
from agentic_search.llm_client import OpenRouterClient, extract_json_object, message_content
from agentic_search.models.citation import ConfidenceLevel, ExcerptResult, SourcePosition
from agentic_search.services.excerpt_cache import ExcerptCache
from agentic_search.services.prompt_store import render_pair
from agentic_search.tools import parallel_client

EXCERPT_TEMPERATURE = 0.1
TRUNCATION_MARKER = "\n\n[Content truncated...]"

UNABLE_TO_LOAD = "Unable to load content from source."
FAILED_TO_LOAD = "Failed to load excerpt."
FAILED_TO_PARSE = "Failed to parse excerpt."
NO_EXCERPT = "No relevant excerpt found."


def truncate_content(content: str, max_chars: int) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + TRUNCATION_MARKER


class ExcerptFetcher:
    """Finds a verbatim passage in a source page that supports a claim.

    Results are cached per (url, claim prefix) except for failures that
    may succeed on retry (page extraction or the LLM call failing).
    """

    def __init__(
        self,
        client: OpenRouterClient,
        model: str | None,
        *,
        cache: ExcerptCache,
        parallel_api_key: str | None = None,
        concurrency: int = 3,
        max_content_chars: int | None = None,
    ):
        self.client = client
        self.model = model
        self.cache = cache
        self.parallel_api_key = parallel_api_key
        self.concurrency = max(int(concurrency), 1)
        self.max_content_chars = max_content_chars or settings.excerpt_max_content_chars

    async def fetch_excerpt(self, source: SourcePosition, claim_text: str) -> ExcerptResult:
        cached = self.cache.get(source.url, claim_text)
        if cached is not None:
            return cached

        content = await self._extract_content(source.url)
        if not content:
            return ExcerptResult(
                excerpt=UNABLE_TO_LOAD,
                confidence=ConfidenceLevel.LOW,
                note="Content extraction failed",
            )

        try:
            result = await self._find_excerpt(claim_text, source.url, content)
        except Exception as exc:
            logger.warning(f"Excerpt lookup failed for {source.url}: {exc}")
            return ExcerptResult(excerpt=FAILED_TO_LOAD, confidence=ConfidenceLevel.LOW, note=str(exc))

        self.cache.set(source.url, claim_text, result)
        return result

    async def _extract_content(self, url: str) -> str | None:
        try:
            response = await parallel_client.extract(
                [url],
                excerpts=False,
                full_content=True,
                api_key=self.parallel_api_key,
            )
        except Exception as exc:
            logger.warning(f"Content extraction failed for {url}: {exc}")
            return None
        if not response.results:
            return None
        first = response.results[0]
        return first.markdown or first.content or None

    async def _find_excerpt(self, claim_text: str, url: str, content: str) -> ExcerptResult:
        system, user = render_pair(
            "excerpt_extraction",
            claim_text=claim_text,
            source_url=url,
            source_content=truncate_content(content, self.max_content_chars),
        )
        response = await self.client.chat(
            self.model,
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            temperature=EXCERPT_TEMPERATURE,
            response_format={"type": "json_object"},
            caller="excerpt_extraction",
        )
        raw = message_content(response)
        if not raw:
            return ExcerptResult(excerpt=NO_EXCERPT, confidence=ConfidenceLevel.LOW)
        try:
            parsed = extract_json_object(raw)
        except json.JSONDecodeError:
            return ExcerptResult(excerpt=FAILED_TO_PARSE, confidence=ConfidenceLevel.LOW)

        excerpt = parsed.get("excerpt")
        confidence = parsed.get("confidence")
        note = parsed.get("note")
        return ExcerptResult(
            excerpt=excerpt if isinstance(excerpt, str) and excerpt.strip() else NO_EXCERPT,
            confidence=ConfidenceLevel.coerce(confidence) if confidence else ConfidenceLevel.MEDIUM,
            note=note if isinstance(note, str) and note else None,
        )

    async def iter_excerpts(
        self,
        items: list[tuple[SourcePosition, str]],
    ) -> AsyncGenerator[tuple[SourcePosition, str, ExcerptResult], None]:
        """Yield ``(source, claim_text, result)`` as fetches complete.

        At most ``concurrency`` fetches are in flight; workers are cancelled
        if the consumer stops early.
        """
        if not items:
            return

        pending: asyncio.Queue[tuple[SourcePosition, str]] = asyncio.Queue()
        for item in items:
            pending.put_nowait(item)
        finished: asyncio.Queue[tuple[SourcePosition, str, ExcerptResult]] = asyncio.Queue()

        async def worker() -> None:
            while True:
                try:
                    source, claim_text = pending.get_nowait()
                except asyncio.QueueEmpty:
                    return
                result = await self.fetch_excerpt(source, claim_text)
                finished.put_nowait((source, claim_text, result))

        workers = [asyncio.create_task(worker()) for _ in range(min(self.concurrency, len(items)))]
        try:
            for _ in range(len(items)):
                yield await finished.get()
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def fetch_excerpts_batch(
        self,
        items: list[tuple[SourcePosition, str]],
    ) -> dict[tuple[str, str], ExcerptResult]:
        """Fetch many excerpts; results are keyed by ``(url, claim_text)``."""
        return {
            (source.url, claim_text): result
            async for source, claim_text, result in self.iter_excerpts(items)
        }
