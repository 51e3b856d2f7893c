from __future__ import annotations

import json
from typing import Any

from agentic_search.errors import ToolExecutionError
from agentic_search.models.messages import ToolCall
from agentic_search.models.sources import Source, SourceRegistry, SourceType
from agentic_search.tools import parallel_client
from agentic_search.tools.parallel_client import ExtractResponse


class ToolExecutor:
    """Executes model-requested research tools against the Parallel APIs.

    Every URL a tool touches is offered to the shared ``SourceRegistry``;
    ``execute`` returns the JSON-ready result for the model together with the
    sources that were new to the registry.
    """

    def __init__(self, sources: SourceRegistry, *, parallel_api_key: str | None = None):
        self.sources = sources
        self.parallel_api_key = parallel_api_key

    async def execute(self, tool_call: ToolCall) -> tuple[dict[str, Any], list[Source]]:
        args = self._parse_arguments(tool_call)
        if tool_call.name == "search_web":
            return await self._search_web(args)
        if tool_call.name == "extract_url":
            return await self._extract_url(args)
        raise ToolExecutionError(f"Unknown tool: {tool_call.name}")

    @staticmethod
    def _parse_arguments(tool_call: ToolCall) -> dict[str, Any]:
        try:
            args = json.loads(tool_call.arguments or "{}")
        except json.JSONDecodeError as exc:
            raise ToolExecutionError(
                f"Failed to parse tool arguments: {tool_call.arguments}"
            ) from exc
        if not isinstance(args, dict):
            raise ToolExecutionError(f"Failed to parse tool arguments: {tool_call.arguments}")
        return args

    def _register(self, source: Source, new_sources: list[Source]) -> None:
        if self.sources.add(source):
            new_sources.append(source)

    async def _search_web(self, args: dict[str, Any]) -> tuple[dict[str, Any], list[Source]]:
        objective = args.get("objective")
        if not isinstance(objective, str) or not objective.strip():
            raise ToolExecutionError("search_web requires a non-empty 'objective'")
        queries = args.get("search_queries")
        response = await parallel_client.search(
            objective,
            search_queries=queries if isinstance(queries, list) else None,
            max_results=args.get("max_results") or 10,
            api_key=self.parallel_api_key,
        )

        new_sources: list[Source] = []
        for r in response.results:
            self._register(Source(url=r.url, title=r.title, type=SourceType.SEARCH), new_sources)

        result = {
            "search_id": response.search_id,
            "results": [
                {
                    "url": r.url,
                    "title": r.title,
                    "publish_date": r.publish_date,
                    "excerpts": r.excerpts,
                }
                for r in response.results
            ],
        }
        return result, new_sources

    async def _extract_url(self, args: dict[str, Any]) -> tuple[dict[str, Any], list[Source]]:
        urls = args.get("urls")
        if isinstance(urls, str):
            urls = [urls]
        if not isinstance(urls, list) or not urls:
            raise ToolExecutionError("extract_url requires a non-empty 'urls' list")
        urls = [u for u in urls if isinstance(u, str)]

        new_sources: list[Source] = []
        response: ExtractResponse | None = None
        excerpts = args.get("excerpts", True) is not False
        try:
            response = await parallel_client.extract(
                urls,
                objective=args.get("objective"),
                excerpts=excerpts,
                full_content=not excerpts,
                api_key=self.parallel_api_key,
            )
        finally:
            # Requested URLs become sources even when extraction fails.
            titles = {r.url: r.title for r in response.results} if response else {}
            for url in urls:
                self._register(
                    Source(url=url, title=titles.get(url) or url, type=SourceType.EXTRACT),
                    new_sources,
                )

        result = {
            "results": [
                {
                    "url": r.url,
                    "content": "\n\n".join(r.excerpts) if r.excerpts else r.content,
                }
                for r in response.results
            ]
        }
        return result, new_sources
