from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Iterator


class SourceType(StrEnum):
    SEARCH = "search"
    EXTRACT = "extract"


@dataclass(slots=True)
class Source:
    url: str
    title: str
    type: SourceType
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


class SourceRegistry:
    """Sources discovered during one research run, deduplicated by URL.

    The first occurrence of a URL wins; later duplicates are dropped silently.
    """

    def __init__(self) -> None:
        self._by_url: dict[str, Source] = {}

    def add(self, source: Source) -> bool:
        if not source.url or source.url in self._by_url:
            return False
        self._by_url[source.url] = source
        return True

    def get(self, url: str) -> Source | None:
        return self._by_url.get(url)

    def to_list(self) -> list[Source]:
        return list(self._by_url.values())

    def __contains__(self, url: object) -> bool:
        return url in self._by_url

    def __iter__(self) -> Iterator[Source]:
        return iter(list(self._by_url.values()))

    def __len__(self) -> int:
        return len(self._by_url)
