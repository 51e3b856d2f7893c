"""Bounded in-memory cache for fetched excerpts."""
from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable

from agentic_search.models.citation import ExcerptResult

CLAIM_KEY_CHARS = 100


class ExcerptCache:
    """LRU cache with a per-entry TTL, keyed by source URL and claim text.

    Owned by whoever drives excerpt fetching (the API lifespan or the CLI) and
    passed in explicitly; there is no process-wide instance.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float = 6 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: OrderedDict[str, tuple[ExcerptResult, float]] = OrderedDict()
        self._max_entries = max(int(max_entries), 1)
        self._ttl = float(ttl_seconds)
        self._clock = clock

    @staticmethod
    def make_key(url: str, claim_text: str) -> str:
        return f"{url}::{claim_text[:CLAIM_KEY_CHARS]}"

    def get(self, url: str, claim_text: str) -> ExcerptResult | None:
        key = self.make_key(url, claim_text)
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, url: str, claim_text: str, value: ExcerptResult) -> None:
        key = self.make_key(url, claim_text)
        self._entries[key] = (value, self._clock() + self._ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)
