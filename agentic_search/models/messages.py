"""Conversation and tool-call types in the OpenAI-compatible wire shape."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallStatus(StrEnum):
    EXECUTING = "executing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(slots=True)
class ToolCall:
    id: str
    name: str
    arguments: str = ""
    status: ToolCallStatus | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ToolCall":
        function = payload.get("function") or {}
        return cls(
            id=str(payload.get("id") or ""),
            name=str(function.get("name") or ""),
            arguments=str(function.get("arguments") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    def with_status(self, status: ToolCallStatus) -> "ToolCall":
        return ToolCall(id=self.id, name=self.name, arguments=self.arguments, status=status)


@dataclass(slots=True)
class Message:
    role: Role
    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Message":
        return cls(
            role=Role(payload.get("role", "assistant")),
            content=payload.get("content"),
            tool_calls=[ToolCall.from_dict(tc) for tc in payload.get("tool_calls") or []],
            tool_call_id=payload.get("tool_call_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


@dataclass(slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "TokenUsage":
        if not payload:
            return cls()
        prompt = int(payload.get("prompt_tokens") or 0)
        completion = int(payload.get("completion_tokens") or 0)
        total = int(payload.get("total_tokens") or (prompt + completion))
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


@dataclass(slots=True)
class StreamingResult:
    """Accumulated outcome of one streamed chat completion."""

    content: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    usage: TokenUsage | None = None
