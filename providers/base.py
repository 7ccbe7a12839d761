"""Canonical conversation model and the adapter contract every LLM vendor implements."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

# Canonical message: {"role": "user"|"assistant"|"system", "content": str | list[block]}
# Blocks are Anthropic-style:
#   {"type": "text", "text": ...}
#   {"type": "tool_use", "id": ..., "name": ..., "input": {...}}
#   {"type": "tool_result", "tool_use_id": ..., "content": "<json string>"}
Message = dict[str, Any]

# {"name", "description", "input_schema": {JSON Schema}}
ToolDefinition = dict[str, Any]


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ToolResult:
    """Result of one tool execution, serialised so every vendor can carry it."""

    tool_call_id: str
    name: str
    content: str


@dataclass
class ProviderConfig:
    provider: str
    api_key: str
    model: str
    system_prompt: Optional[str] = None


def content_blocks(message: Message) -> list[dict[str, Any]]:
    """Return a message's content as a block list (plain text becomes one text block)."""
    content = message.get("content")
    if content is None:
        return []
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    return list(content)


def tool_result_blocks(tool_results: list[ToolResult]) -> list[dict[str, Any]]:
    """Canonical user-turn content carrying tool results."""
    return [
        {
            "type": "tool_result",
            "tool_use_id": result.tool_call_id,
            "content": result.content,
        }
        for result in tool_results
    ]


class ProviderAdapter(ABC):
    """Interface that each LLM provider must implement.

    The adapter is responsible for:
    - Converting canonical tool definitions and messages to its wire format
    - Sending one turn to the vendor
    - Reading tool calls and text back out of the raw response
    - Folding the response and tool results back into the canonical conversation

    The agentic loop itself lives in ``agent_loop``; adapters never loop.
    """

    def __init__(self, config: ProviderConfig):
        self.config = config

    async def aclose(self) -> None:
        """Release the vendor client's connections. Adapters without a client need nothing."""
        return None

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        tools: list[Any],
        system_prompt: Optional[str] = None,
    ) -> Any:
        """Send one turn to the vendor and return its raw response.

        Args:
            messages: Canonical conversation history.
            tools: Tool declarations already passed through ``translate_tools``.
            system_prompt: Optional system instructions.
        """
        ...

    @abstractmethod
    def translate_tools(self, tool_definitions: list[ToolDefinition]) -> list[Any]:
        """Convert canonical tool definitions to the vendor's declaration shape."""
        ...

    @abstractmethod
    def extract_tool_calls(self, response: Any) -> list[ToolCall]:
        """Every pending tool invocation in the response, in response order."""
        ...

    @abstractmethod
    def extract_text(self, response: Any) -> str:
        """All text segments joined by newlines. Empty for tool-call-only responses."""
        ...

    @abstractmethod
    def requires_tool_execution(self, response: Any) -> bool:
        """True iff the vendor is waiting on tool results rather than answering."""
        ...

    @abstractmethod
    def format_tool_results(self, tool_results: list[ToolResult]) -> list[Any]:
        """Convert canonical results to whatever the vendor embeds in the conversation."""
        ...

    @abstractmethod
    def append_to_conversation(
        self,
        messages: list[Message],
        response: Any,
        tool_results: list[ToolResult],
    ) -> list[Message]:
        """Return a new conversation: old + assistant turn + user turn of tool results."""
        ...
