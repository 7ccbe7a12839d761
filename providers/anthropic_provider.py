"""Anthropic (Claude) adapter. Anthropic's tool and message shapes are the canonical ones."""
from __future__ import annotations

import logging
from typing import Any, Optional

import anthropic

import config as settings
from .base import (
    Message,
    ProviderAdapter,
    ProviderConfig,
    ToolCall,
    ToolDefinition,
    ToolResult,
    tool_result_blocks,
)

log = logging.getLogger("parsec.providers")


def _split_system(messages: list[Message]) -> tuple[list[str], list[Message]]:
    """Pull system-role messages out; the Messages API only takes them top-level."""
    system, rest = [], []
    for msg in messages:
        if msg.get("role") == "system":
            if isinstance(msg.get("content"), str):
                system.append(msg["content"])
        else:
            rest.append(msg)
    return system, rest


class AnthropicAdapter(ProviderAdapter):
    """Talks to the Anthropic Messages API."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.client = anthropic.AsyncAnthropic(api_key=config.api_key)

    async def aclose(self) -> None:
        await self.client.close()

    async def chat(
        self,
        messages: list[Message],
        tools: list[Any],
        system_prompt: Optional[str] = None,
    ) -> Any:
        system_parts, conversation = _split_system(messages)
        if system_prompt:
            system_parts.insert(0, system_prompt)

        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": settings.MAX_TOKENS,
            "messages": conversation,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if tools:
            kwargs["tools"] = tools

        log.debug("Anthropic messages.create model=%s messages=%d", self.config.model, len(conversation))
        return await self.client.messages.create(**kwargs)

    def translate_tools(self, tool_definitions: list[ToolDefinition]) -> list[Any]:
        # Already in Anthropic format
        return list(tool_definitions)

    def extract_tool_calls(self, response: Any) -> list[ToolCall]:
        return [
            ToolCall(id=block.id, name=block.name, input=dict(block.input or {}))
            for block in response.content
            if block.type == "tool_use"
        ]

    def extract_text(self, response: Any) -> str:
        return "\n".join(block.text for block in response.content if block.type == "text")

    def requires_tool_execution(self, response: Any) -> bool:
        return response.stop_reason == "tool_use"

    def format_tool_results(self, tool_results: list[ToolResult]) -> list[dict[str, Any]]:
        return tool_result_blocks(tool_results)

    def append_to_conversation(
        self,
        messages: list[Message],
        response: Any,
        tool_results: list[ToolResult],
    ) -> list[Message]:
        assistant_content: list[dict[str, Any]] = []
        for block in response.content:
            if block.type == "text":
                assistant_content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                assistant_content.append({
                    "type": "tool_use",
                    "id": block.id,
                    "name": block.name,
                    "input": dict(block.input or {}),
                })

        return [
            *messages,
            {"role": "assistant", "content": assistant_content},
            {"role": "user", "content": self.format_tool_results(tool_results)},
        ]
