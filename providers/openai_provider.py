"""OpenAI (ChatGPT) adapter.

Key differences from the canonical shape:
- System prompt is a message with role "system", not a top-level field
- Tools use {"type": "function", "function": {name, description, parameters}}
- Tool results are separate messages with role "tool"
- The tool-use signal is finish_reason "tool_calls"
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from openai import AsyncOpenAI

from .base import (
    Message,
    ProviderAdapter,
    ProviderConfig,
    ToolCall,
    ToolDefinition,
    ToolResult,
    content_blocks,
    tool_result_blocks,
)
from .tool_converter import to_openai

log = logging.getLogger("parsec.providers")


def parse_arguments(arguments: Any) -> dict[str, Any]:
    """Function-call arguments arrive as a JSON string (or a mapping for some SDKs)."""
    if isinstance(arguments, dict):
        return dict(arguments)
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except (TypeError, json.JSONDecodeError):
        log.warning("Could not parse tool arguments: %r", arguments)
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIAdapter(ProviderAdapter):
    """Talks to the OpenAI Chat Completions API."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.client = self._build_client()

    def _build_client(self) -> Any:
        return AsyncOpenAI(api_key=self.config.api_key)

    async def aclose(self) -> None:
        await self.client.close()

    # ------------------------------------------------------------------
    # Canonical -> chat-completion messages
    # ------------------------------------------------------------------
    def _to_wire(self, messages: list[Message], system_prompt: Optional[str]) -> list[dict[str, Any]]:
        wire: list[dict[str, Any]] = []
        if system_prompt:
            wire.append({"role": "system", "content": system_prompt})

        # tool_use id -> name, so results can be labelled for vendors that want it
        call_names: dict[str, str] = {}

        for msg in messages:
            role = msg.get("role", "user")
            if isinstance(msg.get("content"), str):
                wire.append({"role": role, "content": msg["content"]})
                continue

            blocks = content_blocks(msg)
            text = "\n".join(b["text"] for b in blocks if b.get("type") == "text")

            if role == "assistant":
                tool_calls = []
                for block in blocks:
                    if block.get("type") != "tool_use":
                        continue
                    call_names[block["id"]] = block["name"]
                    tool_calls.append({
                        "id": block["id"],
                        "type": "function",
                        "function": {
                            "name": block["name"],
                            "arguments": json.dumps(block.get("input") or {}),
                        },
                    })
                entry: dict[str, Any] = {"role": "assistant", "content": text or None}
                if tool_calls:
                    entry["tool_calls"] = tool_calls
                wire.append(entry)
                continue

            results = [
                ToolResult(
                    tool_call_id=block["tool_use_id"],
                    name=call_names.get(block["tool_use_id"], ""),
                    content=block.get("content") if isinstance(block.get("content"), str)
                    else json.dumps(block.get("content")),
                )
                for block in blocks
                if block.get("type") == "tool_result"
            ]
            # Tool messages must directly follow the assistant turn that asked for them
            wire.extend(self.format_tool_results(results))
            if text:
                wire.append({"role": role, "content": text})

        return wire

    # ------------------------------------------------------------------
    # Adapter contract
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[Message],
        tools: list[Any],
        system_prompt: Optional[str] = None,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._to_wire(messages, system_prompt),
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        log.debug("OpenAI chat.completions.create model=%s", self.config.model)
        return await self.client.chat.completions.create(**kwargs)

    def translate_tools(self, tool_definitions: list[ToolDefinition]) -> list[Any]:
        return to_openai(tool_definitions)

    def extract_tool_calls(self, response: Any) -> list[ToolCall]:
        message = response.choices[0].message
        if not message.tool_calls:
            return []
        return [
            ToolCall(id=tc.id, name=tc.function.name, input=parse_arguments(tc.function.arguments))
            for tc in message.tool_calls
        ]

    def extract_text(self, response: Any) -> str:
        return response.choices[0].message.content or ""

    def requires_tool_execution(self, response: Any) -> bool:
        return response.choices[0].finish_reason == "tool_calls"

    def format_tool_results(self, tool_results: list[ToolResult]) -> list[dict[str, Any]]:
        return [
            {"role": "tool", "tool_call_id": result.tool_call_id, "content": result.content}
            for result in tool_results
        ]

    def append_to_conversation(
        self,
        messages: list[Message],
        response: Any,
        tool_results: list[ToolResult],
    ) -> list[Message]:
        assistant_content: list[dict[str, Any]] = []
        text = self.extract_text(response)
        if text:
            assistant_content.append({"type": "text", "text": text})
        for call in self.extract_tool_calls(response):
            assistant_content.append({
                "type": "tool_use",
                "id": call.id,
                "name": call.name,
                "input": call.input,
            })

        return [
            *messages,
            {"role": "assistant", "content": assistant_content},
            {"role": "user", "content": tool_result_blocks(tool_results)},
        ]
