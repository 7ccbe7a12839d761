"""Google Gemini adapter.

Gemini has the most different API structure of all providers:
- Role "model" replaces "assistant"; messages are Content objects made of parts
- System prompt goes into the request config as system_instruction
- Function calls carry no id; we synthesise one per call
- Tool results are functionResponse parts keyed by function name, not id
- The SDK chat session is stateful, so it is rebuilt from the full canonical
  history on every call and thrown away afterwards
"""
from __future__ import annotations

import itertools
import json
import logging
from typing import Any, Optional

from google import genai
from google.genai import types

import config as settings
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
from .tool_converter import to_gemini

log = logging.getLogger("parsec.providers")

# Process-wide so ids stay unique across requests and adapter instances.
_turn_counter = itertools.count(1)


def _parse_response_payload(content: Any) -> dict[str, Any]:
    """functionResponse wants an object; wrap anything else."""
    if isinstance(content, dict):
        return content
    try:
        data = json.loads(content)
    except (TypeError, json.JSONDecodeError):
        return {"result": content}
    return data if isinstance(data, dict) else {"result": data}


class GoogleAdapter(ProviderAdapter):
    """Talks to the Gemini API through google-genai."""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.client = genai.Client(api_key=config.api_key)
        self._last_response: Any = None
        self._last_ids: list[str] = []

    async def aclose(self) -> None:
        await self.client.aio.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _function_calls(response: Any) -> list[Any]:
        """Return every function_call part in the response, in order."""
        calls = []
        for candidate in response.candidates or []:
            if candidate.content is None:
                continue
            for part in candidate.content.parts or []:
                if part.function_call:
                    calls.append(part.function_call)
        return calls

    def _call_ids(self, response: Any, count: int) -> list[str]:
        """Deterministic ids for a response's function calls.

        The same response object always maps to the same ids, so extraction and
        conversation rebuilding agree with each other.
        """
        if response is not self._last_response or len(self._last_ids) != count:
            turn = next(_turn_counter)
            self._last_response = response
            self._last_ids = [f"google-{turn}-{index}" for index in range(count)]
        return list(self._last_ids)

    def _to_contents(self, messages: list[Message]) -> tuple[list[str], list[types.Content]]:
        """Convert canonical history to (system texts, Gemini contents)."""
        system: list[str] = []
        contents: list[types.Content] = []
        call_names: dict[str, str] = {}

        for msg in messages:
            if msg.get("role") == "system":
                system.extend(b["text"] for b in content_blocks(msg) if b.get("type") == "text")
                continue

            role = "model" if msg.get("role") == "assistant" else "user"
            parts: list[types.Part] = []
            for block in content_blocks(msg):
                kind = block.get("type")
                if kind == "text":
                    parts.append(types.Part.from_text(text=block["text"]))
                elif kind == "tool_use":
                    call_names[block["id"]] = block["name"]
                    parts.append(types.Part(
                        function_call=types.FunctionCall(name=block["name"], args=block.get("input") or {})
                    ))
                elif kind == "tool_result":
                    parts.extend(self.format_tool_results([ToolResult(
                        tool_call_id=block["tool_use_id"],
                        name=call_names.get(block["tool_use_id"], "unknown"),
                        content=block.get("content"),
                    )]))

            if parts:
                contents.append(types.Content(role=role, parts=parts))

        return system, contents

    # ------------------------------------------------------------------
    # Adapter contract
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[Message],
        tools: list[Any],
        system_prompt: Optional[str] = None,
    ) -> Any:
        system, contents = self._to_contents(messages)
        if system_prompt:
            system.insert(0, system_prompt)
        if not contents:
            raise ValueError("Cannot send an empty conversation to Gemini")

        config = types.GenerateContentConfig(
            system_instruction="\n\n".join(system) if system else None,
            tools=tools or None,
            max_output_tokens=settings.MAX_TOKENS,
        )

        # Rebuild the session: everything but the last turn is history
        session = self.client.aio.chats.create(
            model=self.config.model,
            config=config,
            history=contents[:-1],
        )
        log.debug("Gemini send_message model=%s history=%d", self.config.model, len(contents) - 1)
        return await session.send_message(contents[-1].parts)

    def translate_tools(self, tool_definitions: list[ToolDefinition]) -> list[Any]:
        if not tool_definitions:
            return []
        return [types.Tool(function_declarations=to_gemini(tool_definitions))]

    def extract_tool_calls(self, response: Any) -> list[ToolCall]:
        calls = self._function_calls(response)
        if not calls:
            return []
        ids = self._call_ids(response, len(calls))
        return [
            # fc.args may be a proto-backed mapping
            ToolCall(id=call_id, name=fc.name, input=dict(fc.args) if fc.args else {})
            for call_id, fc in zip(ids, calls)
        ]

    def extract_text(self, response: Any) -> str:
        parts = []
        for candidate in response.candidates or []:
            if candidate.content is None:
                continue
            for part in candidate.content.parts or []:
                if part.text:
                    parts.append(part.text)
        return "\n".join(parts)

    def requires_tool_execution(self, response: Any) -> bool:
        return bool(self._function_calls(response))

    def format_tool_results(self, tool_results: list[ToolResult]) -> list[types.Part]:
        return [
            types.Part.from_function_response(
                name=result.name,
                response=_parse_response_payload(result.content),
            )
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
