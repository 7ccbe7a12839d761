"""Mistral adapter.

Mistral speaks the chat-completions dialect, with a few differences:
- The SDK call is chat.complete_async(), not chat.completions.create()
- Tool-call arguments may come back as a mapping instead of a JSON string
- Message content may be a list of typed chunks instead of a string
- Tool result messages carry the tool name alongside tool_call_id
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from mistralai import Mistral

from .base import Message, ToolResult
from .openai_provider import OpenAIAdapter

log = logging.getLogger("parsec.providers")


class MistralAdapter(OpenAIAdapter):
    """Talks to the Mistral chat completion API."""

    def _build_client(self) -> Any:
        return Mistral(api_key=self.config.api_key)

    async def aclose(self) -> None:
        # The SDK only exposes closing through its async context manager protocol
        await self.client.__aexit__(None, None, None)

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

        log.debug("Mistral chat.complete_async model=%s", self.config.model)
        return await self.client.chat.complete_async(**kwargs)

    def extract_text(self, response: Any) -> str:
        content = response.choices[0].message.content
        if not content:
            return ""
        if isinstance(content, str):
            return content
        # List of chunks; only text chunks carry prose
        return "\n".join(
            chunk.text for chunk in content if getattr(chunk, "type", None) == "text" and chunk.text
        )

    def format_tool_results(self, tool_results: list[ToolResult]) -> list[dict[str, Any]]:
        return [
            {
                "role": "tool",
                "tool_call_id": result.tool_call_id,
                "name": result.name,
                "content": result.content,
            }
            for result in tool_results
        ]
