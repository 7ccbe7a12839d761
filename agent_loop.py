"""Agentic loop: model call -> tool execution -> repeat, until an answer or the iteration ceiling."""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import config as settings
from errors import ModelCallError, UnknownToolError
from providers.base import Message, ProviderAdapter, ToolDefinition, ToolResult

log = logging.getLogger("parsec")

ToolExecutor = Callable[[str, dict], Awaitable[Any]]


class LoopState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    BUDGET_EXCEEDED = "budget_exceeded"


@dataclass
class ToolCallRecord:
    """One entry of the caller-visible audit trail."""

    tool: str
    input: dict[str, Any]
    result: Any

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool, "input": self.input, "result": self.result}


@dataclass
class LoopResult:
    content: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    state: LoopState = LoopState.DONE
    iterations: int = 0
    messages: list[Message] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "toolCalls": [record.to_dict() for record in self.tool_calls],
            "state": self.state.value,
            "iterations": self.iterations,
        }


async def _run_tool(tool_executor: ToolExecutor, name: str, tool_input: dict) -> Any:
    """Execute one tool; every failure except an unknown tool becomes {"error": ...}."""
    started = time.monotonic()
    try:
        result = await tool_executor(name, tool_input)
    except UnknownToolError:
        raise
    except Exception as e:
        log.warning("Tool %s failed: %s", name, e)
        return {"error": str(e)}
    log.info("Tool %s completed in %.0fms", name, (time.monotonic() - started) * 1000)
    return result


async def run_agent_loop(
    adapter: ProviderAdapter,
    messages: list[Message],
    tool_executor: ToolExecutor,
    *,
    tools: list[ToolDefinition],
    system_prompt: Optional[str] = None,
    max_iterations: int = settings.MAX_ITERATIONS,
) -> LoopResult:
    """Run the bounded agentic loop.

    Args:
        adapter: Provider adapter for the configured vendor.
        messages: Canonical conversation; never mutated.
        tool_executor: Async callable(tool_name, tool_input) -> result object.
        tools: Canonical tool definitions offered to the model.
        system_prompt: Optional system instructions.
        max_iterations: Ceiling on model calls that request tools.

    Returns:
        LoopResult in state DONE, or BUDGET_EXCEEDED with whatever text the
        last response carried.

    Raises:
        ModelCallError: the vendor call failed.
        UnknownToolError: the model asked for a tool that does not exist.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")

    vendor_tools = adapter.translate_tools(tools)
    conversation = list(messages)
    records: list[ToolCallRecord] = []
    state = LoopState.RUNNING
    iterations = 0
    response: Any = None

    while state is LoopState.RUNNING:
        iterations += 1
        log.info("Model call (iteration %d/%d)", iterations, max_iterations)

        try:
            response = await adapter.chat(conversation, vendor_tools, system_prompt)
        except Exception as e:
            log.error("Model call failed", exc_info=True)
            raise ModelCallError(f"Model call failed: {e}") from e

        if not adapter.requires_tool_execution(response):
            state = LoopState.DONE
            break

        tool_results: list[ToolResult] = []
        for call in adapter.extract_tool_calls(response):
            log.info("Executing tool: %s", call.name)
            result = await _run_tool(tool_executor, call.name, call.input)
            content = json.dumps(result, default=str)
            # The audit trail gets the same JSON-safe view the model sees
            records.append(ToolCallRecord(tool=call.name, input=call.input, result=json.loads(content)))
            tool_results.append(ToolResult(tool_call_id=call.id, name=call.name, content=content))

        conversation = adapter.append_to_conversation(conversation, response, tool_results)

        if iterations >= max_iterations:
            log.warning("Iteration ceiling (%d) reached while tools were still requested", max_iterations)
            state = LoopState.BUDGET_EXCEEDED

    return LoopResult(
        content=adapter.extract_text(response),
        tool_calls=records,
        state=state,
        iterations=iterations,
        messages=conversation,
    )
