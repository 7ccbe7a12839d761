"""
Shared pytest fixtures for parsec tests
"""
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest
from google.genai import types

from connectors.schemas import TOOL_DEFINITIONS
from providers.base import ProviderAdapter, ProviderConfig, ToolCall, ToolResult, tool_result_blocks


# ------------------------------------------------------------------------------
# Raw vendor responses
# ------------------------------------------------------------------------------

def anthropic_response(blocks: List[dict], stop_reason: str = "end_turn"):
    """Shape of anthropic.types.Message as far as the adapter reads it."""
    content = [SimpleNamespace(**block) for block in blocks]
    return SimpleNamespace(content=content, stop_reason=stop_reason)


def chat_completion_response(
    content: Any = None,
    tool_calls: Optional[List[tuple]] = None,
    finish_reason: str = "stop",
):
    """Shape of an OpenAI / Mistral chat completion. tool_calls: [(id, name, arguments)]."""
    calls = None
    if tool_calls:
        calls = [
            SimpleNamespace(
                id=call_id,
                type="function",
                function=SimpleNamespace(name=name, arguments=arguments),
            )
            for call_id, name, arguments in tool_calls
        ]
    message = SimpleNamespace(role="assistant", content=content, tool_calls=calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason=finish_reason)])


def gemini_response(text: Optional[str] = None, function_calls: Optional[List[tuple]] = None):
    """A real GenerateContentResponse. function_calls: [(name, args)]."""
    parts = []
    if text:
        parts.append(types.Part.from_text(text=text))
    for name, args in function_calls or []:
        parts.append(types.Part(function_call=types.FunctionCall(name=name, args=args)))
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=parts))]
    )


# ------------------------------------------------------------------------------
# Scripted adapter for loop tests
# ------------------------------------------------------------------------------

class ScriptedAdapter(ProviderAdapter):
    """Replays a fixed list of turns.

    Each turn is {"text": str, "calls": [(id, name, input)]}; a turn with calls
    requests tool execution.
    """

    def __init__(self, turns: List[dict]):
        super().__init__(ProviderConfig(provider="scripted", api_key="k", model="m"))
        self.turns = list(turns)
        self.chat_calls: List[list] = []
        self.translated_with: Optional[list] = None
        self.close_count = 0

    async def aclose(self):
        self.close_count += 1

    async def chat(self, messages, tools, system_prompt=None):
        self.chat_calls.append(list(messages))
        return self.turns.pop(0)

    def translate_tools(self, tool_definitions):
        self.translated_with = list(tool_definitions)
        return [t["name"] for t in tool_definitions]

    def extract_tool_calls(self, response):
        return [ToolCall(id=i, name=n, input=a) for i, n, a in response.get("calls", [])]

    def extract_text(self, response):
        return response.get("text", "")

    def requires_tool_execution(self, response):
        return bool(response.get("calls"))

    def format_tool_results(self, tool_results: List[ToolResult]):
        return tool_result_blocks(tool_results)

    def append_to_conversation(self, messages, response, tool_results):
        assistant = [{"type": "tool_use", "id": i, "name": n, "input": a} for i, n, a in response["calls"]]
        return [
            *messages,
            {"role": "assistant", "content": assistant},
            {"role": "user", "content": self.format_tool_results(tool_results)},
        ]


@pytest.fixture
def tool_definitions():
    return TOOL_DEFINITIONS


@pytest.fixture
def provider_config():
    def _make(provider: str, model: str = "test-model"):
        return ProviderConfig(provider=provider, api_key="test-key", model=model)
    return _make


# ------------------------------------------------------------------------------
# Connector fixtures
# ------------------------------------------------------------------------------

@pytest.fixture
def code_tree(tmp_path):
    """Small repository: one match-bearing source file, a binary, and ignored dirs."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text(
        "import os\n"
        "def foo():\n"
        "    return 'FOO'\n"
        "# nothing here\n"
    )
    (root / "src" / "notes.md").write_text("no match in this file\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nfoo foo foo")
    (root / "node_modules" / "lib").mkdir(parents=True)
    (root / "node_modules" / "lib" / "index.js").write_text("foo()\n")
    (root / ".git").mkdir()
    (root / ".git" / "config").write_text("[core] foo\n")
    return root


@pytest.fixture
def sample_vercel_logs():
    """Sample Vercel runtime-logs payload"""
    return {
        "logs": [
            {
                "timestamp": 1735725600000,  # 2025-01-01T10:00:00Z
                "level": "info",
                "message": "GET /api/health 200",
                "source": "lambda",
                "statusCode": 200,
                "requestId": "req-1",
            },
            {
                "timestamp": 1735729200000,  # 2025-01-01T11:00:00Z
                "level": "error",
                "message": "Connection timeout to upstream DB",
                "source": "lambda",
                "statusCode": 500,
                "requestId": "req-2",
            },
            {
                "timestamp": "2025-01-01T10:30:00Z",
                "level": "warn",
                "message": "Slow query detected (2300ms)",
                "source": "edge",
            },
            {
                "timestamp": "not a date",
                "level": "error",
                "message": "Unhandled TIMEOUT in worker",
            },
        ]
    }


@pytest.fixture
def logs_connector():
    return {"provider": "vercel", "apiKey": "vercel-secret", "projectId": "prj_123"}
