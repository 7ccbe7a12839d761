"""
Tests for the bounded agentic loop
"""
import datetime

import pytest

from agent_loop import LoopState, run_agent_loop
from errors import ModelCallError, UnknownToolError
from tests.conftest import ScriptedAdapter


def tool_turn(index, name="query_database", tool_input=None, text=""):
    return {"text": text, "calls": [(f"call-{index}", name, tool_input or {"query": "SELECT 1"})]}


def answer(text):
    return {"text": text, "calls": []}


class RecordingExecutor:
    """Tool executor double that records calls and returns canned results."""

    def __init__(self, results=None, error=None):
        self.calls = []
        self.results = results or {}
        self.error = error

    async def __call__(self, name, tool_input):
        self.calls.append((name, tool_input))
        if self.error is not None:
            raise self.error
        return self.results.get(name, {"ok": True})


@pytest.mark.unit
class TestAgentLoop:
    """Loop states, ceiling, and the audit trail"""

    @pytest.mark.asyncio
    async def test_plain_answer_is_done_in_one_iteration(self, tool_definitions):
        adapter = ScriptedAdapter([answer("Hello")])
        executor = RecordingExecutor()

        result = await run_agent_loop(adapter, [{"role": "user", "content": "hi"}], executor,
                                      tools=tool_definitions)

        assert result.state is LoopState.DONE
        assert result.content == "Hello"
        assert result.iterations == 1
        assert result.tool_calls == []
        assert executor.calls == []
        assert adapter.translated_with == list(tool_definitions)

    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, tool_definitions):
        adapter = ScriptedAdapter([tool_turn(1), answer("There are 42 users.")])
        executor = RecordingExecutor(results={"query_database": {"rows": [{"n": 42}], "rowCount": 1}})

        result = await run_agent_loop(adapter, [{"role": "user", "content": "users?"}], executor,
                                      tools=tool_definitions)

        assert result.state is LoopState.DONE
        assert result.iterations == 2
        assert result.content == "There are 42 users."
        assert [r.to_dict() for r in result.tool_calls] == [{
            "tool": "query_database",
            "input": {"query": "SELECT 1"},
            "result": {"rows": [{"n": 42}], "rowCount": 1},
        }]
        # Second model call saw the assistant turn and the tool result
        second_call = adapter.chat_calls[1]
        assert second_call[1]["role"] == "assistant"
        assert second_call[2]["content"][0]["tool_use_id"] == "call-1"
        assert second_call[2]["content"][0]["content"] == '{"rows": [{"n": 42}], "rowCount": 1}'

    @pytest.mark.asyncio
    async def test_ceiling_ends_in_budget_exceeded(self, tool_definitions):
        adapter = ScriptedAdapter([tool_turn(i, text=f"step {i}") for i in range(1, 12)])
        executor = RecordingExecutor()

        result = await run_agent_loop(adapter, [{"role": "user", "content": "loop"}], executor,
                                      tools=tool_definitions, max_iterations=10)

        assert result.state is LoopState.BUDGET_EXCEEDED
        assert result.iterations == 10
        assert len(result.tool_calls) == 10
        assert len(adapter.chat_calls) == 10
        assert result.content == "step 10"
        assert len(adapter.turns) == 1

    @pytest.mark.asyncio
    async def test_replayed_finished_conversation_makes_one_call(self, tool_definitions):
        history = [
            {"role": "user", "content": "users?"},
            {"role": "assistant", "content": "There are 42 users."},
            {"role": "user", "content": "thanks"},
        ]
        adapter = ScriptedAdapter([answer("You're welcome.")])
        executor = RecordingExecutor()

        result = await run_agent_loop(adapter, history, executor, tools=tool_definitions)

        assert result.state is LoopState.DONE
        assert len(adapter.chat_calls) == 1
        assert adapter.chat_calls[0] == history
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_multiple_calls_execute_in_order(self, tool_definitions):
        turn = {"text": "", "calls": [
            ("a", "query_database", {"query": "SELECT 1"}),
            ("b", "fetch_logs", {"timeframe": "1h"}),
            ("c", "search_codebase", {"pattern": "**/*.py"}),
        ]}
        adapter = ScriptedAdapter([turn, answer("done")])
        executor = RecordingExecutor()

        result = await run_agent_loop(adapter, [{"role": "user", "content": "go"}], executor,
                                      tools=tool_definitions)

        assert [name for name, _ in executor.calls] == ["query_database", "fetch_logs", "search_codebase"]
        assert [r.tool for r in result.tool_calls] == ["query_database", "fetch_logs", "search_codebase"]
        result_ids = [b["tool_use_id"] for b in adapter.chat_calls[1][-1]["content"]]
        assert result_ids == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_tool_failure_becomes_error_result(self, tool_definitions):
        adapter = ScriptedAdapter([tool_turn(1), answer("The query failed.")])
        executor = RecordingExecutor(error=RuntimeError("connection refused"))

        result = await run_agent_loop(adapter, [{"role": "user", "content": "go"}], executor,
                                      tools=tool_definitions)

        assert result.state is LoopState.DONE
        assert result.tool_calls[0].result == {"error": "connection refused"}
        assert adapter.chat_calls[1][-1]["content"][0]["content"] == '{"error": "connection refused"}'

    @pytest.mark.asyncio
    async def test_unknown_tool_aborts(self, tool_definitions):
        adapter = ScriptedAdapter([tool_turn(1, name="rm_rf")])
        executor = RecordingExecutor(error=UnknownToolError("rm_rf"))

        with pytest.raises(UnknownToolError, match="Unknown tool: rm_rf"):
            await run_agent_loop(adapter, [{"role": "user", "content": "go"}], executor,
                                 tools=tool_definitions)

    @pytest.mark.asyncio
    async def test_model_failure_is_wrapped(self, tool_definitions, mocker):
        adapter = ScriptedAdapter([])
        mocker.patch.object(adapter, "chat", side_effect=ConnectionError("503 upstream"))

        with pytest.raises(ModelCallError, match="503 upstream") as exc:
            await run_agent_loop(adapter, [{"role": "user", "content": "go"}], RecordingExecutor(),
                                 tools=tool_definitions)
        assert isinstance(exc.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_input_messages_not_mutated(self, tool_definitions):
        messages = [{"role": "user", "content": "go"}]
        adapter = ScriptedAdapter([tool_turn(1), answer("done")])

        result = await run_agent_loop(adapter, messages, RecordingExecutor(), tools=tool_definitions)

        assert messages == [{"role": "user", "content": "go"}]
        assert len(result.messages) == 3

    @pytest.mark.asyncio
    async def test_non_json_results_are_stringified(self, tool_definitions):
        stamp = datetime.datetime(2025, 1, 1, 10, 0, 0)
        adapter = ScriptedAdapter([tool_turn(1), answer("done")])
        executor = RecordingExecutor(results={"query_database": {"rows": [{"created": stamp}]}})

        result = await run_agent_loop(adapter, [{"role": "user", "content": "go"}], executor,
                                      tools=tool_definitions)

        assert result.tool_calls[0].result == {"rows": [{"created": "2025-01-01 10:00:00"}]}

    @pytest.mark.asyncio
    async def test_invalid_ceiling(self, tool_definitions):
        with pytest.raises(ValueError):
            await run_agent_loop(ScriptedAdapter([]), [], RecordingExecutor(),
                                 tools=tool_definitions, max_iterations=0)

    @pytest.mark.asyncio
    async def test_response_shape(self, tool_definitions):
        adapter = ScriptedAdapter([tool_turn(1), answer("done")])

        result = await run_agent_loop(adapter, [{"role": "user", "content": "go"}], RecordingExecutor(),
                                      tools=tool_definitions)

        assert result.to_response() == {
            "content": "done",
            "toolCalls": [{"tool": "query_database", "input": {"query": "SELECT 1"}, "result": {"ok": True}}],
            "state": "done",
            "iterations": 2,
        }
