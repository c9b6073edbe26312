"""Tests for Codex/Gemini/OpenCode record translation and stderr classification.

These tests verify that:
1. Each documented Codex record maps to the expected canonical event
2. Each documented Gemini record maps to the expected canonical event
   and likewise for each OpenCode record
3. Translators are total: unknown, malformed and non-dict input map to None
4. Error records fall back to a fixed message when no text is present
5. Known stderr text is classified into error codes
"""

from __future__ import annotations

import pytest

from conductor.runtime.events import (
    AssistantEvent,
    CompleteEvent,
    ErrorEvent,
    EventType,
    ResultEvent,
    SessionStartEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from conductor.runtime.translation import (
    CODEX_UNKNOWN_ERROR,
    GEMINI_UNKNOWN_ERROR,
    OPENCODE_STEP_ERROR,
    OPENCODE_TOOL_ERROR,
    classify_stderr,
    reset_opencode_tool_ids,
    translate_codex_event,
    translate_gemini_event,
    translate_opencode_event,
)


class TestCodexTranslation:
    """Tests for translate_codex_event."""

    def test_thread_started(self):
        event = translate_codex_event({"type": "thread.started", "thread_id": "t1"})
        assert isinstance(event, SessionStartEvent)
        assert event.session_id == "t1"

    def test_thread_started_id_in_data(self):
        event = translate_codex_event({"type": "thread.started", "data": {"thread_id": "t2"}})
        assert event.session_id == "t2"

    def test_thread_completed(self):
        event = translate_codex_event({"type": "thread.completed", "thread_id": "t1"})
        assert isinstance(event, CompleteEvent)
        assert event.session_id == "t1"

    def test_agent_message(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {"type": "agent_message", "text": "done"},
        })
        assert isinstance(event, AssistantEvent)
        assert event.blocks == [TextBlock(text="done")]

    def test_message_prefers_content(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {"type": "message", "content": "from content", "text": "from text"},
        })
        assert event.text == "from content"

    def test_reasoning_becomes_thinking(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {"type": "reasoning", "text": "considering options"},
        })
        assert event.blocks == [ThinkingBlock(thinking="considering options")]

    def test_command_execution_completed(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {
                "type": "command_execution",
                "command": "ls -la",
                "aggregated_output": "total 0\n",
            },
        })
        assert event.text == "```bash\nls -la\n```\n\ntotal 0\n"

    def test_command_execution_started(self):
        event = translate_codex_event({
            "type": "item.started",
            "item": {"type": "command_execution", "command": "npm test"},
        })
        block = event.blocks[0]
        assert isinstance(block, ToolUseBlock)
        assert block.name == "bash"
        assert block.input == {"command": "npm test"}

    def test_item_started_without_command(self):
        assert translate_codex_event({"type": "item.started", "item": {"type": "reasoning"}}) is None

    def test_tool_use_item(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {"type": "tool_use", "tool": "read_file", "input": {"path": "a.py"}},
        })
        block = event.blocks[0]
        assert block.name == "read_file"
        assert block.input == {"path": "a.py"}

    def test_tool_result_item(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {"type": "tool_result", "tool_use_id": "u1", "output": "ok"},
        })
        block = event.blocks[0]
        assert isinstance(block, ToolResultBlock)
        assert block.tool_use_id == "u1"
        assert block.content == "ok"

    def test_todo_list(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {
                "type": "todo_list",
                "items": [{"text": "write tests"}, {"text": "fix bug"}],
            },
        })
        assert event.text == "**Todo List:**\n1. write tests\n2. fix bug"

    def test_unknown_item_with_text_falls_back_to_text(self):
        event = translate_codex_event({
            "type": "item.completed",
            "item": {"type": "file_change", "text": "edited a.py"},
        })
        assert event.text == "edited a.py"

    def test_unknown_item_without_text(self):
        event = translate_codex_event({"type": "item.completed", "item": {"type": "file_change"}})
        assert event is None

    def test_error_message_precedence(self):
        event = translate_codex_event({
            "type": "error",
            "data": {"message": "from data"},
            "item": {"message": "from item"},
            "message": "top level",
        })
        assert isinstance(event, ErrorEvent)
        assert event.message == "from data"

        event = translate_codex_event({"type": "error", "message": "top level"})
        assert event.message == "top level"

    def test_error_without_message(self):
        event = translate_codex_event({"type": "error"})
        assert event.message == CODEX_UNKNOWN_ERROR

    @pytest.mark.parametrize("record", [
        {"type": "turn.started"},
        {"type": "turn.completed", "usage": {"input_tokens": 10}},
        {"type": "something.new"},
        {},
    ])
    def test_unmapped_records(self, record):
        assert translate_codex_event(record) is None

    @pytest.mark.parametrize("value", [None, 42, "text", ["a"], 1.5])
    def test_non_dict_input(self, value):
        assert translate_codex_event(value) is None

    def test_malformed_fields_do_not_raise(self):
        # items must be a list; a dict here is malformed but must not escape
        record = {"type": "item.completed", "item": {"type": "todo_list", "items": 5}}
        assert translate_codex_event(record) is None


class TestGeminiTranslation:
    """Tests for translate_gemini_event."""

    def test_init(self):
        event = translate_gemini_event({"type": "init", "session_id": "g1", "model": "gemini-2.5-pro"})
        assert isinstance(event, SessionStartEvent)
        assert event.session_id == "g1"

    def test_init_without_session_id(self):
        assert translate_gemini_event({"type": "init"}) is None

    def test_assistant_message(self):
        event = translate_gemini_event({"type": "message", "role": "assistant", "content": "Hello"})
        assert event.text == "Hello"

    def test_user_message_ignored(self):
        assert translate_gemini_event({"type": "message", "role": "user", "content": "Hi"}) is None

    def test_empty_message_ignored(self):
        assert translate_gemini_event({"type": "message", "role": "assistant", "content": ""}) is None

    def test_assistant_envelope(self):
        event = translate_gemini_event({
            "type": "assistant",
            "message": {"content": [
                {"type": "thinking", "thinking": "hmm"},
                {"type": "text", "text": "answer"},
                {"type": "image"},
            ]},
        })
        assert event.blocks == [ThinkingBlock(thinking="hmm"), TextBlock(text="answer")]

    def test_tool_use(self):
        event = translate_gemini_event({
            "type": "tool_use",
            "tool_name": "read_file",
            "tool_id": "call-1",
            "parameters": {"path": "README.md"},
        })
        block = event.blocks[0]
        assert block.name == "read_file"
        assert block.tool_use_id == "call-1"
        assert block.input == {"path": "README.md"}

    def test_tool_result_error_status(self):
        event = translate_gemini_event({
            "type": "tool_result",
            "tool_id": "call-1",
            "status": "error",
            "output": "permission denied",
        })
        block = event.blocks[0]
        assert isinstance(block, ToolResultBlock)
        assert block.is_error is True
        assert block.content == "permission denied"

    def test_tool_result_success(self):
        event = translate_gemini_event({"type": "tool_result", "tool_id": "c", "status": "success", "output": "x"})
        assert event.blocks[0].is_error is False

    def test_tool_call_started(self):
        event = translate_gemini_event({
            "type": "tool_call",
            "subtype": "started",
            "call_id": "c1",
            "tool_call": {"function": {"name": "shell", "arguments": "{\"cmd\": \"ls\"}"}},
        })
        block = event.blocks[0]
        assert block.name == "shell"
        assert block.input == {"cmd": "ls"}

    def test_tool_call_completed_includes_result(self):
        event = translate_gemini_event({
            "type": "tool_call",
            "subtype": "completed",
            "call_id": "c1",
            "tool_call": {"function": {"name": "shell", "arguments": "not json"}, "result": {"ok": True}},
        })
        use, result = event.blocks
        assert use.input == {"raw": "not json"}
        assert result.tool_use_id == "c1"
        assert result.content == "{\"ok\": true}"

    def test_result_success(self):
        event = translate_gemini_event({"type": "result", "result": "final", "session_id": "g1"})
        assert isinstance(event, ResultEvent)
        assert event.result == "final"

    def test_result_error(self):
        event = translate_gemini_event({
            "type": "result",
            "status": "error",
            "error": {"message": "quota"},
        })
        assert isinstance(event, ErrorEvent)
        assert event.message == "quota"

    def test_error_record(self):
        event = translate_gemini_event({"type": "error", "message": "bad request"})
        assert event.message == "bad request"

    def test_error_record_without_text(self):
        assert translate_gemini_event({"type": "error"}).message == GEMINI_UNKNOWN_ERROR

    @pytest.mark.parametrize("value", [None, 0, "init", [{"type": "init"}]])
    def test_non_dict_input(self, value):
        assert translate_gemini_event(value) is None

    def test_unknown_type(self):
        assert translate_gemini_event({"type": "stats", "tokens": 5}) is None


class TestOpenCodeTranslation:
    """Tests for translate_opencode_event."""

    @pytest.fixture(autouse=True)
    def fresh_tool_ids(self):
        reset_opencode_tool_ids()

    def test_text(self):
        event = translate_opencode_event({"type": "text", "sessionID": "ses_1", "part": {"type": "text", "text": "hello"}})

        assert isinstance(event, AssistantEvent)
        assert event.blocks == [TextBlock(text="hello")]
        assert event.session_id == "ses_1"

    def test_empty_text_is_skipped(self):
        assert translate_opencode_event({"type": "text", "part": {"type": "text", "text": ""}}) is None
        assert translate_opencode_event({"type": "text"}) is None

    def test_step_start_is_informational(self):
        assert translate_opencode_event({"type": "step_start", "part": {"type": "step-start"}}) is None

    def test_step_finish_success(self):
        event = translate_opencode_event({"type": "step_finish", "sessionID": "ses_1", "part": {"reason": "stop"}})

        assert isinstance(event, ResultEvent)
        assert event.result is None
        assert event.session_id == "ses_1"

    def test_step_finish_structured_result_is_serialized(self):
        event = translate_opencode_event({"type": "step_finish", "part": {"result": {"files": 2}}})
        assert event.result == '{"files": 2}'

    @pytest.mark.parametrize("part,message", [
        ({"reason": "error"}, OPENCODE_STEP_ERROR),
        ({"error": "context window exceeded"}, "context window exceeded"),
    ])
    def test_step_finish_failure(self, part, message):
        event = translate_opencode_event({"type": "step_finish", "part": part})

        assert isinstance(event, ErrorEvent)
        assert event.message == message

    def test_tool_call(self):
        event = translate_opencode_event({
            "type": "tool_call",
            "part": {"type": "tool-call", "name": "read", "call_id": "c1", "args": {"path": "a.py"}},
        })

        assert event.blocks == [ToolUseBlock(name="read", input={"path": "a.py"}, tool_use_id="c1")]

    def test_tool_call_ids_generated_when_missing(self):
        first = translate_opencode_event({"type": "tool_call", "part": {"name": "ls", "args": {}}})
        second = translate_opencode_event({"type": "tool_call", "part": {"name": "ls", "args": {}}})

        assert first.blocks[0].tool_use_id == "opencode-tool-1"
        assert second.blocks[0].tool_use_id == "opencode-tool-2"

    def test_tool_call_without_part(self):
        assert translate_opencode_event({"type": "tool_call"}) is None

    def test_tool_result(self):
        event = translate_opencode_event({"type": "tool_result", "part": {"call_id": "c1", "output": "ok"}})
        assert event.blocks == [ToolResultBlock(tool_use_id="c1", content="ok")]

    def test_tool_error(self):
        event = translate_opencode_event({"type": "tool_error", "sessionID": "ses_1", "part": {"error": "denied"}})

        assert isinstance(event, ErrorEvent)
        assert event.message == "denied"
        assert event.session_id == "ses_1"
        assert translate_opencode_event({"type": "tool_error"}).message == OPENCODE_TOOL_ERROR

    @pytest.mark.parametrize("value", [None, "text", [{"type": "text"}]])
    def test_non_dict_input(self, value):
        assert translate_opencode_event(value) is None

    def test_unknown_type(self):
        assert translate_opencode_event({"type": "snapshot", "part": {}}) is None


class TestClassifyStderr:
    """Tests for classify_stderr."""

    @pytest.mark.parametrize("stderr,code", [
        ("Error: Not authenticated. Please log in.", "not_authenticated"),
        ("HTTP 401 Unauthorized", "not_authenticated"),
        ("Rate limit exceeded, retry later", "rate_limited"),
        ("429 Too Many Requests", "rate_limited"),
        ("invalid model: gpt-9", "model_unavailable"),
        ("connect ECONNREFUSED 127.0.0.1:443", "network_error"),
    ])
    def test_known_patterns(self, stderr, code):
        result = classify_stderr(stderr, 1, "Codex CLI", "OPENAI_API_KEY")
        assert result is not None
        assert result.code == code

    def test_authentication_suggestion_names_env_key(self):
        result = classify_stderr("unauthorized", 1, "Codex CLI", "OPENAI_API_KEY")
        assert "OPENAI_API_KEY" in result.suggestion

    def test_killed_exit_code(self):
        result = classify_stderr("", 137, "Gemini CLI")
        assert result.code == "process_killed"
        assert "Gemini CLI" in result.message

    def test_no_match(self):
        assert classify_stderr("something odd happened", 1) is None
        assert classify_stderr("", 2) is None


class TestEventSerialization:
    """Canonical events expose a stable dict shape."""

    def test_assistant_event_dict(self):
        event = AssistantEvent(blocks=[TextBlock(text="hi"), ToolUseBlock(name="bash", input={"command": "ls"})])
        assert event.to_dict() == {
            "type": "assistant",
            "message": {"content": [
                {"type": "text", "text": "hi"},
                {"type": "tool_use", "name": "bash", "input": {"command": "ls"}},
            ]},
        }

    def test_error_event_dict_omits_empty_fields(self):
        assert ErrorEvent(message="boom").to_dict() == {"type": "error", "message": "boom"}
        assert ErrorEvent(message="boom", code="exit_code").to_dict()["code"] == "exit_code"

    def test_event_type_values(self):
        assert SessionStartEvent("s").type is EventType.SESSION_START
        assert EventType.COMPLETE == "complete"
