"""
Unit tests for the chat agent: message normalisation, auto routing, tools and the streamed turn.
LLM calls are patched at the chat_agent module.
"""

from unittest.mock import MagicMock, patch

from app.agent import chat_agent, tools
from app.agent.router import auto_router_explanation, auto_select_model, message_text


def _user(text: str) -> dict:
    return {"role": "user", "content": text}


class TestMessages:
    """message_text() and normalize_messages()."""

    def test_message_text_from_parts(self) -> None:
        message = {"role": "user", "parts": [{"type": "text", "text": "a"}, {"type": "image"}, {"type": "text", "text": "b"}]}
        assert message_text(message) == "ab"
        assert message_text({"role": "user"}) == ""

    def test_normalize_alternates_turns(self) -> None:
        messages = [
            {"role": "assistant", "content": "leading assistant turn is dropped"},
            _user("a"),
            _user("b"),
            {"role": "assistant", "content": "x"},
            {"role": "assistant", "content": "y"},
            {"role": "system", "content": "ignored"},
            _user("c"),
        ]
        assert chat_agent.normalize_messages(messages) == [
            {"role": "user", "content": "a\n\nb"},
            {"role": "assistant", "content": "x"},
            {"role": "user", "content": "c"},
        ]


class TestAutoRouter:
    """auto_select_model(), resolve_model() and auto_router_explanation()."""

    def test_current_events_use_search_model(self) -> None:
        assert auto_select_model([_user("What's the latest news on AI chips?")]) == "sonar"

    def test_research_and_long_queries_use_sonnet(self) -> None:
        assert auto_select_model([_user("Please compare these two frameworks for building large applications across teams")]) == "claude-sonnet"
        assert auto_select_model([_user("Write me a short poem about autumn leaves falling gently over a quiet river valley")]) == "claude-sonnet"

    def test_simple_queries_use_haiku(self) -> None:
        assert auto_select_model([_user("What is a brand?")]) == "claude-haiku"

    def test_no_user_message_defaults_to_sonnet(self) -> None:
        assert auto_select_model([{"role": "assistant", "content": "hi"}]) == "claude-sonnet"

    def test_resolve_model_keeps_explicit_choice(self) -> None:
        assert chat_agent.resolve_model("claude-opus", [_user("hi")]) == "claude-opus"
        assert chat_agent.resolve_model("auto", [_user("hi")]) == "claude-haiku"

    def test_explanation(self) -> None:
        assert auto_router_explanation("breaking headlines") == "Using web search for current information"
        assert auto_router_explanation("hi") == "Using fast model for quick response"


class TestSystemPrompt:
    """build_system_prompt() and user_facing_error()."""

    def test_without_context(self) -> None:
        assert chat_agent.build_system_prompt() == chat_agent.BRAND_ASSISTANT_INSTRUCTIONS

    def test_article_and_space_context(self) -> None:
        prompt = chat_agent.build_system_prompt({"type": "article", "article": {"title": "Logo Trends", "summary": "Short."}})
        assert '**Title:** "Logo Trends"' in prompt
        assert "THIS SPECIFIC ARTICLE" in prompt
        space = chat_agent.build_system_prompt({"type": "space", "space": {"title": "Launch", "fileNames": ["a.pdf", "b.pdf"]}})
        assert "**Available Files:** a.pdf, b.pdf" in space
        assert "home page" in chat_agent.build_system_prompt({"type": "home"})

    def test_user_facing_error(self) -> None:
        assert chat_agent.user_facing_error(Exception("Error code: 401")) == chat_agent.AUTH_ERROR_MESSAGE
        assert chat_agent.user_facing_error(Exception("boom")) == "boom"
        assert chat_agent.user_facing_error(Exception()) == "An error occurred"


class TestRunChatStream:
    """run_chat_stream() over patched providers."""

    def test_claude_turn_with_tool_round(self) -> None:
        seen_lengths = []

        def fake_stream(convo, tool_defs, system="", max_tokens=0, model=""):
            seen_lengths.append(len(convo))
            if len(seen_lengths) == 1:
                yield ("content_delta", "Let me check. ")
                call = {"id": "t1", "name": "get_brand_colors", "arguments": {}}
                yield ("tool_calls", [call], [{"type": "tool_use", "id": "t1", "name": "get_brand_colors", "input": {}}])
            else:
                assert convo[-1]["content"][0] == {"type": "tool_result", "tool_use_id": "t1", "content": "palette"}
                yield ("content_delta", "Aperol.")
                yield ("content_done",)

        with patch("app.agent.chat_agent.chat_with_tools_stream", side_effect=fake_stream), patch(
            "app.agent.chat_agent.execute_tool", return_value="palette"
        ) as execute:
            events = list(chat_agent.run_chat_stream([_user("colours?")], "claude-sonnet"))

        assert [e["event"] for e in events] == ["model", "text_delta", "tool", "text_delta", "done"]
        assert events[-1]["answer"] == "Let me check. Aperol."
        assert events[-1]["tools_used"] == ["get_brand_colors"]
        assert seen_lengths == [1, 3]
        execute.assert_called_once_with("get_brand_colors", {})

    def test_connectors_control_tool_set(self) -> None:
        def done_stream(*args, **kwargs):
            yield ("content_done",)

        get_tools = MagicMock(return_value=[])
        with patch("app.agent.chat_agent.chat_with_tools_stream", side_effect=done_stream), patch(
            "app.agent.chat_agent.get_agent_tools", get_tools
        ):
            list(chat_agent.run_chat_stream([_user("hi")], "claude-haiku", connectors={"brand": False, "brain": False}))
        get_tools.assert_called_once_with(include_brand=False, include_mcp=False)

    def test_perplexity_turn_reports_citations(self) -> None:
        captured = {}

        def fake_perplexity(messages, model="sonar"):
            captured["messages"] = messages
            yield ("content_delta", "Hi")
            yield ("citations", ["https://a.com"])

        with patch("app.agent.chat_agent.stream_perplexity", side_effect=fake_perplexity):
            events = list(chat_agent.run_chat_stream([_user("today?")], "sonar"))

        assert captured["messages"][0]["role"] == "system"
        assert events[-1] == {"event": "done", "answer": "Hi", "model": "sonar", "tools_used": [], "citations": ["https://a.com"]}

    def test_failure_becomes_error_event(self) -> None:
        with patch("app.agent.chat_agent.chat_with_tools_stream", side_effect=RuntimeError("authentication_error")):
            events = list(chat_agent.run_chat_stream([_user("hi")], "claude-sonnet"))
        assert events[-1] == {"event": "error", "message": chat_agent.AUTH_ERROR_MESSAGE}


class TestAgentTools:
    """get_agent_tools() and execute_tool()."""

    def test_tool_sets(self) -> None:
        names = [t["name"] for t in tools.get_agent_tools(include_mcp=False)]
        assert names[0] == "search_brand_knowledge"
        assert len(names) == 5
        assert tools.get_agent_tools(include_brand=False, include_mcp=False) == []

    def test_execute_tool(self) -> None:
        assert tools.execute_tool("get_brand_colors", {}).startswith("{")
        assert tools.execute_tool("search_brand_knowledge", {}) == "Error: query is required"
        assert tools.execute_tool("mcp_deadbeef_lookup", {}).startswith("Error: MCP connection not found")
        assert tools.execute_tool("nope", {}) == "Unknown tool: nope"
