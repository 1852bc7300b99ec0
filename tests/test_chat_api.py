"""
Integration tests for /api/chat and the saved chat history endpoints.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient


def test_chat_requires_messages(client: TestClient) -> None:
    assert client.post("/api/chat", json={}).status_code == 400
    only_system = client.post("/api/chat", json={"messages": [{"role": "system", "content": "x"}]})
    assert only_system.status_code == 400
    assert only_system.json()["detail"] == "Messages array is required"


def test_chat_unknown_model_and_missing_key(client: TestClient) -> None:
    body = {"messages": [{"role": "user", "content": "hi"}]}
    unknown = client.post("/api/chat", json={**body, "model": "gpt-9"})
    assert unknown.status_code == 400
    assert unknown.json()["detail"] == "Unknown model: gpt-9"

    with patch("app.api.chat.check_api_key", return_value=(False, "ANTHROPIC_API_KEY is not configured.")):
        missing = client.post("/api/chat", json=body)
    assert missing.status_code == 503


def test_chat_streams_named_events(client: TestClient) -> None:
    events = [
        {"event": "model", "model": "claude-haiku"},
        {"event": "text_delta", "content": "Hi"},
        {"event": "done", "answer": "Hi", "model": "claude-haiku", "tools_used": []},
    ]
    with patch("app.api.chat.check_api_key", return_value=(True, None)), patch(
        "app.api.chat.run_chat_stream", return_value=iter(events)
    ) as run:
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hello"}]})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert 'event: text_delta\ndata: {"content": "Hi"}' in response.text
    assert "event: done" in response.text
    args, kwargs = run.call_args
    assert args[0] == [{"role": "user", "content": "hello"}]
    assert args[1] == "claude-haiku"


def test_chat_stream_error_event(client: TestClient) -> None:
    def broken(*args, **kwargs):
        yield {"event": "model", "model": "claude-sonnet"}
        raise RuntimeError("socket closed")

    with patch("app.api.chat.check_api_key", return_value=(True, None)), patch(
        "app.api.chat.run_chat_stream", side_effect=broken
    ):
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}], "model": "claude-sonnet"})
    assert 'event: error\ndata: {"message": "socket closed"}' in response.text


# --- History ---

def _save(client: TestClient, **body) -> dict:
    response = client.post("/api/chats", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def test_save_appends_only_new_messages(client: TestClient) -> None:
    first = _save(
        client,
        title="Brand colours",
        messages=[
            {"id": "m1", "role": "user", "content": "Which colours?"},
            {"id": "m2", "role": "assistant", "content": "Charcoal and Vanilla.", "model": "claude-haiku"},
        ],
    )
    assert first["preview"] == "Charcoal and Vanilla."
    assert first["projectId"] is None

    second = _save(
        client,
        id=first["id"],
        title="Brand palette",
        messages=[
            {"id": "m1", "role": "user", "content": "Which colours?"},
            {"id": "m2", "role": "assistant", "content": "Charcoal and Vanilla."},
            {"id": "m3", "role": "user", "content": "And the accent?"},
        ],
    )
    assert second["title"] == "Brand palette"
    assert [m["id"] for m in second["messages"]] == ["m1", "m2", "m3"]
    assert second["messages"][1]["model"] == "claude-haiku"


def test_save_unknown_chat_is_404(client: TestClient) -> None:
    response = client.post("/api/chats", json={"id": "missing", "title": "x", "messages": []})
    assert response.status_code == 404


def test_list_search_rename_delete(client: TestClient) -> None:
    chat = _save(client, title="Logo usage", messages=[{"role": "user", "content": "Can I recolour the logo?"}])
    _save(client, title="Tone", messages=[{"role": "user", "content": "How formal should we be?"}])

    assert len(client.get("/api/chats").json()["sessions"]) == 2
    found = client.get("/api/chats/search", params={"q": "RECOLOUR"}).json()["sessions"]
    assert [s["id"] for s in found] == [chat["id"]]
    assert client.get("/api/chats/search", params={"q": "  "}).json()["sessions"] == []

    assert client.patch(f"/api/chats/{chat['id']}", json={"title": "Logo rules"}).json() == {"success": True}
    assert client.get(f"/api/chats/{chat['id']}").json()["title"] == "Logo rules"
    assert client.patch("/api/chats/missing", json={"title": "x"}).status_code == 404

    assert client.delete(f"/api/chats/{chat['id']}").json() == {"success": True}
    assert client.get(f"/api/chats/{chat['id']}").status_code == 404
    assert client.delete(f"/api/chats/{chat['id']}").status_code == 404
