"""
Integration tests for /api/projects.
"""

from fastapi.testclient import TestClient

from app.services import chat_history


def _project(client: TestClient, **body) -> dict:
    payload = {"name": "Launch"}
    payload.update(body)
    response = client.post("/api/projects", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _chat(title: str = "Chat") -> dict:
    return chat_history.save_session(title, [{"role": "user", "content": "hi"}])


def test_create_defaults_and_update(client: TestClient) -> None:
    project = _project(client)
    assert project["color"] == "#FE5102"
    assert project["icon"] == "folder"

    updated = client.patch(f"/api/projects/{project['id']}", json={"name": "Relaunch", "color": "#191919"}).json()
    assert updated["name"] == "Relaunch"
    assert updated["color"] == "#191919"
    assert client.patch("/api/projects/missing", json={"name": "x"}).status_code == 404
    assert client.post("/api/projects", json={"name": ""}).status_code == 422


def test_assign_chats_and_counts(client: TestClient) -> None:
    project = _project(client)
    chat = _chat()
    assert client.post("/api/projects/assign-chat", json={"chatId": chat["id"], "projectId": project["id"]}).json() == {
        "success": True
    }
    assert client.get("/api/projects/chat-counts").json()["counts"] == {project["id"]: 1}
    assert client.get("/api/projects").json()["projects"][0]["chat_count"] == 1
    assert [c["id"] for c in client.get(f"/api/projects/{project['id']}/chats").json()["chats"]] == [chat["id"]]

    missing_project = client.post("/api/projects/assign-chat", json={"chatId": chat["id"], "projectId": "nope"})
    assert missing_project.status_code == 404
    assert missing_project.json()["detail"] == "Project not found"
    missing_chat = client.post("/api/projects/assign-chat", json={"chatId": "nope", "projectId": project["id"]})
    assert missing_chat.json()["detail"] == "Chat not found"

    client.post("/api/projects/assign-chat", json={"chatId": chat["id"], "projectId": None})
    assert chat_history.get_session(chat["id"])["projectId"] is None


def test_instructions_lifecycle(client: TestClient) -> None:
    project = _project(client)
    url = f"/api/projects/{project['id']}/instructions"
    assert client.get(url).json() == {"instructions": None}
    assert client.put(url, json={"content": "Be concise."}).json()["instructions"]["content"] == "Be concise."
    assert client.put(url, json={"content": "Be brief."}).json()["instructions"]["content"] == "Be brief."

    details = client.get(f"/api/projects/{project['id']}").json()
    assert details["instructions"]["content"] == "Be brief."
    assert details["chat_count"] == 0

    assert client.delete(url).json() == {"success": True}
    assert client.delete(url).json() == {"success": False}
    assert client.get("/api/projects/missing/instructions").status_code == 404


def test_delete_project_keeps_chats(client: TestClient) -> None:
    project = _project(client)
    chat = _chat()
    client.post("/api/projects/assign-chat", json={"chatId": chat["id"], "projectId": project["id"]})
    client.put(f"/api/projects/{project['id']}/instructions", json={"content": "x"})

    assert client.delete(f"/api/projects/{project['id']}").json() == {"success": True}
    assert client.get(f"/api/projects/{project['id']}").status_code == 404
    assert chat_history.get_session(chat["id"])["projectId"] is None
    assert client.delete(f"/api/projects/{project['id']}").status_code == 404
