import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from workdesk.services.realtime import feed


def _token(headers: dict) -> str:
    return headers["Authorization"].removeprefix("Bearer ")


def test_rejects_invalid_token(client: TestClient, project_at):
    project = project_at("submitted")
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws/projects/{project['id']}?token=bogus"):
            pass
    assert exc_info.value.code == 4001


def test_rejects_project_not_visible(client: TestClient, headers, project_at):
    project = project_at("submitted")
    url = f"/ws/projects/{project['id']}?token={_token(headers['doer'])}"
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(url):
            pass
    assert exc_info.value.code == 4004


def test_project_updates_stream(client: TestClient, headers, project_at):
    project = project_at("submitted")
    url = f"/ws/projects/{project['id']}?token={_token(headers['client'])}"

    with client.websocket_connect(url) as websocket:
        assert feed.subscriber_count == 1
        client.post(
            f"/api/supervisor/projects/{project['id']}/claim",
            headers=headers["supervisor"],
        )
        event = websocket.receive_json()
        assert event["table"] == "projects"
        assert event["event"] == "update"
        assert event["record"]["id"] == project["id"]
        assert event["record"]["status"] == "analyzing"

    assert feed.subscriber_count == 0


def test_chat_stream(client: TestClient, headers, project_at):
    project = project_at("analyzing")
    url = f"/ws/projects/{project['id']}/chat?token={_token(headers['supervisor'])}"

    with client.websocket_connect(url) as websocket:
        client.post(
            f"/api/projects/{project['id']}/messages",
            json={"content": "Is the deadline firm?"},
            headers=headers["client"],
        )
        event = websocket.receive_json()
        assert event["table"] == "chat_messages"
        assert event["event"] == "insert"
        assert event["record"]["content"] == "Is the deadline firm?"

    assert feed.subscriber_count == 0
