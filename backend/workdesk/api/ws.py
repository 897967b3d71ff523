import asyncio
from collections.abc import Mapping
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket
from sqlmodel import Session

from workdesk.api.deps import user_for_token
from workdesk.database import get_session
from workdesk.errors import NotAuthenticated, ProjectNotFound
from workdesk.services import lifecycle
from workdesk.services.lifecycle import Actor
from workdesk.services.realtime import Subscription, feed

router = APIRouter()


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        await websocket.send_json(event.to_json())


async def _stream(
    websocket: WebSocket, table: str, where: Mapping[str, Any]
) -> None:
    """Push matching change events until the client disconnects.

    The subscription is opened before the socket is accepted, so nothing
    published after the handshake is missed, and closed as soon as the
    client goes away.
    """
    async with feed.subscribe(table, where) as subscription:
        await websocket.accept()
        forward = asyncio.create_task(_forward(websocket, subscription))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        finally:
            forward.cancel()
            await asyncio.gather(forward, return_exceptions=True)


async def _authorize(
    websocket: WebSocket, session: Session, project_id: int, token: str
) -> bool:
    try:
        user = user_for_token(session, token)
        lifecycle.get_visible_project(session, project_id, Actor.for_user(user))
    except NotAuthenticated:
        await websocket.close(code=4001)
        return False
    except ProjectNotFound:
        await websocket.close(code=4004)
        return False
    return True


@router.websocket("/ws/projects/{project_id}")
async def project_updates(
    websocket: WebSocket,
    project_id: int,
    token: str = Query(default=""),
    session: Session = Depends(get_session),
):
    """Stream status changes of one project."""
    if await _authorize(websocket, session, project_id, token):
        await _stream(websocket, "projects", {"id": project_id})


@router.websocket("/ws/projects/{project_id}/chat")
async def project_chat(
    websocket: WebSocket,
    project_id: int,
    token: str = Query(default=""),
    session: Session = Depends(get_session),
):
    """Stream new chat messages of one project."""
    if await _authorize(websocket, session, project_id, token):
        await _stream(websocket, "chat_messages", {"project_id": project_id})
