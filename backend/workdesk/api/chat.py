from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from workdesk.api.deps import get_actor
from workdesk.config import settings
from workdesk.database import get_session
from workdesk.errors import ValidationError
from workdesk.services import chat, lifecycle
from workdesk.services.lifecycle import Actor

router = APIRouter(tags=["chat"])


class SendMessageRequest(BaseModel):
    content: str = ""
    message_type: str = "text"
    file_url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size_bytes: int | None = None


class MessageResponse(BaseModel):
    id: int
    project_id: int
    sender_id: int
    content: str
    message_type: str
    file_url: str | None
    file_name: str | None
    file_type: str | None
    file_size_bytes: int | None
    created_at: datetime


class MessagePage(BaseModel):
    messages: list[MessageResponse]
    has_more: bool
    next_offset: int


class UnreadResponse(BaseModel):
    total: int
    by_project: dict[int, int]


@router.get("/projects/{project_id}/messages", response_model=MessagePage)
async def list_messages(
    project_id: int,
    offset: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1, le=200),
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    lifecycle.get_visible_project(session, project_id, actor)
    messages, has_more = chat.list_messages(
        session, project_id, offset, limit or settings.chat_page_size
    )
    return MessagePage(
        messages=[
            MessageResponse.model_validate(m, from_attributes=True) for m in messages
        ],
        has_more=has_more,
        next_offset=offset + len(messages),
    )


@router.post(
    "/projects/{project_id}/messages", response_model=MessageResponse, status_code=201
)
async def send_message(
    project_id: int,
    body: SendMessageRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    lifecycle.get_visible_project(session, project_id, actor)
    if body.file_size_bytes and body.file_size_bytes > settings.max_upload_bytes:
        raise ValidationError(
            f"File size exceeds the maximum limit of "
            f"{settings.max_upload_bytes // (1024 * 1024)}MB."
        )
    return chat.send_message(
        session,
        project_id,
        actor.user_id,
        body.content,
        message_type=body.message_type,
        file_url=body.file_url,
        file_name=body.file_name,
        file_type=body.file_type,
        file_size_bytes=body.file_size_bytes,
    )


@router.post("/projects/{project_id}/messages/read")
async def mark_read(
    project_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    lifecycle.get_visible_project(session, project_id, actor)
    participant = chat.mark_read(session, project_id, actor.user_id)
    return {"last_read_at": participant.last_read_at}


@router.get("/chat/unread", response_model=UnreadResponse)
async def unread(
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    counts = chat.unread_counts(session, actor.user_id)
    return UnreadResponse(total=sum(counts.values()), by_project=counts)
