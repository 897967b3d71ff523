import logging
from datetime import datetime

from sqlmodel import Session, col, func, select

from workdesk.errors import ValidationError
from workdesk.models.chat import ChatMessage, ChatParticipant
from workdesk.services.realtime import feed

logger = logging.getLogger(__name__)

MESSAGE_TYPES = ("text", "file", "image", "system")


def list_messages(
    session: Session, project_id: int, offset: int = 0, limit: int = 50
) -> tuple[list[ChatMessage], bool]:
    """Return one page of a project's chat, newest page first.

    ``offset`` counts back from the newest message. Messages within the
    page are returned oldest first so they can be prepended as a block.
    The flag is True when a full page came back and older messages may
    remain.
    """
    page = session.exec(
        select(ChatMessage)
        .where(ChatMessage.project_id == project_id)
        .order_by(col(ChatMessage.id).desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return list(reversed(page)), len(page) == limit


def _participant(session: Session, project_id: int, user_id: int) -> ChatParticipant:
    participant = session.exec(
        select(ChatParticipant).where(
            ChatParticipant.project_id == project_id,
            ChatParticipant.user_id == user_id,
        )
    ).first()
    if not participant:
        participant = ChatParticipant(project_id=project_id, user_id=user_id)
    return participant


def send_message(
    session: Session,
    project_id: int,
    sender_id: int,
    content: str,
    message_type: str = "text",
    file_url: str | None = None,
    file_name: str | None = None,
    file_type: str | None = None,
    file_size_bytes: int | None = None,
) -> ChatMessage:
    content = (content or "").strip()
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"Unknown message type '{message_type}'.")
    if message_type == "text" and not content:
        raise ValidationError("Message cannot be empty.")
    if message_type in ("file", "image") and not file_url:
        raise ValidationError("File messages need a file URL.")

    message = ChatMessage(
        project_id=project_id,
        sender_id=sender_id,
        content=content or (file_name or ""),
        message_type=message_type,
        file_url=file_url,
        file_name=file_name,
        file_type=file_type,
        file_size_bytes=file_size_bytes,
    )
    session.add(message)

    # The sender has read everything up to their own message.
    participant = _participant(session, project_id, sender_id)
    participant.last_read_at = message.created_at
    session.add(participant)

    session.commit()
    session.refresh(message)
    feed.publish("chat_messages", "insert", message.model_dump())
    return message


def mark_read(session: Session, project_id: int, user_id: int) -> ChatParticipant:
    participant = _participant(session, project_id, user_id)
    participant.last_read_at = datetime.utcnow()
    session.add(participant)
    session.commit()
    session.refresh(participant)
    return participant


def unread_counts(session: Session, user_id: int) -> dict[int, int]:
    """Per project, messages from others newer than the user's read marker."""
    participants = session.exec(
        select(ChatParticipant).where(ChatParticipant.user_id == user_id)
    ).all()
    counts: dict[int, int] = {}
    for participant in participants:
        query = (
            select(func.count())
            .select_from(ChatMessage)
            .where(
                ChatMessage.project_id == participant.project_id,
                ChatMessage.sender_id != user_id,
            )
        )
        if participant.last_read_at is not None:
            query = query.where(ChatMessage.created_at > participant.last_read_at)
        counts[participant.project_id] = session.exec(query).one()
    return counts
