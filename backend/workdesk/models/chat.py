from datetime import datetime

from sqlmodel import Field, SQLModel


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    sender_id: int = Field(foreign_key="users.id", index=True)
    content: str = Field(default="")
    message_type: str = Field(default="text")  # "text" | "file" | "image" | "system"
    file_url: str | None = Field(default=None)
    file_name: str | None = Field(default=None)
    file_type: str | None = Field(default=None)
    file_size_bytes: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ChatParticipant(SQLModel, table=True):
    __tablename__ = "chat_participants"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    last_read_at: datetime | None = Field(default=None)
    joined_at: datetime = Field(default_factory=datetime.utcnow)
