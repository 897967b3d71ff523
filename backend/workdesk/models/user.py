from datetime import datetime

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    password_hash: str
    full_name: str = Field(default="")
    role: str = Field(default="client")  # "admin" | "supervisor" | "doer" | "client"
    is_available: bool = Field(default=True)  # doers only
    created_at: datetime = Field(default_factory=datetime.utcnow)
