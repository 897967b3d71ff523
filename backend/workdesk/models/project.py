from datetime import datetime

from sqlmodel import Field, SQLModel

from workdesk.services.status import ProjectStatus


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: int | None = Field(default=None, primary_key=True)
    project_number: str = Field(unique=True, index=True)
    title: str
    description: str = Field(default="")
    user_id: int = Field(foreign_key="users.id", index=True)
    supervisor_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    doer_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    status: str = Field(default=ProjectStatus.SUBMITTED.value, index=True)

    word_count: int | None = Field(default=None)
    page_count: int | None = Field(default=None)
    deadline: datetime | None = Field(default=None)

    # Set once when the project is quoted
    user_quote: int | None = Field(default=None)
    doer_payout: int | None = Field(default=None)
    supervisor_commission: int | None = Field(default=None)
    platform_fee: int | None = Field(default=None)
    is_paid: bool = Field(default=False)

    revision_count: int = Field(default=0)
    cancellation_reason: str | None = Field(default=None)
    cancelled_by: int | None = Field(default=None, foreign_key="users.id")

    # Write-once stamps, one per transition
    supervisor_assigned_at: datetime | None = Field(default=None)
    quoted_at: datetime | None = Field(default=None)
    paid_at: datetime | None = Field(default=None)
    doer_assigned_at: datetime | None = Field(default=None)
    started_at: datetime | None = Field(default=None)
    submitted_for_qc_at: datetime | None = Field(default=None)
    delivered_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    cancelled_at: datetime | None = Field(default=None)

    status_updated_at: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
