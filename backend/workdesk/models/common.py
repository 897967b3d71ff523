from datetime import datetime

from sqlmodel import Field, SQLModel


class ProjectDeliverable(SQLModel, table=True):
    __tablename__ = "project_deliverables"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    uploaded_by: int = Field(foreign_key="users.id")
    file_name: str
    file_url: str
    file_type: str = Field(default="")
    file_size_bytes: int = Field(default=0)
    version: int = Field(default=1)
    qc_status: str = Field(default="pending")  # "pending" | "approved" | "rejected"
    qc_notes: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class ProjectRevision(SQLModel, table=True):
    __tablename__ = "project_revisions"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    revision_number: int
    feedback: str
    severity: str = Field(default="minor")  # "minor" | "major" | "critical"
    requested_by: int = Field(foreign_key="users.id")
    requested_by_type: str  # actor role
    status: str = Field(default="pending")  # "pending" | "in_progress" | "completed"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = Field(default=None)


class ProjectStatusHistory(SQLModel, table=True):
    __tablename__ = "project_status_history"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    from_status: str | None = Field(default=None)
    to_status: str
    changed_by: int | None = Field(default=None, foreign_key="users.id")
    changed_by_type: str  # actor role
    notes: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PricingGuide(SQLModel, table=True):
    __tablename__ = "pricing_guides"

    id: int | None = Field(default=None, primary_key=True)
    base_price_per_word: float
    base_price_per_page: float
    base_price_fixed: float
    urgency_24h_multiplier: float
    urgency_48h_multiplier: float
    urgency_72h_multiplier: float
    supervisor_percentage: float
    platform_percentage: float
    is_active: bool = Field(default=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
