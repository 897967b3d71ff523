"""Doer portal: the projects assigned to me and the work I do on them."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, col, func, select

from workdesk.api.deps import get_doer
from workdesk.api.projects import ProjectResponse
from workdesk.config import settings
from workdesk.database import get_session
from workdesk.models.common import ProjectDeliverable
from workdesk.models.project import Project
from workdesk.models.user import User
from workdesk.services import lifecycle
from workdesk.services.lifecycle import Actor
from workdesk.services.status import STATUS_CATEGORIES, ProjectStatus

router = APIRouter(prefix="/doer", tags=["doer"])


class DeliverableRequest(BaseModel):
    file_name: str
    file_url: str
    file_type: str
    file_size_bytes: int


class DeliverableResponse(BaseModel):
    id: int
    project_id: int
    uploaded_by: int
    file_name: str
    file_url: str
    file_type: str
    file_size_bytes: int
    version: int
    qc_status: str
    qc_notes: str | None
    created_at: datetime


class DoerStatsResponse(BaseModel):
    active_count: int
    completed_count: int
    total_earnings: int


def _actor(doer: User) -> Actor:
    return Actor.for_user(doer)


def _count(session: Session, doer_id: int, statuses) -> int:
    return session.exec(
        select(func.count())
        .select_from(Project)
        .where(
            Project.doer_id == doer_id,
            col(Project.status).in_([s.value for s in statuses]),
        )
    ).one()


@router.get("/projects", response_model=list[ProjectResponse])
async def list_my_projects(
    category: str | None = None,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    query = select(Project).where(Project.doer_id == doer.id)
    if category:
        statuses = STATUS_CATEGORIES.get(category)
        if statuses is None:
            raise HTTPException(status_code=400, detail="Unknown category")
        query = query.where(col(Project.status).in_([s.value for s in statuses]))
    return session.exec(query.order_by(col(Project.deadline).asc())).all()


@router.get("/pool", response_model=list[ProjectResponse])
async def list_open_pool(
    session: Session = Depends(get_session),
    _doer: User = Depends(get_doer),
):
    return session.exec(
        select(Project)
        .where(
            col(Project.doer_id).is_(None),
            Project.status == ProjectStatus.PAID.value,
        )
        .order_by(col(Project.deadline).asc())
    ).all()


@router.post("/pool/{project_id}/accept", response_model=ProjectResponse)
async def accept_from_pool(
    project_id: int,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    return lifecycle.accept_pool_task(session, project_id, _actor(doer))


@router.post("/projects/{project_id}/start", response_model=ProjectResponse)
async def start_project(
    project_id: int,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    return lifecycle.start_work(session, project_id, _actor(doer))


@router.post("/projects/{project_id}/submit", response_model=ProjectResponse)
async def submit_project(
    project_id: int,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    return lifecycle.submit_for_qc(session, project_id, _actor(doer))


@router.post("/projects/{project_id}/revision/start", response_model=ProjectResponse)
async def start_revision(
    project_id: int,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    return lifecycle.begin_revision(session, project_id, _actor(doer))


@router.post(
    "/projects/{project_id}/deliverables",
    response_model=DeliverableResponse,
    status_code=201,
)
async def upload_deliverable(
    project_id: int,
    body: DeliverableRequest,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    return lifecycle.upload_deliverable(
        session,
        project_id,
        _actor(doer),
        file_name=body.file_name,
        file_url=body.file_url,
        file_type=body.file_type,
        file_size_bytes=body.file_size_bytes,
        max_bytes=settings.max_upload_bytes,
    )


@router.get(
    "/projects/{project_id}/deliverables", response_model=list[DeliverableResponse]
)
async def list_deliverables(
    project_id: int,
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    lifecycle.get_visible_project(session, project_id, _actor(doer))
    return session.exec(
        select(ProjectDeliverable)
        .where(ProjectDeliverable.project_id == project_id)
        .order_by(col(ProjectDeliverable.version).desc())
    ).all()


@router.get("/stats", response_model=DoerStatsResponse)
async def get_stats(
    session: Session = Depends(get_session),
    doer: User = Depends(get_doer),
):
    completed = STATUS_CATEGORIES["completed"]
    earnings = session.exec(
        select(func.coalesce(func.sum(Project.doer_payout), 0)).where(
            Project.doer_id == doer.id,
            col(Project.status).in_([s.value for s in completed]),
        )
    ).one()
    return DoerStatsResponse(
        active_count=_count(session, doer.id, STATUS_CATEGORIES["active"]),
        completed_count=_count(session, doer.id, completed),
        total_earnings=earnings,
    )
