from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from workdesk.api.deps import get_actor, get_admin_user
from workdesk.database import get_session
from workdesk.errors import ValidationError
from workdesk.models.user import User
from workdesk.services import lifecycle
from workdesk.services.lifecycle import Actor
from workdesk.services.status import Allowed, ProjectStatus, available_transitions

router = APIRouter(prefix="/projects", tags=["projects"])


# --- Pydantic models ---


class CreateProjectRequest(BaseModel):
    title: str
    description: str = ""
    word_count: int | None = None
    page_count: int | None = None
    deadline: datetime | None = None
    draft: bool = False


class TransitionRequest(BaseModel):
    target: str
    changes: dict[str, Any] = {}
    notes: str | None = None
    expected_status: str | None = None


class ProjectResponse(BaseModel):
    id: int
    project_number: str
    title: str
    description: str
    user_id: int
    supervisor_id: int | None
    doer_id: int | None
    status: str
    word_count: int | None
    page_count: int | None
    deadline: datetime | None
    user_quote: int | None
    doer_payout: int | None
    supervisor_commission: int | None
    platform_fee: int | None
    is_paid: bool
    revision_count: int
    cancellation_reason: str | None
    supervisor_assigned_at: datetime | None
    quoted_at: datetime | None
    paid_at: datetime | None
    doer_assigned_at: datetime | None
    started_at: datetime | None
    submitted_for_qc_at: datetime | None
    delivered_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    status_updated_at: datetime
    created_at: datetime
    updated_at: datetime


class HistoryResponse(BaseModel):
    id: int
    from_status: str | None
    to_status: str
    changed_by: int | None
    changed_by_type: str
    notes: str | None
    created_at: datetime


class TransitionOption(BaseModel):
    target: str
    allowed: bool
    reason: str | None = None


# --- Endpoints ---


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: CreateProjectRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.create_project(
        session,
        actor,
        title=body.title,
        description=body.description,
        word_count=body.word_count,
        page_count=body.page_count,
        deadline=body.deadline,
        draft=body.draft,
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.get_visible_project(session, project_id, actor)


@router.get("/{project_id}/history", response_model=list[HistoryResponse])
async def get_history(
    project_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    lifecycle.get_visible_project(session, project_id, actor)
    return lifecycle.status_history(session, project_id)


@router.get("/{project_id}/transitions", response_model=list[TransitionOption])
async def list_transitions(
    project_id: int,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    """What the current user could do next, with the reason when blocked."""
    project = lifecycle.get_visible_project(session, project_id, actor)
    state = lifecycle.project_state(session, project)
    return [
        TransitionOption(
            target=target.value,
            allowed=isinstance(result, Allowed),
            reason=getattr(result, "reason", None),
        )
        for target, result in available_transitions(state, actor.role).items()
    ]


@router.post("/{project_id}/transitions", response_model=ProjectResponse)
async def request_transition(
    project_id: int,
    body: TransitionRequest,
    session: Session = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    lifecycle.get_visible_project(session, project_id, actor)
    if body.target == ProjectStatus.QUOTED.value:
        # Quote shares come from the active pricing guide
        raise ValidationError(
            f"Submit quotes through /api/supervisor/projects/{project_id}/quote."
        )
    return lifecycle.apply_transition(
        session,
        project_id,
        body.target,
        actor,
        changes=body.changes,
        notes=body.notes,
        expected_status=body.expected_status,
    )


@router.post("/{project_id}/payment", response_model=ProjectResponse)
async def confirm_payment(
    project_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    """Record a confirmed payment on behalf of the payment provider."""
    return lifecycle.confirm_payment(session, project_id, Actor.for_user(admin))
