"""Supervisor portal: triage, quoting, doer assignment and quality control."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, col, select

from workdesk.api.deps import get_pricing, get_supervisor
from workdesk.api.doer import DeliverableResponse
from workdesk.api.projects import ProjectResponse
from workdesk.database import get_session
from workdesk.models.common import ProjectDeliverable
from workdesk.models.project import Project
from workdesk.models.user import User
from workdesk.services import lifecycle
from workdesk.services.lifecycle import Actor
from workdesk.services.pricing import PricingConfig
from workdesk.services.status import ProjectStatus

router = APIRouter(prefix="/supervisor", tags=["supervisor"])


# --- Pydantic models ---


class QuoteRequest(BaseModel):
    user_quote: int | None = None
    doer_payout: int | None = None


class QuoteSuggestionResponse(BaseModel):
    suggested_quote: int
    doer_payout: int
    supervisor_commission: int
    platform_fee: int


class AssignRequest(BaseModel):
    doer_id: int


class QCRequest(BaseModel):
    decision: str  # "start" | "approve" | "reject" | "deliver"
    notes: str | None = None


class RevisionRequest(BaseModel):
    feedback: str
    severity: str = "minor"


class CancelRequest(BaseModel):
    reason: str
    refund: bool = False


class DoerResponse(BaseModel):
    id: int
    username: str
    full_name: str
    is_available: bool


# --- Endpoints ---


@router.get("/requests", response_model=list[ProjectResponse])
async def list_unclaimed_requests(
    session: Session = Depends(get_session),
    _supervisor: User = Depends(get_supervisor),
):
    return session.exec(
        select(Project)
        .where(
            col(Project.supervisor_id).is_(None),
            col(Project.status).in_(
                [ProjectStatus.SUBMITTED.value, ProjectStatus.ANALYZING.value]
            ),
        )
        .order_by(col(Project.created_at).asc())
    ).all()


@router.get("/projects", response_model=list[ProjectResponse])
async def list_my_projects(
    status: str | None = None,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    query = select(Project).where(Project.supervisor_id == supervisor.id)
    if status:
        query = query.where(col(Project.status).in_(status.split(",")))
    return session.exec(query.order_by(col(Project.deadline).asc())).all()


@router.get("/doers", response_model=list[DoerResponse])
async def list_available_doers(
    session: Session = Depends(get_session),
    _supervisor: User = Depends(get_supervisor),
):
    return session.exec(
        select(User).where(User.role == "doer", User.is_available == True)  # noqa: E712
    ).all()


@router.post("/projects/{project_id}/claim", response_model=ProjectResponse)
async def claim_project(
    project_id: int,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    return lifecycle.claim(session, project_id, Actor.for_user(supervisor))


@router.get(
    "/projects/{project_id}/quote-suggestion",
    response_model=QuoteSuggestionResponse,
)
async def get_quote_suggestion(
    project_id: int,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
    pricing: PricingConfig = Depends(get_pricing),
):
    project = lifecycle.get_visible_project(
        session, project_id, Actor.for_user(supervisor)
    )
    return lifecycle.suggest_quote(project, pricing)


@router.post("/projects/{project_id}/quote", response_model=ProjectResponse)
async def submit_quote(
    project_id: int,
    body: QuoteRequest,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
    pricing: PricingConfig = Depends(get_pricing),
):
    return lifecycle.submit_quote(
        session,
        project_id,
        Actor.for_user(supervisor),
        pricing,
        user_quote=body.user_quote,
        doer_payout=body.doer_payout,
    )


@router.post("/projects/{project_id}/assign", response_model=ProjectResponse)
async def assign_doer(
    project_id: int,
    body: AssignRequest,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    return lifecycle.assign_doer(
        session, project_id, Actor.for_user(supervisor), body.doer_id
    )


@router.post("/projects/{project_id}/qc", response_model=ProjectResponse)
async def quality_check(
    project_id: int,
    body: QCRequest,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    return lifecycle.qc_decide(
        session, project_id, Actor.for_user(supervisor), body.decision, body.notes
    )


@router.post("/projects/{project_id}/revision", response_model=ProjectResponse)
async def request_revision(
    project_id: int,
    body: RevisionRequest,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    return lifecycle.request_revision(
        session, project_id, Actor.for_user(supervisor), body.feedback, body.severity
    )


@router.post("/projects/{project_id}/cancel", response_model=ProjectResponse)
async def cancel_project(
    project_id: int,
    body: CancelRequest,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    return lifecycle.cancel(
        session, project_id, Actor.for_user(supervisor), body.reason, body.refund
    )


@router.get(
    "/projects/{project_id}/deliverables", response_model=list[DeliverableResponse]
)
async def list_deliverables(
    project_id: int,
    session: Session = Depends(get_session),
    supervisor: User = Depends(get_supervisor),
):
    lifecycle.get_visible_project(session, project_id, Actor.for_user(supervisor))
    return session.exec(
        select(ProjectDeliverable)
        .where(ProjectDeliverable.project_id == project_id)
        .order_by(col(ProjectDeliverable.version).desc())
    ).all()
