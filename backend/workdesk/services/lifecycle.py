"""The one place project status is written.

Every status change either portal asks for goes through
``apply_transition``: the request is checked against the transition table
in ``workdesk.services.status``, ownership is checked against the acting
user, and the new status is written with a conditional UPDATE that only
matches the status (and owner columns) that were read. If another request
got there first the UPDATE matches nothing and the caller gets
``TransitionConflict`` instead of silently overwriting the winner.
"""

import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlmodel import Session, col, func, select

from workdesk.database import run_with_retry
from workdesk.errors import (
    NotAuthorized,
    ProjectNotFound,
    TransitionConflict,
    TransitionRejected,
    ValidationError,
)
from workdesk.models.chat import ChatParticipant
from workdesk.models.common import (
    ProjectDeliverable,
    ProjectRevision,
    ProjectStatusHistory,
)
from workdesk.models.project import Project
from workdesk.models.user import User
from workdesk.services.pricing import (
    PricingConfig,
    Quote,
    calculate_quote,
    split_quote,
    validate_quote,
)
from workdesk.services.realtime import feed
from workdesk.services.status import (
    ActorRole,
    ProjectState,
    ProjectStatus,
    Rejected,
    check_transition,
)

logger = logging.getLogger(__name__)

ROLE_FOR_USER = {
    "admin": ActorRole.SYSTEM,
    "supervisor": ActorRole.SUPERVISOR,
    "doer": ActorRole.DOER,
    "client": ActorRole.CLIENT,
}


@dataclass(frozen=True)
class Actor:
    """Who is asking: passed explicitly instead of looked up globally."""

    user_id: int | None
    role: ActorRole

    @classmethod
    def for_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=ROLE_FOR_USER[user.role])


# Columns a transition may write, and the only target allowed to write them.
_COLUMN_TARGETS: dict[str, tuple[ProjectStatus, ...]] = {
    "doer_id": (ProjectStatus.ASSIGNED,),
    "user_quote": (ProjectStatus.QUOTED,),
    "doer_payout": (ProjectStatus.QUOTED,),
    "supervisor_commission": (ProjectStatus.QUOTED,),
    "platform_fee": (ProjectStatus.QUOTED,),
    "cancellation_reason": (ProjectStatus.CANCELLED, ProjectStatus.REFUNDED),
}
# Inputs that are recorded elsewhere rather than on the project row.
_REVISION_INPUTS = {"feedback", "severity"}
_WHOLE_NUMBER_INPUTS = {
    "doer_id",
    "user_quote",
    "doer_payout",
    "supervisor_commission",
    "platform_fee",
}

_STAMPS = {
    ProjectStatus.ANALYZING: "supervisor_assigned_at",
    ProjectStatus.QUOTED: "quoted_at",
    ProjectStatus.PAID: "paid_at",
    ProjectStatus.ASSIGNED: "doer_assigned_at",
    ProjectStatus.IN_PROGRESS: "started_at",
    ProjectStatus.SUBMITTED_FOR_QC: "submitted_for_qc_at",
    ProjectStatus.DELIVERED: "delivered_at",
    ProjectStatus.COMPLETED: "completed_at",
    ProjectStatus.AUTO_APPROVED: "completed_at",
    ProjectStatus.CANCELLED: "cancelled_at",
    ProjectStatus.REFUNDED: "cancelled_at",
}

SEVERITIES = ("minor", "major", "critical")

ALLOWED_FILE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "application/zip",
    "application/x-rar-compressed",
}


# --- Reading ---


def get_project(session: Session, project_id: int) -> Project:
    project = session.get(Project, project_id)
    if not project:
        raise ProjectNotFound()
    return project


def can_view(project: Project, actor: Actor) -> bool:
    status = ProjectStatus(project.status)
    if actor.role == ActorRole.SYSTEM:
        return True
    if actor.role == ActorRole.CLIENT:
        return project.user_id == actor.user_id
    if actor.role == ActorRole.SUPERVISOR:
        if project.supervisor_id is None:
            return status in (ProjectStatus.SUBMITTED, ProjectStatus.ANALYZING)
        return project.supervisor_id == actor.user_id
    if project.doer_id is None:
        return status == ProjectStatus.PAID
    return project.doer_id == actor.user_id


def get_visible_project(session: Session, project_id: int, actor: Actor) -> Project:
    """Load a project the actor may see; others get the same 404 as a missing one."""
    project = get_project(session, project_id)
    if not can_view(project, actor):
        raise ProjectNotFound()
    return project


def deliverable_count(session: Session, project_id: int) -> int:
    return session.exec(
        select(func.count())
        .select_from(ProjectDeliverable)
        .where(ProjectDeliverable.project_id == project_id)
    ).one()


def _doer_available(session: Session, doer_id: int | None) -> bool:
    if doer_id is None:
        return False
    doer = session.get(User, doer_id)
    return bool(doer and doer.role == "doer" and doer.is_available)


def project_state(
    session: Session, project: Project, doer_id: int | None = None
) -> ProjectState:
    """Snapshot of the fields the transition rules look at."""
    return ProjectState(
        status=ProjectStatus(project.status),
        supervisor_id=project.supervisor_id,
        doer_id=project.doer_id,
        doer_available=_doer_available(session, doer_id or project.doer_id),
        user_quote=project.user_quote,
        doer_payout=project.doer_payout,
        supervisor_commission=project.supervisor_commission,
        platform_fee=project.platform_fee,
        deliverable_count=deliverable_count(session, project.id),
        cancellation_reason=project.cancellation_reason,
    )


def status_history(session: Session, project_id: int) -> list[ProjectStatusHistory]:
    return session.exec(
        select(ProjectStatusHistory)
        .where(ProjectStatusHistory.project_id == project_id)
        .order_by(ProjectStatusHistory.id)
    ).all()


# --- Writing ---


def _check_changes(target: ProjectStatus, changes: Mapping[str, Any]) -> None:
    for name in changes:
        if name in _REVISION_INPUTS:
            if target != ProjectStatus.REVISION_REQUESTED:
                raise ValidationError(f"'{name}' only applies to revision requests.")
            continue
        targets = _COLUMN_TARGETS.get(name)
        if targets is None:
            raise ValidationError(f"'{name}' cannot be changed through a status update.")
        if target not in targets:
            raise ValidationError(
                f"'{name}' cannot be changed when moving to {target.label}."
            )
    for name, value in changes.items():
        if value is None:
            continue
        if name in _WHOLE_NUMBER_INPUTS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"'{name}' must be a whole number.")
        elif not isinstance(value, str):
            raise ValidationError(f"'{name}' must be text.")
    severity = changes.get("severity")
    if severity is not None and severity not in SEVERITIES:
        raise ValidationError(f"Severity must be one of: {', '.join(SEVERITIES)}.")
    if target == ProjectStatus.QUOTED:
        user_quote = changes.get("user_quote")
        doer_payout = changes.get("doer_payout")
        if user_quote is not None and doer_payout is not None:
            validate_quote(user_quote, doer_payout)


def _check_ownership(
    project: Project,
    target: ProjectStatus,
    actor: Actor,
    changes: Mapping[str, Any],
) -> None:
    if actor.role == ActorRole.SYSTEM:
        return
    if actor.role == ActorRole.CLIENT:
        if project.user_id != actor.user_id:
            raise NotAuthorized("This project belongs to another client.")
        return
    if actor.role == ActorRole.SUPERVISOR:
        if target == ProjectStatus.ANALYZING:
            return
        if project.supervisor_id != actor.user_id:
            raise NotAuthorized("You are not the supervisor of this project.")
        return
    if target == ProjectStatus.ASSIGNED:
        if changes.get("doer_id") != actor.user_id:
            raise NotAuthorized("Doers can only accept projects for themselves.")
        return
    if project.doer_id != actor.user_id:
        raise NotAuthorized("This project is assigned to another doer.")


def _side_effects(
    session: Session,
    project: Project,
    target: ProjectStatus,
    actor: Actor,
    changes: Mapping[str, Any],
    notes: str | None,
    now: datetime,
) -> None:
    """Satellite rows that change together with the status."""
    if target == ProjectStatus.REVISION_REQUESTED:
        session.add(
            ProjectRevision(
                project_id=project.id,
                revision_number=project.revision_count + 1,
                feedback=changes["feedback"].strip(),
                severity=changes.get("severity") or "minor",
                requested_by=actor.user_id,
                requested_by_type=actor.role.value,
            )
        )
    elif target == ProjectStatus.IN_REVISION:
        for revision in _revisions(session, project.id, "pending"):
            revision.status = "in_progress"
            session.add(revision)
    elif (
        target == ProjectStatus.SUBMITTED_FOR_QC
        and project.status == ProjectStatus.IN_REVISION.value
    ):
        for revision in _revisions(session, project.id, "in_progress"):
            revision.status = "completed"
            revision.completed_at = now
            session.add(revision)
    elif target in (ProjectStatus.QC_APPROVED, ProjectStatus.QC_REJECTED):
        latest = session.exec(
            select(ProjectDeliverable)
            .where(ProjectDeliverable.project_id == project.id)
            .order_by(col(ProjectDeliverable.version).desc())
        ).first()
        if latest:
            approved = target == ProjectStatus.QC_APPROVED
            latest.qc_status = "approved" if approved else "rejected"
            latest.qc_notes = notes
            session.add(latest)


def _revisions(session: Session, project_id: int, status: str) -> list[ProjectRevision]:
    return session.exec(
        select(ProjectRevision).where(
            ProjectRevision.project_id == project_id,
            ProjectRevision.status == status,
        )
    ).all()


def _column_values(
    project: Project,
    target: ProjectStatus,
    actor: Actor,
    changes: Mapping[str, Any],
    now: datetime,
) -> dict[str, Any]:
    values = {k: v for k, v in changes.items() if k in _COLUMN_TARGETS}
    values.update(status=target.value, status_updated_at=now, updated_at=now)

    stamp = _STAMPS.get(target)
    if stamp and getattr(project, stamp) is None:
        values[stamp] = now

    if target == ProjectStatus.ANALYZING:
        values["supervisor_id"] = actor.user_id
    elif target == ProjectStatus.PAID:
        values["is_paid"] = True
    elif target == ProjectStatus.REVISION_REQUESTED:
        values["revision_count"] = project.revision_count + 1
    elif target in (ProjectStatus.CANCELLED, ProjectStatus.REFUNDED):
        values["cancelled_by"] = actor.user_id
        values["cancellation_reason"] = changes["cancellation_reason"].strip()
    return values


def apply_transition(
    session: Session,
    project_id: int,
    target: ProjectStatus | str,
    actor: Actor,
    changes: Mapping[str, Any] | None = None,
    notes: str | None = None,
    expected_status: ProjectStatus | str | None = None,
) -> Project:
    """Move a project to ``target`` on behalf of ``actor``.

    Raises ``TransitionRejected`` with the rule's reason when the table
    forbids it, ``NotAuthorized`` when the actor does not own the project,
    and ``TransitionConflict`` when the row changed underneath us. Callers
    that rendered a particular status pass it as ``expected_status`` so a
    stale screen gets a conflict rather than acting on a newer state.
    """
    try:
        target = ProjectStatus(target)
    except ValueError:
        raise ValidationError(f"Unknown status '{target}'.")
    if expected_status is not None:
        try:
            expected_status = ProjectStatus(expected_status)
        except ValueError:
            raise ValidationError(f"Unknown status '{expected_status}'.")
    changes = dict(changes or {})
    _check_changes(target, changes)

    def attempt() -> Project:
        project = get_project(session, project_id)
        session.refresh(project)
        observed = ProjectStatus(project.status)
        if expected_status is not None and observed != expected_status:
            raise TransitionConflict(
                f"This project is now {observed.label}. Refresh and try again."
            )

        state = project_state(session, project, changes.get("doer_id"))
        result = check_transition(state, target, actor.role, changes)
        if isinstance(result, Rejected):
            logger.warning(
                f"Project {project_id}: {observed.value} -> {target.value} "
                f"rejected for {actor.role.value} {actor.user_id}: {result.reason}"
            )
            raise TransitionRejected(result.kind, result.reason)
        _check_ownership(project, target, actor, changes)

        now = datetime.utcnow()
        stmt = update(Project).where(
            col(Project.id) == project.id, col(Project.status) == observed.value
        )
        if target == ProjectStatus.ANALYZING:
            stmt = stmt.where(col(Project.supervisor_id).is_(None))
        if target == ProjectStatus.ASSIGNED:
            stmt = stmt.where(col(Project.doer_id).is_(None))
        values = _column_values(project, target, actor, changes, now)
        outcome = session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            session.rollback()
            logger.warning(
                f"Project {project_id}: lost race moving {observed.value} -> "
                f"{target.value} for {actor.role.value} {actor.user_id}"
            )
            raise TransitionConflict(
                "Someone else updated this project first. Refresh and try again."
            )

        _side_effects(session, project, target, actor, changes, notes, now)
        session.add(
            ProjectStatusHistory(
                project_id=project.id,
                from_status=observed.value,
                to_status=target.value,
                changed_by=actor.user_id,
                changed_by_type=actor.role.value,
                notes=notes,
                created_at=now,
            )
        )
        session.commit()
        session.refresh(project)
        return project

    project = run_with_retry(session, attempt)
    logger.info(
        f"Project {project.id}: -> {project.status} by "
        f"{actor.role.value} {actor.user_id}"
    )
    feed.publish("projects", "update", project.model_dump())
    return project


def create_project(
    session: Session,
    actor: Actor,
    title: str,
    description: str = "",
    word_count: int | None = None,
    page_count: int | None = None,
    deadline: datetime | None = None,
    draft: bool = False,
) -> Project:
    if actor.role != ActorRole.CLIENT:
        raise NotAuthorized("Only clients can create projects.")
    if not title.strip():
        raise ValidationError("A project needs a title.")
    status = ProjectStatus.DRAFT if draft else ProjectStatus.SUBMITTED
    project = Project(
        project_number=f"WD-{secrets.token_hex(4).upper()}",
        title=title.strip(),
        description=description,
        user_id=actor.user_id,
        word_count=word_count,
        page_count=page_count,
        deadline=deadline,
        status=status.value,
    )
    session.add(project)
    session.flush()
    session.add(
        ProjectStatusHistory(
            project_id=project.id,
            to_status=status.value,
            changed_by=actor.user_id,
            changed_by_type=actor.role.value,
        )
    )
    session.add(ChatParticipant(project_id=project.id, user_id=actor.user_id))
    session.commit()
    session.refresh(project)
    logger.info(f"Project {project.id} created as {status.value}")
    feed.publish("projects", "insert", project.model_dump())
    return project


# --- Named operations used by the portals ---


def claim(session: Session, project_id: int, actor: Actor) -> Project:
    project = apply_transition(session, project_id, ProjectStatus.ANALYZING, actor)
    _join_chat(session, project.id, actor.user_id)
    return project


def suggest_quote(project: Project, pricing: PricingConfig) -> Quote:
    return calculate_quote(
        project.word_count, project.page_count, project.deadline, pricing
    )


def submit_quote(
    session: Session,
    project_id: int,
    actor: Actor,
    pricing: PricingConfig,
    user_quote: int | None = None,
    doer_payout: int | None = None,
) -> Project:
    """Quote a project, defaulting to the calculator's suggestion.

    The commission and platform fee always follow the configured split of
    the final quote; only the doer payout may be overridden.
    """
    project = get_project(session, project_id)
    if user_quote is None:
        quote = suggest_quote(project, pricing)
    else:
        quote = split_quote(user_quote, pricing)
    payout = quote.doer_payout if doer_payout is None else doer_payout
    return apply_transition(
        session,
        project_id,
        ProjectStatus.QUOTED,
        actor,
        changes={
            "user_quote": quote.suggested_quote,
            "doer_payout": payout,
            "supervisor_commission": quote.supervisor_commission,
            "platform_fee": quote.platform_fee,
        },
    )


def assign_doer(session: Session, project_id: int, actor: Actor, doer_id: int) -> Project:
    doer = session.get(User, doer_id)
    if not doer or doer.role != "doer":
        raise ValidationError("Doer not found.")
    project = apply_transition(
        session, project_id, ProjectStatus.ASSIGNED, actor, changes={"doer_id": doer_id}
    )
    _join_chat(session, project.id, doer_id)
    return project


def accept_pool_task(session: Session, project_id: int, actor: Actor) -> Project:
    project = apply_transition(
        session,
        project_id,
        ProjectStatus.ASSIGNED,
        actor,
        changes={"doer_id": actor.user_id},
    )
    _join_chat(session, project.id, actor.user_id)
    return project


def start_work(session: Session, project_id: int, actor: Actor) -> Project:
    return apply_transition(session, project_id, ProjectStatus.IN_PROGRESS, actor)


def submit_for_qc(session: Session, project_id: int, actor: Actor) -> Project:
    return apply_transition(session, project_id, ProjectStatus.SUBMITTED_FOR_QC, actor)


def begin_revision(session: Session, project_id: int, actor: Actor) -> Project:
    return apply_transition(session, project_id, ProjectStatus.IN_REVISION, actor)


QC_DECISIONS = {
    "start": ProjectStatus.QC_IN_PROGRESS,
    "approve": ProjectStatus.QC_APPROVED,
    "reject": ProjectStatus.QC_REJECTED,
    "deliver": ProjectStatus.DELIVERED,
}


def qc_decide(
    session: Session,
    project_id: int,
    actor: Actor,
    decision: str,
    notes: str | None = None,
) -> Project:
    target = QC_DECISIONS.get(decision)
    if target is None:
        raise ValidationError(
            f"Decision must be one of: {', '.join(QC_DECISIONS)}."
        )
    return apply_transition(session, project_id, target, actor, notes=notes)


def request_revision(
    session: Session,
    project_id: int,
    actor: Actor,
    feedback: str,
    severity: str = "minor",
) -> Project:
    return apply_transition(
        session,
        project_id,
        ProjectStatus.REVISION_REQUESTED,
        actor,
        changes={"feedback": feedback, "severity": severity},
        notes=feedback,
    )


def cancel(
    session: Session,
    project_id: int,
    actor: Actor,
    reason: str,
    refund: bool = False,
) -> Project:
    target = ProjectStatus.REFUNDED if refund else ProjectStatus.CANCELLED
    return apply_transition(
        session,
        project_id,
        target,
        actor,
        changes={"cancellation_reason": reason},
        notes=reason,
    )


def confirm_payment(session: Session, project_id: int, actor: Actor) -> Project:
    """Record a payment, moving a quoted project through payment_pending to paid.

    Each step commits on its own. If the second one fails the project is
    left in payment_pending, and calling this again completes the move.
    """
    project = get_project(session, project_id)
    if project.status == ProjectStatus.QUOTED.value:
        apply_transition(session, project_id, ProjectStatus.PAYMENT_PENDING, actor)
    return apply_transition(session, project_id, ProjectStatus.PAID, actor)


def _join_chat(session: Session, project_id: int, user_id: int | None) -> None:
    if user_id is None:
        return
    existing = session.exec(
        select(ChatParticipant).where(
            ChatParticipant.project_id == project_id,
            ChatParticipant.user_id == user_id,
        )
    ).first()
    if not existing:
        session.add(ChatParticipant(project_id=project_id, user_id=user_id))
        session.commit()


# --- Deliverables ---


def upload_deliverable(
    session: Session,
    project_id: int,
    actor: Actor,
    file_name: str,
    file_url: str,
    file_type: str,
    file_size_bytes: int,
    max_bytes: int,
) -> ProjectDeliverable:
    """Record an uploaded file as the project's next deliverable version."""
    project = get_project(session, project_id)
    if actor.role != ActorRole.DOER or project.doer_id != actor.user_id:
        raise NotAuthorized("Only the assigned doer can upload deliverables.")
    if project.status not in (
        ProjectStatus.IN_PROGRESS.value,
        ProjectStatus.IN_REVISION.value,
    ):
        raise ValidationError(
            "Deliverables can only be uploaded while work is in progress."
        )
    if file_type not in ALLOWED_FILE_TYPES:
        raise ValidationError(
            f'File type "{file_type}" is not allowed. Allowed types: images, PDF, '
            "Office documents, text files, and archives."
        )
    if file_size_bytes > max_bytes:
        raise ValidationError(
            f"File size exceeds the maximum limit of {max_bytes // (1024 * 1024)}MB."
        )

    latest = session.exec(
        select(func.max(ProjectDeliverable.version)).where(
            ProjectDeliverable.project_id == project_id
        )
    ).one()
    deliverable = ProjectDeliverable(
        project_id=project_id,
        uploaded_by=actor.user_id,
        file_name=file_name,
        file_url=file_url,
        file_type=file_type,
        file_size_bytes=file_size_bytes,
        version=(latest or 0) + 1,
    )
    session.add(deliverable)
    session.commit()
    session.refresh(deliverable)
    logger.info(
        f"Project {project_id}: deliverable v{deliverable.version} uploaded"
    )
    return deliverable
