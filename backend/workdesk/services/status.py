"""Project lifecycle statuses and the rules for moving between them.

Every status change either portal can request goes through
``check_transition``. It is a pure function over a ``ProjectState``
snapshot: it never touches the database, so the lifecycle service, the
routers and the tests all share one definition of what is legal.

A request is evaluated in a fixed order:

1. the ``(from, to)`` pair must appear in ``TRANSITIONS`` at all,
   otherwise ``UnknownTransition``;
2. every precondition of that row must hold on the current and proposed
   state, otherwise ``MissingPrecondition``;
3. the acting role must be one of the roles listed for the row,
   otherwise ``ForbiddenForRole``.

Checking preconditions before roles means that claiming an already
claimed project reports the missing precondition whoever asks.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import ClassVar


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    ANALYZING = "analyzing"
    QUOTED = "quoted"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    ASSIGNING = "assigning"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    SUBMITTED_FOR_QC = "submitted_for_qc"
    QC_IN_PROGRESS = "qc_in_progress"
    QC_APPROVED = "qc_approved"
    QC_REJECTED = "qc_rejected"
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"
    IN_REVISION = "in_revision"
    COMPLETED = "completed"
    AUTO_APPROVED = "auto_approved"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class ActorRole(str, Enum):
    DOER = "doer"
    SUPERVISOR = "supervisor"
    CLIENT = "client"
    SYSTEM = "system"


class RejectionKind(str, Enum):
    UNKNOWN_TRANSITION = "UnknownTransition"
    FORBIDDEN_FOR_ROLE = "ForbiddenForRole"
    MISSING_PRECONDITION = "MissingPrecondition"


TERMINAL_STATUSES = frozenset(
    {
        ProjectStatus.COMPLETED,
        ProjectStatus.AUTO_APPROVED,
        ProjectStatus.CANCELLED,
        ProjectStatus.REFUNDED,
    }
)

# Groupings used by the doer portal tabs
STATUS_CATEGORIES: dict[str, tuple[ProjectStatus, ...]] = {
    "active": (
        ProjectStatus.ASSIGNED,
        ProjectStatus.IN_PROGRESS,
        ProjectStatus.IN_REVISION,
        ProjectStatus.REVISION_REQUESTED,
    ),
    "review": (
        ProjectStatus.SUBMITTED_FOR_QC,
        ProjectStatus.QC_IN_PROGRESS,
        ProjectStatus.QC_APPROVED,
        ProjectStatus.DELIVERED,
    ),
    "completed": (ProjectStatus.COMPLETED, ProjectStatus.AUTO_APPROVED),
}


def is_terminal(status: ProjectStatus) -> bool:
    return status in TERMINAL_STATUSES


def status_category(status: ProjectStatus) -> str | None:
    for category, statuses in STATUS_CATEGORIES.items():
        if status in statuses:
            return category
    return None


@dataclass(frozen=True)
class ProjectState:
    """The fields of a project the transition rules look at."""

    status: ProjectStatus
    supervisor_id: int | None = None
    doer_id: int | None = None
    doer_available: bool = False
    user_quote: int | None = None
    doer_payout: int | None = None
    supervisor_commission: int | None = None
    platform_fee: int | None = None
    deliverable_count: int = 0
    feedback: str | None = None
    cancellation_reason: str | None = None

    def with_changes(self, changes: Mapping[str, object] | None) -> "ProjectState":
        """Return the state as it would look with ``changes`` written.

        The status itself is never taken from ``changes``; it only moves
        through ``check_transition``.
        """
        if not changes:
            return self
        names = {f.name for f in fields(self)} - {"status"}
        return replace(self, **{k: v for k, v in changes.items() if k in names})


@dataclass(frozen=True)
class Allowed:
    allowed: ClassVar[bool] = True


@dataclass(frozen=True)
class Rejected:
    kind: RejectionKind
    reason: str

    allowed: ClassVar[bool] = False


TransitionResult = Allowed | Rejected

# A precondition returns None when it holds, else the user-facing reason.
Precondition = Callable[[ProjectState, ProjectState], str | None]


def _unclaimed(current: ProjectState, proposed: ProjectState) -> str | None:
    if current.supervisor_id is not None:
        return "Cannot claim: this project already has a supervisor."
    return None


_QUOTE_FIELDS = {
    "user_quote": "client quote",
    "doer_payout": "doer payout",
    "supervisor_commission": "supervisor commission",
    "platform_fee": "platform fee",
}


def _quote_amounts(current: ProjectState, proposed: ProjectState) -> str | None:
    for name, label in _QUOTE_FIELDS.items():
        value = getattr(proposed, name)
        if value is None:
            return f"Cannot quote: the {label} has not been calculated."
        if value < 0:
            return f"Cannot quote: the {label} cannot be negative."
    return None


def _doer_selected(current: ProjectState, proposed: ProjectState) -> str | None:
    if proposed.doer_id is None:
        return "Cannot assign: no doer selected yet."
    if not proposed.doer_available:
        return "Cannot assign: the selected doer is not available."
    return None


def _has_deliverable(current: ProjectState, proposed: ProjectState) -> str | None:
    if proposed.deliverable_count < 1:
        return "Cannot submit: upload at least one deliverable first."
    return None


def _feedback(current: ProjectState, proposed: ProjectState) -> str | None:
    if not (proposed.feedback or "").strip():
        return "Cannot request a revision without feedback for the doer."
    return None


def _cancellation_reason(current: ProjectState, proposed: ProjectState) -> str | None:
    if not (proposed.cancellation_reason or "").strip():
        return "Cannot cancel: a cancellation reason is required."
    return None


@dataclass(frozen=True)
class Rule:
    roles: frozenset[ActorRole]
    preconditions: tuple[Precondition, ...] = ()


TRANSITIONS: dict[tuple[ProjectStatus, ProjectStatus], Rule] = {}


def _add(
    sources: tuple[ProjectStatus, ...],
    targets: tuple[ProjectStatus, ...],
    roles: tuple[ActorRole, ...],
    *preconditions: Precondition,
) -> None:
    rule = Rule(frozenset(roles), tuple(preconditions))
    for source in sources:
        for target in targets:
            TRANSITIONS[(source, target)] = rule


S = ProjectStatus
R = ActorRole

_add((S.DRAFT,), (S.SUBMITTED,), (R.CLIENT,))
_add((S.SUBMITTED, S.ANALYZING), (S.ANALYZING,), (R.SUPERVISOR,), _unclaimed)
_add((S.ANALYZING,), (S.QUOTED,), (R.SUPERVISOR,), _quote_amounts)
_add((S.QUOTED,), (S.PAYMENT_PENDING,), (R.SYSTEM,))
_add((S.PAYMENT_PENDING,), (S.PAID,), (R.SYSTEM,))
_add((S.PAID,), (S.ASSIGNING,), (R.SUPERVISOR,))
# Doers may take a paid project straight from the open pool.
_add((S.PAID,), (S.ASSIGNED,), (R.SUPERVISOR, R.DOER), _doer_selected)
_add((S.ASSIGNING,), (S.ASSIGNED,), (R.SUPERVISOR,), _doer_selected)
_add((S.ASSIGNED,), (S.IN_PROGRESS,), (R.DOER,))
_add((S.IN_PROGRESS,), (S.SUBMITTED_FOR_QC,), (R.DOER,), _has_deliverable)
_add(
    (S.SUBMITTED_FOR_QC,),
    (S.QC_IN_PROGRESS, S.QC_APPROVED, S.QC_REJECTED, S.DELIVERED),
    (R.SUPERVISOR,),
)
_add(
    (S.QC_IN_PROGRESS,),
    (S.QC_APPROVED, S.QC_REJECTED, S.DELIVERED),
    (R.SUPERVISOR,),
)
_add((S.QC_APPROVED,), (S.DELIVERED,), (R.SUPERVISOR,))
_add(
    (S.QC_REJECTED, S.DELIVERED),
    (S.REVISION_REQUESTED,),
    (R.SUPERVISOR, R.CLIENT),
    _feedback,
)
_add((S.REVISION_REQUESTED,), (S.IN_REVISION,), (R.DOER,))
_add((S.IN_REVISION,), (S.SUBMITTED_FOR_QC,), (R.DOER,))
_add((S.DELIVERED,), (S.COMPLETED,), (R.CLIENT,))
_add((S.DELIVERED,), (S.AUTO_APPROVED,), (R.SYSTEM,))
_add(
    tuple(s for s in ProjectStatus if s not in TERMINAL_STATUSES),
    (S.CANCELLED, S.REFUNDED),
    (R.SUPERVISOR, R.SYSTEM),
    _cancellation_reason,
)

del S, R

# Verb phrases for rejection messages, keyed by target status.
_ACTIONS = {
    ProjectStatus.SUBMITTED: "submit the request for",
    ProjectStatus.ANALYZING: "claim",
    ProjectStatus.QUOTED: "quote",
    ProjectStatus.PAYMENT_PENDING: "start payment for",
    ProjectStatus.PAID: "confirm payment for",
    ProjectStatus.ASSIGNING: "open doer selection for",
    ProjectStatus.ASSIGNED: "assign a doer to",
    ProjectStatus.IN_PROGRESS: "start work on",
    ProjectStatus.SUBMITTED_FOR_QC: "submit work for",
    ProjectStatus.QC_IN_PROGRESS: "start quality review of",
    ProjectStatus.QC_APPROVED: "approve",
    ProjectStatus.QC_REJECTED: "reject",
    ProjectStatus.DELIVERED: "deliver",
    ProjectStatus.REVISION_REQUESTED: "request a revision of",
    ProjectStatus.IN_REVISION: "start revising",
    ProjectStatus.COMPLETED: "complete",
    ProjectStatus.AUTO_APPROVED: "auto-approve",
    ProjectStatus.CANCELLED: "cancel",
    ProjectStatus.REFUNDED: "refund",
}


def _action(target: ProjectStatus) -> str:
    return _ACTIONS.get(target, f"move to {target.label}")


def check_transition(
    state: ProjectState,
    target: ProjectStatus,
    role: ActorRole,
    changes: Mapping[str, object] | None = None,
) -> TransitionResult:
    """Decide whether ``role`` may move a project in ``state`` to ``target``.

    ``changes`` are the field values written together with the status
    (the doer being assigned, the quote amounts, the revision feedback).
    Preconditions see both the current state and the state with those
    changes applied.
    """
    target = ProjectStatus(target)
    role = ActorRole(role)

    rule = TRANSITIONS.get((state.status, target))
    if rule is None:
        return Rejected(
            RejectionKind.UNKNOWN_TRANSITION,
            f"Cannot {_action(target)} this project while it is {state.status.label}.",
        )

    proposed = state.with_changes(changes)
    for precondition in rule.preconditions:
        reason = precondition(state, proposed)
        if reason:
            return Rejected(RejectionKind.MISSING_PRECONDITION, reason)

    if role not in rule.roles:
        allowed = " or ".join(sorted(r.value for r in rule.roles))
        return Rejected(
            RejectionKind.FORBIDDEN_FOR_ROLE,
            f"Only a {allowed} can {_action(target)} this project.",
        )

    return Allowed()


def available_transitions(
    state: ProjectState, role: ActorRole
) -> dict[ProjectStatus, TransitionResult]:
    """Targets ``role`` could request from the current status.

    Each target maps to its current decision, so a portal can show a
    blocked action together with the reason it is blocked.
    """
    role = ActorRole(role)
    return {
        target: check_transition(state, target, role)
        for (source, target), rule in TRANSITIONS.items()
        if source == state.status and role in rule.roles
    }
