import pytest

from workdesk.services.status import (
    TRANSITIONS,
    ActorRole,
    Allowed,
    ProjectState,
    ProjectStatus,
    Rejected,
    RejectionKind,
    available_transitions,
    check_transition,
    is_terminal,
    status_category,
)

# Every precondition in the table holds on this record.
READY = dict(
    supervisor_id=None,
    doer_id=7,
    doer_available=True,
    user_quote=500,
    doer_payout=325,
    supervisor_commission=75,
    platform_fee=100,
    deliverable_count=1,
    feedback="Fix the references",
    cancellation_reason="Client asked to stop",
)


@pytest.mark.parametrize("source", list(ProjectStatus))
def test_allowed_iff_listed_for_role(source):
    state = ProjectState(status=source, **READY)
    for target in ProjectStatus:
        for role in ActorRole:
            rule = TRANSITIONS.get((source, target))
            result = check_transition(state, target, role)
            expected = rule is not None and role in rule.roles
            assert result.allowed is expected, (source, target, role, result)


@pytest.mark.parametrize("source,target", sorted(TRANSITIONS))
def test_reapplying_is_unknown_transition(source, target):
    if (target, target) in TRANSITIONS:
        pytest.skip("claiming again is covered by the precondition")
    role = next(iter(TRANSITIONS[(source, target)].roles))
    first = check_transition(ProjectState(status=source, **READY), target, role)
    assert isinstance(first, Allowed)

    second = check_transition(ProjectState(status=target, **READY), target, role)
    assert isinstance(second, Rejected)
    assert second.kind == RejectionKind.UNKNOWN_TRANSITION


@pytest.mark.parametrize("status", [ProjectStatus.SUBMITTED, ProjectStatus.ANALYZING])
@pytest.mark.parametrize("role", list(ActorRole))
def test_claim_of_claimed_project_is_missing_precondition(status, role):
    state = ProjectState(status=status, supervisor_id=3)
    result = check_transition(state, ProjectStatus.ANALYZING, role)
    assert isinstance(result, Rejected)
    assert result.kind == RejectionKind.MISSING_PRECONDITION
    assert "already has a supervisor" in result.reason


@pytest.mark.parametrize("role", [ActorRole.SUPERVISOR, ActorRole.DOER])
def test_assign_without_doer_is_missing_precondition(role):
    state = ProjectState(status=ProjectStatus.PAID, doer_id=None)
    result = check_transition(state, ProjectStatus.ASSIGNED, role)
    assert isinstance(result, Rejected)
    assert result.kind == RejectionKind.MISSING_PRECONDITION
    assert result.reason == "Cannot assign: no doer selected yet."


def test_assign_with_unavailable_doer():
    state = ProjectState(status=ProjectStatus.PAID)
    result = check_transition(
        state, ProjectStatus.ASSIGNED, ActorRole.SUPERVISOR, {"doer_id": 9}
    )
    assert result.kind == RejectionKind.MISSING_PRECONDITION
    assert "not available" in result.reason

    state = ProjectState(status=ProjectStatus.PAID, doer_available=True)
    result = check_transition(
        state, ProjectStatus.ASSIGNED, ActorRole.SUPERVISOR, {"doer_id": 9}
    )
    assert isinstance(result, Allowed)


def test_quote_needs_all_amounts():
    state = ProjectState(status=ProjectStatus.ANALYZING, supervisor_id=3)
    result = check_transition(
        state,
        ProjectStatus.QUOTED,
        ActorRole.SUPERVISOR,
        {"user_quote": 500, "doer_payout": 325, "supervisor_commission": 75},
    )
    assert result.kind == RejectionKind.MISSING_PRECONDITION
    assert "platform fee" in result.reason


def test_quote_rejects_negative_amounts():
    state = ProjectState(status=ProjectStatus.ANALYZING, supervisor_id=3)
    changes = {
        "user_quote": 500,
        "doer_payout": -1,
        "supervisor_commission": 75,
        "platform_fee": 100,
    }
    result = check_transition(state, ProjectStatus.QUOTED, ActorRole.SUPERVISOR, changes)
    assert result.kind == RejectionKind.MISSING_PRECONDITION
    assert "negative" in result.reason


def test_submit_needs_a_deliverable():
    state = ProjectState(status=ProjectStatus.IN_PROGRESS, doer_id=4)
    result = check_transition(state, ProjectStatus.SUBMITTED_FOR_QC, ActorRole.DOER)
    assert result.kind == RejectionKind.MISSING_PRECONDITION
    assert result.reason == "Cannot submit: upload at least one deliverable first."


def test_revision_needs_feedback():
    state = ProjectState(status=ProjectStatus.QC_REJECTED)
    blank = check_transition(
        state, ProjectStatus.REVISION_REQUESTED, ActorRole.CLIENT, {"feedback": "  "}
    )
    assert blank.kind == RejectionKind.MISSING_PRECONDITION

    given = check_transition(
        state,
        ProjectStatus.REVISION_REQUESTED,
        ActorRole.CLIENT,
        {"feedback": "Add a conclusion"},
    )
    assert isinstance(given, Allowed)


def test_cancel_needs_reason_and_terminal_cannot_cancel():
    state = ProjectState(status=ProjectStatus.IN_PROGRESS)
    result = check_transition(state, ProjectStatus.CANCELLED, ActorRole.SUPERVISOR)
    assert result.kind == RejectionKind.MISSING_PRECONDITION

    done = ProjectState(status=ProjectStatus.COMPLETED, cancellation_reason="late")
    result = check_transition(done, ProjectStatus.CANCELLED, ActorRole.SYSTEM)
    assert result.kind == RejectionKind.UNKNOWN_TRANSITION


def test_wrong_role_is_forbidden_with_reason():
    state = ProjectState(status=ProjectStatus.ASSIGNED, doer_id=4)
    result = check_transition(state, ProjectStatus.IN_PROGRESS, ActorRole.SUPERVISOR)
    assert result.kind == RejectionKind.FORBIDDEN_FOR_ROLE
    assert result.reason == "Only a doer can start work on this project."


def test_unknown_transition_reason_names_current_status():
    state = ProjectState(status=ProjectStatus.SUBMITTED)
    result = check_transition(state, ProjectStatus.IN_PROGRESS, ActorRole.DOER)
    assert result.kind == RejectionKind.UNKNOWN_TRANSITION
    assert result.reason == "Cannot start work on this project while it is submitted."


def test_preconditions_are_checked_before_roles():
    state = ProjectState(status=ProjectStatus.PAID)
    result = check_transition(state, ProjectStatus.ASSIGNED, ActorRole.CLIENT)
    assert result.kind == RejectionKind.MISSING_PRECONDITION


def test_accepts_plain_strings():
    state = ProjectState(status=ProjectStatus.ASSIGNED)
    assert check_transition(state, "in_progress", "doer").allowed


def test_with_changes_never_moves_status():
    state = ProjectState(status=ProjectStatus.PAID)
    changed = state.with_changes({"status": "completed", "doer_id": 5, "other": 1})
    assert changed.status == ProjectStatus.PAID
    assert changed.doer_id == 5
    assert state.doer_id is None


def test_available_transitions_for_supervisor_on_paid_project():
    state = ProjectState(status=ProjectStatus.PAID, supervisor_id=3)
    options = available_transitions(state, ActorRole.SUPERVISOR)
    assert set(options) == {
        ProjectStatus.ASSIGNING,
        ProjectStatus.ASSIGNED,
        ProjectStatus.CANCELLED,
        ProjectStatus.REFUNDED,
    }
    assert isinstance(options[ProjectStatus.ASSIGNING], Allowed)
    assert options[ProjectStatus.ASSIGNED].kind == RejectionKind.MISSING_PRECONDITION


def test_available_transitions_for_doer():
    state = ProjectState(status=ProjectStatus.ASSIGNED, doer_id=4)
    options = available_transitions(state, ActorRole.DOER)
    assert list(options) == [ProjectStatus.IN_PROGRESS]
    assert available_transitions(state, ActorRole.CLIENT) == {}


def test_terminal_statuses_have_no_way_out():
    for status in ProjectStatus:
        outgoing = [t for (s, t) in TRANSITIONS if s == status]
        assert (not outgoing) == is_terminal(status), status


def test_status_category():
    assert status_category(ProjectStatus.IN_REVISION) == "active"
    assert status_category(ProjectStatus.QC_APPROVED) == "review"
    assert status_category(ProjectStatus.AUTO_APPROVED) == "completed"
    assert status_category(ProjectStatus.QUOTED) is None
