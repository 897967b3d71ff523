from datetime import datetime, timedelta

from fastapi.testclient import TestClient


def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_token(client: TestClient):
    response = client.get("/api/projects/1")
    assert response.status_code in [401, 403]


def test_invalid_token(client: TestClient):
    response = client.get(
        "/api/projects/1", headers={"Authorization": "Bearer not.a.token"}
    )
    assert response.status_code == 401
    assert response.json()["code"] == "NotAuthenticated"


# --- Create ---


def test_client_creates_project(client: TestClient, headers):
    deadline = (datetime.utcnow() + timedelta(days=3)).isoformat()
    response = client.post(
        "/api/projects",
        json={
            "title": "Literature review",
            "description": "Ten sources on urban heat islands",
            "page_count": 4,
            "deadline": deadline,
        },
        headers=headers["client"],
    )
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "submitted"
    assert data["page_count"] == 4
    assert data["supervisor_id"] is None
    assert data["user_quote"] is None


def test_client_saves_draft_then_submits(client: TestClient, headers):
    draft = client.post(
        "/api/projects",
        json={"title": "Draft essay", "draft": True},
        headers=headers["client"],
    ).json()
    assert draft["status"] == "draft"

    response = client.post(
        f"/api/projects/{draft['id']}/transitions",
        json={"target": "submitted"},
        headers=headers["client"],
    )
    assert response.status_code == 200
    assert response.json()["status"] == "submitted"


def test_supervisor_cannot_create_project(client: TestClient, headers):
    response = client.post(
        "/api/projects", json={"title": "Nope"}, headers=headers["supervisor"]
    )
    assert response.status_code == 403
    assert response.json() == {
        "detail": "Only clients can create projects.",
        "code": "NotAuthorized",
    }


# --- Read ---


def test_visibility(client: TestClient, headers, project_at):
    project = project_at("submitted")
    url = f"/api/projects/{project['id']}"

    assert client.get(url, headers=headers["client"]).status_code == 200
    assert client.get(url, headers=headers["admin"]).status_code == 200
    # Unclaimed requests are open to every supervisor
    assert client.get(url, headers=headers["other_supervisor"]).status_code == 200
    # Doers only see paid projects in the pool or their own
    response = client.get(url, headers=headers["doer"])
    assert response.status_code == 404
    assert response.json()["code"] == "ProjectNotFound"


def test_claimed_project_hidden_from_other_supervisors(
    client: TestClient, headers, project_at
):
    project = project_at("analyzing")
    url = f"/api/projects/{project['id']}"
    assert client.get(url, headers=headers["supervisor"]).status_code == 200
    assert client.get(url, headers=headers["other_supervisor"]).status_code == 404


def test_missing_project(client: TestClient, headers):
    response = client.get("/api/projects/999", headers=headers["admin"])
    assert response.status_code == 404


def test_history_records_every_transition(client: TestClient, headers, project_at):
    project = project_at("in_progress")
    response = client.get(
        f"/api/projects/{project['id']}/history", headers=headers["client"]
    )
    assert response.status_code == 200
    history = response.json()
    assert [(h["from_status"], h["to_status"]) for h in history] == [
        (None, "submitted"),
        ("submitted", "analyzing"),
        ("analyzing", "quoted"),
        ("quoted", "payment_pending"),
        ("payment_pending", "paid"),
        ("paid", "assigned"),
        ("assigned", "in_progress"),
    ]
    assert history[-1]["changed_by_type"] == "doer"


def test_available_transitions(client: TestClient, headers, project_at):
    project = project_at("submitted")
    response = client.get(
        f"/api/projects/{project['id']}/transitions", headers=headers["supervisor"]
    )
    assert response.status_code == 200
    options = {o["target"]: o for o in response.json()}
    assert set(options) == {"analyzing", "cancelled", "refunded"}
    assert options["analyzing"]["allowed"] is True
    assert options["cancelled"]["allowed"] is False
    assert options["cancelled"]["reason"] == (
        "Cannot cancel: a cancellation reason is required."
    )


# --- Generic transitions ---


def test_admin_acts_as_system(client: TestClient, headers, project_at):
    project = project_at("quoted")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "payment_pending"},
        headers=headers["admin"],
    )
    assert response.status_code == 200
    assert response.json()["status"] == "payment_pending"


def test_repeated_transition_is_unknown(client: TestClient, headers, project_at):
    project = project_at("payment_pending")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "payment_pending"},
        headers=headers["admin"],
    )
    assert response.status_code == 409
    assert response.json() == {
        "detail": "Cannot start payment for this project while it is payment pending.",
        "code": "UnknownTransition",
    }


def test_role_without_permission_is_forbidden(client: TestClient, headers, project_at):
    project = project_at("quoted")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "payment_pending"},
        headers=headers["client"],
    )
    assert response.status_code == 403
    assert response.json()["code"] == "ForbiddenForRole"


def test_stale_expected_status(client: TestClient, headers, project_at):
    project = project_at("analyzing")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={
            "target": "cancelled",
            "expected_status": "submitted",
            "changes": {"cancellation_reason": "Duplicate"},
        },
        headers=headers["supervisor"],
    )
    assert response.status_code == 409
    assert response.json()["code"] == "TransitionConflict"


def test_unknown_target_status(client: TestClient, headers, project_at):
    project = project_at("submitted")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "archived"},
        headers=headers["admin"],
    )
    assert response.status_code == 422
    assert response.json()["code"] == "ValidationError"


def test_quotes_go_through_the_quote_endpoint(client: TestClient, headers, project_at):
    project = project_at("analyzing")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={
            "target": "quoted",
            "changes": {
                "user_quote": 1,
                "doer_payout": 5000,
                "supervisor_commission": 0,
                "platform_fee": 0,
            },
        },
        headers=headers["supervisor"],
    )
    assert response.status_code == 422
    assert response.json()["code"] == "ValidationError"

    response = client.get(f"/api/projects/{project['id']}", headers=headers["supervisor"])
    assert response.json()["status"] == "analyzing"
    assert response.json()["user_quote"] is None


def test_non_text_cancellation_reason(client: TestClient, headers, project_at):
    project = project_at("analyzing")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "cancelled", "changes": {"cancellation_reason": 5}},
        headers=headers["supervisor"],
    )
    assert response.status_code == 422
    assert response.json() == {
        "detail": "'cancellation_reason' must be text.",
        "code": "ValidationError",
    }


def test_non_numeric_doer_id(client: TestClient, headers, project_at):
    project = project_at("paid")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "assigned", "changes": {"doer_id": "first available"}},
        headers=headers["supervisor"],
    )
    assert response.status_code == 422
    assert response.json()["code"] == "ValidationError"


def test_client_completes_delivered_project(client: TestClient, headers, project_at):
    project = project_at("delivered")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "completed"},
        headers=headers["client"],
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["completed_at"] is not None


def test_client_requests_revision(client: TestClient, headers, project_at):
    project = project_at("delivered")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={
            "target": "revision_requested",
            "changes": {"feedback": "Please expand section 2", "severity": "major"},
        },
        headers=headers["client"],
    )
    assert response.status_code == 200
    assert response.json()["revision_count"] == 1


def test_client_revision_without_feedback(client: TestClient, headers, project_at):
    project = project_at("delivered")
    response = client.post(
        f"/api/projects/{project['id']}/transitions",
        json={"target": "revision_requested"},
        headers=headers["client"],
    )
    assert response.status_code == 422
    assert response.json()["code"] == "MissingPrecondition"


def test_admin_confirms_payment(client: TestClient, headers, project_at):
    project = project_at("quoted")
    response = client.post(
        f"/api/projects/{project['id']}/payment", headers=headers["admin"]
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paid"
    assert data["is_paid"] is True
    assert data["paid_at"] is not None

    response = client.post(
        f"/api/projects/{project['id']}/payment", headers=headers["client"]
    )
    assert response.status_code == 403
