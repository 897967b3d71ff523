from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from workdesk.auth import hash_password
from workdesk.database import get_session
from workdesk.main import app
from workdesk.models.user import User

PASSWORD = "secret123"


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        # Seed admin user
        admin = User(
            username="admin",
            password_hash=hash_password("admin"),
            role="admin",
        )
        session.add(admin)
        session.commit()
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def _login(client: TestClient, username: str, password: str) -> dict:
    response = client.post(
        "/api/auth/login",
        json={"username": username, "password": password},
    )
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def admin_token(client: TestClient) -> str:
    response = client.post(
        "/api/auth/login",
        json={"username": "admin", "password": "admin"},
    )
    return response.json()["access_token"]


@pytest.fixture
def users(session: Session) -> dict[str, User]:
    """One account per portal role, plus a second supervisor and doer."""
    accounts = {
        "client": "client",
        "supervisor": "supervisor",
        "other_supervisor": "supervisor",
        "doer": "doer",
        "other_doer": "doer",
    }
    created = {}
    for username, role in accounts.items():
        user = User(
            username=username,
            password_hash=hash_password(PASSWORD),
            full_name=username.replace("_", " ").title(),
            role=role,
        )
        session.add(user)
        created[username] = user
    session.commit()
    for user in created.values():
        session.refresh(user)
    return created


@pytest.fixture
def headers(client: TestClient, users: dict[str, User], admin_token: str) -> dict:
    """Authorization headers keyed by account name."""
    result = {name: _login(client, name, PASSWORD) for name in users}
    result["admin"] = {"Authorization": f"Bearer {admin_token}"}
    return result


@pytest.fixture
def project_at(client: TestClient, users: dict[str, User], headers: dict):
    """Create a project and drive it through the portals up to ``status``."""

    def drive(status: str = "submitted", **fields) -> dict:
        body = {
            "title": "Essay on thermodynamics",
            "word_count": 1000,
            "deadline": (datetime.utcnow() + timedelta(days=5)).isoformat(),
            **fields,
        }
        response = client.post("/api/projects", json=body, headers=headers["client"])
        assert response.status_code == 201, response.text
        project = response.json()
        pid = project["id"]
        supervisor, doer = headers["supervisor"], headers["doer"]

        def system(target):
            return client.post(
                f"/api/projects/{pid}/transitions",
                json={"target": target},
                headers=headers["admin"],
            )

        def upload_and_submit():
            client.post(
                f"/api/doer/projects/{pid}/deliverables",
                json={
                    "file_name": "essay.pdf",
                    "file_url": "https://files.example.com/essay.pdf",
                    "file_type": "application/pdf",
                    "file_size_bytes": 2048,
                },
                headers=doer,
            )
            return client.post(f"/api/doer/projects/{pid}/submit", headers=doer)

        def qc(decision):
            return client.post(
                f"/api/supervisor/projects/{pid}/qc",
                json={"decision": decision},
                headers=supervisor,
            )

        steps = [
            lambda: client.post(
                f"/api/supervisor/projects/{pid}/claim", headers=supervisor
            ),
            lambda: client.post(
                f"/api/supervisor/projects/{pid}/quote", json={}, headers=supervisor
            ),
            lambda: system("payment_pending"),
            lambda: system("paid"),
            lambda: client.post(
                f"/api/supervisor/projects/{pid}/assign",
                json={"doer_id": users["doer"].id},
                headers=supervisor,
            ),
            lambda: client.post(f"/api/doer/projects/{pid}/start", headers=doer),
            upload_and_submit,
            lambda: qc("start"),
            lambda: qc("approve"),
            lambda: qc("deliver"),
        ]
        for step in steps:
            if project["status"] == status:
                break
            response = step()
            assert response.status_code == 200, response.text
            project = response.json()
        assert project["status"] == status
        return project

    return drive
