import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from appointment_desk.api import deps
from appointment_desk.api.routes import requests as request_routes
from appointment_desk.core.config import settings
from appointment_desk.core.db import get_session
from appointment_desk.main import app
from appointment_desk.models.user import User

DAY = "2025-06-01"


class Api:
    def __init__(self, client: TestClient, users: dict[str, User]):
        self.client = client
        self.users = users

    def as_user(self, key: str) -> None:
        user = self.users[key]
        app.dependency_overrides[deps.get_current_user] = lambda: user


@pytest.fixture
def api(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'routes.db'}", poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async def _setup() -> dict[str, User]:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        async with maker() as session:
            users = {
                "admin": User(email="md.office@example.com", hashed_password="x", is_admin=True),
                "alice": User(email="alice@example.com", full_name="Alice", hashed_password="x"),
                "bob": User(email="bob@example.com", full_name="Bob", hashed_password="x"),
            }
            session.add_all(users.values())
            await session.commit()
            return users

    async def _session():
        async with maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    users = asyncio.run(_setup())
    app.dependency_overrides[get_session] = _session
    try:
        yield Api(TestClient(app), users)
    finally:
        app.dependency_overrides.clear()
        asyncio.run(engine.dispose())


@pytest.fixture
def sent_emails(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    sent: list[dict] = []
    monkeypatch.setattr(request_routes, "send_request_decision_email", lambda **kwargs: sent.append(kwargs))
    return sent


def _appointment(start: str, end: str, **overrides) -> dict:
    body = {
        "name": "Budget review",
        "day": DAY,
        "time_range": {"start_time": start, "end_time": end},
        "reason": "finance",
        "counterpart": "Ms. Perera",
    }
    body.update(overrides)
    return body


def test_admin_creates_appointments_and_conflict_returns_409(api: Api) -> None:
    api.as_user("admin")

    created = api.client.post("/api/v1/appointments", json=_appointment("09:00", "10:00"))
    conflict = api.client.post("/api/v1/appointments", json=_appointment("09:30", "10:30"))

    assert created.status_code == 201
    assert created.json()["sequence_number"] == 1
    assert conflict.status_code == 409
    assert conflict.json()["conflicting_appointment_id"] == created.json()["id"]


def test_non_admin_cannot_create_appointment(api: Api) -> None:
    api.as_user("alice")

    response = api.client.post("/api/v1/appointments", json=_appointment("09:00", "10:00"))

    assert response.status_code == 403


def test_validation_failures_return_400(api: Api) -> None:
    api.as_user("admin")

    bad_time = api.client.post("/api/v1/appointments", json=_appointment("10:00", "09:00"))
    bad_date = api.client.post("/api/v1/appointments", json=_appointment("09:00", "10:00", day="not-a-date"))

    assert bad_time.status_code == 400
    assert bad_time.json()["detail"] == "Start time must be before end time."
    assert bad_date.status_code == 400


def test_unknown_appointment_returns_404(api: Api) -> None:
    api.as_user("admin")

    assert api.client.get("/api/v1/appointments/42").status_code == 404
    assert api.client.delete("/api/v1/appointments/42").status_code == 404


def test_delete_renumbers_and_availability_reflects_it(api: Api) -> None:
    api.as_user("admin")
    a = api.client.post("/api/v1/appointments", json=_appointment("09:00", "10:00")).json()
    api.client.post("/api/v1/appointments", json=_appointment("11:00", "12:00"))

    slots = api.client.get("/api/v1/slots/available", params={"date": DAY}).json()
    assert slots["slots"] == [
        {"start_time": "10:00", "end_time": "11:00"},
        {"start_time": "12:00", "end_time": "18:30"},
    ]

    assert api.client.delete(f"/api/v1/appointments/{a['id']}").status_code == 200
    remaining = api.client.get("/api/v1/appointments", params={"day": DAY}).json()
    assert [(r["start_time"], r["sequence_number"]) for r in remaining] == [("11:00", 1)]


def test_request_approval_flow_notifies_requester(api: Api, sent_emails: list[dict]) -> None:
    api.as_user("alice")
    submitted = api.client.post(
        "/api/v1/requests",
        json={
            "name": "Leave approval",
            "day": DAY,
            "time_range": {"start_time": "14:00", "end_time": "14:30"},
            "counterpart": "Alice",
        },
    )
    assert submitted.status_code == 201
    assert submitted.json()["status"] == "pending"

    api.as_user("admin")
    decided = api.client.put(f"/api/v1/requests/{submitted.json()['id']}/status", json={"status": "approved"})

    assert decided.status_code == 200
    assert decided.json()["request"]["status"] == "approved"
    assert decided.json()["appointment"]["start_time"] == "14:00"
    assert [(e["to_email"], e["status"]) for e in sent_emails] == [("alice@example.com", "approved")]


def test_conflicting_approval_is_auto_rejected_and_persisted(api: Api, sent_emails: list[dict]) -> None:
    api.as_user("alice")
    request_id = api.client.post(
        "/api/v1/requests",
        json={
            "name": "Leave approval",
            "day": DAY,
            "time_range": {"start_time": "09:30", "end_time": "10:30"},
            "counterpart": "Alice",
        },
    ).json()["id"]

    api.as_user("admin")
    api.client.post("/api/v1/appointments", json=_appointment("09:00", "10:00"))
    decided = api.client.put(f"/api/v1/requests/{request_id}/status", json={"status": "approved"})

    assert decided.status_code == 409
    assert decided.json()["request"]["status"] == "rejected"
    assert api.client.get(f"/api/v1/requests/{request_id}").json()["status"] == "rejected"
    assert len(api.client.get("/api/v1/appointments").json()) == 1
    assert sent_emails[0]["status"] == "rejected"
    assert "not free" in sent_emails[0]["reason"]

    again = api.client.put(f"/api/v1/requests/{request_id}/status", json={"status": "approved"})
    assert again.status_code == 400


def test_invalid_decision_status_returns_400(api: Api) -> None:
    api.as_user("admin")

    response = api.client.put("/api/v1/requests/1/status", json={"status": "pending"})

    assert response.status_code == 400


def test_cancel_request_ownership_and_state(api: Api, sent_emails: list[dict]) -> None:
    body = {
        "name": "Leave approval",
        "day": DAY,
        "time_range": {"start_time": "15:00", "end_time": "15:30"},
        "counterpart": "Alice",
    }
    api.as_user("alice")
    pending_id = api.client.post("/api/v1/requests", json=body).json()["id"]
    decided_id = api.client.post("/api/v1/requests", json=body).json()["id"]

    api.as_user("bob")
    assert api.client.delete(f"/api/v1/requests/{pending_id}").status_code == 403
    assert api.client.get(f"/api/v1/requests/{pending_id}").status_code == 403

    api.as_user("admin")
    api.client.put(f"/api/v1/requests/{decided_id}/status", json={"status": "rejected"})

    api.as_user("alice")
    assert api.client.delete(f"/api/v1/requests/{decided_id}").status_code == 400
    assert api.client.delete(f"/api/v1/requests/{pending_id}").status_code == 200
    assert [r["id"] for r in api.client.get("/api/v1/requests/mine").json()] == [decided_id]


def test_admin_lists_requests_by_status(api: Api) -> None:
    api.as_user("bob")
    api.client.post(
        "/api/v1/requests",
        json={
            "name": "Sign-off",
            "day": DAY,
            "time_range": {"start_time": "16:00", "end_time": "16:30"},
            "counterpart": "Bob",
        },
    )
    assert api.client.get("/api/v1/requests").status_code == 403

    api.as_user("admin")
    pending = api.client.get("/api/v1/requests", params={"status": "pending"}).json()
    approved = api.client.get("/api/v1/requests", params={"status": "approved"}).json()

    assert [r["name"] for r in pending] == ["Sign-off"]
    assert approved == []


def test_admin_housekeeping_endpoints(api: Api) -> None:
    api.as_user("admin")
    api.client.post("/api/v1/appointments", json=_appointment("09:00", "10:00", day="2020-01-01"))

    assert api.client.delete("/api/v1/appointments/past").json() == {"deleted": 1}
    assert api.client.delete("/api/v1/requests/rejected").json() == {"deleted": 0}
    assert api.client.post("/api/v1/requests/reconcile").json() == {"restored": 0, "reverted": 0}


def test_signup_promotes_configured_admin_emails(api: Api, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "admin_emails", "MD.Desk@example.com, other.admin@example.com")

    admin = api.client.post(
        "/api/v1/auth/signup", json={"email": "md.desk@example.com", "password": "pw-123456", "full_name": "MD Desk"}
    )
    staff = api.client.post("/api/v1/auth/signup", json={"email": "carol@example.com", "password": "pw-123456"})

    assert admin.status_code == 200
    assert staff.status_code == 200
    admin_me = api.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {admin.json()['access_token']}"})
    staff_me = api.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {staff.json()['access_token']}"})
    assert admin_me.json()["is_admin"] is True
    assert staff_me.json()["is_admin"] is False

    listing = api.client.get("/api/v1/requests", headers={"Authorization": f"Bearer {staff.json()['access_token']}"})
    assert listing.status_code == 403


def test_login_and_duplicate_signup(api: Api) -> None:
    body = {"email": "dave@example.com", "password": "pw-123456"}
    assert api.client.post("/api/v1/auth/signup", json=body).status_code == 200

    assert api.client.post("/api/v1/auth/signup", json=body).status_code == 409
    assert api.client.post("/api/v1/auth/login", json={**body, "password": "wrong"}).status_code == 401
    login = api.client.post("/api/v1/auth/login", json=body)
    assert login.status_code == 200
    me = api.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {login.json()['access_token']}"})
    assert me.json()["email"] == "dave@example.com"
