from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from refined_crm import audit, events
from refined_crm.core.auth import get_current_actor
from refined_crm.core.config import get_settings
from refined_crm.core.database import Base, get_db
from refined_crm.crm.models import Notification
from refined_crm.main import app
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.matrix import reset_permission_matrix
from refined_crm.platform.security.roles import Role


USERS = {
    "admin": (uuid.UUID("10000000-0000-0000-0000-000000000001"), Role.ADMIN),
    "head": (uuid.UUID("10000000-0000-0000-0000-000000000002"), Role.HEAD),
    "manager": (uuid.UUID("10000000-0000-0000-0000-000000000003"), Role.MANAGER),
    "collector": (uuid.UUID("10000000-0000-0000-0000-000000000004"), Role.DATA_COLLECTOR),
    "converter": (uuid.UUID("10000000-0000-0000-0000-000000000005"), Role.CONVERTER),
    "other_converter": (uuid.UUID("10000000-0000-0000-0000-000000000006"), Role.CONVERTER),
}


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    audit.audit_entries.clear()
    events.published_events.clear()
    reset_permission_matrix()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    reset_permission_matrix()


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[str | None], None]], None, None]:
    state: dict[str, str | None] = {"actor": "admin"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor() -> AuthContext | None:
        if state["actor"] is None:
            return None
        user_id, role = USERS[state["actor"]]
        return AuthContext(user_id=user_id, role=role, correlation_id="companies-corr")

    def set_actor(actor: str | None) -> None:
        state["actor"] = actor

    default_session_factory = app.state.session_factory
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = lambda: Session(bind=db_session.get_bind())
    app.dependency_overrides[get_current_actor] = override_get_current_actor

    with TestClient(app) as test_client:
        yield test_client, set_actor

    app.dependency_overrides.clear()
    app.state.session_factory = default_session_factory


def _create_company(test_client: TestClient, set_actor: Callable[[str | None], None], **overrides: object) -> dict:
    set_actor("collector")
    payload = {
        "name": "Acme Freight",
        "email": "ops@acme.io",
        "assigned_data_collector_id": str(USERS["collector"][0]),
        "assigned_converter_id": str(USERS["converter"][0]),
    }
    payload.update(overrides)
    response = test_client.post("/api/companies", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _confirm(test_client: TestClient, set_actor: Callable[[str | None], None], company_id: str) -> None:
    set_actor("converter")
    response = test_client.patch(f"/api/companies/{company_id}", json={"conversionStatus": "Confirmed"})
    assert response.status_code == 200, response.text


def test_data_collector_creates_company_and_notifies_converter(
    client: tuple[TestClient, Callable[[str | None], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    assert company["conversion_status"] == "Waiting"
    assert company["finalization_status"] == "Pending"
    assert company["created_by_id"] == str(USERS["collector"][0])

    rows = db_session.scalars(select(Notification)).all()
    # the creating collector is never notified about their own change
    assert [row.recipient_id for row in rows] == [USERS["converter"][0]]
    assert rows[0].message == 'A DataCollector assigned you company "Acme Freight"'
    assert [entry["action"] for entry in audit.entries_for("company", company["id"])] == ["create"]


def test_converter_restricted_write(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor("converter")
    allowed = test_client.patch(f"/api/companies/{company['id']}", json={"conversionStatus": "Confirmed"})
    assert allowed.status_code == 200
    assert allowed.json()["conversion_status"] == "Confirmed"
    assert allowed.json()["row_version"] == 2

    set_actor("admin")
    before = test_client.get(f"/api/companies/{company['id']}").json()

    set_actor("converter")
    rejected = test_client.patch(
        f"/api/companies/{company['id']}",
        json={"conversionStatus": "NoReach", "name": "X2"},
    )
    assert rejected.status_code == 403
    body = rejected.json()
    assert body["code"] == "RestrictedFieldViolation"
    assert body["details"]["fields"] == ["name"]
    assert body["correlation_id"]

    set_actor("admin")
    assert test_client.get(f"/api/companies/{company['id']}").json() == before


def test_converter_cannot_see_or_touch_unassigned_company(
    client: tuple[TestClient, Callable[[str | None], None]],
) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor("other_converter")
    assert test_client.get(f"/api/companies/{company['id']}").status_code == 404
    response = test_client.patch(f"/api/companies/{company['id']}", json={"conversionStatus": "Confirmed"})
    assert response.status_code == 404
    assert test_client.get("/api/companies").json() == []


def test_finalize_once_then_conflict(
    client: tuple[TestClient, Callable[[str | None], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)
    _confirm(test_client, set_actor, company["id"])

    set_actor("manager")
    first = test_client.put(f"/api/companies/{company['id']}/finalize")
    assert first.status_code == 200, first.text
    body = first.json()
    assert body["message"] == "Company data finalized successfully"
    assert body["company"]["finalization_status"] == "Finalized"
    assert body["company"]["finalized_by_id"] == str(USERS["manager"][0])
    assert body["company"]["finalized_at"] is not None
    assert body["company"]["conversion_status"] == "Confirmed"

    second = test_client.put(f"/api/companies/{company['id']}/finalize")
    assert second.status_code == 409
    assert second.json()["code"] == "InvalidTransition"
    assert second.json()["message"] == "already finalized"

    finalized_notes = db_session.scalars(select(Notification).where(Notification.kind == "company.finalized")).all()
    assert {row.recipient_id for row in finalized_notes} == {USERS["collector"][0], USERS["converter"][0]}
    assert any(event["event_type"] == "crm.company.finalized" for event in events.published_events)


def test_finalize_requires_confirmed_stage(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor("manager")
    response = test_client.put(f"/api/companies/{company['id']}/finalize")

    assert response.status_code == 409
    assert response.json()["message"] == "not confirmed yet"


def test_finalize_requires_finalizer_group(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)
    _confirm(test_client, set_actor, company["id"])

    set_actor("collector")
    response = test_client.put(f"/api/companies/{company['id']}/finalize")

    assert response.status_code == 403
    assert response.json()["code"] == "Forbidden"


def test_manager_locked_out_after_finalize_while_admin_edits(
    client: tuple[TestClient, Callable[[str | None], None]],
) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)
    _confirm(test_client, set_actor, company["id"])

    set_actor("manager")
    assert test_client.put(f"/api/companies/{company['id']}/finalize").status_code == 200

    blocked = test_client.put(f"/api/companies/{company['id']}", json={"name": "Acme Logistics"})
    assert blocked.status_code == 403
    assert blocked.json()["message"] == "Cannot edit finalized company data"

    set_actor("admin")
    edited = test_client.put(f"/api/companies/{company['id']}", json={"name": "Acme Logistics"})
    assert edited.status_code == 200
    assert edited.json()["name"] == "Acme Logistics"
    assert edited.json()["finalization_status"] == "Finalized"


def test_lifecycle_fields_rejected_on_update(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor("admin")
    response = test_client.patch(f"/api/companies/{company['id']}", json={"finalization_status": "Finalized"})

    # not part of the update schema at all
    assert response.status_code == 422


@pytest.mark.parametrize(
    ("actor", "payload"),
    [
        ("manager", {"name": None}),
        ("manager", {"conversionStatus": None}),
        ("converter", {"conversionStatus": None}),
    ],
)
def test_explicit_null_on_required_column_is_rejected(
    client: tuple[TestClient, Callable[[str | None], None]],
    actor: str,
    payload: dict[str, None],
) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor(actor)
    response = test_client.patch(f"/api/companies/{company['id']}", json=payload)

    assert response.status_code == 422
    set_actor("admin")
    stored = test_client.get(f"/api/companies/{company['id']}").json()
    assert stored["name"] == "Acme Freight"
    assert stored["conversion_status"] == "Waiting"
    assert stored["row_version"] == 1


def test_head_lists_only_finalized_companies(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    finalized = _create_company(test_client, set_actor, name="Done Co")
    _create_company(test_client, set_actor, name="Open Co")
    _confirm(test_client, set_actor, finalized["id"])
    set_actor("admin")
    assert test_client.put(f"/api/companies/{finalized['id']}/finalize").status_code == 200

    set_actor("head")
    listed = test_client.get("/api/companies")
    assert listed.status_code == 200
    assert [row["name"] for row in listed.json()] == ["Done Co"]
    assert [row["name"] for row in test_client.get("/api/companies/finalized").json()] == ["Done Co"]

    set_actor("admin")
    assert {row["name"] for row in test_client.get("/api/companies").json()} == {"Done Co", "Open Co"}


def test_head_cannot_write(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    set_actor("head")

    response = test_client.post("/api/companies", json={"name": "Nope"})

    assert response.status_code == 403
    assert response.json()["code"] == "Forbidden"


def test_stale_row_version_is_conflict(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor("manager")
    ok = test_client.patch(f"/api/companies/{company['id']}", json={"phone": "555-0100", "row_version": 1})
    assert ok.status_code == 200

    stale = test_client.patch(f"/api/companies/{company['id']}", json={"phone": "555-0199", "row_version": 1})
    assert stale.status_code == 409
    assert stale.json()["message"] == "row_version conflict"


def test_delete_company(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    company = _create_company(test_client, set_actor)

    set_actor("collector")
    response = test_client.delete(f"/api/companies/{company['id']}")
    assert response.status_code == 200
    assert response.json() == {"message": "Company deleted successfully"}

    set_actor("admin")
    assert test_client.get(f"/api/companies/{company['id']}").status_code == 404


def test_unauthenticated_requests_get_401(client: tuple[TestClient, Callable[[str | None], None]]) -> None:
    test_client, set_actor = client
    set_actor(None)

    listed = test_client.get("/api/companies")
    created = test_client.post("/api/companies", json={"name": "Anon"})

    for response in (listed, created):
        assert response.status_code == 401
        assert response.json()["code"] == "Unauthenticated"
        assert response.headers["www-authenticate"] == "Bearer"
