from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from refined_crm import audit, events
from refined_crm.core.auth import get_current_actor
from refined_crm.core.config import get_settings
from refined_crm.core.database import Base, get_db
from refined_crm.crm.models import Company, Contact
from refined_crm.main import app
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.matrix import reset_permission_matrix
from refined_crm.platform.security.roles import Role


USERS = {
    "head": (uuid.UUID("90000000-0000-0000-0000-000000000001"), Role.HEAD),
    "manager": (uuid.UUID("90000000-0000-0000-0000-000000000002"), Role.MANAGER),
    "collector": (uuid.UUID("90000000-0000-0000-0000-000000000003"), Role.DATA_COLLECTOR),
    "converter": (uuid.UUID("90000000-0000-0000-0000-000000000004"), Role.CONVERTER),
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


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    state = {"actor": "collector"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor() -> AuthContext:
        user_id, role = USERS[state["actor"]]
        return AuthContext(user_id=user_id, role=role)

    def set_actor(actor: str) -> None:
        state["actor"] = actor

    default_session_factory = app.state.session_factory
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = lambda: Session(bind=db_session.get_bind())
    app.dependency_overrides[get_current_actor] = override_get_current_actor

    with TestClient(app) as test_client:
        yield test_client, set_actor

    app.dependency_overrides.clear()
    app.state.session_factory = default_session_factory


@pytest.fixture()
def companies(db_session: Session) -> dict[str, Company]:
    rows = {
        "assigned": Company(name="Assigned Co", assigned_converter_id=USERS["converter"][0]),
        "unassigned": Company(name="Unassigned Co"),
        "finalized": Company(
            name="Locked Co",
            conversion_status="Confirmed",
            finalization_status="Finalized",
            assigned_converter_id=USERS["converter"][0],
        ),
    }
    db_session.add_all(rows.values())
    db_session.commit()
    return rows


def _add_contact(db_session: Session, company: Company, name: str) -> Contact:
    contact = Contact(name=name, company_id=company.id)
    db_session.add(contact)
    db_session.commit()
    return contact


def test_data_collector_creates_contact(
    client: tuple[TestClient, Callable[[str], None]],
    companies: dict[str, Company],
) -> None:
    test_client, set_actor = client
    set_actor("collector")

    response = test_client.post(
        "/api/contacts",
        json={"name": "Jane Roe", "email": "jane@assigned.co", "companyId": str(companies["assigned"].id)},
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["company_name"] == "Assigned Co"
    assert body["created_by_id"] == str(USERS["collector"][0])
    assert body["row_version"] == 1
    assert [entry["action"] for entry in audit.entries_for("contact", body["id"])] == ["create"]


@pytest.mark.parametrize("actor", ["converter", "head"])
def test_read_only_roles_cannot_write_contacts(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    companies: dict[str, Company],
    actor: str,
) -> None:
    test_client, set_actor = client
    contact = _add_contact(db_session, companies["finalized"], "Kept")

    set_actor(actor)
    created = test_client.post("/api/contacts", json={"name": "Nope", "companyId": str(companies["assigned"].id)})
    updated = test_client.put(f"/api/contacts/{contact.id}", json={"name": "Changed"})
    deleted = test_client.delete(f"/api/contacts/{contact.id}")

    for response in (created, updated, deleted):
        assert response.status_code == 403
        assert response.json()["code"] == "Forbidden"
        assert response.json()["message"] == "Read-only access. You cannot modify data."
    db_session.expire_all()
    assert db_session.get(Contact, contact.id).name == "Kept"


def test_contacts_follow_company_visibility(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    companies: dict[str, Company],
) -> None:
    test_client, set_actor = client
    for key in ("assigned", "unassigned", "finalized"):
        _add_contact(db_session, companies[key], f"Contact at {key}")

    set_actor("converter")
    converter_view = {row["name"] for row in test_client.get("/api/contacts").json()}
    set_actor("head")
    head_view = {row["name"] for row in test_client.get("/api/contacts").json()}
    set_actor("collector")
    collector_view = {row["name"] for row in test_client.get("/api/contacts").json()}

    # converters see only assigned companies and, by default, nothing finalized
    assert converter_view == {"Contact at assigned"}
    assert head_view == {"Contact at finalized"}
    # collectors lack canReadFinalized
    assert collector_view == {"Contact at assigned", "Contact at unassigned"}


def test_hidden_contact_is_not_found(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    companies: dict[str, Company],
) -> None:
    test_client, set_actor = client
    contact = _add_contact(db_session, companies["unassigned"], "Hidden")

    set_actor("head")
    assert test_client.get(f"/api/contacts/{contact.id}").status_code == 404


def test_manager_updates_contact_and_rejects_null_name(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    companies: dict[str, Company],
) -> None:
    test_client, set_actor = client
    contact = _add_contact(db_session, companies["assigned"], "Old Name")

    set_actor("manager")
    rejected = test_client.put(f"/api/contacts/{contact.id}", json={"name": None})
    assert rejected.status_code == 422

    response = test_client.put(
        f"/api/contacts/{contact.id}",
        json={"name": "New Name", "companyId": str(companies["unassigned"].id), "row_version": 1},
    )
    assert response.status_code == 200, response.text
    assert response.json()["name"] == "New Name"
    assert response.json()["company_name"] == "Unassigned Co"
    assert response.json()["row_version"] == 2

    stale = test_client.put(f"/api/contacts/{contact.id}", json={"phone": "555", "row_version": 1})
    assert stale.status_code == 409


def test_contact_for_unknown_company_is_not_found(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("collector")

    response = test_client.post("/api/contacts", json={"name": "Orphan", "companyId": str(uuid.uuid4())})

    assert response.status_code == 404


def test_data_collector_deletes_contact(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
    companies: dict[str, Company],
) -> None:
    test_client, set_actor = client
    contact = _add_contact(db_session, companies["assigned"], "Gone")
    contact_id = contact.id

    set_actor("collector")
    response = test_client.delete(f"/api/contacts/{contact_id}")

    assert response.status_code == 200
    assert response.json() == {"message": "Contact deleted successfully"}
    assert test_client.get(f"/api/contacts/{contact_id}").status_code == 404
    assert [entry["action"] for entry in audit.entries_for("contact", contact_id)] == ["delete"]
