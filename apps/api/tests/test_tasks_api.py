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


MANAGER_ID = uuid.UUID("20000000-0000-0000-0000-000000000001")
CONVERTER_ID = uuid.UUID("20000000-0000-0000-0000-000000000002")
COLLECTOR_ID = uuid.UUID("20000000-0000-0000-0000-000000000003")
HEAD_ID = uuid.UUID("20000000-0000-0000-0000-000000000004")

ACTORS = {
    "manager": (MANAGER_ID, Role.MANAGER),
    "converter": (CONVERTER_ID, Role.CONVERTER),
    "collector": (COLLECTOR_ID, Role.DATA_COLLECTOR),
    "head": (HEAD_ID, Role.HEAD),
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
    state = {"actor": "manager"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor() -> AuthContext:
        user_id, role = ACTORS[state["actor"]]
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


def _create_task(test_client: TestClient, set_actor: Callable[[str], None], assignee: uuid.UUID = CONVERTER_ID) -> dict:
    set_actor("manager")
    response = test_client.post(
        "/api/tasks",
        json={"title": "Call back", "assignedToId": str(assignee), "deadline": "2026-10-20T09:00:00Z"},
    )
    assert response.status_code == 201, response.text
    return response.json()


def _notifications_for(session: Session, recipient_id: uuid.UUID) -> list[Notification]:
    return list(session.scalars(select(Notification).where(Notification.recipient_id == recipient_id)).all())


def test_assigner_creates_task_and_assignee_is_notified(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    assert task["status"] == "NotYet"
    assert task["assigned_by_id"] == str(MANAGER_ID)

    notes = _notifications_for(db_session, CONVERTER_ID)
    assert [note.message for note in notes] == ['A Manager assigned you a new task: "Call back"']
    assert notes[0].kind == "task.assigned"
    assert _notifications_for(db_session, MANAGER_ID) == []


def test_task_workers_cannot_create_tasks(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("collector")

    response = test_client.post("/api/tasks", json={"title": "Self-assigned"})

    assert response.status_code == 403
    assert response.json()["code"] == "Forbidden"


def test_assignee_updates_own_task_and_assigner_is_notified(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    set_actor("converter")
    response = test_client.put(f"/api/tasks/{task['id']}", json={"status": "InProgress"})

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "InProgress"
    assert response.json()["row_version"] == 2

    manager_notes = _notifications_for(db_session, MANAGER_ID)
    assert [note.message for note in manager_notes] == ['A Converter updated task: "Call back"']
    # only the original assignment notice, nothing for the acting converter
    assert len(_notifications_for(db_session, CONVERTER_ID)) == 1


def test_own_only_updater_rejected_on_foreign_task(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor, assignee=COLLECTOR_ID)

    set_actor("converter")
    response = test_client.put(f"/api/tasks/{task['id']}", json={"status": "Completed"})

    assert response.status_code == 403
    assert response.json()["code"] == "OwnershipViolation"


def test_own_only_updater_cannot_reassign(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    set_actor("converter")
    response = test_client.put(f"/api/tasks/{task['id']}", json={"assignedToId": str(COLLECTOR_ID)})

    assert response.status_code == 403
    assert response.json()["code"] == "RestrictedFieldViolation"
    assert response.json()["details"]["fields"] == ["assigned_to_id"]


@pytest.mark.parametrize("payload", [{"title": None}, {"status": None}])
def test_explicit_null_on_required_column_is_rejected(
    client: tuple[TestClient, Callable[[str], None]],
    payload: dict[str, None],
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    set_actor("manager")
    response = test_client.put(f"/api/tasks/{task['id']}", json=payload)

    assert response.status_code == 422
    stored = test_client.get("/api/tasks").json()
    assert [(t["id"], t["title"], t["status"], t["row_version"]) for t in stored] == [(task["id"], "Call back", "NotYet", 1)]


def test_manager_reassigns_and_new_assignee_is_notified(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    set_actor("manager")
    response = test_client.put(f"/api/tasks/{task['id']}", json={"assignedToId": str(COLLECTOR_ID)})

    assert response.status_code == 200
    notes = _notifications_for(db_session, COLLECTOR_ID)
    assert [note.kind for note in notes] == ["task.assigned"]


def test_read_only_role_cannot_update_tasks(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    set_actor("head")
    response = test_client.put(f"/api/tasks/{task['id']}", json={"status": "Completed"})

    assert response.status_code == 403


def test_list_tasks_assigned_to_me(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    mine = _create_task(test_client, set_actor)
    _create_task(test_client, set_actor, assignee=COLLECTOR_ID)

    set_actor("converter")
    assert len(test_client.get("/api/tasks").json()) == 2
    assigned = test_client.get("/api/tasks", params={"assigned_to_me": "true"}).json()
    assert [row["id"] for row in assigned] == [mine["id"]]


def test_delete_task_requires_assigner(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    task = _create_task(test_client, set_actor)

    set_actor("converter")
    assert test_client.delete(f"/api/tasks/{task['id']}").status_code == 403

    set_actor("manager")
    response = test_client.delete(f"/api/tasks/{task['id']}")
    assert response.status_code == 200
    assert response.json() == {"message": "Task deleted successfully"}
    assert test_client.put(f"/api/tasks/{task['id']}", json={"status": "Completed"}).status_code == 404
