from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from refined_crm.core.auth import get_current_actor
from refined_crm.core.config import get_settings
from refined_crm.core.database import Base, get_db
from refined_crm.crm.models import Notification
from refined_crm.main import app
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.roles import Role


ALICE = uuid.UUID("50000000-0000-0000-0000-000000000001")
BOB = uuid.UUID("50000000-0000-0000-0000-000000000002")


@pytest.fixture(autouse=True)
def disable_rate_limit(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


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


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[uuid.UUID], None]], None, None]:
    state = {"user_id": ALICE}
    get_settings.cache_clear()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor() -> AuthContext:
        return AuthContext(user_id=state["user_id"], role=Role.CONVERTER)

    def set_user(user_id: uuid.UUID) -> None:
        state["user_id"] = user_id

    default_session_factory = app.state.session_factory
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = lambda: Session(bind=db_session.get_bind())
    app.dependency_overrides[get_current_actor] = override_get_current_actor

    with TestClient(app) as test_client:
        yield test_client, set_user

    app.dependency_overrides.clear()
    app.state.session_factory = default_session_factory


@pytest.fixture()
def inbox(db_session: Session) -> list[uuid.UUID]:
    rows = [
        Notification(recipient_id=ALICE, message="one", kind="task.assigned"),
        Notification(recipient_id=ALICE, message="two", kind="task.updated"),
        Notification(recipient_id=BOB, message="bob's", kind="task.assigned"),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return [row.id for row in rows]


def test_inbox_is_scoped_to_the_recipient(
    client: tuple[TestClient, Callable[[uuid.UUID], None]],
    inbox: list[uuid.UUID],
) -> None:
    test_client, _ = client

    listed = test_client.get("/api/notifications")

    assert listed.status_code == 200
    assert {row["message"] for row in listed.json()} == {"one", "two"}
    assert test_client.get("/api/notifications/unread-count").json() == {"count": 2}


def test_mark_read_and_mark_all_read(
    client: tuple[TestClient, Callable[[uuid.UUID], None]],
    inbox: list[uuid.UUID],
) -> None:
    test_client, _ = client

    read = test_client.put(f"/api/notifications/{inbox[0]}/read")
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert test_client.get("/api/notifications/unread-count").json() == {"count": 1}

    assert test_client.put("/api/notifications/mark-all-read").json() == {"count": 1}
    assert test_client.get("/api/notifications/unread-count").json() == {"count": 0}


def test_other_users_notifications_are_not_found(
    client: tuple[TestClient, Callable[[uuid.UUID], None]],
    inbox: list[uuid.UUID],
) -> None:
    test_client, set_user = client
    set_user(BOB)

    assert test_client.put(f"/api/notifications/{inbox[0]}/read").status_code == 404
    assert test_client.delete(f"/api/notifications/{inbox[0]}").status_code == 404
    assert test_client.delete(f"/api/notifications/{inbox[2]}").status_code == 200
    assert test_client.get("/api/notifications").json() == []
