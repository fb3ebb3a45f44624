from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from refined_crm import audit
from refined_crm.authz.models import PermissionMatrixVersion
from refined_crm.authz.service import authorization_admin_service
from refined_crm.core.auth import get_current_actor
from refined_crm.core.config import get_settings
from refined_crm.core.database import Base, get_db
from refined_crm.main import app
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.matrix import get_permission_matrix, reset_permission_matrix
from refined_crm.platform.security.policies import has_permission
from refined_crm.platform.security.roles import Capability, Role


ACTORS = {
    "admin": (uuid.UUID("70000000-0000-0000-0000-000000000001"), Role.ADMIN),
    "manager": (uuid.UUID("70000000-0000-0000-0000-000000000002"), Role.MANAGER),
    "head": (uuid.UUID("70000000-0000-0000-0000-000000000003"), Role.HEAD),
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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    reset_permission_matrix()
    audit.audit_entries.clear()
    get_settings.cache_clear()
    yield
    reset_permission_matrix()
    audit.audit_entries.clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[str], None]], None, None]:
    state = {"actor": "admin"}

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_actor() -> AuthContext:
        user_id, role = ACTORS[state["actor"]]
        return AuthContext(user_id=user_id, role=role, correlation_id="authz-admin")

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


def test_admin_reads_matrix(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    response = test_client.get("/admin/permissions")

    assert response.status_code == 200
    body = response.json()
    assert body["version"] == 1
    assert body["roles"]["Manager"]["canEditFinalized"] is False
    assert all(body["roles"]["Admin"].values())


def test_non_admin_roles_cannot_manage_permissions(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client

    for actor in ("manager", "head"):
        set_actor(actor)
        assert test_client.get("/admin/permissions").status_code == 403
        response = test_client.patch(
            "/admin/permissions/Head",
            json={"expected_version": 1, "capabilities": {"canCreate": True}},
        )
        assert response.status_code == 403


def test_update_role_takes_effect_and_is_persisted(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, set_actor = client

    response = test_client.patch(
        "/admin/permissions/Converter",
        json={"expected_version": 1, "capabilities": {"canComment": True}, "note": "let converters comment"},
    )

    assert response.status_code == 200, response.text
    assert response.json()["version"] == 2
    assert response.json()["roles"]["Converter"]["canComment"] is True
    assert has_permission(Role.CONVERTER, Capability.CAN_COMMENT) is True

    row = db_session.scalars(select(PermissionMatrixVersion)).one()
    assert row.version == 2
    assert row.note == "let converters comment"
    assert any(entry["entity_type"] == "authz.permission_matrix" for entry in audit.audit_entries)

    history = test_client.get("/admin/permissions/history")
    assert [item["version"] for item in history.json()] == [2]


def test_admin_vector_cannot_be_edited(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    for capability in ("canRead", "canEditFinalized", "canManageUsers"):
        response = test_client.patch(
            "/admin/permissions/Admin",
            json={"expected_version": 1, "capabilities": {capability: False}},
        )
        assert response.status_code == 400

    assert get_permission_matrix().version == 1
    assert all(test_client.get("/admin/permissions").json()["roles"]["Admin"].values())


def test_stale_expected_version_is_conflict(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    first = test_client.patch(
        "/admin/permissions/Head",
        json={"expected_version": 1, "capabilities": {"canCreate": True}},
    )
    assert first.status_code == 200

    stale = test_client.patch(
        "/admin/permissions/SubHead",
        json={"expected_version": 1, "capabilities": {"canCreate": True}},
    )
    assert stale.status_code == 409
    assert has_permission(Role.SUB_HEAD, Capability.CAN_CREATE) is False


def test_unknown_capability_is_rejected(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client

    response = test_client.patch(
        "/admin/permissions/Head",
        json={"expected_version": 1, "capabilities": {"canTimeTravel": True}},
    )

    assert response.status_code == 422


def test_reset_restores_defaults(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, _ = client
    test_client.patch("/admin/permissions/Manager", json={"expected_version": 1, "capabilities": {"canFinalize": False}})

    response = test_client.post("/admin/permissions/reset", json={"expected_version": 2})

    assert response.status_code == 200
    assert response.json()["version"] == 3
    assert response.json()["roles"]["Manager"]["canFinalize"] is True


def test_latest_persisted_matrix_is_loaded(
    client: tuple[TestClient, Callable[[str], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    test_client.patch("/admin/permissions/Head", json={"expected_version": 1, "capabilities": {"canCreate": True}})
    reset_permission_matrix()
    assert has_permission(Role.HEAD, Capability.CAN_CREATE) is False

    loaded = authorization_admin_service.load_latest(db_session)

    assert loaded.version == 2
    assert has_permission(Role.HEAD, Capability.CAN_CREATE) is True


def test_my_permissions_reflects_role(client: tuple[TestClient, Callable[[str], None]]) -> None:
    test_client, set_actor = client
    set_actor("head")

    response = test_client.get("/api/me/permissions")

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "Head"
    assert body["matrix_version"] == 1
    assert body["permissions"]["canComment"] is True
    assert body["permissions"]["canCreate"] is False
    assert body["groups"] == ["READ_ONLY_WITH_COMMENTS"]
