from __future__ import annotations

from collections.abc import Generator

import pytest

from refined_crm.platform.security.errors import AdminVectorImmutable, MatrixInvariantError, MatrixVersionConflict
from refined_crm.platform.security.matrix import (
    PermissionMatrix,
    commit_permission_matrix,
    get_permission_matrix,
    install_permission_matrix,
    reset_permission_matrix,
)
from refined_crm.platform.security.policies import has_permission
from refined_crm.platform.security.roles import Capability, PermissionVector, Role


@pytest.fixture(autouse=True)
def default_matrix() -> Generator[None, None, None]:
    reset_permission_matrix()
    yield
    reset_permission_matrix()


def test_admin_vector_survives_repeated_toggle_attempts() -> None:
    matrix = get_permission_matrix()
    for _ in range(5):
        for capability in Capability:
            with pytest.raises(AdminVectorImmutable):
                matrix.with_capability(Role.ADMIN, capability, False)
            # granting an already granted capability leaves the vector unchanged
            matrix = matrix.with_capability(Role.ADMIN, capability, True)

    assert matrix.vector_for(Role.ADMIN) == PermissionVector.all_granted()
    assert get_permission_matrix().vector_for(Role.ADMIN) == PermissionVector.all_granted()


def test_with_capability_is_copy_on_write() -> None:
    original = get_permission_matrix()
    candidate = original.with_capability(Role.CONVERTER, Capability.CAN_COMMENT, True)

    assert candidate.version == original.version + 1
    assert candidate.vector_for(Role.CONVERTER).can_comment is True
    assert original.vector_for(Role.CONVERTER).can_comment is False
    assert has_permission(Role.CONVERTER, Capability.CAN_COMMENT) is False


def test_vectors_mapping_is_read_only() -> None:
    matrix = get_permission_matrix()
    with pytest.raises(TypeError):
        matrix.vectors[Role.HEAD] = PermissionVector.all_granted()  # type: ignore[index]


def test_commit_swaps_active_matrix() -> None:
    current = get_permission_matrix()
    candidate = current.with_capability(Role.HEAD, Capability.CAN_CREATE, True)

    committed = commit_permission_matrix(candidate, expected_version=current.version)

    assert committed is get_permission_matrix()
    assert has_permission(Role.HEAD, Capability.CAN_CREATE) is True


def test_commit_rejects_stale_expected_version() -> None:
    current = get_permission_matrix()
    first = current.with_capability(Role.HEAD, Capability.CAN_CREATE, True)
    second = current.with_capability(Role.SUB_HEAD, Capability.CAN_CREATE, True)
    commit_permission_matrix(first, expected_version=current.version)

    with pytest.raises(MatrixVersionConflict) as exc_info:
        commit_permission_matrix(second, expected_version=current.version)

    assert exc_info.value.current == first.version
    assert has_permission(Role.SUB_HEAD, Capability.CAN_CREATE) is False


def test_commit_requires_version_to_advance() -> None:
    current = get_permission_matrix()
    same_version = PermissionMatrix(version=current.version, vectors=current.vectors)

    with pytest.raises(MatrixInvariantError):
        commit_permission_matrix(same_version, expected_version=current.version)


def test_validate_rejects_missing_role_and_tampered_admin() -> None:
    vectors = dict(PermissionMatrix.default().vectors)
    vectors.pop(Role.CONVERTER)
    with pytest.raises(MatrixInvariantError):
        PermissionMatrix(version=2, vectors=vectors).validate()

    tampered = dict(PermissionMatrix.default().vectors)
    tampered[Role.ADMIN] = PermissionVector.none_granted()
    with pytest.raises(AdminVectorImmutable):
        install_permission_matrix(PermissionMatrix(version=2, vectors=tampered))
    assert get_permission_matrix().vector_for(Role.ADMIN) == PermissionVector.all_granted()


def test_from_dict_rejects_unknown_role() -> None:
    data = PermissionMatrix.default().to_dict()
    data["Intern"] = {"canRead": True}
    with pytest.raises(MatrixInvariantError):
        PermissionMatrix.from_dict(3, data)


def test_reset_to_defaults_advances_version() -> None:
    changed = get_permission_matrix().with_capability(Role.MANAGER, Capability.CAN_FINALIZE, False)
    reset = changed.reset_to_defaults()

    assert reset.version == changed.version + 1
    assert reset.vector_for(Role.MANAGER).can_finalize is True
