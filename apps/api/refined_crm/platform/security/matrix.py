"""Versioned, immutable permission matrix and the process-wide active copy."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from threading import Lock
from types import MappingProxyType
from typing import Any

from refined_crm.metrics import observe_matrix_commit
from refined_crm.platform.security.errors import AdminVectorImmutable, MatrixInvariantError, MatrixVersionConflict
from refined_crm.platform.security.roles import DEFAULT_PERMISSIONS, Capability, PermissionVector, Role, parse_role


logger = logging.getLogger("refined_crm.authz")


@dataclass(frozen=True, slots=True)
class PermissionMatrix:
    version: int
    vectors: Mapping[Role, PermissionVector]

    def __post_init__(self) -> None:
        object.__setattr__(self, "vectors", MappingProxyType(dict(self.vectors)))

    @classmethod
    def default(cls, version: int = 1) -> PermissionMatrix:
        return cls(version=version, vectors=DEFAULT_PERMISSIONS)

    @classmethod
    def from_dict(cls, version: int, data: Mapping[str, Mapping[str, bool]]) -> PermissionMatrix:
        vectors: dict[Role, PermissionVector] = {}
        for role_name, capabilities in data.items():
            role = parse_role(role_name)
            if role is None:
                raise MatrixInvariantError(f"unknown role: {role_name}")
            vectors[role] = PermissionVector.from_dict(capabilities)
        return cls(version=version, vectors=vectors)

    def vector_for(self, role: Role) -> PermissionVector:
        return self.vectors[role]

    def with_vector(self, role: Role, vector: PermissionVector) -> PermissionMatrix:
        if role is Role.ADMIN and vector != self.vectors.get(Role.ADMIN):
            raise AdminVectorImmutable("the Admin permission vector cannot be changed")
        updated = dict(self.vectors)
        updated[role] = vector
        return PermissionMatrix(version=self.version + 1, vectors=updated)

    def with_capability(self, role: Role, capability: Capability, granted: bool) -> PermissionMatrix:
        return self.with_vector(role, self.vector_for(role).with_capability(capability, granted))

    def reset_to_defaults(self) -> PermissionMatrix:
        return PermissionMatrix(version=self.version + 1, vectors=DEFAULT_PERMISSIONS)

    def validate(self) -> None:
        missing = [role.value for role in Role if role not in self.vectors]
        if missing:
            raise MatrixInvariantError(f"missing permission vector for: {', '.join(missing)}")
        unknown = [str(role) for role in self.vectors if not isinstance(role, Role)]
        if unknown:
            raise MatrixInvariantError(f"unknown roles in matrix: {', '.join(unknown)}")
        if self.vectors[Role.ADMIN] != PermissionVector.all_granted():
            raise AdminVectorImmutable("the Admin permission vector must grant every capability")

    def to_dict(self) -> dict[str, dict[str, bool]]:
        return {role.value: self.vectors[role].to_dict() for role in Role if role in self.vectors}

    def to_payload(self) -> dict[str, Any]:
        return {"version": self.version, "roles": self.to_dict()}


_ACTIVE_MATRIX = PermissionMatrix.default()
_ACTIVE_MATRIX_LOCK = Lock()


def get_permission_matrix() -> PermissionMatrix:
    return _ACTIVE_MATRIX


def commit_permission_matrix(candidate: PermissionMatrix, *, expected_version: int) -> PermissionMatrix:
    """Swap in ``candidate`` if the active version still equals ``expected_version``."""

    global _ACTIVE_MATRIX

    candidate.validate()
    with _ACTIVE_MATRIX_LOCK:
        current = _ACTIVE_MATRIX
        if current.version != expected_version:
            observe_matrix_commit("conflict")
            raise MatrixVersionConflict(expected=expected_version, current=current.version)
        if candidate.version <= current.version:
            raise MatrixInvariantError("candidate matrix must advance the version")
        _ACTIVE_MATRIX = candidate

    observe_matrix_commit("committed", candidate.version)
    logger.info("authz.matrix.committed", extra={"matrix_version": candidate.version})
    return candidate


def install_permission_matrix(matrix: PermissionMatrix) -> PermissionMatrix:
    """Replace the active matrix unconditionally, e.g. when loading a persisted version at startup."""

    global _ACTIVE_MATRIX

    matrix.validate()
    with _ACTIVE_MATRIX_LOCK:
        _ACTIVE_MATRIX = matrix
    observe_matrix_commit("installed", matrix.version)
    return matrix


def reset_permission_matrix() -> PermissionMatrix:
    return install_permission_matrix(PermissionMatrix.default())
