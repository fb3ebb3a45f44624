"""Permission evaluator and derived role groups.

All lookups are pure reads of a :class:`PermissionMatrix`. Absent or unknown
roles resolve to the all-denied vector and never raise.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import assert_never

from refined_crm.platform.security.matrix import PermissionMatrix, get_permission_matrix
from refined_crm.platform.security.roles import (
    DENY_ALL,
    Capability,
    PermissionVector,
    Role,
    parse_capability,
    parse_role,
)


class RoleGroup(StrEnum):
    MANAGERS = "MANAGERS"
    DATA_MANAGERS = "DATA_MANAGERS"
    READ_ONLY_WITH_COMMENTS = "READ_ONLY_WITH_COMMENTS"
    TASK_WORKERS = "TASK_WORKERS"
    TASK_ASSIGNERS = "TASK_ASSIGNERS"
    TASK_UPDATERS = "TASK_UPDATERS"
    FINALIZERS = "FINALIZERS"
    USER_MANAGERS = "USER_MANAGERS"
    CUSTOM_FIELD_MANAGERS = "CUSTOM_FIELD_MANAGERS"
    ADMINISTRATORS = "ADMINISTRATORS"


def get_permissions(role: Role | str | None, matrix: PermissionMatrix | None = None) -> PermissionVector:
    resolved = parse_role(role)
    if resolved is None:
        return DENY_ALL
    active = matrix or get_permission_matrix()
    return active.vectors.get(resolved, DENY_ALL)


def has_permission(
    role: Role | str | None,
    capability: Capability | str,
    matrix: PermissionMatrix | None = None,
) -> bool:
    resolved = parse_capability(capability)
    if resolved is None:
        return False
    return get_permissions(role, matrix).allows(resolved)


def _group_predicate(group: RoleGroup) -> Callable[[PermissionVector], bool]:
    match group:
        case RoleGroup.MANAGERS:
            return lambda v: v.can_update_all_tasks and v.can_manage_users
        case RoleGroup.DATA_MANAGERS:
            return lambda v: v.can_create and v.can_edit and v.can_delete
        case RoleGroup.READ_ONLY_WITH_COMMENTS:
            return lambda v: v.can_comment and not v.has_any_write()
        case RoleGroup.TASK_WORKERS:
            return lambda v: v.can_update_own_tasks and not v.can_update_all_tasks
        case RoleGroup.TASK_ASSIGNERS:
            return lambda v: v.can_assign_tasks
        case RoleGroup.TASK_UPDATERS:
            return lambda v: v.can_update_own_tasks or v.can_update_all_tasks
        case RoleGroup.FINALIZERS:
            return lambda v: v.can_finalize
        case RoleGroup.USER_MANAGERS:
            return lambda v: v.can_manage_users
        case RoleGroup.CUSTOM_FIELD_MANAGERS:
            return lambda v: v.can_manage_custom_fields
        case RoleGroup.ADMINISTRATORS:
            return lambda v: v == PermissionVector.all_granted()
        case _:
            assert_never(group)


def is_in_group(role: Role | str | None, group: RoleGroup, matrix: PermissionMatrix | None = None) -> bool:
    resolved = parse_role(role)
    if resolved is None:
        return False
    return _group_predicate(group)(get_permissions(resolved, matrix))


def group_members(group: RoleGroup, matrix: PermissionMatrix | None = None) -> frozenset[Role]:
    active = matrix or get_permission_matrix()
    predicate = _group_predicate(group)
    return frozenset(role for role in Role if predicate(get_permissions(role, active)))


def groups_for(role: Role | str | None, matrix: PermissionMatrix | None = None) -> list[RoleGroup]:
    return [group for group in RoleGroup if is_in_group(role, group, matrix)]
