"""Role catalog: the closed set of roles and the capability vector each one carries."""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import assert_never


class Role(StrEnum):
    ADMIN = "Admin"
    HEAD = "Head"
    SUB_HEAD = "SubHead"
    MANAGER = "Manager"
    DATA_COLLECTOR = "DataCollector"
    CONVERTER = "Converter"


class Capability(StrEnum):
    CAN_READ = "canRead"
    CAN_READ_FINALIZED = "canReadFinalized"
    CAN_CREATE = "canCreate"
    CAN_EDIT = "canEdit"
    CAN_DELETE = "canDelete"
    CAN_ASSIGN_TASKS = "canAssignTasks"
    CAN_UPDATE_OWN_TASKS = "canUpdateOwnTasks"
    CAN_UPDATE_ALL_TASKS = "canUpdateAllTasks"
    CAN_FINALIZE = "canFinalize"
    CAN_EDIT_FINALIZED = "canEditFinalized"
    CAN_MANAGE_USERS = "canManageUsers"
    CAN_COMMENT = "canComment"
    CAN_MANAGE_CUSTOM_FIELDS = "canManageCustomFields"

    @property
    def field_name(self) -> str:
        return re.sub(r"(?<!^)(?=[A-Z])", "_", self.value).lower()


def parse_role(value: Role | str | None) -> Role | None:
    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def parse_capability(value: Capability | str) -> Capability | None:
    if isinstance(value, Capability):
        return value
    try:
        return Capability(value)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class PermissionVector:
    can_read: bool = False
    can_read_finalized: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_assign_tasks: bool = False
    can_update_own_tasks: bool = False
    can_update_all_tasks: bool = False
    can_finalize: bool = False
    can_edit_finalized: bool = False
    can_manage_users: bool = False
    can_comment: bool = False
    can_manage_custom_fields: bool = False

    @classmethod
    def none_granted(cls) -> PermissionVector:
        return cls()

    @classmethod
    def all_granted(cls) -> PermissionVector:
        return cls(**{capability.field_name: True for capability in Capability})

    @classmethod
    def from_dict(cls, data: Mapping[str, bool]) -> PermissionVector:
        """Build a vector from camelCase capability keys; missing keys are denied."""

        values: dict[str, bool] = {}
        for key, granted in data.items():
            capability = parse_capability(key)
            if capability is None:
                raise ValueError(f"unknown capability: {key}")
            values[capability.field_name] = bool(granted)
        return cls(**values)

    def allows(self, capability: Capability) -> bool:
        return bool(getattr(self, capability.field_name))

    def with_capability(self, capability: Capability, granted: bool) -> PermissionVector:
        return dataclasses.replace(self, **{capability.field_name: granted})

    def has_any_write(self) -> bool:
        return self.can_edit or self.can_create or self.can_delete

    def to_dict(self) -> dict[str, bool]:
        return {capability.value: self.allows(capability) for capability in Capability}


def default_vector(role: Role) -> PermissionVector:
    match role:
        case Role.ADMIN:
            return PermissionVector.all_granted()
        case Role.HEAD | Role.SUB_HEAD:
            return PermissionVector(can_read=True, can_read_finalized=True, can_comment=True)
        case Role.MANAGER:
            return PermissionVector.all_granted().with_capability(Capability.CAN_EDIT_FINALIZED, False)
        case Role.DATA_COLLECTOR:
            return PermissionVector(
                can_read=True,
                can_create=True,
                can_edit=True,
                can_delete=True,
                can_update_own_tasks=True,
            )
        case Role.CONVERTER:
            return PermissionVector(can_read=True, can_update_own_tasks=True)
        case _:
            assert_never(role)


DEFAULT_PERMISSIONS: Mapping[Role, PermissionVector] = MappingProxyType({role: default_vector(role) for role in Role})
DENY_ALL = PermissionVector.none_granted()
