"""Entity ownership guard.

Every mutating request is checked in a fixed order and stops at the first
failure:

1. authentication
2. coarse group or capability gate for the operation
3. read-only enforcement for write verbs, with narrow carve-outs
4. record ownership for tasks and tickets
5. the finalization lock for companies (see ``finalization``)

Nothing is written until every step has passed.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol, assert_never

from refined_crm.metrics import observe_authz_decision
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import (
    AuthorizationError,
    Forbidden,
    OwnershipViolation,
    RestrictedFieldViolation,
    Unauthenticated,
)
from refined_crm.platform.security.finalization import (
    CompanyState,
    FinalizationStamp,
    check_company_delete,
    check_company_write,
    check_finalize,
)
from refined_crm.platform.security.fls import restricted_fields_for
from refined_crm.platform.security.policies import RoleGroup, is_in_group
from refined_crm.platform.security.roles import Capability, Role


logger = logging.getLogger("refined_crm.authz")


class Verb(StrEnum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


WRITE_VERBS = frozenset({Verb.CREATE, Verb.UPDATE, Verb.DELETE})


class CarveOut(StrEnum):
    COMPANY_DATA = "company_data"
    RESTRICTED_FIELDS = "restricted_fields"
    WORK_ITEM_UPDATE = "work_item_update"
    SUPPORT_REQUEST = "support_request"
    COMMENTS = "comments"


@dataclass(frozen=True, slots=True)
class OperationSpec:
    name: str
    resource: str
    verb: Verb
    required_group: RoleGroup | None = None
    required_capability: Capability | None = None
    carve_outs: frozenset[CarveOut] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if (self.required_group is None) == (self.required_capability is None):
            raise ValueError(f"operation {self.name} needs exactly one of required_group or required_capability")


def _op(
    name: str,
    verb: Verb,
    *,
    group: RoleGroup | None = None,
    capability: Capability | None = None,
    carve_outs: tuple[CarveOut, ...] = (),
) -> OperationSpec:
    resource = name.split(".", 1)[0]
    return OperationSpec(name, resource, verb, group, capability, frozenset(carve_outs))


OPERATIONS: dict[str, OperationSpec] = {
    spec.name: spec
    for spec in (
        _op("company.create", Verb.CREATE, capability=Capability.CAN_CREATE, carve_outs=(CarveOut.COMPANY_DATA,)),
        _op(
            "company.update",
            Verb.UPDATE,
            capability=Capability.CAN_READ,
            carve_outs=(CarveOut.COMPANY_DATA, CarveOut.RESTRICTED_FIELDS),
        ),
        _op("company.delete", Verb.DELETE, capability=Capability.CAN_DELETE, carve_outs=(CarveOut.COMPANY_DATA,)),
        _op("company.finalize", Verb.UPDATE, group=RoleGroup.FINALIZERS),
        _op("task.create", Verb.CREATE, group=RoleGroup.TASK_ASSIGNERS),
        _op("task.update", Verb.UPDATE, group=RoleGroup.TASK_UPDATERS, carve_outs=(CarveOut.WORK_ITEM_UPDATE,)),
        _op("task.delete", Verb.DELETE, group=RoleGroup.TASK_ASSIGNERS),
        _op("ticket.create", Verb.CREATE, capability=Capability.CAN_READ, carve_outs=(CarveOut.SUPPORT_REQUEST,)),
        _op("ticket.update", Verb.UPDATE, group=RoleGroup.TASK_UPDATERS, carve_outs=(CarveOut.WORK_ITEM_UPDATE,)),
        _op("ticket.delete", Verb.DELETE, group=RoleGroup.TASK_ASSIGNERS),
        _op("comment.create", Verb.CREATE, capability=Capability.CAN_COMMENT, carve_outs=(CarveOut.COMMENTS,)),
        _op("comment.update", Verb.UPDATE, capability=Capability.CAN_READ, carve_outs=(CarveOut.COMMENTS,)),
        _op("comment.delete", Verb.DELETE, capability=Capability.CAN_READ, carve_outs=(CarveOut.COMMENTS,)),
        _op("contact.create", Verb.CREATE, capability=Capability.CAN_READ),
        _op("contact.update", Verb.UPDATE, capability=Capability.CAN_READ),
        _op("contact.delete", Verb.DELETE, capability=Capability.CAN_READ),
        _op("user.list", Verb.READ, group=RoleGroup.USER_MANAGERS),
        _op("user.update", Verb.UPDATE, group=RoleGroup.USER_MANAGERS),
        _op("user.delete", Verb.DELETE, group=RoleGroup.ADMINISTRATORS),
        _op("custom_field.create", Verb.CREATE, group=RoleGroup.CUSTOM_FIELD_MANAGERS),
        _op("custom_field.delete", Verb.DELETE, group=RoleGroup.CUSTOM_FIELD_MANAGERS),
        _op("permissions.manage", Verb.UPDATE, group=RoleGroup.ADMINISTRATORS),
    )
}


class AssignedRecord(Protocol):
    assigned_to_id: uuid.UUID | None


class AuthoredRecord(Protocol):
    author_id: uuid.UUID


@dataclass(frozen=True, slots=True)
class Allow:
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Deny:
    reason_code: str
    message: str


Decision = Allow | Deny


def get_operation(operation: str | OperationSpec) -> OperationSpec:
    if isinstance(operation, OperationSpec):
        return operation
    spec = OPERATIONS.get(operation)
    if spec is None:
        raise KeyError(f"unregistered operation: {operation}")
    return spec


def _carve_out_applies(carve_out: CarveOut, ctx: AuthContext, spec: OperationSpec) -> bool:
    match carve_out:
        case CarveOut.COMPANY_DATA:
            return ctx.role is Role.DATA_COLLECTOR
        case CarveOut.RESTRICTED_FIELDS:
            return restricted_fields_for(spec.resource, ctx.role) is not None
        case CarveOut.WORK_ITEM_UPDATE:
            return is_in_group(ctx.role, RoleGroup.TASK_WORKERS, ctx.matrix)
        case CarveOut.SUPPORT_REQUEST:
            return ctx.permissions.can_read
        case CarveOut.COMMENTS:
            return ctx.permissions.can_comment
        case _:
            assert_never(carve_out)


def _deny(spec: OperationSpec, ctx: AuthContext | None, error: AuthorizationError) -> AuthorizationError:
    role = ctx.role.value if ctx is not None and ctx.role is not None else None
    observe_authz_decision(spec.name, "deny", error.reason_code)
    logger.info(
        "authz.denied",
        extra={"operation": spec.name, "role": role, "reason": error.reason_code},
    )
    return error


def authorize_operation(ctx: AuthContext | None, operation: str | OperationSpec) -> AuthContext:
    """Run steps 1-3 for ``operation`` and return the verified context."""

    spec = get_operation(operation)

    if ctx is None:
        raise _deny(spec, ctx, Unauthenticated("Authentication required"))

    if spec.required_group is not None and not is_in_group(ctx.role, spec.required_group, ctx.matrix):
        raise _deny(spec, ctx, Forbidden(f"Role is not permitted to perform {spec.name}"))
    if spec.required_capability is not None and not ctx.permissions.allows(spec.required_capability):
        raise _deny(spec, ctx, Forbidden(f"Missing capability: {spec.required_capability.value}"))

    if spec.verb in WRITE_VERBS and not ctx.permissions.has_any_write():
        if not any(_carve_out_applies(carve_out, ctx, spec) for carve_out in spec.carve_outs):
            raise _deny(spec, ctx, Forbidden("Read-only access. You cannot modify data."))

    observe_authz_decision(spec.name, "allow")
    return ctx


def authorize_work_item_update(
    ctx: AuthContext,
    record: AssignedRecord,
    changes: dict[str, Any],
    *,
    resource: str = "task",
) -> dict[str, Any]:
    """Step 4: own-only updaters may touch only records assigned to them and may not reassign them."""

    spec = get_operation(f"{resource}.update")
    vector = ctx.permissions
    if vector.can_update_all_tasks:
        return changes
    if not vector.can_update_own_tasks:
        raise _deny(spec, ctx, Forbidden(f"You don't have permission to update {resource}s"))
    if record.assigned_to_id != ctx.user_id:
        raise _deny(spec, ctx, OwnershipViolation(f"You can only update {resource}s assigned to you"))
    if "assigned_to_id" in changes and changes["assigned_to_id"] != record.assigned_to_id:
        raise _deny(spec, ctx, RestrictedFieldViolation(resource=resource, fields=["assigned_to_id"]))
    return changes


def authorize_user_update(ctx: AuthContext, current_role: str, changes: dict[str, Any]) -> dict[str, Any]:
    """Only administrators may edit an Admin account or grant the Admin role."""

    touches_admin = current_role == Role.ADMIN.value or changes.get("role") == Role.ADMIN.value
    if touches_admin and not is_in_group(ctx.role, RoleGroup.ADMINISTRATORS, ctx.matrix):
        raise _deny(get_operation("user.update"), ctx, Forbidden("Only an Admin can grant or change Admin accounts"))
    return changes


def authorize_author_or_admin(ctx: AuthContext, record: AuthoredRecord, *, operation: str) -> None:
    if ctx.role is Role.ADMIN or record.author_id == ctx.user_id:
        return
    raise _deny(get_operation(operation), ctx, OwnershipViolation("Only the author or an Admin can change this comment"))


def decide(check: Callable[[], dict[str, Any] | None]) -> Decision:
    """Evaluate ``check`` and fold its outcome into an ``Allow`` or ``Deny`` value."""

    try:
        fields = check()
    except AuthorizationError as exc:
        return Deny(reason_code=exc.reason_code, message=exc.message)
    return Allow(fields=fields or {})


def _with_denial_logging(operation: str, ctx: AuthContext, check: Callable[[], Any]) -> Any:
    try:
        return check()
    except AuthorizationError as exc:
        raise _deny(get_operation(operation), ctx, exc) from None


def authorize_company_write(ctx: AuthContext, company: CompanyState, changes: dict[str, Any]) -> dict[str, Any]:
    """Step 5 for company updates: finalization lock, then the Converter's restricted field set."""

    return _with_denial_logging("company.update", ctx, lambda: check_company_write(ctx, company, changes))


def authorize_company_delete(ctx: AuthContext, company: CompanyState) -> None:
    _with_denial_logging("company.delete", ctx, lambda: check_company_delete(ctx, company))


def authorize_finalize(ctx: AuthContext, company: CompanyState, *, now: datetime | None = None) -> FinalizationStamp:
    return _with_denial_logging("company.finalize", ctx, lambda: check_finalize(ctx, company, now=now))


def require_actor(ctx: AuthContext | None) -> AuthContext:
    """Reads only need a verified identity; visibility filtering does the rest."""

    if ctx is None:
        raise Unauthenticated("Authentication required")
    return ctx
