"""Field-level write rules: which fields a role may touch on a resource."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, assert_never

from refined_crm import audit
from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import RestrictedFieldViolation
from refined_crm.platform.security.roles import Role


COMPANY_RESOURCE = "company"

# Fields only the finalization transition may write.
LIFECYCLE_FIELDS: dict[str, frozenset[str]] = {
    COMPANY_RESOURCE: frozenset({"finalization_status", "finalized_by_id", "finalized_at"}),
}

_CONVERTER_WRITABLE: dict[str, frozenset[str]] = {
    COMPANY_RESOURCE: frozenset({"conversion_status"}),
}


def restricted_fields_for(resource: str, role: Role | None) -> frozenset[str] | None:
    """Return the writable subset for roles limited to one, or ``None`` when unrestricted."""

    match role:
        case Role.CONVERTER:
            return _CONVERTER_WRITABLE.get(resource, frozenset())
        case Role.ADMIN | Role.HEAD | Role.SUB_HEAD | Role.MANAGER | Role.DATA_COLLECTOR | None:
            return None
        case _:
            assert_never(role)


def validate_restricted_write(resource: str, payload: dict[str, Any], ctx: AuthContext) -> None:
    """Reject the whole payload when any field falls outside the role's writable subset."""

    lifecycle = LIFECYCLE_FIELDS.get(resource, frozenset())
    denied_fields = [field_name for field_name in payload if field_name in lifecycle]

    allowed = restricted_fields_for(resource, ctx.role)
    if allowed is not None:
        denied_fields.extend(field_name for field_name in payload if field_name not in allowed)

    if not denied_fields:
        return

    _record_denied_fields(resource, payload.keys(), denied_fields, ctx)
    raise RestrictedFieldViolation(resource=resource, fields=denied_fields)


def _record_denied_fields(
    resource: str,
    requested: Iterable[str],
    denied_fields: list[str],
    ctx: AuthContext,
) -> None:
    audit.record_change(
        ctx,
        "security.fls",
        resource,
        "fls.write_denied",
        after={
            "resource": resource,
            "role": ctx.role.value if ctx.role is not None else None,
            "requested_fields": sorted(requested),
            "denied_fields": sorted(set(denied_fields)),
        },
    )
