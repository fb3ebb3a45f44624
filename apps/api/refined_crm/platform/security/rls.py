"""Row visibility for company reads. Reads are filtered, never rejected outright."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, assert_never

from sqlalchemy import false
from sqlalchemy.sql import Select

from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.finalization import CompanyState, FinalizationStatus, is_locked
from refined_crm.platform.security.roles import Role


class VisibilityScope(StrEnum):
    ALL = "all"
    ASSIGNED_CONVERTER = "assigned_converter"
    FINALIZED_ONLY = "finalized_only"
    NONE = "none"


def company_scope(ctx: AuthContext) -> VisibilityScope:
    if not ctx.permissions.can_read:
        return VisibilityScope.NONE

    match ctx.role:
        case Role.CONVERTER:
            return VisibilityScope.ASSIGNED_CONVERTER
        case Role.HEAD | Role.SUB_HEAD:
            return VisibilityScope.FINALIZED_ONLY
        case Role.ADMIN | Role.MANAGER | Role.DATA_COLLECTOR:
            return VisibilityScope.ALL
        case None:
            return VisibilityScope.NONE
        case _:
            assert_never(ctx.role)


def apply_company_visibility(query: Select[Any], model: type[Any], ctx: AuthContext) -> Select[Any]:
    """Narrow a company query to the rows the actor may see."""

    scope = company_scope(ctx)
    if scope is VisibilityScope.NONE:
        return query.where(false())
    if scope is VisibilityScope.ASSIGNED_CONVERTER:
        query = query.where(model.assigned_converter_id == ctx.user_id)
    elif scope is VisibilityScope.FINALIZED_ONLY:
        query = query.where(model.finalization_status == FinalizationStatus.FINALIZED.value)

    if not ctx.permissions.can_read_finalized:
        query = query.where(model.finalization_status != FinalizationStatus.FINALIZED.value)
    return query


def can_view_company(ctx: AuthContext, company: CompanyState) -> bool:
    scope = company_scope(ctx)
    if scope is VisibilityScope.NONE:
        return False
    if scope is VisibilityScope.ASSIGNED_CONVERTER and company.assigned_converter_id != ctx.user_id:
        return False
    if scope is VisibilityScope.FINALIZED_ONLY and not is_locked(company):
        return False
    if is_locked(company) and not ctx.permissions.can_read_finalized:
        return False
    return True
