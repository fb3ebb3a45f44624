"""Company lifecycle: the business stage and the one-way finalization lock."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Protocol

from refined_crm.platform.security.context import AuthContext
from refined_crm.platform.security.errors import Forbidden, InvalidTransition, OwnershipViolation
from refined_crm.platform.security.fls import COMPANY_RESOURCE, restricted_fields_for, validate_restricted_write


class ConversionStatus(StrEnum):
    WAITING = "Waiting"
    NO_REACH = "NoReach"
    CONFIRMED = "Confirmed"
    FINALIZED = "Finalized"


class FinalizationStatus(StrEnum):
    PENDING = "Pending"
    FINALIZED = "Finalized"


class CompanyState(Protocol):
    id: uuid.UUID
    conversion_status: str
    finalization_status: str
    assigned_converter_id: uuid.UUID | None


@dataclass(frozen=True, slots=True)
class FinalizationStamp:
    finalized_by_id: uuid.UUID
    finalized_at: datetime
    finalization_status: FinalizationStatus = FinalizationStatus.FINALIZED

    def as_values(self) -> dict[str, Any]:
        return {
            "finalization_status": self.finalization_status.value,
            "finalized_by_id": self.finalized_by_id,
            "finalized_at": self.finalized_at,
        }


def is_locked(company: CompanyState) -> bool:
    return company.finalization_status == FinalizationStatus.FINALIZED


def check_finalize(ctx: AuthContext, company: CompanyState, *, now: datetime | None = None) -> FinalizationStamp:
    """Validate the Pending -> Finalized transition and return the stamp to write."""

    if not ctx.permissions.can_finalize:
        raise Forbidden("Only finalizers can finalize company data")
    if is_locked(company):
        raise InvalidTransition(
            "already finalized",
            details={"finalization_status": company.finalization_status},
        )
    if company.conversion_status != ConversionStatus.CONFIRMED:
        raise InvalidTransition(
            "not confirmed yet",
            details={"conversion_status": company.conversion_status},
        )
    return FinalizationStamp(finalized_by_id=ctx.user_id, finalized_at=now or datetime.now(timezone.utc))


def check_company_write(ctx: AuthContext, company: CompanyState, changes: dict[str, Any]) -> dict[str, Any]:
    if is_locked(company) and not ctx.permissions.can_edit_finalized:
        raise Forbidden("Cannot edit finalized company data", details={"hint": "Only Admin can edit finalized records"})

    if restricted_fields_for(COMPANY_RESOURCE, ctx.role) is not None and company.assigned_converter_id != ctx.user_id:
        raise OwnershipViolation("You can only update companies assigned to you")

    validate_restricted_write(COMPANY_RESOURCE, changes, ctx)
    return changes


def check_company_delete(ctx: AuthContext, company: CompanyState) -> None:
    if is_locked(company) and not ctx.permissions.can_edit_finalized:
        raise Forbidden("Cannot delete finalized company data", details={"hint": "Only Admin can delete finalized records"})
