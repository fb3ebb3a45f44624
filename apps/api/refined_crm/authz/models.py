from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from refined_crm.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PermissionMatrixVersion(Base):
    """Append-only history of committed permission matrices; the highest version is active."""

    __tablename__ = "authz_permission_matrix_version"

    version: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    vectors: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
