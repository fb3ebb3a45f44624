"""In-process audit trail for record changes and denied field writes."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from refined_crm.context import get_correlation_id

audit_entries: list[dict[str, Any]] = []


class AuditActor(Protocol):
    @property
    def actor_id(self) -> str: ...

    correlation_id: str | None


def record_change(
    actor: AuditActor,
    entity_type: str,
    entity_id: object,
    action: str,
    *,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> dict[str, Any]:
    entry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor.actor_id,
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "action": action,
        "before": before,
        "after": after,
        "correlation_id": actor.correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    return entry


def entries_for(entity_type: str, entity_id: object) -> list[dict[str, Any]]:
    key = str(entity_id)
    return [entry for entry in audit_entries if entry["entity_type"] == entity_type and entry["entity_id"] == key]
