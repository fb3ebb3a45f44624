from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from refined_crm.context import get_correlation_id
from refined_crm.core.events import event_bus

published_events: list[dict[str, Any]] = []


def build_envelope(event_type: str, payload: dict[str, Any], *, actor_user_id: str | None = None) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    if actor_user_id is not None:
        envelope["actor_user_id"] = actor_user_id
    return envelope


def publish(envelope: dict[str, Any]) -> None:
    """Record the envelope and fan it out on the in-process bus after the change has committed."""

    envelope["correlation_id"] = envelope.get("correlation_id") or get_correlation_id()

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
