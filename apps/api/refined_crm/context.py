"""Per-request context shared by logging, audit, and event publishing."""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ActorRef:
    user_id: str
    role: str | None


correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
actor_var: ContextVar[ActorRef | None] = ContextVar("actor", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def bind_actor(user_id: str, role: str | None) -> Token[ActorRef | None]:
    return actor_var.set(ActorRef(user_id=user_id, role=role))


def log_context() -> dict[str, str | None]:
    actor = actor_var.get()
    return {
        "correlation_id": correlation_id_var.get(),
        "actor_id": actor.user_id if actor is not None else None,
        "actor_role": actor.role if actor is not None else None,
    }
