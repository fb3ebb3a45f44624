from __future__ import annotations

from typing import Any


class AuthorizationError(Exception):
    """Base class for access decisions that reject a request.

    Every subclass carries a stable ``reason_code`` that the HTTP layer maps
    to a status code. Raised before any field of a record is written.
    """

    reason_code = "Forbidden"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class Unauthenticated(AuthorizationError):
    reason_code = "Unauthenticated"


class Forbidden(AuthorizationError):
    reason_code = "Forbidden"


class InvalidTransition(AuthorizationError):
    reason_code = "InvalidTransition"


class OwnershipViolation(AuthorizationError):
    reason_code = "OwnershipViolation"


class RestrictedFieldViolation(AuthorizationError):
    """Raised when a payload touches fields outside the actor's writable subset."""

    reason_code = "RestrictedFieldViolation"

    def __init__(self, resource: str, fields: list[str]) -> None:
        self.resource = resource
        self.fields = sorted(set(fields))
        super().__init__(
            f"Forbidden: restricted field set for '{resource}': {', '.join(self.fields)}",
            details={"resource": resource, "fields": self.fields},
        )


class MatrixInvariantError(ValueError):
    """Raised when a candidate permission matrix would break a catalog invariant."""


class AdminVectorImmutable(MatrixInvariantError):
    pass


class MatrixVersionConflict(Exception):
    def __init__(self, expected: int, current: int) -> None:
        self.expected = expected
        self.current = current
        super().__init__(f"permission matrix version conflict: expected {expected}, current {current}")
