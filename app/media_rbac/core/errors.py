from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from media_rbac.core.types import Decision


class RbacConfigurationError(RuntimeError):
    """Raised when policy data or caller input cannot be evaluated safely."""


class PolicyConfigurationError(RbacConfigurationError):
    """Raised when a policy artifact is malformed or does not cover every enum value."""


class UnknownEnumValueError(RbacConfigurationError, ValueError):
    """Raised when a role, phase, action or status value is not part of its closed set."""

    def __init__(self, kind: str, value: object) -> None:
        super().__init__(f"Unknown {kind} value: {value!r}")
        self.kind = kind
        self.value = value


class InvalidContextError(RbacConfigurationError, ValueError):
    """Raised when a permission context violates its construction invariants."""


class PermissionDeniedError(PermissionError):
    """Raised by guards and membership operations when a decision denies access."""

    def __init__(self, decision: "Decision", message: str | None = None) -> None:
        super().__init__(message or decision.message)
        self.decision = decision

    @property
    def reason_code(self) -> str:
        return self.decision.reason_code.value


class MembershipNotFoundError(LookupError):
    def __init__(self, project_id: str, user_id: str) -> None:
        super().__init__(f"No membership for user '{user_id}' in project '{project_id}'.")
        self.project_id = project_id
        self.user_id = user_id


class MembershipTransitionError(ValueError):
    """Raised when a membership lifecycle transition is not allowed."""


class InvalidResourceError(RbacConfigurationError, ValueError):
    """Raised when a resource reference is not well formed for its resource type."""
