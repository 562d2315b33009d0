"""Permission context: one actor's validated standing in one project."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Mapping

from media_rbac.core.env import FALSE_VALUES, TRUE_VALUES
from media_rbac.core.errors import InvalidContextError
from media_rbac.core.roles import Role, is_external, is_internal, parse_role
from media_rbac.core.types import MembershipStatus, Phase, parse_phase, parse_status


@dataclass(frozen=True)
class PermissionContext:
    organization_id: str
    project_id: str
    project_role: Role | None = None
    external_role: Role | None = None
    is_external: bool = False
    assigned_phases: frozenset[Phase] = field(default_factory=frozenset)
    status: MembershipStatus = MembershipStatus.ACTIVE
    access_expires_at: datetime | None = None
    user_id: str | None = None

    def __post_init__(self) -> None:
        if not str(self.organization_id or "").strip():
            raise InvalidContextError("organization_id is required.")
        if not str(self.project_id or "").strip():
            raise InvalidContextError("project_id is required.")
        if not isinstance(self.status, MembershipStatus):
            raise InvalidContextError(f"status must be a MembershipStatus, got {self.status!r}.")
        if not isinstance(self.assigned_phases, frozenset):
            raise InvalidContextError("assigned_phases must be a frozenset of Phase values.")
        if any(not isinstance(item, Phase) for item in self.assigned_phases):
            raise InvalidContextError("assigned_phases may only contain Phase values.")

        if self.project_role is not None and self.external_role is not None:
            raise InvalidContextError("A membership carries either a project role or an external role, never both.")
        if self.project_role is None and self.external_role is None:
            raise InvalidContextError("A membership must carry a project role or an external role.")

        if self.is_external:
            if self.external_role is None:
                raise InvalidContextError("External memberships require an external_role.")
            if not isinstance(self.external_role, Role) or not is_external(self.external_role):
                raise InvalidContextError(f"{self.external_role!r} is not an external role.")
        else:
            if self.project_role is None:
                raise InvalidContextError("Internal memberships require a project_role.")
            if not isinstance(self.project_role, Role) or not is_internal(self.project_role):
                raise InvalidContextError(f"{self.project_role!r} is not an internal project role.")
            if self.assigned_phases:
                raise InvalidContextError("assigned_phases only apply to external memberships.")

        if self.access_expires_at is not None:
            if not isinstance(self.access_expires_at, datetime):
                raise InvalidContextError("access_expires_at must be a datetime.")
            if self.access_expires_at.tzinfo is None or self.access_expires_at.utcoffset() is None:
                raise InvalidContextError("access_expires_at must be timezone-aware.")

    @property
    def role(self) -> Role:
        if self.is_external:
            return self.external_role  # type: ignore[return-value]
        return self.project_role  # type: ignore[return-value]

    def is_expired(self, at: datetime) -> bool:
        return self.access_expires_at is not None and self.access_expires_at <= at

    def with_status(self, status: MembershipStatus) -> "PermissionContext":
        return replace(self, status=status)


def internal_context(
    role: Role | str,
    *,
    organization_id: str,
    project_id: str,
    status: MembershipStatus | str = MembershipStatus.ACTIVE,
    access_expires_at: datetime | None = None,
    user_id: str | None = None,
) -> PermissionContext:
    return PermissionContext(
        organization_id=organization_id,
        project_id=project_id,
        project_role=parse_role(role),
        is_external=False,
        status=parse_status(status),
        access_expires_at=access_expires_at,
        user_id=user_id,
    )


def external_context(
    role: Role | str,
    *,
    organization_id: str,
    project_id: str,
    assigned_phases: Iterable[Phase | str] = (),
    status: MembershipStatus | str = MembershipStatus.ACTIVE,
    access_expires_at: datetime | None = None,
    user_id: str | None = None,
) -> PermissionContext:
    return PermissionContext(
        organization_id=organization_id,
        project_id=project_id,
        external_role=parse_role(role),
        is_external=True,
        assigned_phases=frozenset(parse_phase(item) for item in assigned_phases),
        status=parse_status(status),
        access_expires_at=access_expires_at,
        user_id=user_id,
    )


def _pick(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None


def _parse_flag(value: Any, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise InvalidContextError(f"{name} must be a boolean, got {value!r}.")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidContextError(f"accessExpiresAt is not an ISO-8601 timestamp: {value!r}") from exc


def context_from_membership(record: Mapping[str, Any], *, organization_id: str | None = None) -> PermissionContext:
    """
    Build a context from a membership record snapshot.

    Accepts the camelCase field names used by the membership store
    (`role`, `isExternal`, `externalRole`, `assignedPhases`, `status`,
    `accessExpiresAt`, `organizationId`, `projectId`, `userId`) as well as
    their snake_case equivalents.
    """
    external = _parse_flag(_pick(record, "isExternal", "is_external"), "isExternal")
    project_role = _pick(record, "role", "project_role", "projectRole")
    external_role = _pick(record, "externalRole", "external_role")
    phases = _pick(record, "assignedPhases", "assigned_phases") or ()

    return PermissionContext(
        organization_id=str(organization_id or _pick(record, "organizationId", "organization_id") or ""),
        project_id=str(_pick(record, "projectId", "project_id") or ""),
        project_role=(parse_role(project_role) if project_role is not None else None),
        external_role=(parse_role(external_role) if external_role is not None else None),
        is_external=external,
        assigned_phases=frozenset(parse_phase(item) for item in phases),
        status=parse_status(_pick(record, "status") or MembershipStatus.ACTIVE),
        access_expires_at=_parse_timestamp(_pick(record, "accessExpiresAt", "access_expires_at")),
        user_id=_pick(record, "userId", "user_id"),
    )
