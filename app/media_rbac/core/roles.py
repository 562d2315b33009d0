"""Role catalog: the closed role vocabulary, display metadata and seniority ranks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from media_rbac.core.errors import UnknownEnumValueError


class RoleFamily(str, Enum):
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"


class Role(str, Enum):
    PROJECT_OWNER = "PROJECT_OWNER"
    PROJECT_MANAGER = "PROJECT_MANAGER"
    PROJECT_EDITOR = "PROJECT_EDITOR"
    PROJECT_VIEWER = "PROJECT_VIEWER"
    PROJECT_REVIEWER = "PROJECT_REVIEWER"
    PROJECT_LEGAL = "PROJECT_LEGAL"
    PROJECT_FINANCE = "PROJECT_FINANCE"

    EXTERNAL_EDITOR = "EXTERNAL_EDITOR"
    EXTERNAL_REVIEWER = "EXTERNAL_REVIEWER"
    EXTERNAL_VENDOR = "EXTERNAL_VENDOR"
    GUEST_VIEWER = "GUEST_VIEWER"


@dataclass(frozen=True)
class RoleDefinition:
    role: Role
    family: RoleFamily
    rank: int
    display_name: str
    description: str


def _definition(role: Role, family: RoleFamily, rank: int, display_name: str, description: str) -> RoleDefinition:
    return RoleDefinition(role=role, family=family, rank=rank, display_name=display_name, description=description)


# Ranks form a strict total order. Every internal role outranks every external role.
ROLE_CATALOG: Mapping[Role, RoleDefinition] = MappingProxyType(
    {
        Role.PROJECT_OWNER: _definition(
            Role.PROJECT_OWNER,
            RoleFamily.INTERNAL,
            100,
            "Project Owner",
            "Full control within the project, including team, budget and deletion.",
        ),
        Role.PROJECT_MANAGER: _definition(
            Role.PROJECT_MANAGER,
            RoleFamily.INTERNAL,
            90,
            "Project Manager",
            "Manages schedules, team membership, phases and assets.",
        ),
        Role.PROJECT_LEGAL: _definition(
            Role.PROJECT_LEGAL,
            RoleFamily.INTERNAL,
            80,
            "Legal",
            "Rights clearance, legal locks and approval of the legal phase.",
        ),
        Role.PROJECT_FINANCE: _definition(
            Role.PROJECT_FINANCE,
            RoleFamily.INTERNAL,
            70,
            "Finance",
            "Budget approvals and cost controls for the project.",
        ),
        Role.PROJECT_EDITOR: _definition(
            Role.PROJECT_EDITOR,
            RoleFamily.INTERNAL,
            60,
            "Editor",
            "Works on assets, uploads and submits versions for review.",
        ),
        Role.PROJECT_REVIEWER: _definition(
            Role.PROJECT_REVIEWER,
            RoleFamily.INTERNAL,
            50,
            "Reviewer",
            "Views work in progress and leaves feedback and approvals.",
        ),
        Role.PROJECT_VIEWER: _definition(
            Role.PROJECT_VIEWER,
            RoleFamily.INTERNAL,
            40,
            "Viewer",
            "Read-only access to the project.",
        ),
        Role.EXTERNAL_EDITOR: _definition(
            Role.EXTERNAL_EDITOR,
            RoleFamily.EXTERNAL,
            30,
            "External Editor",
            "Contracted editor limited to assigned phases.",
        ),
        Role.EXTERNAL_VENDOR: _definition(
            Role.EXTERNAL_VENDOR,
            RoleFamily.EXTERNAL,
            20,
            "External Vendor",
            "Task-based vendor: uploads deliverables and downloads approved proxies.",
        ),
        Role.EXTERNAL_REVIEWER: _definition(
            Role.EXTERNAL_REVIEWER,
            RoleFamily.EXTERNAL,
            15,
            "External Reviewer",
            "Client or contracted reviewer with view and feedback rights on assigned phases.",
        ),
        Role.GUEST_VIEWER: _definition(
            Role.GUEST_VIEWER,
            RoleFamily.EXTERNAL,
            10,
            "Guest Viewer",
            "Time-limited, view-only access.",
        ),
    }
)

INTERNAL_ROLES = tuple(role for role, item in ROLE_CATALOG.items() if item.family is RoleFamily.INTERNAL)
EXTERNAL_ROLES = tuple(role for role, item in ROLE_CATALOG.items() if item.family is RoleFamily.EXTERNAL)


def parse_role(value: Role | str) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().upper())
    except ValueError as exc:
        raise UnknownEnumValueError("role", value) from exc


def role_definition(role: Role) -> RoleDefinition:
    try:
        return ROLE_CATALOG[role]
    except KeyError as exc:
        raise UnknownEnumValueError("role", role) from exc


def rank_of(role: Role) -> int:
    return role_definition(role).rank


def display_name(role: Role) -> str:
    return role_definition(role).display_name


def description(role: Role) -> str:
    return role_definition(role).description


def is_internal(role: Role) -> bool:
    return role_definition(role).family is RoleFamily.INTERNAL


def is_external(role: Role) -> bool:
    return role_definition(role).family is RoleFamily.EXTERNAL


def outranks(role: Role, other: Role) -> bool:
    """Return True when `role` is strictly more senior than `other`."""
    return rank_of(role) > rank_of(other)


def roles_by_seniority() -> tuple[Role, ...]:
    return tuple(sorted(ROLE_CATALOG, key=rank_of, reverse=True))


def _validate_catalog() -> None:
    missing = [role for role in Role if role not in ROLE_CATALOG]
    if missing:
        raise RuntimeError(f"Role catalog is missing definitions for: {', '.join(r.value for r in missing)}")
    ranks = [item.rank for item in ROLE_CATALOG.values()]
    if len(set(ranks)) != len(ranks):
        raise RuntimeError("Role catalog ranks must be unique.")
    lowest_internal = min(ROLE_CATALOG[role].rank for role in INTERNAL_ROLES)
    highest_external = max(ROLE_CATALOG[role].rank for role in EXTERNAL_ROLES)
    if highest_external >= lowest_internal:
        raise RuntimeError("External roles must rank below every internal role.")


_validate_catalog()
