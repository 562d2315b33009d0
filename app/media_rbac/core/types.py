from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from media_rbac.core.errors import InvalidResourceError, UnknownEnumValueError


class Phase(str, Enum):
    BRIEF = "BRIEF"
    PRE_PRODUCTION = "PRE_PRODUCTION"
    PRODUCTION = "PRODUCTION"
    POST_PRODUCTION = "POST_PRODUCTION"
    INTERNAL_REVIEW = "INTERNAL_REVIEW"
    EXTERNAL_REVIEW = "EXTERNAL_REVIEW"
    LEGAL_APPROVAL = "LEGAL_APPROVAL"
    DISTRIBUTION = "DISTRIBUTION"


class ResourceType(str, Enum):
    ASSET = "ASSET"
    PROJECT = "PROJECT"
    ARCHIVE = "ARCHIVE"
    WORKSPACE = "WORKSPACE"


class AssetType(str, Enum):
    RAW_FOOTAGE = "RAW_FOOTAGE"
    AUDIO = "AUDIO"
    ROUGH_CUT = "ROUGH_CUT"
    MASTER = "MASTER"
    LEGAL_DOCUMENT = "LEGAL_DOCUMENT"
    VERSION = "VERSION"
    LOCALIZED_VERSION = "LOCALIZED_VERSION"
    ARCHIVE_ASSET = "ARCHIVE_ASSET"
    PROJECT_FILE = "PROJECT_FILE"
    GRAPHICS = "GRAPHICS"
    MUSIC = "MUSIC"
    VFX = "VFX"


class AccessLevel(str, Enum):
    """Per-asset-type access, weakest first."""

    NONE = "NONE"
    APPROVED_ONLY = "APPROVED_ONLY"
    VIEW_ONLY = "VIEW_ONLY"
    SCOPED = "SCOPED"
    FULL = "FULL"

    @property
    def weight(self) -> int:
        return _ACCESS_LEVEL_ORDER.index(self)

    def satisfies(self, required: "AccessLevel") -> bool:
        return self.weight >= required.weight


_ACCESS_LEVEL_ORDER: tuple[AccessLevel, ...] = tuple(AccessLevel)


class Restriction(str, Enum):
    VIEW_ONLY = "VIEW_ONLY"
    APPROVED_VERSIONS_ONLY = "APPROVED_VERSIONS_ONLY"
    DOWNLOAD_BLOCKED = "DOWNLOAD_BLOCKED"


class AssetAction(str, Enum):
    VIEW = "VIEW"
    EDIT = "EDIT"
    UPLOAD = "UPLOAD"
    DELETE = "DELETE"
    DOWNLOAD_PROXY = "DOWNLOAD_PROXY"
    DOWNLOAD_MASTER = "DOWNLOAD_MASTER"
    APPROVE = "APPROVE"
    REQUEST_REVIEW = "REQUEST_REVIEW"
    ADD_COMMENT = "ADD_COMMENT"
    ADD_ANNOTATION = "ADD_ANNOTATION"


class ProjectAction(str, Enum):
    VIEW_PROJECT = "VIEW_PROJECT"
    EDIT_PROJECT = "EDIT_PROJECT"
    DELETE_PROJECT = "DELETE_PROJECT"
    MANAGE_TEAM = "MANAGE_TEAM"
    MANAGE_BUDGET = "MANAGE_BUDGET"
    VIEW_BUDGET = "VIEW_BUDGET"
    APPROVE_BUDGET = "APPROVE_BUDGET"
    VIEW_LEGAL_PANEL = "VIEW_LEGAL_PANEL"
    MANAGE_LEGAL = "MANAGE_LEGAL"
    SHARE_EXTERNAL = "SHARE_EXTERNAL"
    CREATE_REVIEW_LINK = "CREATE_REVIEW_LINK"
    ADVANCE_PHASE = "ADVANCE_PHASE"


class ArchiveAction(str, Enum):
    VIEW_ARCHIVE_LISTING = "VIEW_ARCHIVE_LISTING"
    VIEW_ARCHIVE_ASSET = "VIEW_ARCHIVE_ASSET"
    VIEW_METADATA = "VIEW_METADATA"
    DOWNLOAD_ARCHIVE_PROXY = "DOWNLOAD_ARCHIVE_PROXY"
    DOWNLOAD_ARCHIVE_MASTER = "DOWNLOAD_ARCHIVE_MASTER"
    RESTORE_ASSET = "RESTORE_ASSET"
    REQUEST_THAW = "REQUEST_THAW"
    APPROVE_THAW = "APPROVE_THAW"
    DELETE_ARCHIVED = "DELETE_ARCHIVED"
    SEARCH_ARCHIVE = "SEARCH_ARCHIVE"
    VIEW_KNOWLEDGE_GRAPH = "VIEW_KNOWLEDGE_GRAPH"


class WorkspaceAction(str, Enum):
    MANAGE_WORKSPACE = "MANAGE_WORKSPACE"
    MANAGE_BILLING = "MANAGE_BILLING"
    MANAGE_USERS = "MANAGE_USERS"
    VIEW_AUDIT_LOGS = "VIEW_AUDIT_LOGS"
    EXPORT_AUDIT_LOGS = "EXPORT_AUDIT_LOGS"
    MANAGE_INTEGRATIONS = "MANAGE_INTEGRATIONS"
    MANAGE_SSO = "MANAGE_SSO"
    VIEW_ANALYTICS = "VIEW_ANALYTICS"


Action = Union[AssetAction, ProjectAction, ArchiveAction, WorkspaceAction]

ACTIONS_BY_RESOURCE: dict[ResourceType, type[Enum]] = {
    ResourceType.ASSET: AssetAction,
    ResourceType.PROJECT: ProjectAction,
    ResourceType.ARCHIVE: ArchiveAction,
    ResourceType.WORKSPACE: WorkspaceAction,
}
PHASE_SCOPED_RESOURCES = frozenset({ResourceType.ASSET, ResourceType.PROJECT})


class ActionClass(str, Enum):
    VIEW = "VIEW"
    EDIT = "EDIT"
    APPROVE = "APPROVE"


class MembershipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    REVOKED = "REVOKED"


class EscalationOp(str, Enum):
    SUSPEND = "SUSPEND"
    REVOKE = "REVOKE"
    REACTIVATE = "REACTIVATE"
    CHANGE_ROLE = "CHANGE_ROLE"


class ReasonCode(str, Enum):
    GRANTED = "GRANTED"
    ORG_MISMATCH = "ORG_MISMATCH"
    SUSPENDED = "SUSPENDED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"
    PHASE_NOT_ASSIGNED = "PHASE_NOT_ASSIGNED"
    ROLE_INSUFFICIENT = "ROLE_INSUFFICIENT"
    PHASE_ROLE_INSUFFICIENT = "PHASE_ROLE_INSUFFICIENT"
    ASSET_TYPE_RESTRICTED = "ASSET_TYPE_RESTRICTED"
    RANK_INSUFFICIENT = "RANK_INSUFFICIENT"


REASON_MESSAGES: dict[ReasonCode, str] = {
    ReasonCode.GRANTED: "Access granted.",
    ReasonCode.ORG_MISMATCH: "This resource belongs to a different organization or project.",
    ReasonCode.SUSPENDED: "Your project access is suspended.",
    ReasonCode.REVOKED: "Your project access has been revoked.",
    ReasonCode.EXPIRED: "Your project access has expired.",
    ReasonCode.PHASE_NOT_ASSIGNED: "You are not assigned to this production phase.",
    ReasonCode.ROLE_INSUFFICIENT: "Your role does not allow this action.",
    ReasonCode.PHASE_ROLE_INSUFFICIENT: "Your role does not allow this action in the current production phase.",
    ReasonCode.ASSET_TYPE_RESTRICTED: "Your role cannot access this type of asset.",
    ReasonCode.RANK_INSUFFICIENT: "Your role is not senior enough to change this member's access.",
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason_code: ReasonCode
    matched_rule: str | None = None
    policy_version: str | None = None
    restrictions: frozenset[Restriction] = frozenset()

    @property
    def message(self) -> str:
        return REASON_MESSAGES[self.reason_code]

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason_code": self.reason_code.value,
            "matched_rule": self.matched_rule,
            "policy_version": self.policy_version,
            "restrictions": sorted(item.value for item in self.restrictions),
        }


@dataclass(frozen=True)
class ResourceRef:
    type: ResourceType
    organization_id: str
    project_id: str | None = None
    phase: Phase | None = None
    asset_type: AssetType | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, ResourceType):
            raise InvalidResourceError(f"Resource type must be a ResourceType, got {self.type!r}.")
        if not str(self.organization_id or "").strip():
            raise InvalidResourceError("Resource organization_id is required.")
        if self.type is not ResourceType.WORKSPACE and not str(self.project_id or "").strip():
            raise InvalidResourceError(f"{self.type.value} resources require a project_id.")
        if self.phase is not None:
            if not isinstance(self.phase, Phase):
                raise InvalidResourceError(f"Resource phase must be a Phase, got {self.phase!r}.")
            if self.type not in PHASE_SCOPED_RESOURCES:
                raise InvalidResourceError(f"{self.type.value} resources are not phase-scoped.")
        if self.asset_type is not None:
            if not isinstance(self.asset_type, AssetType):
                raise InvalidResourceError(f"Asset type must be an AssetType, got {self.asset_type!r}.")
            if self.type is not ResourceType.ASSET:
                raise InvalidResourceError(f"{self.type.value} resources do not carry an asset type.")

    @property
    def is_phase_scoped(self) -> bool:
        return self.phase is not None


def parse_enum(enum_type: type[Enum], value: Any, kind: str) -> Any:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).strip().upper())
    except ValueError as exc:
        raise UnknownEnumValueError(kind, value) from exc


def parse_phase(value: Phase | str) -> Phase:
    return parse_enum(Phase, value, "phase")


def parse_status(value: MembershipStatus | str) -> MembershipStatus:
    return parse_enum(MembershipStatus, value, "membership status")


def parse_resource_type(value: ResourceType | str) -> ResourceType:
    return parse_enum(ResourceType, value, "resource type")


def parse_asset_type(value: AssetType | str) -> AssetType:
    return parse_enum(AssetType, value, "asset type")


def parse_action(resource_type: ResourceType, value: Action | str) -> Action:
    """Parse an action within the vocabulary of one resource family."""
    action_enum = ACTIONS_BY_RESOURCE[resource_type]
    if isinstance(value, Enum) and not isinstance(value, action_enum):
        raise UnknownEnumValueError(f"{resource_type.value} action", value.value)
    return parse_enum(action_enum, value, f"{resource_type.value} action")


def resource_ref(
    resource_type: ResourceType | str,
    organization_id: str,
    project_id: str | None = None,
    phase: Phase | str | None = None,
    asset_type: AssetType | str | None = None,
) -> ResourceRef:
    return ResourceRef(
        type=parse_resource_type(resource_type),
        organization_id=str(organization_id or "").strip(),
        project_id=(str(project_id).strip() if project_id is not None else None),
        phase=(parse_phase(phase) if phase is not None else None),
        asset_type=(parse_asset_type(asset_type) if asset_type is not None else None),
    )
