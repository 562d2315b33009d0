"""Role-based access control for media production projects."""

from media_rbac.core.context import PermissionContext, context_from_membership, external_context, internal_context
from media_rbac.core.evaluator import PermissionEvaluator, check, check_escalation, default_evaluator
from media_rbac.core.matrices import PolicyMatrices, get_default_policy, load_policy_file, parse_policy
from media_rbac.core.roles import Role, display_name, is_external, is_internal, rank_of
from media_rbac.core.types import (
    AccessLevel,
    ActionClass,
    ArchiveAction,
    AssetAction,
    AssetType,
    Decision,
    EscalationOp,
    MembershipStatus,
    Phase,
    ProjectAction,
    ReasonCode,
    ResourceRef,
    ResourceType,
    Restriction,
    WorkspaceAction,
    resource_ref,
)

__all__ = [
    "AccessLevel",
    "ActionClass",
    "ArchiveAction",
    "AssetAction",
    "AssetType",
    "Decision",
    "EscalationOp",
    "MembershipStatus",
    "PermissionContext",
    "PermissionEvaluator",
    "Phase",
    "PolicyMatrices",
    "ProjectAction",
    "ReasonCode",
    "ResourceRef",
    "ResourceType",
    "Restriction",
    "Role",
    "WorkspaceAction",
    "check",
    "check_escalation",
    "context_from_membership",
    "default_evaluator",
    "display_name",
    "external_context",
    "get_default_policy",
    "internal_context",
    "is_external",
    "is_internal",
    "load_policy_file",
    "parse_policy",
    "rank_of",
    "resource_ref",
]
