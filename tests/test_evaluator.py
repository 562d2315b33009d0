from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

APP_ROOT = Path(__file__).resolve().parents[1] / "app"
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from media_rbac.core.context import external_context, internal_context
from media_rbac.core.errors import RbacConfigurationError, UnknownEnumValueError
from media_rbac.core.evaluator import PermissionEvaluator, check
from media_rbac.core.matrices import get_default_policy
from media_rbac.core.roles import EXTERNAL_ROLES, INTERNAL_ROLES, Role
from media_rbac.core.types import (
    ArchiveAction,
    AssetAction,
    AssetType,
    MembershipStatus,
    Phase,
    ProjectAction,
    ReasonCode,
    ResourceRef,
    ResourceType,
    Restriction,
    WorkspaceAction,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)
ORG = "org-1"
PROJECT = "proj-1"


def _asset(
    phase: Phase | None = None,
    *,
    org: str = ORG,
    project: str = PROJECT,
    asset_type: AssetType | None = None,
) -> ResourceRef:
    return ResourceRef(ResourceType.ASSET, org, project, phase, asset_type)


def _internal(role: Role, **kwargs):
    return internal_context(role, organization_id=ORG, project_id=PROJECT, **kwargs)


def _external(role: Role, phases, **kwargs):
    return external_context(role, organization_id=ORG, project_id=PROJECT, assigned_phases=phases, **kwargs)


def test_owner_can_approve_production_asset(evaluator: PermissionEvaluator) -> None:
    decision = evaluator.check(_internal(Role.PROJECT_OWNER), AssetAction.APPROVE, _asset(Phase.PRODUCTION))

    assert decision.allowed is True
    assert decision.reason_code is ReasonCode.GRANTED
    assert decision.matched_rule == (
        "resource:ASSET.APPROVE[PROJECT_OWNER];phase:PRODUCTION.approvers[APPROVE]"
    )
    assert decision.policy_version == get_default_policy().version


def test_external_reviewer_outside_assigned_phase(evaluator: PermissionEvaluator) -> None:
    reviewer = _external(Role.EXTERNAL_REVIEWER, [Phase.POST_PRODUCTION])

    decision = evaluator.check(reviewer, AssetAction.VIEW, _asset(Phase.PRE_PRODUCTION))

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.PHASE_NOT_ASSIGNED
    assert decision.matched_rule is None


def test_external_reviewer_inside_assigned_phase(evaluator: PermissionEvaluator) -> None:
    reviewer = _external(Role.EXTERNAL_REVIEWER, [Phase.POST_PRODUCTION])

    assert evaluator.check(reviewer, AssetAction.VIEW, _asset(Phase.POST_PRODUCTION)).allowed is True
    assert evaluator.check(reviewer, AssetAction.EDIT, _asset(Phase.POST_PRODUCTION)).reason_code is (
        ReasonCode.ROLE_INSUFFICIENT
    )


def test_suspended_editor_is_denied(evaluator: PermissionEvaluator) -> None:
    editor = _internal(Role.PROJECT_EDITOR, status=MembershipStatus.SUSPENDED)

    decision = evaluator.check(editor, AssetAction.EDIT, _asset(Phase.POST_PRODUCTION))

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.SUSPENDED


def test_expired_guest_is_denied(evaluator: PermissionEvaluator) -> None:
    guest = _external(Role.GUEST_VIEWER, [Phase.DISTRIBUTION], access_expires_at=NOW - timedelta(days=1))

    decision = evaluator.check(guest, AssetAction.VIEW, _asset(Phase.DISTRIBUTION))

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.EXPIRED


def test_expired_owner_is_denied_an_otherwise_allowed_action(evaluator: PermissionEvaluator) -> None:
    owner = _internal(Role.PROJECT_OWNER)
    expired_owner = _internal(Role.PROJECT_OWNER, access_expires_at=NOW - timedelta(minutes=5))

    assert evaluator.check(owner, AssetAction.APPROVE, _asset(Phase.PRODUCTION), at=NOW).allowed is True
    decision = evaluator.check(expired_owner, AssetAction.APPROVE, _asset(Phase.PRODUCTION), at=NOW)

    assert decision.allowed is False
    assert decision.reason_code is ReasonCode.EXPIRED


@pytest.mark.parametrize("role", EXTERNAL_ROLES)
def test_unassigned_phase_is_denied_for_every_external_role(evaluator: PermissionEvaluator, role: Role) -> None:
    external = _external(role, [Phase.POST_PRODUCTION])

    for action in (AssetAction.VIEW, AssetAction.EDIT, AssetAction.APPROVE):
        decision = evaluator.check(external, action, _asset(Phase.PRODUCTION))
        assert decision.reason_code is ReasonCode.PHASE_NOT_ASSIGNED, (role, action)


def test_access_expiring_exactly_now_is_expired(evaluator: PermissionEvaluator) -> None:
    guest = _external(Role.GUEST_VIEWER, [Phase.DISTRIBUTION], access_expires_at=NOW)

    assert evaluator.check(guest, AssetAction.VIEW, _asset(Phase.DISTRIBUTION), at=NOW).reason_code is (
        ReasonCode.EXPIRED
    )
    assert evaluator.check(
        guest, AssetAction.VIEW, _asset(Phase.DISTRIBUTION), at=NOW - timedelta(seconds=1)
    ).allowed is True


def test_legal_can_approve_in_legal_approval(evaluator: PermissionEvaluator) -> None:
    decision = evaluator.check(_internal(Role.PROJECT_LEGAL), AssetAction.APPROVE, _asset(Phase.LEGAL_APPROVAL))

    assert decision.allowed is True
    assert decision.matched_rule.endswith("phase:LEGAL_APPROVAL.owner[APPROVE]")


def test_viewer_cannot_view_legal_approval_phase(evaluator: PermissionEvaluator) -> None:
    decision = evaluator.check(_internal(Role.PROJECT_VIEWER), AssetAction.VIEW, _asset(Phase.LEGAL_APPROVAL))

    assert decision.reason_code is ReasonCode.PHASE_ROLE_INSUFFICIENT


def test_role_without_resource_grant_is_denied(evaluator: PermissionEvaluator) -> None:
    decision = evaluator.check(_internal(Role.PROJECT_VIEWER), AssetAction.DELETE, _asset(Phase.PRODUCTION))

    assert decision.reason_code is ReasonCode.ROLE_INSUFFICIENT


def test_revoked_and_suspended_deny_every_action(evaluator: PermissionEvaluator) -> None:
    for status, reason in (
        (MembershipStatus.REVOKED, ReasonCode.REVOKED),
        (MembershipStatus.SUSPENDED, ReasonCode.SUSPENDED),
    ):
        owner = _internal(Role.PROJECT_OWNER, status=status)
        for phase in Phase:
            for action in AssetAction:
                decision = evaluator.check(owner, action, _asset(phase))
                assert decision.allowed is False
                assert decision.reason_code is reason


def test_cross_tenant_resources_are_denied(evaluator: PermissionEvaluator) -> None:
    owner = _internal(Role.PROJECT_OWNER)

    other_org = evaluator.check(owner, AssetAction.VIEW, _asset(Phase.PRODUCTION, org="org-2"))
    other_project = evaluator.check(owner, AssetAction.VIEW, _asset(Phase.PRODUCTION, project="proj-2"))

    assert other_org.reason_code is ReasonCode.ORG_MISMATCH
    assert other_project.reason_code is ReasonCode.ORG_MISMATCH


def test_tenant_check_precedes_status_check(evaluator: PermissionEvaluator) -> None:
    revoked = _internal(Role.PROJECT_OWNER, status=MembershipStatus.REVOKED)

    decision = evaluator.check(revoked, AssetAction.VIEW, _asset(Phase.PRODUCTION, org="org-2"))

    assert decision.reason_code is ReasonCode.ORG_MISMATCH


def test_workspace_actions_compare_only_organization(evaluator: PermissionEvaluator) -> None:
    finance = _internal(Role.PROJECT_FINANCE)
    workspace = ResourceRef(ResourceType.WORKSPACE, ORG)

    assert evaluator.check(finance, WorkspaceAction.MANAGE_BILLING, workspace).allowed is True
    assert evaluator.check(finance, WorkspaceAction.MANAGE_SSO, workspace).reason_code is (
        ReasonCode.ROLE_INSUFFICIENT
    )
    assert evaluator.check(
        finance, WorkspaceAction.MANAGE_BILLING, ResourceRef(ResourceType.WORKSPACE, "org-2")
    ).reason_code is ReasonCode.ORG_MISMATCH


def test_external_roles_never_reach_archive(evaluator: PermissionEvaluator) -> None:
    archive = ResourceRef(ResourceType.ARCHIVE, ORG, PROJECT)
    vendor = _external(Role.EXTERNAL_VENDOR, list(Phase))

    for action in ArchiveAction:
        assert evaluator.check(vendor, action, archive).allowed is False


def test_external_roles_denied_in_internal_only_phases(evaluator: PermissionEvaluator) -> None:
    editor = _external(Role.EXTERNAL_EDITOR, list(Phase))

    for phase in (Phase.BRIEF, Phase.INTERNAL_REVIEW, Phase.LEGAL_APPROVAL):
        decision = evaluator.check(editor, AssetAction.VIEW, _asset(phase))
        assert decision.reason_code is ReasonCode.PHASE_ROLE_INSUFFICIENT


def test_phase_owner_holds_every_capability_in_owned_phase(evaluator: PermissionEvaluator) -> None:
    policy = evaluator.policy
    for phase in Phase:
        owner = policy.capabilities_for(phase).owner
        context = _internal(owner)
        for action in (AssetAction.VIEW, AssetAction.EDIT, AssetAction.APPROVE):
            decision = evaluator.check(context, action, _asset(phase))
            assert decision.allowed is True, (phase, owner, action)
            assert f"phase:{phase.value}.owner" in decision.matched_rule


def test_project_actions_respect_phase(evaluator: PermissionEvaluator) -> None:
    project = ResourceRef(ResourceType.PROJECT, ORG, PROJECT, Phase.DISTRIBUTION)
    manager = _internal(Role.PROJECT_MANAGER)

    assert evaluator.check(manager, ProjectAction.ADVANCE_PHASE, project).allowed is True
    assert evaluator.check(manager, ProjectAction.ADVANCE_PHASE, ResourceRef(
        ResourceType.PROJECT, ORG, PROJECT, Phase.LEGAL_APPROVAL
    )).reason_code is ReasonCode.PHASE_ROLE_INSUFFICIENT


def test_resources_without_phase_use_resource_grant_only(evaluator: PermissionEvaluator) -> None:
    project = ResourceRef(ResourceType.PROJECT, ORG, PROJECT)

    decision = evaluator.check(_internal(Role.PROJECT_FINANCE), ProjectAction.APPROVE_BUDGET, project)

    assert decision.allowed is True
    assert decision.matched_rule == "resource:PROJECT.APPROVE_BUDGET[PROJECT_FINANCE]"


def test_check_is_deterministic(evaluator: PermissionEvaluator) -> None:
    context = _external(Role.EXTERNAL_EDITOR, [Phase.PRODUCTION])
    ref = _asset(Phase.PRODUCTION)

    decisions = {evaluator.check(context, AssetAction.UPLOAD, ref, at=NOW) for _ in range(5)}

    assert len(decisions) == 1


def test_unknown_action_raises_configuration_error(evaluator: PermissionEvaluator) -> None:
    with pytest.raises(UnknownEnumValueError):
        evaluator.check(_internal(Role.PROJECT_OWNER), "PUBLISH", _asset(Phase.PRODUCTION))
    with pytest.raises(UnknownEnumValueError):
        evaluator.check(_internal(Role.PROJECT_OWNER), WorkspaceAction.MANAGE_SSO, _asset(Phase.PRODUCTION))


def test_naive_evaluation_time_is_rejected(evaluator: PermissionEvaluator) -> None:
    with pytest.raises(RbacConfigurationError):
        evaluator.check(
            _internal(Role.PROJECT_OWNER), AssetAction.VIEW, _asset(Phase.PRODUCTION), at=datetime(2026, 1, 1)
        )


def test_available_and_restricted_actions_partition_vocabulary(evaluator: PermissionEvaluator) -> None:
    vendor = _external(Role.EXTERNAL_VENDOR, [Phase.PRODUCTION])
    ref = _asset(Phase.PRODUCTION)

    available = evaluator.available_actions(vendor, ref)
    restricted = evaluator.restricted_actions(vendor, ref)

    assert AssetAction.UPLOAD in available
    assert AssetAction.VIEW in available
    assert {action for action, _ in restricted} == set(AssetAction) - set(available)
    assert all(not decision.allowed for _, decision in restricted)


def test_every_internal_role_can_view_project(evaluator: PermissionEvaluator) -> None:
    project = ResourceRef(ResourceType.PROJECT, ORG, PROJECT)
    for role in INTERNAL_ROLES:
        assert evaluator.check(_internal(role), ProjectAction.VIEW_PROJECT, project).allowed is True


def test_module_level_check_uses_default_policy() -> None:
    decision = check(_internal(Role.PROJECT_OWNER), AssetAction.VIEW, _asset(Phase.BRIEF), at=NOW)

    assert decision.allowed is True


def test_asset_type_none_level_denies_after_role_and_phase_pass(evaluator: PermissionEvaluator) -> None:
    viewer = _internal(Role.PROJECT_VIEWER)

    untyped = evaluator.check(viewer, AssetAction.VIEW, _asset(Phase.PRODUCTION))
    legal_doc = evaluator.check(viewer, AssetAction.VIEW, _asset(Phase.PRODUCTION, asset_type=AssetType.LEGAL_DOCUMENT))

    assert untyped.allowed is True
    assert legal_doc.allowed is False
    assert legal_doc.reason_code is ReasonCode.ASSET_TYPE_RESTRICTED


def test_view_only_asset_type_blocks_download_and_reports_restrictions(evaluator: PermissionEvaluator) -> None:
    reviewer = _internal(Role.PROJECT_REVIEWER)
    rough_cut = _asset(Phase.POST_PRODUCTION, asset_type=AssetType.ROUGH_CUT)

    view = evaluator.check(reviewer, AssetAction.VIEW, rough_cut)
    download = evaluator.check(reviewer, AssetAction.DOWNLOAD_PROXY, rough_cut)

    assert view.allowed is True
    assert view.restrictions == frozenset({Restriction.VIEW_ONLY, Restriction.DOWNLOAD_BLOCKED})
    assert view.matched_rule.endswith("asset_type:ROUGH_CUT[PROJECT_REVIEWER=VIEW_ONLY]")
    assert download.reason_code is ReasonCode.ASSET_TYPE_RESTRICTED


def test_approved_only_asset_type_allows_viewing_approved_versions(evaluator: PermissionEvaluator) -> None:
    guest = _external(Role.GUEST_VIEWER, [Phase.DISTRIBUTION])

    decision = evaluator.check(guest, AssetAction.VIEW, _asset(Phase.DISTRIBUTION, asset_type=AssetType.MASTER))

    assert decision.allowed is True
    assert decision.restrictions == frozenset({Restriction.APPROVED_VERSIONS_ONLY, Restriction.DOWNLOAD_BLOCKED})
    assert decision.as_dict()["restrictions"] == ["APPROVED_VERSIONS_ONLY", "DOWNLOAD_BLOCKED"]


def test_full_asset_type_access_has_no_restrictions(evaluator: PermissionEvaluator) -> None:
    owner = _internal(Role.PROJECT_OWNER)

    decision = evaluator.check(owner, AssetAction.DOWNLOAD_MASTER, _asset(Phase.PRODUCTION, asset_type=AssetType.MASTER))

    assert decision.allowed is True
    assert decision.restrictions == frozenset()


def test_asset_type_edit_needs_scoped_access(evaluator: PermissionEvaluator) -> None:
    external_editor = _external(Role.EXTERNAL_EDITOR, [Phase.PRODUCTION])

    raw = evaluator.check(external_editor, AssetAction.EDIT, _asset(Phase.PRODUCTION, asset_type=AssetType.RAW_FOOTAGE))
    master = evaluator.check(external_editor, AssetAction.EDIT, _asset(Phase.PRODUCTION, asset_type=AssetType.MASTER))

    assert raw.allowed is True
    assert master.reason_code is ReasonCode.ASSET_TYPE_RESTRICTED


def test_phase_owner_law_holds_for_typed_assets(evaluator: PermissionEvaluator) -> None:
    for phase in Phase:
        owner = evaluator.policy.capabilities_for(phase).owner
        for asset_type in AssetType:
            for action in (AssetAction.VIEW, AssetAction.EDIT, AssetAction.APPROVE):
                decision = evaluator.check(_internal(owner), action, _asset(phase, asset_type=asset_type))
                assert decision.allowed is True, (phase, owner, asset_type, action)
