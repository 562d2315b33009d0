from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest
from fastapi import Depends, Request
from fastapi.testclient import TestClient

APP_ROOT = Path(__file__).resolve().parents[1] / "app"
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from media_rbac.core.config import RbacConfig
from media_rbac.core.context import PermissionContext, external_context, internal_context
from media_rbac.core.roles import Role
from media_rbac.core.types import AssetAction, Decision, Phase, ResourceRef, ResourceType
from media_rbac.membership import InMemoryMembershipDirectory
from media_rbac.web.app import create_app
from media_rbac.web.guards import current_permission_context, require_permission


def asset_ref(org_id: str, project_id: str, phase: Phase | None = None) -> ResourceRef:
    return ResourceRef(ResourceType.ASSET, org_id, project_id, phase)


def broken_ref(org_id: str, project_id: str) -> ResourceRef:
    return ResourceRef(ResourceType.ARCHIVE, org_id, project_id, Phase.BRIEF)


def _build_app(context: PermissionContext | None = None):
    directory = InMemoryMembershipDirectory(
        [
            {"organizationId": "org-1", "projectId": "proj-1", "userId": "owner", "role": "PROJECT_OWNER"},
            {"organizationId": "org-1", "projectId": "proj-1", "userId": "viewer", "role": "PROJECT_VIEWER"},
        ]
    )
    app = create_app(config=RbacConfig(env="test"), directory=directory)

    @app.post("/orgs/{org_id}/projects/{project_id}/assets/approve")
    def _approve(decision: Decision = Depends(require_permission(AssetAction.APPROVE, asset_ref))) -> dict:
        return decision.as_dict()

    @app.get("/orgs/{org_id}/projects/{project_id}/archive")
    def _archive(decision: Decision = Depends(require_permission(AssetAction.VIEW, broken_ref))) -> dict:
        return decision.as_dict()

    @app.post("/projects/{project_id}/members/{user_id}/revoke")
    def _revoke(project_id: str, user_id: str, request: Request) -> dict:
        service = request.app.state.membership_service
        actor = service.context_for(project_id, "owner")
        updated = service.revoke(actor, user_id)
        return {"status": updated.status.value}

    if context is not None:
        app.dependency_overrides[current_permission_context] = lambda: context
    return app


def test_allowed_request_returns_decision() -> None:
    owner = internal_context(Role.PROJECT_OWNER, organization_id="org-1", project_id="proj-1", user_id="owner")
    client = TestClient(_build_app(owner))

    response = client.post("/orgs/org-1/projects/proj-1/assets/approve", params={"phase": "PRODUCTION"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["allowed"] is True
    assert payload["reason_code"] == "GRANTED"
    assert payload["policy_version"] == "2026.10-2"


def test_denied_request_returns_forbidden_envelope_with_reason_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MRBAC_ERROR_INCLUDE_DETAILS", raising=False)
    reviewer = external_context(
        Role.EXTERNAL_REVIEWER,
        organization_id="org-1",
        project_id="proj-1",
        assigned_phases=[Phase.POST_PRODUCTION],
    )
    client = TestClient(_build_app(reviewer))

    response = client.post("/orgs/org-1/projects/proj-1/assets/approve", params={"phase": "PRE_PRODUCTION"})

    assert response.status_code == 403
    payload = response.json()
    assert payload["ok"] is False
    assert payload["error"]["code"] == "FORBIDDEN"
    assert payload["error"]["reason_code"] == "PHASE_NOT_ASSIGNED"
    assert payload["error"]["message"] == "You are not assigned to this production phase."
    assert "details" not in payload["error"]
    assert response.headers.get("X-Request-ID") == payload["request_id"]


def test_denied_request_logs_decision_fields(caplog: pytest.LogCaptureFixture, monkeypatch: pytest.MonkeyPatch) -> None:
    viewer = internal_context(Role.PROJECT_VIEWER, organization_id="org-1", project_id="proj-1", user_id="viewer")
    client = TestClient(_build_app(viewer))
    monkeypatch.setattr(logging.getLogger("media_rbac"), "propagate", True)

    with caplog.at_level(logging.INFO, logger="media_rbac.web.guards"):
        response = client.post("/orgs/org-1/projects/proj-1/assets/approve", params={"phase": "PRODUCTION"})

    assert response.status_code == 403
    decisions = [record for record in caplog.records if getattr(record, "event", None) == "rbac_decision"]
    assert len(decisions) == 1
    record = decisions[0]
    assert record.allowed is False
    assert record.reason_code == "ROLE_INSUFFICIENT"
    assert record.policy_version == "2026.10-2"
    assert record.matched_rule is None
    assert (record.action, record.resource_type, record.phase, record.user_id) == ("APPROVE", "ASSET", "PRODUCTION", "viewer")


def test_denied_details_are_opt_in(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MRBAC_ERROR_INCLUDE_DETAILS", "true")
    viewer = internal_context(Role.PROJECT_VIEWER, organization_id="org-1", project_id="proj-1")
    client = TestClient(_build_app(viewer))

    response = client.post(
        "/orgs/org-1/projects/proj-1/assets/approve",
        params={"phase": "PRODUCTION"},
        headers={"X-Request-ID": "req-42"},
    )

    assert response.status_code == 403
    payload = response.json()
    assert payload["request_id"] == "req-42"
    assert payload["error"]["reason_code"] == "ROLE_INSUFFICIENT"
    assert payload["error"]["details"]["decision"]["allowed"] is False


def test_cross_tenant_request_is_forbidden() -> None:
    owner = internal_context(Role.PROJECT_OWNER, organization_id="org-1", project_id="proj-1")
    client = TestClient(_build_app(owner))

    response = client.post("/orgs/org-2/projects/proj-1/assets/approve")

    assert response.status_code == 403
    assert response.json()["error"]["reason_code"] == "ORG_MISMATCH"


def test_missing_context_is_unauthorized() -> None:
    client = TestClient(_build_app())

    response = client.post("/orgs/org-1/projects/proj-1/assets/approve")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_context_from_request_state_is_used() -> None:
    app = _build_app()

    @app.middleware("http")
    async def _attach_context(request: Request, call_next):
        request.state.permission_context = internal_context(
            Role.PROJECT_LEGAL, organization_id="org-1", project_id="proj-1"
        )
        return await call_next(request)

    client = TestClient(app)
    response = client.post("/orgs/org-1/projects/proj-1/assets/approve", params={"phase": "LEGAL_APPROVAL"})

    assert response.status_code == 200
    assert response.json()["matched_rule"].endswith("phase:LEGAL_APPROVAL.owner[APPROVE]")


def test_malformed_resource_is_server_error() -> None:
    owner = internal_context(Role.PROJECT_OWNER, organization_id="org-1", project_id="proj-1")
    client = TestClient(_build_app(owner))

    response = client.get("/orgs/org-1/projects/proj-1/archive")

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "RBAC_CONFIGURATION_ERROR"


def test_membership_errors_map_to_404_and_409() -> None:
    client = TestClient(_build_app())

    missing = client.post("/projects/proj-1/members/nobody/revoke")
    revoked = client.post("/projects/proj-1/members/viewer/revoke")
    again = client.post("/projects/proj-1/members/viewer/revoke")

    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "MEMBERSHIP_NOT_FOUND"
    assert revoked.status_code == 200
    assert revoked.json() == {"status": "REVOKED"}
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "INVALID_MEMBERSHIP_TRANSITION"


def test_prod_app_requires_membership_directory() -> None:
    with pytest.raises(RuntimeError):
        create_app(config=RbacConfig(env="prod"))
