"""
Route guards.

`require_permission` returns a FastAPI dependency that evaluates the request's
permission context against the app's evaluator and raises
PermissionDeniedError on deny. Usage:

    def asset_ref(org_id: str, project_id: str, phase: Phase | None = None) -> ResourceRef:
        return ResourceRef(ResourceType.ASSET, org_id, project_id, phase)

    @router.post("/orgs/{org_id}/projects/{project_id}/assets/{asset_id}/approve")
    def approve(decision: Decision = Depends(require_permission(AssetAction.APPROVE, asset_ref))):
        ...

The host app supplies the context, either by setting
`request.state.permission_context` in its auth middleware or by overriding
the `current_permission_context` dependency.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, Request

from media_rbac.core.context import PermissionContext
from media_rbac.core.evaluator import PermissionEvaluator, default_evaluator
from media_rbac.core.errors import PermissionDeniedError
from media_rbac.core.types import Action, Decision, ResourceRef
from media_rbac.logging import decision_log_fields
from media_rbac.web.errors import ERROR_CODE_UNAUTHORIZED, ApiError

LOGGER = logging.getLogger(__name__)


def get_evaluator(request: Request) -> PermissionEvaluator:
    evaluator = getattr(request.app.state, "rbac_evaluator", None)
    if evaluator is None:
        evaluator = default_evaluator()
        request.app.state.rbac_evaluator = evaluator
    return evaluator


def current_permission_context(request: Request) -> PermissionContext:
    context = getattr(request.state, "permission_context", None)
    if not isinstance(context, PermissionContext):
        raise ApiError(
            status_code=401,
            code=ERROR_CODE_UNAUTHORIZED,
            message="No project membership is associated with this request.",
        )
    return context


def _log_decisions(request: Request) -> bool:
    config = getattr(request.app.state, "rbac_config", None)
    return bool(getattr(config, "log_decisions", False))


def require_permission(
    action: Action,
    resource: Callable[..., ResourceRef],
) -> Callable[..., Decision]:
    def _dependency(
        request: Request,
        resource_ref: ResourceRef = Depends(resource),
        context: PermissionContext = Depends(current_permission_context),
        evaluator: PermissionEvaluator = Depends(get_evaluator),
    ) -> Decision:
        decision = evaluator.check(context, action, resource_ref)
        log_fields = decision_log_fields(
            "rbac_decision", decision, action=action, resource=resource_ref, user_id=context.user_id
        )
        if not decision.allowed:
            LOGGER.info(
                "Permission denied. action=%s reason=%s path=%s",
                action.value,
                decision.reason_code.value,
                request.url.path,
                extra=log_fields,
            )
            raise PermissionDeniedError(decision)
        if _log_decisions(request):
            LOGGER.info(
                "Permission granted. action=%s rule=%s path=%s",
                action.value,
                decision.matched_rule,
                request.url.path,
                extra=log_fields,
            )
        return decision

    return _dependency
