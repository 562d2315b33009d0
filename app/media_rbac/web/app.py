from __future__ import annotations

import logging

from fastapi import FastAPI

from media_rbac.cache import ContextCache
from media_rbac.core.config import RbacConfig
from media_rbac.core.evaluator import PermissionEvaluator
from media_rbac.core.matrices import load_policy_file
from media_rbac.logging import setup_app_logging
from media_rbac.membership import InMemoryMembershipDirectory, MembershipDirectory, MembershipService
from media_rbac.web.exception_handlers import register_exception_handlers

LOGGER = logging.getLogger(__name__)


def build_membership_service(
    config: RbacConfig,
    evaluator: PermissionEvaluator,
    directory: MembershipDirectory,
) -> MembershipService:
    cache = ContextCache(
        enabled=config.context_cache_enabled,
        ttl_seconds=config.context_cache_ttl_seconds,
        max_entries=config.context_cache_max_entries,
    )
    return MembershipService(directory, evaluator, cache=cache)


def create_app(
    *,
    config: RbacConfig | None = None,
    evaluator: PermissionEvaluator | None = None,
    directory: MembershipDirectory | None = None,
) -> FastAPI:
    """Build a FastAPI app with the RBAC evaluator, membership service and error envelope installed."""
    setup_app_logging()
    resolved_config = config or RbacConfig.from_env()
    # Load (and validate) the policy before serving anything.
    resolved_evaluator = evaluator or PermissionEvaluator(load_policy_file(resolved_config.resolved_policy_path))
    if directory is None:
        if not resolved_config.is_dev_env:
            raise RuntimeError("A membership directory is required outside dev/local environments.")
        directory = InMemoryMembershipDirectory()

    app = FastAPI(title="media-rbac")
    app.state.rbac_config = resolved_config
    app.state.rbac_evaluator = resolved_evaluator
    app.state.membership_service = build_membership_service(resolved_config, resolved_evaluator, directory)
    register_exception_handlers(app)

    LOGGER.info(
        "RBAC app created. env=%s policy_version=%s cache_ttl=%s",
        resolved_config.env,
        resolved_evaluator.policy.version,
        resolved_config.context_cache_ttl_seconds,
    )
    return app
