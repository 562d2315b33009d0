"""FastAPI integration: route guards and the JSON error envelope."""

from media_rbac.web.app import create_app
from media_rbac.web.guards import current_permission_context, get_evaluator, require_permission

__all__ = ["create_app", "current_permission_context", "get_evaluator", "require_permission"]
