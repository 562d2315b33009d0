from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from media_rbac.core.errors import (
    MembershipNotFoundError,
    MembershipTransitionError,
    PermissionDeniedError,
    RbacConfigurationError,
)
from media_rbac.web.errors import ApiError, api_error_response, normalize_exception

LOGGER = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PermissionDeniedError)
    async def _permission_denied_handler(request: Request, exc: PermissionDeniedError):
        return api_error_response(request, normalize_exception(exc))

    @app.exception_handler(MembershipNotFoundError)
    async def _membership_not_found_handler(request: Request, exc: MembershipNotFoundError):
        return api_error_response(request, normalize_exception(exc))

    @app.exception_handler(MembershipTransitionError)
    async def _membership_transition_handler(request: Request, exc: MembershipTransitionError):
        return api_error_response(request, normalize_exception(exc))

    @app.exception_handler(RbacConfigurationError)
    async def _rbac_configuration_handler(request: Request, exc: RbacConfigurationError):
        LOGGER.error(
            "RBAC configuration error on %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
            extra={"event": "rbac_configuration_error"},
        )
        return api_error_response(request, normalize_exception(exc))

    @app.exception_handler(ApiError)
    async def _api_error_handler(request: Request, exc: ApiError):
        return api_error_response(request, normalize_exception(exc))

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(request: Request, exc: RequestValidationError):
        return api_error_response(request, normalize_exception(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_error_response(request, normalize_exception(exc))
