"""
Logging setup for the `media_rbac` logger.

Guards and membership transitions log through `decision_log_fields`, so every
access decision carries the same keys. The JSON formatter nests those keys
under `"decision"` and always emits all of them (null when unset), which lets
log pipelines filter on `decision.reason_code` without guessing at shape.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from media_rbac.core.defaults import APP_LOGGER_NAME, DEFAULT_LOG_LEVEL
from media_rbac.core.env import (
    MRBAC_LOG_CAPTURE_ROOT,
    MRBAC_LOG_JSON,
    MRBAC_LOG_LEVEL,
    get_env,
    get_env_bool,
)
from media_rbac.core.types import Decision, ResourceRef

DECISION_LOG_FIELDS = (
    "event",
    "allowed",
    "reason_code",
    "matched_rule",
    "policy_version",
    "action",
    "resource_type",
    "project_id",
    "phase",
    "user_id",
)

_LOGGING_CONFIGURED = False
_RESERVED_LOG_RECORD_FIELDS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def decision_log_fields(
    event: str,
    decision: Decision,
    *,
    action: Any = None,
    resource: ResourceRef | None = None,
    project_id: str | None = None,
    user_id: str | None = None,
) -> dict[str, Any]:
    """Build the `extra=` mapping for a log line about one access decision."""
    return {
        "event": event,
        "allowed": decision.allowed,
        "reason_code": decision.reason_code.value,
        "matched_rule": decision.matched_rule,
        "policy_version": decision.policy_version,
        "action": getattr(action, "value", action),
        "resource_type": resource.type.value if resource is not None else None,
        "project_id": project_id if project_id is not None else (resource.project_id if resource else None),
        "phase": resource.phase.value if resource is not None and resource.phase else None,
        "user_id": user_id,
    }


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "reason_code"):
            payload["decision"] = {field: getattr(record, field, None) for field in DECISION_LOG_FIELDS}
        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_RECORD_FIELDS
            and key not in DECISION_LOG_FIELDS
            and not key.startswith("_")
        }
        if "event" in record.__dict__ and "decision" not in payload:
            extra["event"] = record.__dict__["event"]
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


class _DecisionTextFormatter(logging.Formatter):
    """Plain-text lines, suffixed with the decision's reason and policy version when present."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        reason_code = getattr(record, "reason_code", None)
        if reason_code is None:
            return line
        return f"{line} [reason_code={reason_code} policy_version={getattr(record, 'policy_version', None)}]"


def setup_app_logging(*, force: bool = False) -> None:
    global _LOGGING_CONFIGURED  # pylint: disable=global-statement
    if _LOGGING_CONFIGURED and not force:
        return

    level_name = get_env(MRBAC_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper() or DEFAULT_LOG_LEVEL
    level = getattr(logging, level_name, logging.INFO)
    use_json = get_env_bool(MRBAC_LOG_JSON, default=False)
    capture_root = get_env_bool(MRBAC_LOG_CAPTURE_ROOT, default=False)

    formatter: logging.Formatter
    if use_json:
        formatter = _JsonFormatter()
    else:
        formatter = _DecisionTextFormatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.handlers.clear()
    app_logger.addHandler(handler)
    app_logger.setLevel(level)
    app_logger.propagate = False

    if capture_root:
        root = logging.getLogger()
        root.handlers.clear()
        root.addHandler(handler)
        root.setLevel(level)

    logging.getLogger(__name__).info(
        "RBAC logging configured. level=%s json=%s capture_root=%s",
        level_name,
        str(use_json).lower(),
        str(capture_root).lower(),
    )
    _LOGGING_CONFIGURED = True
