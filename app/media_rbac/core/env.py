from __future__ import annotations

import os

MRBAC_ENV = "MRBAC_ENV"
MRBAC_POLICY_PATH = "MRBAC_POLICY_PATH"
MRBAC_CONTEXT_CACHE_ENABLED = "MRBAC_CONTEXT_CACHE_ENABLED"
MRBAC_CONTEXT_CACHE_TTL_SEC = "MRBAC_CONTEXT_CACHE_TTL_SEC"
MRBAC_CONTEXT_CACHE_MAX_ENTRIES = "MRBAC_CONTEXT_CACHE_MAX_ENTRIES"
MRBAC_LOG_DECISIONS = "MRBAC_LOG_DECISIONS"
MRBAC_LOG_LEVEL = "MRBAC_LOG_LEVEL"
MRBAC_LOG_JSON = "MRBAC_LOG_JSON"
MRBAC_LOG_CAPTURE_ROOT = "MRBAC_LOG_CAPTURE_ROOT"
MRBAC_ERROR_INCLUDE_DETAILS = "MRBAC_ERROR_INCLUDE_DETAILS"

TRUE_VALUES = {"1", "true", "yes", "y", "on"}
FALSE_VALUES = {"0", "false", "no", "n", "off", ""}


def get_env(name: str, default: str = "") -> str:
    return str(os.getenv(name, default)).strip()


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in TRUE_VALUES


def get_env_int(name: str, default: int) -> int:
    raw = get_env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got '{raw}'.") from exc
