from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from media_rbac.core.defaults import (
    DEFAULT_CONTEXT_CACHE_MAX_ENTRIES,
    DEFAULT_CONTEXT_CACHE_TTL_SEC,
    DEFAULT_DEV_ENV_NAMES,
    DEFAULT_ENV_NAME,
    MAX_PROD_CONTEXT_CACHE_TTL_SEC,
)
from media_rbac.core.env import (
    MRBAC_CONTEXT_CACHE_ENABLED,
    MRBAC_CONTEXT_CACHE_MAX_ENTRIES,
    MRBAC_CONTEXT_CACHE_TTL_SEC,
    MRBAC_ENV,
    MRBAC_LOG_DECISIONS,
    MRBAC_POLICY_PATH,
    get_env,
    get_env_bool,
    get_env_int,
)
from media_rbac.core.matrices import default_policy_path

DEV_ENV_NAMES = set(DEFAULT_DEV_ENV_NAMES)


def _repo_root() -> Path:
    # app/media_rbac/core/config.py -> repo root
    # parents[0]=core, [1]=media_rbac, [2]=app, [3]=repo root
    return Path(__file__).resolve().parents[3]


def _resolve_repo_relative_path(raw_path: str) -> str:
    value = str(raw_path or "").strip()
    if not value:
        return value
    path = Path(value)
    if path.is_absolute():
        return str(path)
    return str((_repo_root() / path).resolve())


@dataclass(frozen=True)
class RbacConfig:
    env: str = DEFAULT_ENV_NAME
    policy_path: str = ""
    context_cache_enabled: bool = True
    context_cache_ttl_seconds: int = DEFAULT_CONTEXT_CACHE_TTL_SEC
    context_cache_max_entries: int = DEFAULT_CONTEXT_CACHE_MAX_ENTRIES
    log_decisions: bool = False

    @property
    def is_dev_env(self) -> bool:
        return self.env in DEV_ENV_NAMES

    @property
    def resolved_policy_path(self) -> Path:
        return Path(self.policy_path) if self.policy_path else default_policy_path()

    @staticmethod
    def from_env() -> "RbacConfig":
        env_name = get_env(MRBAC_ENV, DEFAULT_ENV_NAME).lower() or DEFAULT_ENV_NAME
        ttl_seconds = get_env_int(MRBAC_CONTEXT_CACHE_TTL_SEC, DEFAULT_CONTEXT_CACHE_TTL_SEC)
        max_entries = get_env_int(MRBAC_CONTEXT_CACHE_MAX_ENTRIES, DEFAULT_CONTEXT_CACHE_MAX_ENTRIES)
        if ttl_seconds < 0:
            raise RuntimeError(f"{MRBAC_CONTEXT_CACHE_TTL_SEC} must not be negative.")
        if max_entries < 1:
            raise RuntimeError(f"{MRBAC_CONTEXT_CACHE_MAX_ENTRIES} must be at least 1.")
        if env_name not in DEV_ENV_NAMES and ttl_seconds > MAX_PROD_CONTEXT_CACHE_TTL_SEC:
            raise RuntimeError(
                f"{MRBAC_CONTEXT_CACHE_TTL_SEC}={ttl_seconds} exceeds the {MAX_PROD_CONTEXT_CACHE_TTL_SEC}s "
                "staleness window allowed outside dev/local environments."
            )
        return RbacConfig(
            env=env_name,
            policy_path=_resolve_repo_relative_path(get_env(MRBAC_POLICY_PATH)),
            context_cache_enabled=get_env_bool(MRBAC_CONTEXT_CACHE_ENABLED, default=True),
            context_cache_ttl_seconds=ttl_seconds,
            context_cache_max_entries=max_entries,
            log_decisions=get_env_bool(MRBAC_LOG_DECISIONS, default=False),
        )
