from __future__ import annotations

# Environment and config defaults
DEFAULT_ENV_NAME = "dev"
DEFAULT_DEV_ENV_NAMES = ("dev", "development", "local", "test")
DEFAULT_POLICY_FILENAME = "default_policy.json"
SUPPORTED_POLICY_SCHEMA_VERSIONS = (2,)

# Context cache defaults (seconds / entries)
DEFAULT_CONTEXT_CACHE_TTL_SEC = 30
DEFAULT_CONTEXT_CACHE_MAX_ENTRIES = 5000
MAX_PROD_CONTEXT_CACHE_TTL_SEC = 300

# Logging defaults
DEFAULT_LOG_LEVEL = "INFO"
APP_LOGGER_NAME = "media_rbac"
