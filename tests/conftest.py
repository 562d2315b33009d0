from __future__ import annotations

import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

APP_ROOT = Path(__file__).resolve().parents[1] / "app"
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from media_rbac.core.evaluator import PermissionEvaluator  # noqa: E402
from media_rbac.core.matrices import get_default_policy  # noqa: E402

ORG_ID = "org-1"
PROJECT_ID = "proj-1"
NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def evaluator() -> PermissionEvaluator:
    return PermissionEvaluator(get_default_policy(), clock=lambda: NOW)
