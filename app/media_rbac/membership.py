"""
Membership lookup and lifecycle operations.

The evaluator never talks to storage. Hosts inject a `MembershipDirectory`
(the store that owns membership records) and this module builds permission
contexts from it, caches them for a bounded staleness window, and applies
suspend / revoke / reactivate / role-change transitions behind an escalation
check. Transitions save with a compare-and-set against the record they read,
so a concurrent change (a revoke landing mid-reactivate) fails the slower
writer instead of being overwritten. Every transition invalidates the cached
context before returning.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Mapping, Protocol

from media_rbac.cache import ContextCache, context_key
from media_rbac.core.context import PermissionContext, context_from_membership
from media_rbac.core.errors import (
    MembershipNotFoundError,
    MembershipTransitionError,
    PermissionDeniedError,
)
from media_rbac.core.evaluator import PermissionEvaluator, utc_now
from media_rbac.core.roles import Role, is_external, parse_role
from media_rbac.core.types import (
    Action,
    Decision,
    EscalationOp,
    MembershipStatus,
    ResourceRef,
)
from media_rbac.logging import decision_log_fields

LOGGER = logging.getLogger(__name__)

_TARGET_STATUS = {
    EscalationOp.SUSPEND: MembershipStatus.SUSPENDED,
    EscalationOp.REVOKE: MembershipStatus.REVOKED,
    EscalationOp.REACTIVATE: MembershipStatus.ACTIVE,
}
_ALLOWED_FROM = {
    EscalationOp.SUSPEND: {MembershipStatus.ACTIVE},
    EscalationOp.REVOKE: {MembershipStatus.ACTIVE, MembershipStatus.SUSPENDED},
    EscalationOp.REACTIVATE: {MembershipStatus.SUSPENDED},
    EscalationOp.CHANGE_ROLE: {MembershipStatus.ACTIVE, MembershipStatus.SUSPENDED},
}


class MembershipDirectory(Protocol):
    def get_membership(self, project_id: str, user_id: str) -> Mapping[str, Any] | None:
        ...

    def save_membership(
        self,
        project_id: str,
        user_id: str,
        record: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        """Store `record`. When `expected` is given, store only if the current record still equals it."""
        ...


class InMemoryMembershipDirectory:
    """Thread-safe dict-backed directory for local development and tests."""

    def __init__(self, records: list[Mapping[str, Any]] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[tuple[str, str], dict[str, Any]] = {}
        self.save_count = 0
        for record in records or []:
            self.add(record)

    def add(self, record: Mapping[str, Any]) -> None:
        project_id = str(record.get("projectId") or "").strip()
        user_id = str(record.get("userId") or "").strip()
        if not project_id or not user_id:
            raise ValueError("Membership records require projectId and userId.")
        with self._lock:
            self._records[context_key(project_id, user_id)] = copy.deepcopy(dict(record))

    def get_membership(self, project_id: str, user_id: str) -> Mapping[str, Any] | None:
        with self._lock:
            record = self._records.get(context_key(project_id, user_id))
            return copy.deepcopy(record) if record is not None else None

    def save_membership(
        self,
        project_id: str,
        user_id: str,
        record: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        key = context_key(project_id, user_id)
        with self._lock:
            if expected is not None and self._records.get(key) != dict(expected):
                return False
            self._records[key] = copy.deepcopy(dict(record))
            self.save_count += 1
            return True


class MembershipService:
    def __init__(
        self,
        directory: MembershipDirectory,
        evaluator: PermissionEvaluator,
        *,
        cache: ContextCache | None = None,
    ) -> None:
        self._directory = directory
        self._evaluator = evaluator
        self._cache = cache

    @property
    def evaluator(self) -> PermissionEvaluator:
        return self._evaluator

    def _load_record(self, project_id: str, user_id: str) -> dict[str, Any]:
        record = self._directory.get_membership(project_id, user_id)
        if record is None:
            raise MembershipNotFoundError(project_id, user_id)
        return dict(record)

    def _load_context(self, project_id: str, user_id: str) -> PermissionContext:
        return context_from_membership(self._load_record(project_id, user_id))

    def context_for(self, project_id: str, user_id: str) -> PermissionContext:
        if self._cache is None:
            return self._load_context(project_id, user_id)
        return self._cache.get_or_load(
            context_key(project_id, user_id),
            lambda: self._load_context(project_id, user_id),
        )

    def check(
        self,
        project_id: str,
        user_id: str,
        action: Action | str,
        resource: ResourceRef,
        *,
        at: datetime | None = None,
    ) -> Decision:
        return self._evaluator.check(self.context_for(project_id, user_id), action, resource, at=at)

    def suspend(self, actor: PermissionContext, target_user_id: str, *, at: datetime | None = None) -> PermissionContext:
        return self._transition(actor, target_user_id, EscalationOp.SUSPEND, at=at)

    def revoke(self, actor: PermissionContext, target_user_id: str, *, at: datetime | None = None) -> PermissionContext:
        return self._transition(actor, target_user_id, EscalationOp.REVOKE, at=at)

    def reactivate(self, actor: PermissionContext, target_user_id: str, *, at: datetime | None = None) -> PermissionContext:
        return self._transition(actor, target_user_id, EscalationOp.REACTIVATE, at=at)

    def change_role(
        self,
        actor: PermissionContext,
        target_user_id: str,
        new_role: Role | str,
        *,
        at: datetime | None = None,
    ) -> PermissionContext:
        return self._transition(actor, target_user_id, EscalationOp.CHANGE_ROLE, new_role=parse_role(new_role), at=at)

    def _transition(
        self,
        actor: PermissionContext,
        target_user_id: str,
        op: EscalationOp,
        *,
        new_role: Role | None = None,
        at: datetime | None = None,
    ) -> PermissionContext:
        when = at or utc_now()
        project_id = actor.project_id
        # Read the target from the directory, never from the cache.
        record = self._load_record(project_id, target_user_id)
        loaded = copy.deepcopy(record)
        target = context_from_membership(record)

        decision = self._evaluator.check_escalation(actor, target, op, new_role=new_role, at=when)
        if not decision.allowed:
            LOGGER.warning(
                "Membership change denied. op=%s actor=%s target=%s reason=%s",
                op.value,
                actor.user_id or "-",
                target_user_id,
                decision.reason_code.value,
                extra=decision_log_fields(
                    "membership_change_denied", decision, action=op, project_id=project_id, user_id=actor.user_id
                ),
            )
            raise PermissionDeniedError(decision)

        if target.status is MembershipStatus.REVOKED:
            raise MembershipTransitionError("Revoked memberships cannot be changed.")
        if target.status not in _ALLOWED_FROM[op]:
            raise MembershipTransitionError(
                f"Cannot {op.value.lower().replace('_', ' ')} a membership in status {target.status.value}."
            )

        previous_status = target.status
        previous_role = target.role
        if op is EscalationOp.CHANGE_ROLE:
            if new_role is None:
                raise MembershipTransitionError("A new role is required to change roles.")
            if new_role == target.role:
                raise MembershipTransitionError(f"Membership already has role {new_role.value}.")
            if is_external(new_role) != target.is_external:
                raise MembershipTransitionError("Role changes cannot move a member between internal and external roles.")
            record["externalRole" if target.is_external else "role"] = new_role.value
        else:
            record["status"] = _TARGET_STATUS[op].value

        record["updatedBy"] = actor.user_id
        record["updatedAt"] = when.isoformat()
        updated = context_from_membership(record)

        if not self._directory.save_membership(project_id, target_user_id, record, expected=loaded):
            LOGGER.warning(
                "Membership change lost a concurrent update. op=%s actor=%s target=%s",
                op.value,
                actor.user_id or "-",
                target_user_id,
                extra={"event": "membership_change_conflict", "project_id": project_id},
            )
            raise MembershipTransitionError("Membership changed while this update was in progress; reload and retry.")
        if self._cache is not None:
            self._cache.invalidate(context_key(project_id, target_user_id))

        LOGGER.info(
            "Membership change applied. op=%s actor=%s target=%s status=%s->%s role=%s->%s",
            op.value,
            actor.user_id or "-",
            target_user_id,
            previous_status.value,
            updated.status.value,
            previous_role.value,
            updated.role.value,
            extra=decision_log_fields(
                "membership_change_applied", decision, action=op, project_id=project_id, user_id=actor.user_id
            ),
        )
        return updated
