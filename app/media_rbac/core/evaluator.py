"""
Permission evaluator.

`check` and `check_escalation` are pure functions of their inputs and the loaded
policy. They never raise for a validated context and never log; every denial is
returned as a Decision carrying its reason code.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable

from media_rbac.core.context import PermissionContext
from media_rbac.core.errors import RbacConfigurationError
from media_rbac.core.matrices import (
    PolicyMatrices,
    get_default_policy,
    required_access_level,
    restrictions_for,
)
from media_rbac.core.roles import Role, rank_of
from media_rbac.core.types import (
    Action,
    Decision,
    EscalationOp,
    MembershipStatus,
    ReasonCode,
    ResourceRef,
    Restriction,
    parse_action,
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class PermissionEvaluator:
    def __init__(self, policy: PolicyMatrices, *, clock: Clock = utc_now) -> None:
        self._policy = policy
        self._clock = clock

    @property
    def policy(self) -> PolicyMatrices:
        return self._policy

    def _when(self, at: datetime | None) -> datetime:
        when = at or self._clock()
        if when.tzinfo is None or when.utcoffset() is None:
            raise RbacConfigurationError("Evaluation time must be timezone-aware.")
        return when

    def _deny(self, reason: ReasonCode) -> Decision:
        return Decision(False, reason, None, self._policy.version)

    def _standing(
        self,
        context: PermissionContext,
        organization_id: str,
        project_id: str | None,
        at: datetime,
    ) -> Decision | None:
        if context.organization_id != organization_id:
            return self._deny(ReasonCode.ORG_MISMATCH)
        if project_id is not None and context.project_id != project_id:
            return self._deny(ReasonCode.ORG_MISMATCH)
        if context.status is MembershipStatus.REVOKED:
            return self._deny(ReasonCode.REVOKED)
        if context.status is MembershipStatus.SUSPENDED:
            return self._deny(ReasonCode.SUSPENDED)
        if context.is_expired(at):
            return self._deny(ReasonCode.EXPIRED)
        return None

    def check(
        self,
        context: PermissionContext,
        action: Action | str,
        resource: ResourceRef,
        *,
        at: datetime | None = None,
    ) -> Decision:
        when = self._when(at)
        parsed_action = parse_action(resource.type, action)
        grant = self._policy.matrix_for(resource.type).grant_for(parsed_action)

        denied = self._standing(context, resource.organization_id, resource.project_id, when)
        if denied is not None:
            return denied

        role = context.role
        if context.is_external and resource.phase is not None:
            if resource.phase not in context.assigned_phases:
                return self._deny(ReasonCode.PHASE_NOT_ASSIGNED)

        if role not in grant.roles:
            return self._deny(ReasonCode.ROLE_INSUFFICIENT)
        rules = [f"resource:{resource.type.value}.{parsed_action.value}[{role.value}]"]

        if resource.phase is not None:
            capabilities = self._policy.capabilities_for(resource.phase)
            phase_rule = capabilities.grant_rule(role, grant.action_class)
            if phase_rule is None:
                return self._deny(ReasonCode.PHASE_ROLE_INSUFFICIENT)
            rules.append(f"{phase_rule}[{grant.action_class.value}]")

        restrictions: frozenset[Restriction] = frozenset()
        if resource.asset_type is not None:
            level = self._policy.asset_type_level(resource.asset_type, role)
            if not level.satisfies(required_access_level(parsed_action, grant.action_class)):
                return self._deny(ReasonCode.ASSET_TYPE_RESTRICTED)
            rules.append(f"asset_type:{resource.asset_type.value}[{role.value}={level.value}]")
            restrictions = restrictions_for(level)

        return Decision(True, ReasonCode.GRANTED, ";".join(rules), self._policy.version, restrictions)

    def check_escalation(
        self,
        actor: PermissionContext,
        target: PermissionContext,
        op: EscalationOp,
        *,
        new_role: Role | None = None,
        at: datetime | None = None,
    ) -> Decision:
        when = self._when(at)
        denied = self._standing(actor, target.organization_id, target.project_id, when)
        if denied is not None:
            return denied

        actor_rank = rank_of(actor.role)
        target_rank = rank_of(target.role)
        if actor_rank <= target_rank:
            return self._deny(ReasonCode.RANK_INSUFFICIENT)
        rule = f"rank:{op.value}:{actor.role.value}({actor_rank})>{target.role.value}({target_rank})"

        if op is EscalationOp.CHANGE_ROLE and new_role is not None:
            new_rank = rank_of(new_role)
            if actor_rank <= new_rank:
                return self._deny(ReasonCode.RANK_INSUFFICIENT)
            rule += f";{actor.role.value}({actor_rank})>{new_role.value}({new_rank})"

        return Decision(True, ReasonCode.GRANTED, rule, self._policy.version)

    def available_actions(
        self,
        context: PermissionContext,
        resource: ResourceRef,
        *,
        at: datetime | None = None,
    ) -> list[Action]:
        when = self._when(at)
        return [
            action
            for action in self._policy.matrix_for(resource.type).actions()
            if self.check(context, action, resource, at=when).allowed
        ]

    def restricted_actions(
        self,
        context: PermissionContext,
        resource: ResourceRef,
        *,
        at: datetime | None = None,
    ) -> list[tuple[Action, Decision]]:
        when = self._when(at)
        restricted: list[tuple[Action, Decision]] = []
        for action in self._policy.matrix_for(resource.type).actions():
            decision = self.check(context, action, resource, at=when)
            if not decision.allowed:
                restricted.append((action, decision))
        return restricted


def default_evaluator() -> PermissionEvaluator:
    return PermissionEvaluator(get_default_policy())


def check(
    context: PermissionContext,
    action: Action | str,
    resource: ResourceRef,
    *,
    at: datetime | None = None,
) -> Decision:
    return default_evaluator().check(context, action, resource, at=at)


def check_escalation(
    actor: PermissionContext,
    target: PermissionContext,
    op: EscalationOp,
    *,
    new_role: Role | None = None,
    at: datetime | None = None,
) -> Decision:
    return default_evaluator().check_escalation(actor, target, op, new_role=new_role, at=at)
