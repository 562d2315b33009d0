"""
Phase access, resource action and asset-type access matrices.

All three are policy data loaded from a versioned JSON artifact. Loading
validates that every Phase, ResourceType, action, AssetType and Role is covered
and then freezes the result; nothing in this module mutates a loaded policy.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from media_rbac.core.defaults import DEFAULT_POLICY_FILENAME, SUPPORTED_POLICY_SCHEMA_VERSIONS
from media_rbac.core.errors import PolicyConfigurationError, UnknownEnumValueError
from media_rbac.core.roles import Role, is_external, is_internal
from media_rbac.core.types import (
    ACTIONS_BY_RESOURCE,
    AccessLevel,
    Action,
    ActionClass,
    AssetAction,
    AssetType,
    Phase,
    ResourceType,
    Restriction,
    parse_action,
)

LOGGER = logging.getLogger(__name__)

POLICY_DIR = Path(__file__).resolve().parents[1] / "policy"


@dataclass(frozen=True)
class PhaseCapabilities:
    phase: Phase
    owner: Role
    viewers: frozenset[Role]
    editors: frozenset[Role]
    approvers: frozenset[Role]
    external_allowed: bool

    def roles_for(self, action_class: ActionClass) -> frozenset[Role]:
        if action_class is ActionClass.VIEW:
            return self.viewers
        if action_class is ActionClass.EDIT:
            return self.editors
        return self.approvers

    def grant_rule(self, role: Role, action_class: ActionClass) -> str | None:
        """Name the phase entry that grants `role` this capability, or None."""
        if role == self.owner:
            return f"phase:{self.phase.value}.owner"
        if role in self.roles_for(action_class):
            return f"phase:{self.phase.value}.{_CLASS_FIELDS[action_class]}"
        return None


_CLASS_FIELDS = {
    ActionClass.VIEW: "viewers",
    ActionClass.EDIT: "editors",
    ActionClass.APPROVE: "approvers",
}


@dataclass(frozen=True)
class ActionGrant:
    action: Action
    action_class: ActionClass
    roles: frozenset[Role]


@dataclass(frozen=True)
class ResourceActionMatrix:
    resource_type: ResourceType
    grants: Mapping[Action, ActionGrant]

    def grant_for(self, action: Action | str) -> ActionGrant:
        parsed = parse_action(self.resource_type, action)
        return self.grants[parsed]

    def roles_authorized_for(self, action: Action | str) -> frozenset[Role]:
        return self.grant_for(action).roles

    def action_class(self, action: Action | str) -> ActionClass:
        return self.grant_for(action).action_class

    def actions(self) -> tuple[Action, ...]:
        return tuple(self.grants)


@dataclass(frozen=True)
class PhaseAccessMatrix:
    phases: Mapping[Phase, PhaseCapabilities]

    def capabilities_for(self, phase: Phase) -> PhaseCapabilities:
        try:
            return self.phases[phase]
        except KeyError as exc:
            raise UnknownEnumValueError("phase", phase) from exc


@dataclass(frozen=True)
class AssetTypeAccessMatrix:
    levels: Mapping[AssetType, Mapping[Role, AccessLevel]]

    def level_for(self, asset_type: AssetType, role: Role) -> AccessLevel:
        try:
            return self.levels[asset_type][role]
        except KeyError as exc:
            raise UnknownEnumValueError("asset type", asset_type) from exc


# Minimum asset-type access an action needs. Downloads need more than viewing.
REQUIRED_ACCESS_BY_CLASS: Mapping[ActionClass, AccessLevel] = MappingProxyType(
    {
        ActionClass.VIEW: AccessLevel.APPROVED_ONLY,
        ActionClass.APPROVE: AccessLevel.VIEW_ONLY,
        ActionClass.EDIT: AccessLevel.SCOPED,
    }
)
DOWNLOAD_ACTIONS = frozenset({AssetAction.DOWNLOAD_PROXY, AssetAction.DOWNLOAD_MASTER})


def required_access_level(action: Action, action_class: ActionClass) -> AccessLevel:
    if action in DOWNLOAD_ACTIONS:
        return AccessLevel.SCOPED
    return REQUIRED_ACCESS_BY_CLASS[action_class]


def restrictions_for(level: AccessLevel) -> frozenset[Restriction]:
    if level is AccessLevel.VIEW_ONLY:
        return frozenset({Restriction.VIEW_ONLY, Restriction.DOWNLOAD_BLOCKED})
    if level is AccessLevel.APPROVED_ONLY:
        return frozenset({Restriction.APPROVED_VERSIONS_ONLY, Restriction.DOWNLOAD_BLOCKED})
    return frozenset()


@dataclass(frozen=True)
class PolicyMatrices:
    version: str
    schema_version: int
    phase_matrix: PhaseAccessMatrix
    resource_matrices: Mapping[ResourceType, ResourceActionMatrix]
    asset_type_matrix: AssetTypeAccessMatrix
    source: str = "<memory>"

    def capabilities_for(self, phase: Phase) -> PhaseCapabilities:
        return self.phase_matrix.capabilities_for(phase)

    def matrix_for(self, resource_type: ResourceType) -> ResourceActionMatrix:
        try:
            return self.resource_matrices[resource_type]
        except KeyError as exc:
            raise UnknownEnumValueError("resource type", resource_type) from exc

    def roles_authorized_for(self, resource_type: ResourceType, action: Action | str) -> frozenset[Role]:
        return self.matrix_for(resource_type).roles_authorized_for(action)

    def action_class(self, resource_type: ResourceType, action: Action | str) -> ActionClass:
        return self.matrix_for(resource_type).action_class(action)

    def asset_type_level(self, asset_type: AssetType, role: Role) -> AccessLevel:
        return self.asset_type_matrix.level_for(asset_type, role)


def _parse_roles(raw: Any, where: str, issues: list[str]) -> frozenset[Role]:
    if not isinstance(raw, list):
        issues.append(f"{where} must be a list of roles.")
        return frozenset()
    roles: set[Role] = set()
    for item in raw:
        try:
            role = Role(str(item))
        except ValueError:
            issues.append(f"{where} references unknown role '{item}'.")
            continue
        if role in roles:
            issues.append(f"{where} lists {role.value} more than once.")
        roles.add(role)
    return frozenset(roles)


def _unknown_keys(raw: Mapping[str, Any], allowed: Iterable[str]) -> list[str]:
    allowed_set = set(allowed)
    return sorted(str(key) for key in raw if str(key) not in allowed_set)


def _parse_phases(raw: Any, issues: list[str]) -> dict[Phase, PhaseCapabilities]:
    if not isinstance(raw, Mapping):
        issues.append("'phases' must be an object keyed by phase.")
        return {}
    for key in _unknown_keys(raw, (phase.value for phase in Phase)):
        issues.append(f"phases references unknown phase '{key}'.")

    parsed: dict[Phase, PhaseCapabilities] = {}
    for phase in Phase:
        entry = raw.get(phase.value)
        if not isinstance(entry, Mapping):
            issues.append(f"phases is missing an entry for {phase.value}.")
            continue
        where = f"phases.{phase.value}"
        try:
            owner = Role(str(entry.get("owner")))
        except ValueError:
            issues.append(f"{where}.owner references unknown role '{entry.get('owner')}'.")
            continue
        external_allowed = entry.get("external_allowed")
        if not isinstance(external_allowed, bool):
            issues.append(f"{where}.external_allowed must be true or false.")
            continue
        capabilities = PhaseCapabilities(
            phase=phase,
            owner=owner,
            viewers=_parse_roles(entry.get("viewers"), f"{where}.viewers", issues),
            editors=_parse_roles(entry.get("editors"), f"{where}.editors", issues),
            approvers=_parse_roles(entry.get("approvers"), f"{where}.approvers", issues),
            external_allowed=external_allowed,
        )
        if not is_internal(owner):
            issues.append(f"{where}.owner must be an internal role, got {owner.value}.")
        if not external_allowed:
            leaked = sorted(
                role.value
                for role in capabilities.viewers | capabilities.editors | capabilities.approvers
                if is_external(role)
            )
            if leaked:
                issues.append(f"{where} disallows external access but grants {', '.join(leaked)}.")
        parsed[phase] = capabilities
    return parsed


def _parse_resource_actions(raw: Any, issues: list[str]) -> dict[ResourceType, ResourceActionMatrix]:
    if not isinstance(raw, Mapping):
        issues.append("'resource_actions' must be an object keyed by resource type.")
        return {}
    for key in _unknown_keys(raw, (item.value for item in ResourceType)):
        issues.append(f"resource_actions references unknown resource type '{key}'.")

    parsed: dict[ResourceType, ResourceActionMatrix] = {}
    for resource_type in ResourceType:
        action_enum = ACTIONS_BY_RESOURCE[resource_type]
        entries = raw.get(resource_type.value)
        if not isinstance(entries, Mapping):
            issues.append(f"resource_actions is missing an entry for {resource_type.value}.")
            continue
        for key in _unknown_keys(entries, (item.value for item in action_enum)):
            issues.append(f"resource_actions.{resource_type.value} references unknown action '{key}'.")

        grants: dict[Action, ActionGrant] = {}
        for action in action_enum:
            where = f"resource_actions.{resource_type.value}.{action.value}"
            entry = entries.get(action.value)
            if not isinstance(entry, Mapping):
                issues.append(f"{where} is missing.")
                continue
            try:
                action_class = ActionClass(str(entry.get("class")))
            except ValueError:
                issues.append(f"{where}.class must be one of VIEW, EDIT, APPROVE.")
                continue
            grants[action] = ActionGrant(
                action=action,
                action_class=action_class,
                roles=_parse_roles(entry.get("roles"), f"{where}.roles", issues),
            )
        parsed[resource_type] = ResourceActionMatrix(
            resource_type=resource_type,
            grants=MappingProxyType(grants),
        )
    return parsed


def _parse_asset_types(raw: Any, issues: list[str]) -> dict[AssetType, Mapping[Role, AccessLevel]]:
    if not isinstance(raw, Mapping):
        issues.append("'asset_types' must be an object keyed by asset type.")
        return {}
    for key in _unknown_keys(raw, (item.value for item in AssetType)):
        issues.append(f"asset_types references unknown asset type '{key}'.")

    parsed: dict[AssetType, Mapping[Role, AccessLevel]] = {}
    for asset_type in AssetType:
        entries = raw.get(asset_type.value)
        if not isinstance(entries, Mapping):
            issues.append(f"asset_types is missing an entry for {asset_type.value}.")
            continue
        for key in _unknown_keys(entries, (role.value for role in Role)):
            issues.append(f"asset_types.{asset_type.value} references unknown role '{key}'.")
        levels: dict[Role, AccessLevel] = {}
        for role in Role:
            where = f"asset_types.{asset_type.value}.{role.value}"
            if role.value not in entries:
                issues.append(f"{where} is missing.")
                continue
            try:
                levels[role] = AccessLevel(str(entries[role.value]))
            except ValueError:
                issues.append(f"{where} must be one of {', '.join(level.value for level in AccessLevel)}.")
        parsed[asset_type] = MappingProxyType(levels)
    return parsed


def parse_policy(payload: Mapping[str, Any], *, source: str = "<memory>") -> PolicyMatrices:
    """Validate a policy payload and return the frozen matrices, or raise PolicyConfigurationError."""
    if not isinstance(payload, Mapping):
        raise PolicyConfigurationError(f"Policy {source} must be a JSON object.")

    issues: list[str] = []
    schema_version = payload.get("schema_version")
    if schema_version not in SUPPORTED_POLICY_SCHEMA_VERSIONS:
        issues.append(
            f"schema_version {schema_version!r} is not supported "
            f"(expected one of {', '.join(str(v) for v in SUPPORTED_POLICY_SCHEMA_VERSIONS)})."
        )
    version = str(payload.get("version") or "").strip()
    if not version:
        issues.append("version is required.")

    phases = _parse_phases(payload.get("phases"), issues)
    resources = _parse_resource_actions(payload.get("resource_actions"), issues)
    asset_types = _parse_asset_types(payload.get("asset_types"), issues)

    granted_roles: set[Role] = set()
    for matrix in resources.values():
        for grant in matrix.grants.values():
            granted_roles.update(grant.roles)
    for role in Role:
        if role not in granted_roles:
            issues.append(f"Role {role.value} is not granted any resource action.")

    # Phase owners keep every capability on typed assets in the phase they own.
    owners = sorted({capabilities.owner for capabilities in phases.values()}, key=lambda role: role.value)
    for asset_type, levels in asset_types.items():
        for owner in owners:
            level = levels.get(owner)
            if level is not None and not level.satisfies(AccessLevel.SCOPED):
                issues.append(
                    f"asset_types.{asset_type.value}.{owner.value} is {level.value}; phase owners need SCOPED or FULL."
                )

    if issues:
        raise PolicyConfigurationError(
            f"Policy {source} failed validation:\n- " + "\n- ".join(issues)
        )

    return PolicyMatrices(
        version=version,
        schema_version=int(schema_version),
        phase_matrix=PhaseAccessMatrix(phases=MappingProxyType(phases)),
        resource_matrices=MappingProxyType(resources),
        asset_type_matrix=AssetTypeAccessMatrix(levels=MappingProxyType(asset_types)),
        source=source,
    )


def load_policy_file(path: str | Path) -> PolicyMatrices:
    policy_path = Path(path)
    try:
        with policy_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError as exc:
        raise PolicyConfigurationError(f"Policy file not found: {policy_path}") from exc
    except json.JSONDecodeError as exc:
        raise PolicyConfigurationError(f"Policy file {policy_path} is not valid JSON: {exc}") from exc

    policy = parse_policy(payload, source=str(policy_path))
    LOGGER.info(
        "RBAC policy loaded. version=%s schema_version=%s source=%s",
        policy.version,
        policy.schema_version,
        policy.source,
    )
    return policy


def default_policy_path() -> Path:
    return POLICY_DIR / DEFAULT_POLICY_FILENAME


@lru_cache(maxsize=1)
def get_default_policy() -> PolicyMatrices:
    return load_policy_file(default_policy_path())
