"""Role directory: default permission grids and effective permission resolution.

Each role maps to a fixed, immutable grid. A user's effective grid is the
role grid with the user's overrides merged on top. Overrides live until the
next role change, which discards them.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, TypeAlias

from cmms.common import (
    Action,
    FieldError,
    PermissionOverrides,
    Resource,
    Role,
    User,
    ValidationFailedError,
)

if TYPE_CHECKING:
    from typing import Any

PermissionGrid: TypeAlias = Mapping[Resource, frozenset[Action]]

ALL_ACTIONS = frozenset(Action)


def _grid(entries: Mapping[Resource, set[Action]]) -> PermissionGrid:
    return MappingProxyType(
        {resource: frozenset(entries.get(resource, ())) for resource in Resource},
    )


EMPTY_GRID: PermissionGrid = _grid({})

DEFAULT_GRIDS: Mapping[Role, PermissionGrid] = MappingProxyType(
    {
        Role.ADMIN: _grid(dict.fromkeys(Resource, ALL_ACTIONS)),
        Role.MANAGER: _grid(
            {
                Resource.TASKS: {
                    Action.VIEW,
                    Action.CREATE,
                    Action.EDIT,
                    Action.ASSIGN,
                },
                Resource.DEFECTS: {Action.VIEW, Action.CREATE, Action.EDIT},
                Resource.MATERIALS: {Action.VIEW, Action.CREATE, Action.EDIT},
                Resource.USERS: {Action.VIEW},
                Resource.REPORTS: {Action.VIEW, Action.CREATE},
            },
        ),
        Role.TECHNICIAN: _grid(
            {
                Resource.TASKS: {Action.VIEW, Action.CREATE, Action.EDIT},
                Resource.DEFECTS: {Action.VIEW, Action.CREATE, Action.EDIT},
                Resource.MATERIALS: {Action.VIEW},
                Resource.REPORTS: {Action.VIEW},
            },
        ),
        Role.OPERATOR: _grid(
            {
                Resource.TASKS: {Action.VIEW},
                Resource.DEFECTS: {Action.VIEW, Action.CREATE},
                Resource.MATERIALS: {Action.VIEW},
            },
        ),
    },
)


def default_grid(role: Role | None) -> PermissionGrid:
    """Return the default grid of a role, empty for an unassigned role."""
    if role is None:
        return EMPTY_GRID
    return DEFAULT_GRIDS[role]


def merge_overrides(
    grid: PermissionGrid,
    overrides: PermissionOverrides,
) -> PermissionGrid:
    """Layer per-action grants and revocations over a grid.

    :param grid: Base grid, usually the role default
    :param overrides: Mapping of resource to {action: allowed}
    :return: A new immutable grid
    """
    if not overrides:
        return grid

    merged: dict[Resource, set[Action]] = {
        resource: set(actions) for resource, actions in grid.items()
    }
    for resource, actions in overrides.items():
        for action, allowed in actions.items():
            if allowed:
                merged[resource].add(action)
            else:
                merged[resource].discard(action)
    return _grid(merged)


def effective_permissions(user: User) -> PermissionGrid:
    """Resolve the grid the guard honours for a user.

    Accounts that are not active resolve to the empty grid regardless of
    their role or overrides.
    """
    if not user.is_active or user.role is None:
        return EMPTY_GRID
    return merge_overrides(default_grid(user.role), user.overrides)


def has_permission(user: User, resource: Resource, action: Action) -> bool:
    """Return True if the user's effective grid contains the action."""
    return action in effective_permissions(user)[resource]


def change_role(user: User, role: Role) -> User:
    """Return a copy of the user with a new role and no overrides.

    Reassigning the current role also resets the overrides.
    """
    return dataclasses.replace(user, role=role, overrides={})


def apply_overrides(user: User, overrides: PermissionOverrides) -> User:
    """Return a copy of the user with overrides merged into the existing ones."""
    merged = {resource: dict(actions) for resource, actions in user.overrides.items()}
    for resource, actions in overrides.items():
        merged.setdefault(resource, {}).update(actions)
    return dataclasses.replace(user, overrides=merged)


def parse_overrides(raw: Mapping[str, Mapping[str, Any]] | None) -> PermissionOverrides:
    """Parse an override mapping from a payload or a stored JSON column.

    :param raw: Mapping of resource name to {action name: bool}
    :return: Typed overrides
    :raises ValidationFailedError: On unknown resources, actions or non-bool values
    """
    if not raw:
        return {}

    errors: list[FieldError] = []
    parsed: PermissionOverrides = {}
    for resource_name, actions in raw.items():
        try:
            resource = Resource(resource_name)
        except ValueError:
            errors.append(
                FieldError(f"permissions.{resource_name}", "Unknown resource"),
            )
            continue
        if not isinstance(actions, Mapping):
            errors.append(
                FieldError(f"permissions.{resource_name}", "Expected an object"),
            )
            continue
        for action_name, allowed in actions.items():
            path = f"permissions.{resource_name}.{action_name}"
            try:
                action = Action(action_name)
            except ValueError:
                errors.append(FieldError(path, "Unknown action"))
                continue
            if not isinstance(allowed, bool):
                errors.append(FieldError(path, "Expected a boolean"))
                continue
            parsed.setdefault(resource, {})[action] = allowed

    if errors:
        raise ValidationFailedError(*errors)
    return parsed


def overrides_to_dict(overrides: PermissionOverrides) -> dict[str, dict[str, bool]]:
    """Serialize overrides for storage."""
    return {
        str(resource): {str(action): allowed for action, allowed in actions.items()}
        for resource, actions in overrides.items()
    }


def grid_to_dict(grid: PermissionGrid) -> dict[str, dict[str, bool]]:
    """Serialize a grid as resource -> {action: bool} for API responses."""
    return {
        str(resource): {str(action): action in grid[resource] for action in Action}
        for resource in Resource
    }
