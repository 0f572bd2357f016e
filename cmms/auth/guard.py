"""Authorization guard: grid checks, visibility scopes and ownership rules.

Three independent checks are composed by the services:

1. ``authorize``: the coarse permission grid (``ForbiddenError``).
2. ``visibility_scope`` / ``check_visible``: which records a role may see at
   all. Records outside the scope are reported as ``NotFoundError`` so that
   their existence does not leak.
3. ``owns``: per (role, action) ownership rules applied to a visible record
   before it is changed (``ForbiddenError``).

All functions here are pure and perform no I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeAlias

from cmms.common import (
    AccountInactiveError,
    Action,
    ForbiddenError,
    NotFoundError,
    Resource,
    Role,
    User,
)
from cmms.query.plan import Condition

from .permissions import has_permission

if TYPE_CHECKING:
    from collections.abc import Mapping

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

WORK_ITEM_RESOURCES = frozenset({Resource.TASKS, Resource.DEFECTS})

CREATOR_FIELDS: Mapping[Resource, str] = MappingProxyType(
    {
        Resource.TASKS: "created_by",
        Resource.DEFECTS: "reported_by",
    },
)


@dataclass(frozen=True)
class Scope:
    """Mandatory visibility predicate for a (user, resource) pair.

    An empty condition tuple means the scope is unrestricted.
    """

    conditions: tuple[Condition, ...] = ()

    @property
    def unrestricted(self) -> bool:
        """Return True if the scope admits every record."""
        return not self.conditions

    def matches(self, record: Any) -> bool:  # noqa: ANN401
        """Return True if the record is inside the scope."""
        return all(condition.matches(record) for condition in self.conditions)


UNRESTRICTED = Scope()


def authorize(user: User, resource: Resource, action: Action) -> None:
    """Check the coarse permission grid.

    :raises AccountInactiveError: If the account is not active
    :raises ForbiddenError: If the grid does not grant the action
    """
    if not user.is_active:
        LOGGER.debug("Inactive account %s denied %s.%s", user.id, resource, action)
        msg = "Account is not active"
        raise AccountInactiveError(msg)

    if not has_permission(user, resource, action):
        LOGGER.debug("User %s lacks %s.%s", user.id, resource, action)
        msg = f"Missing permission {resource}.{action}"
        raise ForbiddenError(msg)


def is_allowed(user: User, resource: Resource, action: Action) -> bool:
    """Return True if ``authorize`` would pass."""
    return user.is_active and has_permission(user, resource, action)


def visibility_scope(user: User, resource: Resource) -> Scope:
    """Compute the scope predicate a user's reads are confined to.

    Admins and managers see everything. Technicians see work items assigned
    to them. Operators see the tasks they created and the defects they
    reported. Materials, users and reports are not scoped.
    """
    if resource not in WORK_ITEM_RESOURCES:
        return UNRESTRICTED

    match user.role:
        case Role.ADMIN | Role.MANAGER:
            return UNRESTRICTED
        case Role.TECHNICIAN:
            return Scope((Condition.eq("assigned_to", user.id),))
        case Role.OPERATOR:
            return Scope((Condition.eq(CREATOR_FIELDS[resource], user.id),))

    # no role means a pending account: nothing is visible
    return Scope((Condition.eq("id", None),))


def check_visible(
    user: User,
    resource: Resource,
    record: Any,  # noqa: ANN401
    label: str,
) -> None:
    """Re-check a single record against the caller's scope.

    :raises NotFoundError: If the record is outside the scope
    """
    if not visibility_scope(user, resource).matches(record):
        LOGGER.debug("User %s cannot see %s %s", user.id, label, record.id)
        msg = f"{label} does not exist"
        raise NotFoundError(msg)


OwnershipRule: TypeAlias = Callable[[User, Any], bool]


def _any_record(_user: User, _record: Any) -> bool:  # noqa: ANN401
    return True


def _assigned_to_caller(user: User, record: Any) -> bool:  # noqa: ANN401
    return record.assigned_to is not None and record.assigned_to == user.id


def _no_record(_user: User, _record: Any) -> bool:  # noqa: ANN401
    return False


OWNERSHIP_RULES: Mapping[tuple[Role, Action], OwnershipRule] = MappingProxyType(
    {
        (Role.ADMIN, Action.EDIT): _any_record,
        (Role.ADMIN, Action.ASSIGN): _any_record,
        (Role.ADMIN, Action.DELETE): _any_record,
        (Role.MANAGER, Action.EDIT): _any_record,
        (Role.MANAGER, Action.ASSIGN): _any_record,
        (Role.MANAGER, Action.DELETE): _any_record,
        (Role.TECHNICIAN, Action.EDIT): _assigned_to_caller,
        (Role.TECHNICIAN, Action.ASSIGN): _no_record,
        (Role.TECHNICIAN, Action.DELETE): _no_record,
        (Role.OPERATOR, Action.EDIT): _no_record,
        (Role.OPERATOR, Action.ASSIGN): _no_record,
        (Role.OPERATOR, Action.DELETE): _no_record,
    },
)


def owns(user: User, resource: Resource, action: Action, record: Any) -> bool:  # noqa: ANN401
    """Apply the ownership rule for a change to an existing work item.

    Resources other than tasks and defects have no ownership rules. Missing
    (role, action) entries deny.
    """
    if resource not in WORK_ITEM_RESOURCES:
        return True
    if user.role is None:
        return False
    rule = OWNERSHIP_RULES.get((user.role, action), _no_record)
    return rule(user, record)


def authorize_record(
    user: User,
    resource: Resource,
    action: Action,
    record: Any,  # noqa: ANN401
    label: str,
) -> None:
    """Check visibility, then ownership, for a change to one record.

    The grid check is expected to have passed already.

    :raises NotFoundError: If the record is outside the caller's scope
    :raises ForbiddenError: If the ownership rule denies the action
    """
    check_visible(user, resource, record, label)
    if not owns(user, resource, action, record):
        LOGGER.debug(
            "Ownership rule denied %s.%s on %s for user %s",
            resource,
            action,
            record.id,
            user.id,
        )
        msg = f"Not permitted to {action} this {label.lower()}"
        raise ForbiddenError(msg)
