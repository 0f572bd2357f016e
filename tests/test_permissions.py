"""Tests for role grids, overrides and role changes."""

import pytest

from cmms.auth.permissions import (
    DEFAULT_GRIDS,
    apply_overrides,
    change_role,
    effective_permissions,
    grid_to_dict,
    has_permission,
    overrides_to_dict,
    parse_overrides,
)
from cmms.common import AccountStatus, Action, Resource, Role, ValidationFailedError
from conftest import make_user


class TestDefaultGrids:
    """Test suite for the per-role default grids."""

    def test_admin_has_every_action(self) -> None:
        """Test that admins hold every action on every resource."""
        grid = DEFAULT_GRIDS[Role.ADMIN]
        for resource in Resource:
            assert grid[resource] == frozenset(Action)

    def test_manager_grid(self) -> None:
        """Test the manager grid: no deletes, assign only on tasks."""
        grid = DEFAULT_GRIDS[Role.MANAGER]
        assert grid[Resource.TASKS] == {
            Action.VIEW,
            Action.CREATE,
            Action.EDIT,
            Action.ASSIGN,
        }
        assert grid[Resource.DEFECTS] == {Action.VIEW, Action.CREATE, Action.EDIT}
        assert grid[Resource.MATERIALS] == {Action.VIEW, Action.CREATE, Action.EDIT}
        assert grid[Resource.USERS] == {Action.VIEW}
        assert grid[Resource.REPORTS] == {Action.VIEW, Action.CREATE}

    def test_technician_grid(self) -> None:
        """Test the technician grid."""
        grid = DEFAULT_GRIDS[Role.TECHNICIAN]
        assert grid[Resource.TASKS] == {Action.VIEW, Action.CREATE, Action.EDIT}
        assert grid[Resource.DEFECTS] == {Action.VIEW, Action.CREATE, Action.EDIT}
        assert grid[Resource.MATERIALS] == {Action.VIEW}
        assert grid[Resource.REPORTS] == {Action.VIEW}
        assert not grid[Resource.USERS]

    def test_operator_grid(self) -> None:
        """Test the operator grid: reporting defects only."""
        grid = DEFAULT_GRIDS[Role.OPERATOR]
        assert grid[Resource.TASKS] == {Action.VIEW}
        assert grid[Resource.DEFECTS] == {Action.VIEW, Action.CREATE}
        assert grid[Resource.MATERIALS] == {Action.VIEW}
        assert not grid[Resource.USERS]
        assert not grid[Resource.REPORTS]

    def test_grids_are_immutable(self) -> None:
        """Test that the default table cannot be modified."""
        with pytest.raises(TypeError):
            DEFAULT_GRIDS[Role.OPERATOR] = DEFAULT_GRIDS[Role.ADMIN]  # type: ignore[index]


class TestEffectivePermissions:
    """Test suite for effective permission computation."""

    @pytest.mark.parametrize(
        "status",
        [AccountStatus.PENDING, AccountStatus.SUSPENDED, AccountStatus.REJECTED],
    )
    def test_inactive_accounts_have_empty_grid(self, status: AccountStatus) -> None:
        """Test that non-active accounts hold no permission at all."""
        user = make_user("anna", Role.ADMIN, status)
        assert not any(effective_permissions(user).values())
        assert not has_permission(user, Resource.TASKS, Action.VIEW)

    def test_pending_account_without_role(self) -> None:
        """Test that a freshly registered account has no grid."""
        user = make_user("nowy", None, AccountStatus.PENDING)
        assert not any(effective_permissions(user).values())

    def test_overrides_grant_and_revoke(self) -> None:
        """Test that overrides are merged per resource and action."""
        user = apply_overrides(
            make_user("tomek", Role.TECHNICIAN),
            {
                Resource.MATERIALS: {Action.EDIT: True},
                Resource.TASKS: {Action.CREATE: False},
            },
        )

        assert has_permission(user, Resource.MATERIALS, Action.EDIT)
        assert has_permission(user, Resource.MATERIALS, Action.VIEW)
        assert not has_permission(user, Resource.TASKS, Action.CREATE)
        assert has_permission(user, Resource.TASKS, Action.EDIT)

    def test_overrides_accumulate(self) -> None:
        """Test that later overrides are merged onto earlier ones."""
        user = make_user("ola", Role.OPERATOR)
        user = apply_overrides(user, {Resource.REPORTS: {Action.VIEW: True}})
        user = apply_overrides(user, {Resource.REPORTS: {Action.CREATE: True}})

        assert overrides_to_dict(user.overrides) == {
            "reports": {"view": True, "create": True},
        }

    def test_role_change_discards_overrides(self) -> None:
        """Test that a role change resets the grid to the new role's defaults."""
        user = apply_overrides(
            make_user("piotr", Role.TECHNICIAN),
            {Resource.TASKS: {Action.DELETE: True}},
        )
        assert has_permission(user, Resource.TASKS, Action.DELETE)

        user = change_role(user, Role.MANAGER)

        assert user.overrides == {}
        assert not has_permission(user, Resource.TASKS, Action.DELETE)
        assert effective_permissions(user) == DEFAULT_GRIDS[Role.MANAGER]

    def test_grid_to_dict_lists_every_action(self) -> None:
        """Test the serialized grid form."""
        grid = grid_to_dict(effective_permissions(make_user("ola", Role.OPERATOR)))
        assert grid["defects"] == {
            "view": True,
            "create": True,
            "edit": False,
            "delete": False,
            "assign": False,
        }


class TestParseOverrides:
    """Test suite for override parsing."""

    def test_parses_valid_mapping(self) -> None:
        """Test that names are converted to resources and actions."""
        assert parse_overrides({"tasks": {"assign": True}}) == {
            Resource.TASKS: {Action.ASSIGN: True},
        }

    def test_empty_values(self) -> None:
        """Test that missing overrides parse to an empty mapping."""
        assert parse_overrides(None) == {}
        assert parse_overrides({}) == {}

    def test_reports_every_bad_entry(self) -> None:
        """Test that unknown names and non-boolean values are all reported."""
        with pytest.raises(ValidationFailedError) as exc_info:
            parse_overrides(
                {
                    "rockets": {"view": True},
                    "tasks": {"launch": True, "view": "yes"},
                },
            )

        fields = {error.field for error in exc_info.value.errors}
        assert fields == {
            "permissions.rockets",
            "permissions.tasks.launch",
            "permissions.tasks.view",
        }
