"""Tests for the scoped query resolver."""

import pytest

from cmms.common import Resource, Role, StockStatus, ValidationFailedError
from cmms.query.plan import Condition, Operator, SortKey, SortOrder
from cmms.query.resolver import PRIORITY_RANKING, ListParams, ScopedQueryResolver
from cmms.workitems import Priority
from conftest import make_user


@pytest.fixture
def resolver() -> ScopedQueryResolver:
    """Resolver with a small page limit."""
    return ScopedQueryResolver(max_limit=50)


class TestScope:
    """Test suite for scope composition."""

    def test_technician_filter_cannot_widen_scope(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that asking for another technician's items yields an empty plan."""
        user = make_user("tomek", Role.TECHNICIAN)
        plan = resolver.resolve(user, Resource.TASKS, ListParams(assigned_to="jan"))

        assert Condition.eq("assigned_to", "tomek") in plan.conditions
        assert Condition.eq("assigned_to", "jan") in plan.conditions
        assert not plan.matches({"assigned_to": "jan"})
        assert not plan.matches({"assigned_to": "tomek"})

    def test_operator_defects_scoped_to_reporter(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that operators only list their own reports."""
        plan = resolver.resolve(
            make_user("ola", Role.OPERATOR),
            Resource.DEFECTS,
            ListParams(),
        )
        assert plan.conditions == (Condition.eq("reported_by", "ola"),)

    def test_manager_filter_is_applied_as_is(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that unrestricted callers filter freely."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.TASKS,
            ListParams(assigned_to="jan", status="nowe", priority=""),
        )
        assert set(plan.conditions) == {
            Condition.eq("assigned_to", "jan"),
            Condition.eq("status", "nowe"),
        }

    def test_materials_exclude_removed_by_default(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that removed materials never appear in lists."""
        plan = resolver.resolve(
            make_user("ola", Role.OPERATOR),
            Resource.MATERIALS,
            ListParams(),
        )
        assert Condition.eq("is_active", True) in plan.conditions


class TestFilters:
    """Test suite for search and stock filters."""

    def test_low_stock_filter(self, resolver: ScopedQueryResolver) -> None:
        """Test that the low filter compares stock to its own threshold."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.MATERIALS,
            ListParams(stock_status=StockStatus.LOW),
        )
        assert Condition("current_stock", Operator.LE_FIELD, "min_stock") in plan.conditions
        assert plan.matches(
            {"is_active": True, "current_stock": 2, "min_stock": 5, "max_stock": 50},
        )
        assert not plan.matches(
            {"is_active": True, "current_stock": 6, "min_stock": 5, "max_stock": 50},
        )

    def test_normal_stock_filter(self, resolver: ScopedQueryResolver) -> None:
        """Test that normal excludes both thresholds."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.MATERIALS,
            ListParams(stock_status=StockStatus.NORMAL),
        )
        base = {"is_active": True, "min_stock": 5, "max_stock": 10}
        assert plan.matches({**base, "current_stock": 7})
        assert not plan.matches({**base, "current_stock": 5})
        assert not plan.matches({**base, "current_stock": 10})

    def test_stock_filter_ignored_for_tasks(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that stock status only applies to materials."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.TASKS,
            ListParams(stock_status=StockStatus.LOW),
        )
        assert plan.conditions == ()

    def test_search_is_trimmed_and_case_insensitive(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test search matching across the resource's text fields."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.TASKS,
            ListParams(search="  POMPA "),
        )
        assert plan.search is not None
        assert plan.search.term == "POMPA"
        assert plan.matches({"title": "Przegląd", "location": "Hala pompa 2"})
        assert not plan.matches({"title": "Przegląd", "description": "sprężarka"})

    def test_blank_search_is_ignored(self, resolver: ScopedQueryResolver) -> None:
        """Test that whitespace-only search terms are dropped."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.DEFECTS,
            ListParams(search="   "),
        )
        assert plan.search is None


class TestSortAndPaging:
    """Test suite for sort and pagination rules."""

    def test_default_sort_has_id_tie_breaker(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test the default newest-first ordering."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.TASKS,
            ListParams(),
        )
        assert plan.sort == (SortKey("created_at", descending=True), SortKey("id"))
        assert plan.limit == 10
        assert plan.offset == 0

    def test_materials_sort_by_name(self, resolver: ScopedQueryResolver) -> None:
        """Test the material default ordering."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.MATERIALS,
            ListParams(),
        )
        assert plan.sort[0] == SortKey("name")

    def test_camel_case_sort_field(self, resolver: ScopedQueryResolver) -> None:
        """Test that camelCase sort fields are accepted."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.TASKS,
            ListParams(sort_by="dueDate", sort_order=SortOrder.ASC, page=3, limit=20),
        )
        assert plan.sort[0] == SortKey("due_date")
        assert plan.offset == 40

    def test_priority_sorts_by_urgency(self, resolver: ScopedQueryResolver) -> None:
        """Test that priorities sort by rank, not by label."""
        plan = resolver.resolve(
            make_user("szef", Role.MANAGER),
            Resource.DEFECTS,
            ListParams(sort_by="priority", sort_order=SortOrder.DESC),
        )
        assert plan.sort[0] == SortKey("priority", True, PRIORITY_RANKING)
        assert PRIORITY_RANKING == tuple(Priority)

    def test_unknown_sort_field_rejected(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that sorting by an arbitrary column is refused."""
        with pytest.raises(ValidationFailedError) as exc_info:
            resolver.resolve(
                make_user("szef", Role.MANAGER),
                Resource.USERS,
                ListParams(sort_by="hashed_password"),
            )
        assert [e.field for e in exc_info.value.errors] == ["sort_by"]

    def test_pagination_errors_collected(
        self,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Test that page and limit problems are reported together."""
        with pytest.raises(ValidationFailedError) as exc_info:
            resolver.resolve(
                make_user("szef", Role.MANAGER),
                Resource.TASKS,
                ListParams(page=0, limit=51),
            )
        assert {e.field for e in exc_info.value.errors} == {"page", "limit"}
