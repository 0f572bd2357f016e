"""Tests for task and defect operations."""

import asyncio

import pytest

from cmms.admin.models import UserUpdateRequest
from cmms.common import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    User,
    ValidationFailedError,
)
from cmms.container import Services
from cmms.materials.models import MaterialCreate
from cmms.notifications import NotificationEvent
from cmms.query.plan import SortOrder
from cmms.query.resolver import ListParams
from cmms.workitems import DefectStatus, Priority, TaskStatus
from cmms.workitems.models import (
    DefectCategory,
    DefectCreate,
    DefectLineItem,
    DefectUpdate,
    TaskCreate,
    TaskLineItem,
    TaskType,
    TaskUpdate,
)
from conftest import RecordingNotifier, create_active_user


def new_task(title: str = "Przegląd sprężarki", **extra: object) -> TaskCreate:
    """Build a task payload."""
    return TaskCreate(
        title=title,
        description="Coroczny przegląd sprężarki na hali B",
        type=TaskType.MONTHLY,
        location="Hala B",
        **extra,
    )


def new_defect(title: str = "Wyciek oleju", **extra: object) -> DefectCreate:
    """Build a defect payload."""
    return DefectCreate(
        title=title,
        description="Wyciek oleju z siłownika prasy",
        location="Hala A",
        category=DefectCategory.HYDRAULIC,
        **extra,
    )


@pytest.mark.asyncio
class TestDefectScenario:
    """Test suite following one defect from report to resolution."""

    async def test_report_assign_resolve(
        self,
        services: Services,
        staff: dict[str, User],
        notifier: RecordingNotifier,
    ) -> None:
        """Test the operator, manager and technician hand-over."""
        operator = staff["operator"]
        manager = staff["manager"]
        technician = staff["technician"]

        defect = await services.defects.create(operator, new_defect())
        assert defect.status == DefectStatus.REPORTED
        assert defect.assigned_to is None
        assert defect.creator.id == operator.id

        # unassigned defects are invisible to technicians
        with pytest.raises(NotFoundError):
            await services.defects.get(technician, defect.id)

        assigned = await services.defects.assign(manager, defect.id, technician.id)
        assert assigned.status == DefectStatus.IN_PROGRESS
        assert assigned.assignee.id == technician.id

        await services.notifications.drain()
        assert [n.event for n in notifier.sent][-1] == NotificationEvent.WORK_ITEM_ASSIGNED
        assert notifier.sent[-1].recipient.id == technician.id
        assert notifier.sent[-1].context["item_id"] == defect.id

        resolved = await services.defects.update(
            technician,
            defect.id,
            DefectUpdate(status="usunięta", actual_cost=120.0),
        )
        assert resolved.status == DefectStatus.RESOLVED
        assert resolved.completed_at is not None

        # the reporter still sees the outcome but cannot change it
        seen = await services.defects.get(operator, defect.id)
        assert seen.status == DefectStatus.RESOLVED
        with pytest.raises(ForbiddenError):
            await services.defects.update(operator, defect.id, DefectUpdate(remarks="?"))

    async def test_operator_lists_only_own_reports(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test operator visibility in lists."""
        own = await services.defects.create(staff["operator"], new_defect())
        await services.defects.create(staff["manager"], new_defect("Zwarcie w szafie"))

        items, pagination = await services.defects.list_items(
            staff["operator"],
            ListParams(),
        )
        assert [item.id for item in items] == [own.id]
        assert pagination.total == 1

    async def test_technician_cannot_assign_defect(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that technicians cannot hand defects over, even their own."""
        defect = await services.defects.create(staff["operator"], new_defect())
        await services.defects.assign(staff["manager"], defect.id, staff["technician"].id)

        with pytest.raises(ForbiddenError):
            await services.defects.assign(
                staff["technician"],
                defect.id,
                staff["manager"].id,
            )

    async def test_operator_cannot_assign(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that the grid check comes before the lookup."""
        defect = await services.defects.create(staff["operator"], new_defect())
        with pytest.raises(ForbiddenError):
            await services.defects.assign(
                staff["operator"],
                defect.id,
                staff["technician"].id,
            )


@pytest.mark.asyncio
class TestTaskOperations:
    """Test suite for task operations."""

    async def test_technician_edits_only_assigned(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that technicians see and change only their own tasks."""
        technician = staff["technician"]
        other = await create_active_user(services, "drugi", technician.role)

        task = await services.tasks.create(staff["manager"], new_task())
        await services.tasks.assign(staff["manager"], task.id, other.id)

        with pytest.raises(NotFoundError):
            await services.tasks.update(technician, task.id, TaskUpdate(remarks="ok"))

        updated = await services.tasks.update(other, task.id, TaskUpdate(remarks="ok"))
        assert updated.remarks == "ok"

    async def test_assignee_filter_cannot_widen_scope(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that technicians get nothing when asking for someone else's tasks."""
        other = await create_active_user(services, "drugi", staff["technician"].role)
        task = await services.tasks.create(staff["manager"], new_task())
        await services.tasks.assign(staff["manager"], task.id, other.id)

        items, _ = await services.tasks.list_items(
            staff["technician"],
            ListParams(assigned_to=other.id),
        )
        assert items == []

    async def test_completion_time_is_stamped_once(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test completing, reopening by assignment and completing again."""
        manager = staff["manager"]
        task = await services.tasks.create(manager, new_task())
        await services.tasks.assign(manager, task.id, staff["technician"].id)

        done = await services.tasks.update(
            manager,
            task.id,
            TaskUpdate(status="zakończone"),
        )
        first_completion = done.completed_at
        assert first_completion is not None

        reopened = await services.tasks.assign(manager, task.id, staff["technician"].id)
        assert reopened.status == TaskStatus.IN_PROGRESS
        assert reopened.completed_at == first_completion

        done_again = await services.tasks.update(
            manager,
            task.id,
            TaskUpdate(status="zakończone"),
        )
        assert done_again.completed_at == first_completion

    async def test_unknown_status_rejected(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that defect labels are refused for tasks."""
        task = await services.tasks.create(staff["manager"], new_task())
        with pytest.raises(ValidationFailedError):
            await services.tasks.update(
                staff["manager"],
                task.id,
                TaskUpdate(status="usunięta"),
            )

    async def test_assignee_must_be_active(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that assigning to a missing or pending account fails."""
        task = await services.tasks.create(staff["manager"], new_task())
        with pytest.raises(ValidationFailedError) as exc_info:
            await services.tasks.assign(staff["manager"], task.id, "missing")
        assert exc_info.value.errors[0].field == "assigned_to"

    async def test_concurrent_edits_conflict(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that one of two racing edits is refused instead of lost."""
        manager = staff["manager"]
        task = await services.tasks.create(manager, new_task())

        results = await asyncio.gather(
            services.tasks.update(manager, task.id, TaskUpdate(remarks="pierwsza")),
            services.tasks.update(manager, task.id, TaskUpdate(remarks="druga")),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) <= 1
        stored = await services.tasks.get(manager, task.id)
        assert stored.version == 1 + len(results) - len(conflicts)

    async def test_line_items_resolve_removed_materials(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that line items keep pointing at a removed material."""
        manager = staff["manager"]
        material = await services.materials.create(
            manager,
            MaterialCreate(name="Pasek klinowy", category="Paski", unit="szt"),
        )
        task = await services.tasks.create(
            manager,
            new_task(materials=[TaskLineItem(material_id=material.id, quantity=2)]),
        )
        await services.materials.remove(material.id)

        stored = await services.tasks.get(manager, task.id)
        assert stored.material_refs[material.id].name == "Pasek klinowy"
        assert not stored.material_refs[material.id].is_active

    async def test_unknown_material_rejected(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that line items must reference active materials."""
        with pytest.raises(ValidationFailedError) as exc_info:
            await services.defects.create(
                staff["operator"],
                new_defect(materials=[DefectLineItem(material_id="missing", quantity=1)]),
            )
        assert exc_info.value.errors[0].field == "materials.0.material_id"

    async def test_delete_requires_supervisor(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test deletion ownership."""
        task = await services.tasks.create(staff["manager"], new_task())
        await services.tasks.assign(staff["manager"], task.id, staff["technician"].id)

        with pytest.raises(ForbiddenError):
            await services.tasks.delete(staff["technician"], task.id)

        await services.tasks.delete(staff["admin"], task.id)
        with pytest.raises(NotFoundError):
            await services.tasks.get(staff["admin"], task.id)

    async def test_priority_sort_follows_urgency(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that the most urgent tasks come first when sorting by priority."""
        manager = staff["manager"]
        for priority in (Priority.MEDIUM, Priority.CRITICAL, Priority.LOW, Priority.HIGH):
            await services.tasks.create(
                manager,
                new_task(f"Zadanie {priority.value}", priority=priority),
            )

        items, _ = await services.tasks.list_items(
            manager,
            ListParams(sort_by="priority", sort_order=SortOrder.DESC),
        )
        assert [item.priority for item in items] == [
            Priority.CRITICAL,
            Priority.HIGH,
            Priority.MEDIUM,
            Priority.LOW,
        ]


@pytest.mark.asyncio
class TestPermissionGrid:
    """Test suite for grid checks made by the service itself."""

    async def test_operator_cannot_create_task(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that tasks.create is required even without the HTTP layer."""
        with pytest.raises(ForbiddenError):
            await services.tasks.create(staff["operator"], new_task())

        _, pagination = await services.tasks.list_items(staff["admin"], ListParams())
        assert pagination.total == 0

    async def test_revoked_edit_blocks_update(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that an override revoking tasks.edit wins over ownership."""
        manager = staff["manager"]
        task = await services.tasks.create(manager, new_task())
        revoked = await services.admin.update_user(
            staff["admin"],
            manager.id,
            UserUpdateRequest(permissions={"tasks": {"edit": False}}),
        )

        with pytest.raises(ForbiddenError):
            await services.tasks.update(
                revoked,
                task.id,
                TaskUpdate(status="zakończone"),
            )

        stored = await services.tasks.get(revoked, task.id)
        assert stored.status == TaskStatus.NEW
        assert stored.version == 1

    async def test_revoked_view_blocks_reads(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that an override revoking defects.view hides lists and items."""
        defect = await services.defects.create(staff["operator"], new_defect())
        revoked = await services.admin.update_user(
            staff["admin"],
            staff["operator"].id,
            UserUpdateRequest(permissions={"defects": {"view": False}}),
        )

        with pytest.raises(ForbiddenError):
            await services.defects.list_items(revoked, ListParams())
        with pytest.raises(ForbiddenError):
            await services.defects.get(revoked, defect.id)

    async def test_manager_cannot_delete_without_grid(
        self,
        services: Services,
        staff: dict[str, User],
    ) -> None:
        """Test that deletion needs tasks.delete before ownership is consulted."""
        task = await services.tasks.create(staff["manager"], new_task())

        with pytest.raises(ForbiddenError):
            await services.tasks.delete(staff["manager"], task.id)
        assert (await services.tasks.get(staff["manager"], task.id)).id == task.id
