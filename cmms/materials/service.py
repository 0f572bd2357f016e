"""Material catalogue operations."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite

from cmms.common import (
    FieldError,
    NotFoundError,
    Resource,
    ValidationFailedError,
)
from cmms.common.models import Pagination
from cmms.query.plan import Condition

from .models import Material

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cmms.common import User
    from cmms.query.resolver import ListParams, ScopedQueryResolver
    from cmms.store import RecordStore

    from .ledger import StockLedger
    from .models import MaterialCreate, MaterialUpdate, StockDirection

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

_UNIQUE_FIELDS = ("name", "barcode")
_NULLABLE_FIELDS = frozenset({"description", "supplier", "location", "barcode"})


def _integrity_error(error: aiosqlite.IntegrityError) -> ValidationFailedError:
    """Translate a unique constraint violation into a field error."""
    text = str(error)
    for name in _UNIQUE_FIELDS:
        if f"materials.{name}" in text:
            return ValidationFailedError.single(
                name,
                f"A material with this {name} already exists",
            )
    return ValidationFailedError.single("material", text)


class MaterialService:
    """Material catalogue backed by a record store.

    Removal is soft: a removed material keeps its id so that work item line
    items can still resolve it, but regular reads no longer return it.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: StockLedger,
        resolver: ScopedQueryResolver,
    ) -> None:
        """Create the service.

        :param store: Record store of the materials collection
        :param ledger: Stock ledger over the same store
        :param resolver: Resolver for list queries
        """
        self.store = store
        self.ledger = ledger
        self.resolver = resolver

    async def list_materials(
        self,
        user: User,
        params: ListParams,
    ) -> tuple[list[Material], Pagination]:
        """List active materials matching the caller's parameters."""
        plan = self.resolver.resolve(user, Resource.MATERIALS, params)
        records, total = await self.store.find(plan)
        return (
            [Material.from_record(record) for record in records],
            Pagination.of(plan.page, plan.limit, total),
        )

    async def count(self, *conditions: Condition) -> int:
        """Count active materials satisfying the conditions."""
        return await self.store.count((Condition.eq("is_active", True), *conditions))

    async def categories(self) -> list[str]:
        """Return the distinct categories of active materials."""
        return await self.store.distinct("category", (Condition.eq("is_active", True),))

    async def get(self, material_id: str, *, include_inactive: bool = False) -> Material:
        """Return one material.

        :param include_inactive: Also return removed materials
        :raises NotFoundError: If the material is absent, or removed and not requested
        """
        record = await self.store.find_by_id(material_id)
        if record is None or not (include_inactive or record["is_active"]):
            msg = "Material does not exist"
            raise NotFoundError(msg)
        return Material.from_record(record)

    async def resolve(self, material_ids: Iterable[str]) -> dict[str, Material]:
        """Resolve materials by id, removed ones included."""
        records = await self.store.find_by_ids(material_ids)
        return {
            material_id: Material.from_record(record)
            for material_id, record in records.items()
        }

    async def require_active(self, material_ids: Iterable[str], field: str) -> None:
        """Check that every referenced material exists and is active.

        :param field: Payload path reported for a bad reference
        :raises ValidationFailedError: Listing each unknown or removed material
        """
        ids = list(material_ids)
        found = await self.resolve(ids)
        errors = [
            FieldError(f"{field}.{index}.material_id", "Material does not exist")
            for index, material_id in enumerate(ids)
            if material_id not in found or not found[material_id].is_active
        ]
        if errors:
            raise ValidationFailedError(*errors)

    async def create(self, user: User, payload: MaterialCreate) -> Material:
        """Create a material owned by the caller.

        :raises ValidationFailedError: On a duplicate name or barcode
        """
        now = datetime.now(UTC)
        record: dict[str, Any] = {
            **payload.model_dump(mode="json"),
            "is_active": True,
            "created_by": user.id,
            "created_at": now,
            "updated_at": now,
        }
        try:
            material_id = await self.store.insert(record)
        except aiosqlite.IntegrityError as e:
            raise _integrity_error(e) from e

        LOGGER.info("Material %s created by %s", payload.name, user.email)
        return await self.get(material_id)

    async def update(self, material_id: str, payload: MaterialUpdate) -> Material:
        """Apply the supplied fields to an active material.

        :raises NotFoundError: If the material is absent or removed
        :raises ValidationFailedError: On inconsistent thresholds or duplicates
        """
        current = await self.get(material_id)
        patch = {
            name: value
            for name, value in payload.model_dump(mode="json", exclude_unset=True).items()
            if value is not None or name in _NULLABLE_FIELDS
        }

        min_stock = patch.get("min_stock", current.min_stock)
        max_stock = patch.get("max_stock", current.max_stock)
        if min_stock > max_stock:
            msg = "min_stock must not exceed max_stock"
            raise ValidationFailedError.single("min_stock", msg)

        patch["updated_at"] = datetime.now(UTC)
        try:
            record = await self.store.conditional_update(
                material_id,
                {"is_active": True},
                patch,
            )
        except aiosqlite.IntegrityError as e:
            raise _integrity_error(e) from e
        return Material.from_record(record)

    async def remove(self, material_id: str) -> None:
        """Soft delete an active material.

        :raises NotFoundError: If the material is absent or already removed
        """
        await self.get(material_id)
        await self.store.conditional_update(
            material_id,
            {"is_active": True},
            {"is_active": False, "updated_at": datetime.now(UTC)},
        )
        LOGGER.info("Material %s removed", material_id)

    async def adjust_stock(
        self,
        material_id: str,
        quantity: int,
        direction: StockDirection,
    ) -> Material:
        """Add or subtract stock through the ledger."""
        record = await self.ledger.adjust_stock(material_id, quantity, direction)
        return Material.from_record(record)
