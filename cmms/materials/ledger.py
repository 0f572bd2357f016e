"""Material stock ledger.

Owns the non-negative stock invariant. Every adjustment is written as one
guarded SQL statement, so concurrent subtractions can never jointly drive
a material below zero.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from cmms.common import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationFailedError,
)

from .models import StockDirection

if TYPE_CHECKING:
    from cmms.store import RecordStore

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)


def compute_new_stock(
    material_id: str,
    current: int,
    quantity: int,
    direction: StockDirection,
) -> int:
    """Return the stock after an adjustment.

    Adding has no upper bound; going above ``max_stock`` only changes the
    derived status.

    :raises ValidationFailedError: If the quantity is not a positive integer
    :raises InsufficientStockError: If a subtraction exceeds the current stock
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        msg = "Quantity must be a positive integer"
        raise ValidationFailedError.single("quantity", msg)

    if direction == StockDirection.ADD:
        return current + quantity
    if quantity > current:
        raise InsufficientStockError(material_id, current, quantity)
    return current - quantity


class StockLedger:
    """Applies stock adjustments to the materials collection."""

    def __init__(self, store: RecordStore, retries: int = 3) -> None:
        """Create a ledger.

        :param store: Record store of the materials collection
        :param retries: How often a write that lost a race is re-evaluated
        """
        self.store = store
        self.retries = retries

    async def _read_active(self, material_id: str) -> dict[str, Any]:
        record = await self.store.find_by_id(material_id)
        if record is None or not record["is_active"]:
            msg = "Material does not exist"
            raise NotFoundError(msg)
        return record

    async def adjust_stock(
        self,
        material_id: str,
        quantity: int,
        direction: StockDirection,
    ) -> dict[str, Any]:
        """Add or subtract stock for an active material.

        :param material_id: Id of the material
        :param quantity: Positive number of units
        :param direction: ``add`` or ``subtract``
        :return: The updated material record
        :raises NotFoundError: If the material is absent or removed
        :raises InsufficientStockError: If a subtraction exceeds the stock
        """
        delta = quantity if direction == StockDirection.ADD else -quantity

        for attempt in range(self.retries + 1):
            record = await self._read_active(material_id)
            compute_new_stock(material_id, record["current_stock"], quantity, direction)

            updated = await self.store.increment(
                material_id,
                "current_stock",
                delta,
                minimum=0,
                precondition={"is_active": True},
                patch={"updated_at": datetime.now(UTC)},
            )
            if updated is not None:
                LOGGER.info(
                    "Stock of %s changed by %+d to %d",
                    record["name"],
                    delta,
                    updated["current_stock"],
                )
                return updated

            LOGGER.debug(
                "Stock write for %s lost a race (attempt %d)",
                material_id,
                attempt + 1,
            )

        # every attempt lost a race; report what the last reading allows
        record = await self._read_active(material_id)
        compute_new_stock(material_id, record["current_stock"], quantity, direction)
        msg = "Material stock was modified concurrently"
        raise ConflictError(msg)
