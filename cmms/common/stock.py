"""Derived stock status shared by the ledger and the query resolver."""

from enum import StrEnum


class StockStatus(StrEnum):
    """Stock level relative to the configured thresholds."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


def stock_status(current_stock: int, min_stock: int, max_stock: int) -> StockStatus:
    """Classify a stock level. Low wins when the thresholds overlap.

    :param current_stock: Units on hand
    :param min_stock: Reorder threshold
    :param max_stock: Overstock threshold
    :return: The derived status
    """
    if current_stock <= min_stock:
        return StockStatus.LOW
    if current_stock >= max_stock:
        return StockStatus.HIGH
    return StockStatus.NORMAL
