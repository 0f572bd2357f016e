"""Material catalogue and stock ledger."""

from .ledger import StockLedger, compute_new_stock
from .models import Material, StockDirection
from .routes import configure_material_router
from .service import MaterialService

__all__ = [
    "Material",
    "MaterialService",
    "StockDirection",
    "StockLedger",
    "compute_new_stock",
    "configure_material_router",
]
