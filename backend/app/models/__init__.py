"""Database models"""
from app.models.component import Component, StorageLocation
from app.models.inventory import InventoryRecord, InventoryTransaction
from app.models.bom import BomEntry
from app.models.build_order import BuildOrder
from app.models.build_event import BuildOrderEvent
from app.models.product_cost import ProductCost, ProductCostLine
from app.models.purchasing import Supplier, ComponentSupplier, PurchaseOrder, PurchaseOrderLine

__all__ = [
    # Catalog & warehouse
    "Component",
    "StorageLocation",
    # Inventory ledger
    "InventoryRecord",
    "InventoryTransaction",
    # Bill of materials
    "BomEntry",
    # Production
    "BuildOrder",
    "BuildOrderEvent",
    # Costing
    "ProductCost",
    "ProductCostLine",
    # Purchasing (pricing inputs)
    "Supplier",
    "ComponentSupplier",
    "PurchaseOrder",
    "PurchaseOrderLine",
]
