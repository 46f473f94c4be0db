"""
Costing Service - COGS estimates and snapshots

COGS = material (+ labor + overhead) cost to produce a quantity of product.

- ``snapshot_build`` writes the ``actual`` snapshot when a build completes,
  costing what the build order really consumed according to the audit trail.
- ``calculate_product_cogs`` estimates from the BOM without writing anything.
- ``save_cost_snapshot`` persists an estimate produced by a pricing tool.

Unit costs come from PricingSource.find_best_cost. Nothing here commits.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.clock import Clock, utcnow
from app.core.status_config import CostSource, CostType
from app.exceptions import ValidationError
from app.logging_config import get_logger
from app.models.build_order import BuildOrder
from app.models.component import Component
from app.models.product_cost import ProductCost, ProductCostLine
from app.services.audit_trail import AuditTrail
from app.services.bom_index import BomIndex
from app.services.inventory_ledger import ZERO, quantize, to_decimal
from app.services.pricing import PricingSource

logger = get_logger(__name__)

money = quantize


def per_unit(total: Decimal, units) -> Decimal:
    """total / units, or zero when nothing was built"""
    units = to_decimal(units)
    if units <= 0:
        return ZERO
    return money(total / units)


@dataclass
class CostLine:
    component_id: int
    part_number: Optional[str]
    component_name: Optional[str]
    quantity_per_unit: Decimal
    quantity: Decimal
    unit_cost: Decimal
    line_total: Decimal
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_id": self.component_id,
            "part_number": self.part_number,
            "component_name": self.component_name,
            "quantity_per_unit": float(self.quantity_per_unit),
            "quantity": float(self.quantity),
            "unit_cost": float(self.unit_cost),
            "line_total": float(self.line_total),
            "source": self.source,
        }


@dataclass
class CostEstimate:
    product: str
    quantity: Decimal
    bom_version: Optional[str]
    lines: List[CostLine] = field(default_factory=list)
    material_cost: Decimal = ZERO
    cost_per_unit: Decimal = ZERO
    has_unknown_costs: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product,
            "quantity": float(self.quantity),
            "bom_version": self.bom_version,
            "lines": [line.to_dict() for line in self.lines],
            "material_cost": float(self.material_cost),
            "cost_per_unit": float(self.cost_per_unit),
            "has_unknown_costs": self.has_unknown_costs,
        }


class CostingService:
    """Builds and stores ProductCost snapshots"""

    def __init__(
        self,
        db: Session,
        *,
        pricing: Optional[PricingSource] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.pricing = pricing or PricingSource(db)
        self.clock = clock

    def _line(self, component_id: int, quantity_per_unit, quantity) -> CostLine:
        component = self.db.get(Component, component_id)
        unit_cost, source = self.pricing.find_best_cost(component_id)
        return CostLine(
            component_id=component_id,
            part_number=component.part_number if component else None,
            component_name=component.name if component else None,
            quantity_per_unit=money(quantity_per_unit),
            quantity=money(quantity),
            unit_cost=money(unit_cost),
            line_total=money(to_decimal(unit_cost) * to_decimal(quantity)),
            source=source,
        )

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    def calculate_product_cogs(
        self,
        product: str,
        quantity=1,
        bom_version: Optional[str] = None,
    ) -> CostEstimate:
        """Estimate material cost of ``quantity`` units from the product's BOM"""
        quantity = to_decimal(quantity)
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", field="quantity", value=quantity)

        bom = BomIndex(self.db)
        resolved = bom.resolve_version(product, bom_version)
        estimate = CostEstimate(product=product, quantity=quantity, bom_version=resolved)

        for entry in bom.get_bom_entries(product, resolved):
            qpu = to_decimal(entry.quantity_per_unit)
            line = self._line(entry.component_id, qpu, qpu * quantity)
            if line.source == CostSource.UNKNOWN.value:
                estimate.has_unknown_costs = True
            estimate.lines.append(line)

        estimate.material_cost = money(sum((line.line_total for line in estimate.lines), ZERO))
        estimate.cost_per_unit = per_unit(estimate.material_cost, quantity)
        return estimate

    def save_cost_snapshot(
        self,
        *,
        product: str,
        cost_type: str,
        quantity,
        lines: List[CostLine],
        material_cost=None,
        labor_cost=None,
        overhead_cost=None,
        build_order_id: Optional[int] = None,
        bom_version: Optional[str] = None,
        calculated_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProductCost:
        """
        Persist a snapshot. total = material + labor + overhead and
        cost_per_unit = total / quantity (zero when quantity is zero).
        """
        cost_type = CostType(cost_type).value
        quantity = to_decimal(quantity)
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative", field="quantity", value=quantity)

        material = money(
            material_cost if material_cost is not None
            else sum((line.line_total for line in lines), ZERO)
        )
        labor = money(labor_cost or 0)
        overhead = money(overhead_cost or 0)
        total = money(material + labor + overhead)

        snapshot = ProductCost(
            product=product,
            build_order_id=build_order_id,
            type=cost_type,
            bom_version=bom_version,
            quantity=quantity,
            material_cost=material,
            labor_cost=labor,
            overhead_cost=overhead,
            total_cost=total,
            cost_per_unit=per_unit(total, quantity),
            has_unknown_costs=any(line.source == CostSource.UNKNOWN.value for line in lines),
            calculated_at=self.clock(),
            calculated_by=calculated_by,
            notes=notes,
        )
        for line in lines:
            snapshot.lines.append(
                ProductCostLine(
                    component_id=line.component_id,
                    part_number=line.part_number,
                    component_name=line.component_name,
                    quantity_per_unit=line.quantity_per_unit,
                    quantity=line.quantity,
                    unit_cost=line.unit_cost,
                    line_total=line.line_total,
                    source=line.source,
                )
            )
        self.db.add(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Build completion
    # ------------------------------------------------------------------

    def snapshot_build(self, order: BuildOrder, total_units: int, calculated_by: Optional[str]) -> ProductCost:
        """
        Write the ``actual`` snapshot for a completed build from the stock the
        order consumed. cost_per_unit = material_cost / total_units.
        """
        consumed = AuditTrail(self.db, clock=self.clock).consumed_by_component(order.build_number)
        lines = []
        for component_id, quantity in sorted(consumed.items()):
            qpu = quantity / total_units if total_units else ZERO
            lines.append(self._line(component_id, qpu, quantity))

        snapshot = self.save_cost_snapshot(
            product=order.product,
            cost_type=CostType.ACTUAL.value,
            quantity=total_units,
            lines=lines,
            build_order_id=order.id,
            bom_version=order.bom_version,
            calculated_by=calculated_by,
            notes=f"Actual cost for {order.build_number}",
        )
        self.db.flush()
        logger.info(
            f"Cost snapshot for {order.build_number}: {snapshot.material_cost} material, "
            f"{snapshot.cost_per_unit}/unit",
            extra={"build_number": order.build_number, "product_cost_id": snapshot.id},
        )
        return snapshot

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def cost_history(self, product: Optional[str] = None, limit: int = 20) -> List[ProductCost]:
        query = self.db.query(ProductCost)
        if product:
            query = query.filter(ProductCost.product == product)
        return query.order_by(ProductCost.calculated_at.desc(), ProductCost.id.desc()).limit(limit).all()

    def latest_cost_per_product(self) -> List[ProductCost]:
        """Most recent snapshot of each product, ordered by product"""
        latest: Dict[str, ProductCost] = {}
        for cost in self.db.query(ProductCost).order_by(ProductCost.calculated_at, ProductCost.id):
            latest[cost.product] = cost
        return [latest[p] for p in sorted(latest)]
