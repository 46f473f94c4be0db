"""
Bill-of-Materials Index

Read-only view over BOM entries maintained by the BOM-management
collaborator. When no version is requested the product's current version is
used: the highest active version, compared piecewise so that "v10" sorts
after "v9". Products without versioned entries fall back to their
unversioned entries.
"""
import re
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.bom import BomEntry
from app.services.inventory_ledger import ZERO, to_decimal

_VERSION_CHUNK = re.compile(r"(\d+)")


def version_sort_key(version: str) -> Tuple:
    """Numeric-aware key: 'rev-2' < 'rev-10'"""
    parts = _VERSION_CHUNK.split(version.strip().lower())
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in parts if p != "")


class BomIndex:
    """Looks up BOM entries by product and version"""

    def __init__(self, db: Session):
        self.db = db

    def versions(self, product: str) -> List[str]:
        """Active versions of a product, oldest first"""
        rows = (
            self.db.query(BomEntry.bom_version)
            .filter(
                BomEntry.product == product,
                BomEntry.is_active.is_(True),
                BomEntry.bom_version.isnot(None),
            )
            .distinct()
            .all()
        )
        return sorted((r[0] for r in rows), key=version_sort_key)

    def current_version(self, product: str) -> Optional[str]:
        versions = self.versions(product)
        return versions[-1] if versions else None

    def resolve_version(self, product: str, version: Optional[str] = None) -> Optional[str]:
        return version if version else self.current_version(product)

    def get_bom_entries(self, product: str, version: Optional[str] = None) -> List[BomEntry]:
        """Active entries for ``product`` at ``version`` (current when omitted)"""
        resolved = self.resolve_version(product, version)
        query = self.db.query(BomEntry).filter(
            BomEntry.product == product,
            BomEntry.is_active.is_(True),
        )
        if resolved is None:
            query = query.filter(BomEntry.bom_version.is_(None))
        else:
            query = query.filter(BomEntry.bom_version == resolved)
        return query.order_by(BomEntry.component_id, BomEntry.id).all()


def required_quantities(entries: List[BomEntry], units) -> Dict[int, Decimal]:
    """
    Total required per component for ``units`` of product.

    Optional entries are skipped; duplicate lines for one component are summed.
    """
    units = to_decimal(units)
    required: Dict[int, Decimal] = {}
    for entry in entries:
        if entry.is_optional:
            continue
        required[entry.component_id] = (
            required.get(entry.component_id, ZERO) + to_decimal(entry.quantity_per_unit) * units
        )
    return dict(sorted(required.items()))
