#!/usr/bin/env python3
"""
BuildOps - Demo Data Seeder

Creates a small, consistent data set for trying the build order workflow:
- Components and storage locations
- Stock received through the inventory ledger (one ``receive`` audit entry
  per record, so the ledger integrity check replays cleanly)
- A versioned BOM for two products
- Supplier prices for cost snapshots

Usage:
  cd backend
  python scripts/seed_demo_data.py

Safe to re-run: anything whose part number or code already exists is skipped.
"""
import sys
import os
from decimal import Decimal

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.status_config import TransactionType
from app.db.session import SessionLocal
from app.logging_config import setup_logging, get_logger
from app.models import BomEntry, Component, ComponentSupplier, InventoryRecord, StorageLocation, Supplier
from app.services.audit_trail import AuditTrail
from app.services.inventory_ledger import InventoryLedger

logger = get_logger(__name__)

LOCATIONS = [
    ("MAIN-A1", "Main Warehouse A1", "shelf"),
    ("MAIN-B2", "Main Warehouse B2", "shelf"),
    ("LINE-1", "Assembly Line 1", "bin"),
]

# part number, name, unit, unit price, {location code: quantity}
COMPONENTS = [
    ("PCB-CTRL-01", "Controller PCB", "EA", "12.50", {"MAIN-A1": 40, "LINE-1": 8}),
    ("ENC-ALU-02", "Aluminium Enclosure", "EA", "7.80", {"MAIN-B2": 25}),
    ("SCR-M3-8", "M3x8 Screw", "EA", "0.04", {"MAIN-A1": 600, "LINE-1": 150}),
    ("CBL-USB-C", "USB-C Cable 1m", "EA", "1.90", {"MAIN-B2": 30}),
    ("LBL-SERIAL", "Serial Label", "EA", "0.10", {"LINE-1": 200}),
]

# product, bom version, [(part number, quantity per unit, optional)]
BOMS = [
    ("Controller Kit", "v1", [
        ("PCB-CTRL-01", "1", False),
        ("ENC-ALU-02", "1", False),
        ("SCR-M3-8", "4", False),
        ("CBL-USB-C", "1", True),
    ]),
    ("Controller Kit", "v2", [
        ("PCB-CTRL-01", "1", False),
        ("ENC-ALU-02", "1", False),
        ("SCR-M3-8", "6", False),
        ("LBL-SERIAL", "1", False),
        ("CBL-USB-C", "1", True),
    ]),
    ("Sensor Board", None, [
        ("PCB-CTRL-01", "2", False),
        ("SCR-M3-8", "2", False),
    ]),
]


def seed_demo_data():
    """Create locations, components, stock, BOMs and supplier prices"""
    db = SessionLocal()
    ledger = InventoryLedger(db)
    audit = AuditTrail(db)

    try:
        print("Seeding BuildOps demo data")
        print("=" * 50)

        print("\nStorage locations...")
        locations = {}
        for code, name, kind in LOCATIONS:
            location = db.query(StorageLocation).filter(StorageLocation.code == code).first()
            if not location:
                location = StorageLocation(code=code, name=name, type=kind)
                db.add(location)
                print(f"   + {code}")
            locations[code] = location
        db.flush()

        supplier = db.query(Supplier).filter(Supplier.code == "DEMO").first()
        if not supplier:
            supplier = Supplier(code="DEMO", name="Demo Components Ltd")
            db.add(supplier)
            db.flush()

        print("\nComponents and stock...")
        components = {}
        for part_number, name, unit, price, stock in COMPONENTS:
            component = db.query(Component).filter(Component.part_number == part_number).first()
            if component:
                components[part_number] = component
                print(f"   = {part_number} (exists, stock untouched)")
                continue

            component = Component(part_number=part_number, name=name, unit=unit)
            db.add(component)
            db.flush()
            components[part_number] = component
            db.add(ComponentSupplier(
                component_id=component.id,
                supplier_id=supplier.id,
                unit_price=Decimal(price),
                is_preferred=True,
            ))

            for code, quantity in stock.items():
                record = InventoryRecord(
                    component_id=component.id,
                    location_id=locations[code].id,
                    quantity=Decimal("0"),
                    reserved_quantity=Decimal("0"),
                    available_quantity=Decimal("0"),
                    cost_per_unit=Decimal(price),
                )
                db.add(record)
                db.flush()
                ledger.mutate(record, quantity_delta=Decimal(quantity))
                audit.append(
                    TransactionType.RECEIVE,
                    record,
                    Decimal(quantity),
                    previous_quantity=Decimal("0"),
                    previous_reserved=Decimal("0"),
                    reference=f"SEED-{part_number}",
                    reference_type="receipt",
                    performed_by="seed",
                    reason="Opening stock",
                )
            print(f"   + {part_number}: {sum(stock.values())} {unit} across {len(stock)} locations")

        print("\nBills of materials...")
        for product, version, lines in BOMS:
            existing = (
                db.query(BomEntry)
                .filter(BomEntry.product == product, BomEntry.bom_version == version)
                .first()
            )
            if existing:
                print(f"   = {product} {version or '(unversioned)'} (exists)")
                continue
            for part_number, qty, optional in lines:
                db.add(BomEntry(
                    product=product,
                    bom_version=version,
                    component_id=components[part_number].id,
                    quantity_per_unit=Decimal(qty),
                    is_optional=optional,
                ))
            print(f"   + {product} {version or '(unversioned)'}: {len(lines)} lines")

        db.commit()
        logger.info("Seeded demo data", extra={"components": len(components), "locations": len(locations)})

        print("\nDone. Try:")
        print("   POST /api/v1/build-orders/  {\"product\": \"Controller Kit\", \"quantity\": 5, \"performed_by\": \"you\"}")
        print("   GET  /api/v1/inventory/reconcile")

    except Exception as e:
        print(f"\nError seeding demo data: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    seed_demo_data()
