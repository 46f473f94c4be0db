"""Build lifecycle tables

Components, storage locations, inventory ledger and audit trail, BOM entries,
build orders and their events, product cost snapshots, and the purchasing
tables the pricing lookups read.

Revision ID: 001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(precision=18, scale=4)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('components',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('part_number', sa.String(length=100), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('category', sa.String(length=100), nullable=True),
    sa.Column('unit', sa.String(length=20), nullable=False, server_default='EA'),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_components_id'), 'components', ['id'], unique=False)
    op.create_index(op.f('ix_components_part_number'), 'components', ['part_number'], unique=True)

    op.create_table('storage_locations',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('code', sa.String(length=50), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('type', sa.String(length=50), nullable=True),
    sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_storage_locations_id'), 'storage_locations', ['id'], unique=False)

    op.create_table('inventory_records',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('component_id', sa.Integer(), nullable=False),
    sa.Column('location_id', sa.Integer(), nullable=False),
    sa.Column('quantity', QTY, nullable=False, server_default='0'),
    sa.Column('reserved_quantity', QTY, nullable=False, server_default='0'),
    sa.Column('available_quantity', QTY, nullable=False, server_default='0'),
    sa.Column('cost_per_unit', QTY, nullable=True),
    sa.Column('minimum_stock', QTY, nullable=True),
    sa.Column('maximum_stock', QTY, nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='in_stock'),
    sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['component_id'], ['components.id'], ),
    sa.ForeignKeyConstraint(['location_id'], ['storage_locations.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('component_id', 'location_id', name='uq_inventory_component_location'),
    sa.CheckConstraint('quantity >= 0', name='ck_inventory_quantity_nonnegative'),
    sa.CheckConstraint('reserved_quantity >= 0', name='ck_inventory_reserved_nonnegative'),
    sa.CheckConstraint('available_quantity >= 0', name='ck_inventory_available_nonnegative'),
    )
    op.create_index(op.f('ix_inventory_records_id'), 'inventory_records', ['id'], unique=False)
    op.create_index(op.f('ix_inventory_records_component_id'), 'inventory_records', ['component_id'], unique=False)
    op.create_index(op.f('ix_inventory_records_location_id'), 'inventory_records', ['location_id'], unique=False)

    op.create_table('bom_entries',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('product', sa.String(length=200), nullable=False),
    sa.Column('bom_version', sa.String(length=50), nullable=True),
    sa.Column('component_id', sa.Integer(), nullable=False),
    sa.Column('quantity_per_unit', QTY, nullable=False),
    sa.Column('is_optional', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('reference_designator', sa.String(length=255), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['component_id'], ['components.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('product', 'bom_version', 'component_id', name='uq_bom_product_version_component')
    )
    op.create_index(op.f('ix_bom_entries_id'), 'bom_entries', ['id'], unique=False)
    op.create_index(op.f('ix_bom_entries_product'), 'bom_entries', ['product'], unique=False)
    op.create_index(op.f('ix_bom_entries_component_id'), 'bom_entries', ['component_id'], unique=False)

    op.create_table('build_orders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('build_number', sa.String(length=50), nullable=False),
    sa.Column('product', sa.String(length=200), nullable=False),
    sa.Column('quantity', sa.Integer(), nullable=False),
    sa.Column('bom_version', sa.String(length=50), nullable=True),
    sa.Column('status', sa.String(length=30), nullable=False, server_default='planned'),
    sa.Column('priority', sa.String(length=20), nullable=False, server_default='normal'),
    sa.Column('consumption_point', sa.String(length=20), nullable=False, server_default='start'),
    sa.Column('assigned_to', sa.String(length=100), nullable=True),
    sa.Column('scheduled_start', sa.DateTime(), nullable=True),
    sa.Column('actual_start', sa.DateTime(), nullable=True),
    sa.Column('submitted_to_qc_at', sa.DateTime(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('cancelled_at', sa.DateTime(), nullable=True),
    sa.Column('units_built', sa.Integer(), nullable=True),
    sa.Column('qc_status', sa.String(length=20), nullable=True),
    sa.Column('qc_passed_count', sa.Integer(), nullable=True),
    sa.Column('qc_failed_count', sa.Integer(), nullable=True),
    sa.Column('qc_notes', sa.Text(), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_by', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    sa.PrimaryKeyConstraint('id'),
    sa.CheckConstraint('quantity > 0', name='ck_build_quantity_positive'),
    sa.CheckConstraint(
        'qc_passed_count + qc_failed_count <= quantity',
        name='ck_build_qc_counts_within_quantity',
    ),
    )
    op.create_index(op.f('ix_build_orders_id'), 'build_orders', ['id'], unique=False)
    op.create_index(op.f('ix_build_orders_build_number'), 'build_orders', ['build_number'], unique=True)
    op.create_index(op.f('ix_build_orders_product'), 'build_orders', ['product'], unique=False)
    op.create_index(op.f('ix_build_orders_status'), 'build_orders', ['status'], unique=False)

    op.create_table('build_order_events',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('build_order_id', sa.Integer(), nullable=False),
    sa.Column('event_type', sa.String(length=50), nullable=False),
    sa.Column('severity', sa.String(length=20), nullable=False, server_default='info'),
    sa.Column('title', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('old_value', sa.String(length=100), nullable=True),
    sa.Column('new_value', sa.String(length=100), nullable=True),
    sa.Column('performed_by', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['build_order_id'], ['build_orders.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_build_order_events_id'), 'build_order_events', ['id'], unique=False)
    op.create_index(op.f('ix_build_order_events_build_order_id'), 'build_order_events', ['build_order_id'], unique=False)
    op.create_index(op.f('ix_build_order_events_event_type'), 'build_order_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_build_order_events_created_at'), 'build_order_events', ['created_at'], unique=False)

    op.create_table('inventory_transactions',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('type', sa.String(length=20), nullable=False),
    sa.Column('component_id', sa.Integer(), nullable=False),
    sa.Column('location_id', sa.Integer(), nullable=False),
    sa.Column('inventory_record_id', sa.Integer(), nullable=False),
    sa.Column('quantity', QTY, nullable=False),
    sa.Column('previous_quantity', QTY, nullable=False),
    sa.Column('new_quantity', QTY, nullable=False),
    sa.Column('previous_reserved', QTY, nullable=False),
    sa.Column('new_reserved', QTY, nullable=False),
    sa.Column('reference_type', sa.String(length=50), nullable=True),
    sa.Column('reference', sa.String(length=50), nullable=True),
    sa.Column('build_order_id', sa.Integer(), nullable=True),
    sa.Column('reason', sa.Text(), nullable=True),
    sa.Column('performed_by', sa.String(length=100), nullable=True),
    sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['component_id'], ['components.id'], ),
    sa.ForeignKeyConstraint(['location_id'], ['storage_locations.id'], ),
    sa.ForeignKeyConstraint(['inventory_record_id'], ['inventory_records.id'], ),
    sa.ForeignKeyConstraint(['build_order_id'], ['build_orders.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_inventory_transactions_id'), 'inventory_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_inventory_transactions_type'), 'inventory_transactions', ['type'], unique=False)
    op.create_index(op.f('ix_inventory_transactions_component_id'), 'inventory_transactions', ['component_id'], unique=False)
    op.create_index(op.f('ix_inventory_transactions_inventory_record_id'), 'inventory_transactions', ['inventory_record_id'], unique=False)
    op.create_index(op.f('ix_inventory_transactions_reference'), 'inventory_transactions', ['reference'], unique=False)
    op.create_index(op.f('ix_inventory_transactions_build_order_id'), 'inventory_transactions', ['build_order_id'], unique=False)
    op.create_index(op.f('ix_inventory_transactions_timestamp'), 'inventory_transactions', ['timestamp'], unique=False)

    op.create_table('product_costs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('product', sa.String(length=200), nullable=False),
    sa.Column('build_order_id', sa.Integer(), nullable=True),
    sa.Column('type', sa.String(length=20), nullable=False),
    sa.Column('bom_version', sa.String(length=50), nullable=True),
    sa.Column('quantity', QTY, nullable=False),
    sa.Column('material_cost', QTY, nullable=False, server_default='0'),
    sa.Column('labor_cost', QTY, nullable=False, server_default='0'),
    sa.Column('overhead_cost', QTY, nullable=False, server_default='0'),
    sa.Column('total_cost', QTY, nullable=False, server_default='0'),
    sa.Column('cost_per_unit', QTY, nullable=False, server_default='0'),
    sa.Column('has_unknown_costs', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('calculated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.Column('calculated_by', sa.String(length=100), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.ForeignKeyConstraint(['build_order_id'], ['build_orders.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_product_costs_id'), 'product_costs', ['id'], unique=False)
    op.create_index(op.f('ix_product_costs_product'), 'product_costs', ['product'], unique=False)
    op.create_index(op.f('ix_product_costs_build_order_id'), 'product_costs', ['build_order_id'], unique=False)
    op.create_index(op.f('ix_product_costs_calculated_at'), 'product_costs', ['calculated_at'], unique=False)

    op.create_table('product_cost_lines',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('product_cost_id', sa.Integer(), nullable=False),
    sa.Column('component_id', sa.Integer(), nullable=False),
    sa.Column('part_number', sa.String(length=100), nullable=True),
    sa.Column('component_name', sa.String(length=255), nullable=True),
    sa.Column('quantity_per_unit', QTY, nullable=False),
    sa.Column('quantity', QTY, nullable=False),
    sa.Column('unit_cost', QTY, nullable=False),
    sa.Column('line_total', QTY, nullable=False),
    sa.Column('source', sa.String(length=30), nullable=False),
    sa.ForeignKeyConstraint(['product_cost_id'], ['product_costs.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['component_id'], ['components.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_product_cost_lines_id'), 'product_cost_lines', ['id'], unique=False)
    op.create_index(op.f('ix_product_cost_lines_product_cost_id'), 'product_cost_lines', ['product_cost_id'], unique=False)

    op.create_table('suppliers',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('code', sa.String(length=50), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code')
    )
    op.create_index(op.f('ix_suppliers_id'), 'suppliers', ['id'], unique=False)

    op.create_table('component_suppliers',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('component_id', sa.Integer(), nullable=False),
    sa.Column('supplier_id', sa.Integer(), nullable=False),
    sa.Column('supplier_part_number', sa.String(length=100), nullable=True),
    sa.Column('unit_price', QTY, nullable=True),
    sa.Column('is_preferred', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.ForeignKeyConstraint(['component_id'], ['components.id'], ),
    sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_component_suppliers_id'), 'component_suppliers', ['id'], unique=False)
    op.create_index(op.f('ix_component_suppliers_component_id'), 'component_suppliers', ['component_id'], unique=False)

    op.create_table('purchase_orders',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('po_number', sa.String(length=50), nullable=False),
    sa.Column('supplier_id', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
    sa.Column('order_date', sa.Date(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('po_number')
    )
    op.create_index(op.f('ix_purchase_orders_id'), 'purchase_orders', ['id'], unique=False)

    op.create_table('purchase_order_lines',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('purchase_order_id', sa.Integer(), nullable=False),
    sa.Column('component_id', sa.Integer(), nullable=False),
    sa.Column('quantity', QTY, nullable=False),
    sa.Column('unit_price', QTY, nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
    sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
    sa.ForeignKeyConstraint(['component_id'], ['components.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_purchase_order_lines_id'), 'purchase_order_lines', ['id'], unique=False)
    op.create_index(op.f('ix_purchase_order_lines_purchase_order_id'), 'purchase_order_lines', ['purchase_order_id'], unique=False)
    op.create_index(op.f('ix_purchase_order_lines_component_id'), 'purchase_order_lines', ['component_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('purchase_order_lines')
    op.drop_table('purchase_orders')
    op.drop_table('component_suppliers')
    op.drop_table('suppliers')
    op.drop_table('product_cost_lines')
    op.drop_table('product_costs')
    op.drop_table('inventory_transactions')
    op.drop_table('build_order_events')
    op.drop_table('build_orders')
    op.drop_table('bom_entries')
    op.drop_table('inventory_records')
    op.drop_table('storage_locations')
    op.drop_table('components')
