"""fulfillment core schema

Revision ID: 0001_fulfillment_core
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the order -> payment -> delivery -> inventory schema:
- products: master codes that barcodes resolve to
- orders / order_items: outlet orders with price snapshots and gateway refs
- inventory_items: one row per physical unit, keyed by barcode
- deliveries / delivery_items: allocation of units to orders

delivery_items.barcode is UNIQUE: a unit can be bound to at most one
delivery at a time.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_fulfillment_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_products_code'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # orders
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet', sa.String(length=32), nullable=False),
        sa.Column('customer', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PAID'),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('location', sa.String(length=64), nullable=False),
        sa.Column('discount', sa.Float(), nullable=True),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('act_payout', sa.Integer(), nullable=True),
        sa.Column('ongkir_plan', sa.Integer(), nullable=True),
        sa.Column('self_pickup', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_link', sa.String(length=512), nullable=True),
        sa.Column('payment_token', sa.String(length=128), nullable=True),
        sa.Column('payment_order_id', sa.String(length=128), nullable=True),
        sa.Column('payment_transaction_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_order_id', name='uq_orders_payment_order_id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_outlet', 'orders', ['outlet'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_order_date', 'orders', ['order_date'])
    op.create_index('ix_orders_location_order_date', 'orders', ['location', 'order_date'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    # ============================================================================
    # inventory_items: one row per physical unit
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('barcode', sa.String(length=128), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=8), nullable=False, server_default='READY'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('barcode'),
    )
    op.create_index('ix_inventory_items_product_id', 'inventory_items', ['product_id'])
    op.create_index('ix_inventory_items_location_status', 'inventory_items', ['location', 'status'])
    op.create_index('ix_inventory_items_product_status', 'inventory_items', ['product_id', 'status'])

    # ============================================================================
    # deliveries / delivery_items
    # ============================================================================
    op.create_table(
        'deliveries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ongkir_plan', sa.Integer(), nullable=True),
        sa.Column('ongkir_actual', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_deliveries_order_id', 'deliveries', ['order_id'])
    op.create_index('ix_deliveries_status', 'deliveries', ['status'])

    op.create_table(
        'delivery_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('delivery_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=128), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['delivery_id'], ['deliveries.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['barcode'], ['inventory_items.barcode']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode', name='uq_delivery_items_barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_delivery_items_delivery_id', 'delivery_items', ['delivery_id'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('delivery_items')
    op.drop_table('deliveries')
    op.drop_table('inventory_items')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
