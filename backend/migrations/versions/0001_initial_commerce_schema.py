"""initial commerce schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the complete schema:
- tenancy: stores, branches, staff
- catalog: products, customers, promotions, promotion_products
- shifts: shifts (one active per branch), shift_cash_movements
- sales: orders, order_items, payments, order_promotions
- stock ledger: stock_levels, stock_movements, stock_counts, stock_count_lines
- loyalty: customer_product_points, point_transactions, point_redemptions
- transfers: stock_transfers, stock_transfer_items
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _created_at(index: bool = False):
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'), index=index)


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _version_id():
    return sa.Column('version_id', sa.Integer(), nullable=False, server_default='1')


def _fk(name: str, target: str, nullable: bool = False, index: bool = True):
    return sa.Column(name, sa.Integer(), sa.ForeignKey(target), nullable=nullable, index=index)


def upgrade():
    # ============================================================================
    # tenancy
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        sa.Column('branch_name', sa.String(length=128), nullable=False),
        sa.Column('is_shift_open', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shift_opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shift_closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        _version_id(),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('store_id', 'branch_name', name='uq_branches_store_name'),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sqlite_autoincrement=True,
    )

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('category_name', sa.String(length=128), nullable=True),
        sa.Column('base_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('points_to_redeem', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        _created_at(),
        _updated_at(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_store_name', 'products', ['store_id', 'product_name'])

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        sa.Column('customer_code', sa.String(length=64), nullable=True),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone_last4', sa.String(length=4), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.UniqueConstraint('store_id', 'customer_code', name='uq_customers_store_code'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customers_store_active', 'customers', ['store_id', 'is_active'])

    op.create_table(
        'promotions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id', nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('promo_type', sa.String(length=32), nullable=False),
        sa.Column('percent_bps', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('old_set_total_cents', sa.Integer(), nullable=True),
        sa.Column('new_set_total_cents', sa.Integer(), nullable=True),
        sa.Column('min_quantity', sa.Integer(), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        _updated_at(),
        _version_id(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_promotions_store_active', 'promotions', ['store_id', 'is_active'])

    op.create_table(
        'promotion_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('promotion_id', 'promotions.id'),
        _fk('product_id', 'products.id'),
        sa.UniqueConstraint('promotion_id', 'product_id', name='uq_promotion_products'),
        sqlite_autoincrement=True,
    )

    # ============================================================================
    # shifts: at most one active shift per branch
    # ============================================================================
    op.create_table(
        'shifts',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        sa.Column('starting_cash_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ending_cash_cents', sa.Integer(), nullable=True),
        sa.Column('expected_cash_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        _fk('opened_by', 'staff.id', nullable=True, index=False),
        _fk('closed_by', 'staff.id', nullable=True, index=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), index=True),
        sa.Column('note', sa.Text(), nullable=True),
        _version_id(),
        sqlite_autoincrement=True,
    )
    op.create_index(
        'uq_shifts_branch_active', 'shifts', ['branch_id'], unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    # ============================================================================
    # sales
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        _fk('shift_id', 'shifts.id'),
        _fk('staff_id', 'staff.id', nullable=True, index=False),
        _fk('customer_id', 'customers.id', nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('paid_total_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PAID', index=True),
        _fk('promotion_id', 'promotions.id', nullable=True, index=False),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        _fk('cancelled_by', 'staff.id', nullable=True, index=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(index=True),
        _updated_at(),
        _version_id(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_shift_status', 'orders', ['shift_id', 'status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('order_id', 'orders.id'),
        _fk('product_id', 'products.id'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('from_stock_count', sa.Integer(), nullable=False),
        sa.Column('to_stock_count', sa.Integer(), nullable=False),
        _created_at(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('order_id', 'orders.id'),
        sa.Column('method', sa.String(length=16), nullable=False, index=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'order_promotions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('order_id', 'orders.id'),
        _fk('promotion_id', 'promotions.id'),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        _created_at(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'shift_cash_movements',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        _fk('shift_id', 'shifts.id'),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('direction', sa.String(length=3), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        _fk('order_id', 'orders.id', nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        _fk('created_by_staff_id', 'staff.id', nullable=True, index=False),
        _created_at(),
        sqlite_autoincrement=True,
    )

    # ============================================================================
    # stock ledger
    # ============================================================================
    op.create_table(
        'stock_levels',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        _fk('product_id', 'products.id'),
        sa.Column('on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        _version_id(),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('branch_id', 'product_id', name='uq_stock_levels_branch_product'),
        sa.CheckConstraint('on_hand >= 0', name='ck_stock_levels_on_hand_non_negative'),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        _fk('product_id', 'products.id'),
        sa.Column('movement_type', sa.String(length=16), nullable=False, index=True),
        sa.Column('requested_change', sa.Integer(), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('from_stock_count', sa.Integer(), nullable=False),
        sa.Column('to_stock_count', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        _fk('changed_by', 'staff.id', nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        _created_at(index=True),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_movements_branch_product', 'stock_movements', ['branch_id', 'product_id'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    op.create_table(
        'stock_counts',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        _fk('shift_id', 'shifts.id', nullable=True),
        _fk('counted_by', 'staff.id', nullable=True, index=False),
        sa.Column('note', sa.Text(), nullable=True),
        _created_at(),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'stock_count_lines',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('stock_count_id', 'stock_counts.id'),
        _fk('product_id', 'products.id', index=False),
        sa.Column('expected_quantity', sa.Integer(), nullable=False),
        sa.Column('actual_quantity', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.UniqueConstraint('stock_count_id', 'product_id', name='uq_stock_count_lines_product'),
        sqlite_autoincrement=True,
    )

    # ============================================================================
    # loyalty
    # ============================================================================
    op.create_table(
        'customer_product_points',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('customer_id', 'customers.id'),
        _fk('product_id', 'products.id'),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        _updated_at(),
        _version_id(),
        sa.UniqueConstraint('store_id', 'customer_id', 'product_id', name='uq_customer_product_points'),
        sa.CheckConstraint('points >= 0', name='ck_customer_product_points_non_negative'),
        sqlite_autoincrement=True,
    )

    op.create_table(
        'point_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id', index=False),
        _fk('branch_id', 'branches.id', nullable=True, index=False),
        _fk('customer_id', 'customers.id', index=False),
        _fk('product_id', 'products.id', index=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('points_change', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        _fk('staff_id', 'staff.id', nullable=True, index=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        _created_at(index=True),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_point_transactions_customer', 'point_transactions', ['store_id', 'customer_id'])
    op.create_index('ix_point_transactions_reference', 'point_transactions', ['reference_type', 'reference_id'])

    op.create_table(
        'point_redemptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('branch_id', 'branches.id'),
        _fk('customer_id', 'customers.id'),
        _fk('product_id', 'products.id', index=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('points_used', sa.Integer(), nullable=False),
        _fk('staff_id', 'staff.id', nullable=True, index=False),
        _created_at(),
        sqlite_autoincrement=True,
    )

    # ============================================================================
    # transfers: from_branch_id NULL = central warehouse
    # ============================================================================
    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('store_id', 'stores.id'),
        _fk('from_branch_id', 'branches.id', nullable=True),
        _fk('to_branch_id', 'branches.id'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='CREATED', index=True),
        sa.Column('note', sa.Text(), nullable=True),
        _fk('requested_by', 'staff.id', nullable=True, index=False),
        _fk('sent_by', 'staff.id', nullable=True, index=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        _fk('received_by', 'staff.id', nullable=True, index=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        _fk('cancelled_by', 'staff.id', nullable=True, index=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(index=True),
        _updated_at(),
        _version_id(),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_transfers_to_status', 'stock_transfers', ['to_branch_id', 'status'])

    op.create_table(
        'stock_transfer_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        _fk('transfer_id', 'stock_transfers.id'),
        _fk('product_id', 'products.id', index=False),
        sa.Column('send_count', sa.Integer(), nullable=False),
        sa.Column('receive_count', sa.Integer(), nullable=True),
        sa.UniqueConstraint('transfer_id', 'product_id', name='uq_stock_transfer_items_product'),
        sqlite_autoincrement=True,
    )


def downgrade():
    for table in (
        'stock_transfer_items', 'stock_transfers',
        'point_redemptions', 'point_transactions', 'customer_product_points',
        'stock_count_lines', 'stock_counts', 'stock_movements', 'stock_levels',
        'shift_cash_movements', 'order_promotions', 'payments', 'order_items', 'orders',
        'shifts', 'promotion_products', 'promotions', 'customers', 'products',
        'staff', 'branches', 'stores',
    ):
        op.drop_table(table)
