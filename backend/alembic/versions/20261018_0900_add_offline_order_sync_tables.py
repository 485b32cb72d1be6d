"""Create orders, order items and the conflict resolution ledger

Revision ID: 0001_offline_order_sync
Revises:
Create Date: 2026-10-18 09:00:00

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_offline_order_sync'
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade():
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=True),
        sa.Column('client_name', sa.String(255), nullable=False),
        sa.Column('client_phone', sa.String(20), nullable=True),
        sa.Column('client_address', sa.Text(), nullable=True),
        sa.Column('total', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('delivery_time', sa.Time(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('client_generated_id', sa.String(255), nullable=True),
        sa.Column('last_modified_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('modified_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.UniqueConstraint('business_id', 'client_generated_id',
                            name='uq_orders_business_client_generated_id'),
    )

    op.create_index('ix_orders_id', 'orders', ['id'])
    op.create_index('ix_orders_business_id', 'orders', ['business_id'])
    op.create_index('ix_orders_employee_id', 'orders', ['employee_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('idx_orders_business_date', 'orders',
                    ['business_id', 'delivery_date'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(),
                  sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(64), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
    )

    op.create_index('ix_order_items_id', 'order_items', ['id'])
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'conflict_resolutions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('local_version', JSONType, nullable=False),
        sa.Column('server_version', JSONType, nullable=False),
        sa.Column('resolution_type', sa.String(20), nullable=False),
        sa.Column('resolved_data', JSONType, nullable=False),
        sa.Column('resolved_by', sa.Integer(), nullable=True),
        sa.Column('conflict_fields', JSONType, nullable=True),
        sa.Column('resolution_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.CheckConstraint("resolution_type IN ('local', 'server', 'merge')",
                           name='ck_conflict_resolutions_type'),
    )

    op.create_index('ix_conflict_resolutions_id', 'conflict_resolutions', ['id'])
    op.create_index('ix_conflict_resolutions_order_id', 'conflict_resolutions',
                    ['order_id'])
    op.create_index('idx_conflict_resolutions_created_at', 'conflict_resolutions',
                    ['created_at'])


def downgrade():
    op.drop_index('idx_conflict_resolutions_created_at', 'conflict_resolutions')
    op.drop_index('ix_conflict_resolutions_order_id', 'conflict_resolutions')
    op.drop_index('ix_conflict_resolutions_id', 'conflict_resolutions')
    op.drop_table('conflict_resolutions')
    op.drop_index('ix_order_items_order_id', 'order_items')
    op.drop_index('ix_order_items_id', 'order_items')
    op.drop_table('order_items')
    op.drop_index('idx_orders_business_date', 'orders')
    op.drop_index('ix_orders_status', 'orders')
    op.drop_index('ix_orders_employee_id', 'orders')
    op.drop_index('ix_orders_business_id', 'orders')
    op.drop_index('ix_orders_id', 'orders')
    op.drop_table('orders')
