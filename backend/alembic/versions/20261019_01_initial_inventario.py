"""initial inventario schema: users, products, product_lots, history

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Idempotente: create_all() en el arranque puede haber creado las tablas
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=100), nullable=False),
            sa.Column('password_hash', sa.String(length=200), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_users_username', 'users', ['username'], unique=True)

    if 'products' not in existing:
        op.create_table(
            'products',
            sa.Column('id', sa.String(length=100), primary_key=True),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('unit', sa.String(length=10), nullable=False),
            sa.Column('quantity', sa.Numeric(14, 4), nullable=False, server_default='0'),
            sa.CheckConstraint("unit IN ('L', 'kg')", name='ck_products_unit'),
            sa.CheckConstraint('quantity >= 0', name='ck_products_quantity'),
        )

    if 'product_lots' not in existing:
        op.create_table(
            'product_lots',
            sa.Column('id', sa.String(length=36), primary_key=True),
            sa.Column('product_id', sa.String(length=100),
                      sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
            sa.Column('quantity', sa.Numeric(14, 4), nullable=False),
            sa.Column('data_validade', sa.Date(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('quantity > 0', name='ck_product_lots_quantity'),
        )
        op.create_index('ix_product_lots_product_id', 'product_lots', ['product_id'])

    if 'history' not in existing:
        op.create_table(
            'history',
            sa.Column('seq', sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column('id', sa.String(length=100), nullable=False),
            sa.Column('timestamp', sa.DateTime(), nullable=False),
            sa.Column('entity_type', sa.String(length=50), nullable=False),
            sa.Column('entity_id', sa.String(length=100), nullable=False),
            sa.Column('batch_id', sa.String(length=100), nullable=False),
            sa.Column('changes', sa.JSON(), nullable=False),
            comment='Historial de cambios de productos y lotes - inmutable',
        )
        op.create_index('ix_history_id', 'history', ['id'], unique=True)
        op.create_index('ix_history_timestamp', 'history', ['timestamp'])
        op.create_index('ix_history_entity_type', 'history', ['entity_type'])
        op.create_index('ix_history_entity_id', 'history', ['entity_id'])
        op.create_index('ix_history_batch_id', 'history', ['batch_id'])


def downgrade() -> None:
    op.drop_table('history')
    op.drop_table('product_lots')
    op.drop_table('products')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
