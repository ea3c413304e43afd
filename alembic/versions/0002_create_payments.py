"""create_payments

Revision ID: 0002_create_payments
Revises: 0001_create_marketplace_tables
Create Date: 2026-10-19 14:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0002_create_payments'
down_revision: Union[str, Sequence[str], None] = '0001_create_marketplace_tables'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PAYMENT_METHODS = ('card', 'wallet', 'bank_transfer', 'cash')
PAYMENT_RECORD_STATUSES = ('pending', 'completed', 'failed')


def upgrade():
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tenant_id', sa.String(length=36), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('booking_id', sa.String(length=36), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=10)),
        sa.Column('payment_method', sa.Enum(*PAYMENT_METHODS, name='paymentmethod', native_enum=False, length=20), nullable=False),
        sa.Column('gateway_reference', sa.String(length=100)),
        sa.Column('status', sa.Enum(*PAYMENT_RECORD_STATUSES, name='paymentrecordstatus', native_enum=False, length=20), nullable=False),
        sa.Column('payment_data', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_booking_id', 'payments', ['booking_id'])


def downgrade():
    op.drop_index('ix_payments_booking_id', table_name='payments')
    op.drop_index('ix_payments_tenant_id', table_name='payments')
    op.drop_table('payments')
